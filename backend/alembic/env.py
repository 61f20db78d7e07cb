"""Alembic environment script.

Avoids importing the runtime database configuration module (which creates
engines and sessions at import time). Only model metadata and a database URL
are needed. The URL is resolved with the following precedence:

1. DB_URL
2. DATABASE_URL
3. sqlalchemy.url from alembic.ini

Async driver URLs (postgresql+asyncpg://, sqlite+aiosqlite://) are converted
to their synchronous counterparts for Alembic operations.
"""
import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

# Add backend root to import path (env.py lives in backend/alembic)
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from src.models.database import Base  # noqa: E402

target_metadata = Base.metadata

raw_url = os.getenv('DB_URL') or os.getenv('DATABASE_URL') or config.get_main_option('sqlalchemy.url')

if raw_url.startswith('postgresql+asyncpg://'):
    raw_url = raw_url.replace('postgresql+asyncpg://', 'postgresql+psycopg://', 1)
elif raw_url.startswith('postgresql://'):
    raw_url = raw_url.replace('postgresql://', 'postgresql+psycopg://', 1)
elif raw_url.startswith('sqlite+aiosqlite://'):
    raw_url = raw_url.replace('sqlite+aiosqlite://', 'sqlite://', 1)

config.set_main_option('sqlalchemy.url', raw_url)


def run_migrations_offline():
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Run migrations in 'online' mode."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix='sqlalchemy.',
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
            render_as_batch=connection.dialect.name == 'sqlite',
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
