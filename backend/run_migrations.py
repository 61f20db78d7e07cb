"""Utility script to run Alembic migrations programmatically before app start (optional).

Usage:
    python run_migrations.py

This can be invoked in container entrypoint before launching uvicorn.
"""
from alembic.config import Config
from alembic import command
from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import SQLAlchemyError
import os

BASE_DIR = os.path.dirname(__file__)
ALEMBIC_INI = os.path.join(BASE_DIR, 'alembic.ini')
BASELINE_REVISION = '20251031_0001'


def _sync_url(url: str) -> str:
    if url.startswith('postgresql+asyncpg://'):
        return url.replace('postgresql+asyncpg://', 'postgresql+psycopg://', 1)
    if url.startswith('sqlite+aiosqlite://'):
        return url.replace('sqlite+aiosqlite://', 'sqlite://', 1)
    return url


def run():
    cfg = Config(ALEMBIC_INI)
    cfg.set_main_option('script_location', os.path.join(BASE_DIR, 'alembic'))
    # Support overriding via DB_URL or DATABASE_URL
    override = os.getenv('DB_URL') or os.getenv('DATABASE_URL')
    if override:
        cfg.set_main_option('sqlalchemy.url', override)
    # Auto-stamp baseline if tables already exist (schema bootstrapped via create_all)
    url = _sync_url(cfg.get_main_option('sqlalchemy.url'))
    try:
        engine = create_engine(url)
        insp = inspect(engine)
        existing_tables = set(insp.get_table_names())
        engine.dispose()
        if 'alembic_version' not in existing_tables:
            sentinel_tables = {'menu_items', 'orders', 'day_sequences'}
            if existing_tables & sentinel_tables:
                print(
                    f"[migrations] Existing tables detected without alembic_version. Stamping baseline {BASELINE_REVISION}.")
                command.stamp(cfg, BASELINE_REVISION)
    except SQLAlchemyError as e:
        print(f"[migrations] Warning: baseline detection failed: {e}")

    command.upgrade(cfg, 'head')


if __name__ == '__main__':
    run()
