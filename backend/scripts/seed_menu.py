#!/usr/bin/env python
"""Seed the menu with starter items if it is empty.

This script is idempotent: it only inserts items when the menu has none.
Run after migrations:

    python run_migrations.py && python scripts/seed_menu.py
"""
from __future__ import annotations
import asyncio
import logging
import sys
from decimal import Decimal
from pathlib import Path

from sqlalchemy import func, select

backend_dir = Path(__file__).resolve().parents[1]
if str(backend_dir) not in sys.path:
    sys.path.append(str(backend_dir))

from src.config.database import get_async_db  # noqa: E402
from src.models.database import MenuItem  # noqa: E402

logger = logging.getLogger("seed_menu")
logging.basicConfig(level=logging.INFO, format="[seed_menu] %(message)s")

STARTER_MENU = [
    {"name": "Butter Chicken", "category": "Mains", "price": Decimal("14.50"),
     "description": "Tandoori chicken simmered in a tomato and butter sauce",
     "dietary": ["gluten-free"], "price_range_label": "$$", "featured": True},
    {"name": "Paneer Tikka", "category": "Starters", "price": Decimal("9.00"),
     "description": "Chargrilled cottage cheese with peppers and onion",
     "dietary": ["vegetarian", "gluten-free"], "price_range_label": "$"},
    {"name": "Lamb Biryani", "category": "Mains", "price": Decimal("16.00"),
     "description": "Slow-cooked basmati rice layered with spiced lamb",
     "dietary": [], "price_range_label": "$$"},
    {"name": "Garlic Naan", "category": "Sides", "price": Decimal("3.50"),
     "description": "Leavened flatbread brushed with garlic butter",
     "dietary": ["vegetarian"], "price_range_label": "$"},
    {"name": "Mango Lassi", "category": "Drinks", "price": Decimal("4.25"),
     "description": "Yoghurt and Alphonso mango, lightly sweetened",
     "dietary": ["vegetarian", "gluten-free"], "price_range_label": "$",
     "seasonal": True},
]


async def main():
    async with get_async_db() as session:
        count = (await session.execute(select(func.count(MenuItem.id)))).scalar_one()
        if count:
            logger.info("Menu already has %d items; skipping seed.", count)
            return
        for item in STARTER_MENU:
            session.add(MenuItem(image="", **item))
            logger.info("  + %s", item["name"])
        logger.info("Inserted %d menu items", len(STARTER_MENU))


if __name__ == "__main__":
    asyncio.run(main())
