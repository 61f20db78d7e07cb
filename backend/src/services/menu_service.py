"""Menu read service."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.database import MenuItem
from src.utils.errors import MenuItemNotFound


async def list_menu_items(
    db: AsyncSession,
    category: Optional[str] = None,
    include_unavailable: bool = False,
) -> List[MenuItem]:
    stmt = select(MenuItem).order_by(MenuItem.category, MenuItem.name)
    if not include_unavailable:
        stmt = stmt.where(MenuItem.available.is_(True))
    if category:
        stmt = stmt.where(MenuItem.category == category)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_menu_item(db: AsyncSession, item_id: UUID) -> MenuItem:
    result = await db.execute(select(MenuItem).where(MenuItem.id == item_id))
    item = result.scalar_one_or_none()
    if not item:
        raise MenuItemNotFound()
    return item


def menu_item_to_dict(item: MenuItem) -> dict:
    return {
        "id": str(item.id),
        "name": item.name,
        "description": item.description,
        "category": item.category,
        "price": f"{item.price:.2f}",
        "image": item.image,
        "dietary": list(item.dietary or []),
        "price_range_label": item.price_range_label,
        "featured": bool(item.featured),
        "seasonal": bool(item.seasonal),
        "available": bool(item.available),
    }
