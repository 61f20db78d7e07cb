"""Menu router (read-only; menu management happens through the admin tooling)."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_async_db_dependency
from src.services.menu_service import get_menu_item, list_menu_items, menu_item_to_dict
from src.utils.api_shapes import success

router = APIRouter()


@router.get('')
@router.get('/')
async def list_menu(
    category: Optional[str] = None,
    db: AsyncSession = Depends(get_async_db_dependency),
):
    items = await list_menu_items(db, category=category)
    data = [menu_item_to_dict(i) for i in items]
    return success(data, total=len(data))


@router.get('/{item_id}')
async def get_menu_item_detail(
    item_id: UUID,
    db: AsyncSession = Depends(get_async_db_dependency),
):
    item = await get_menu_item(db, item_id)
    return success(menu_item_to_dict(item))
