"""Order router: guest checkout, tracking lookup and admin status updates.

Authentication is handled upstream (gateway); these routes do not gate access.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_async_db_dependency
from src.services.notifications import BaseNotifier, get_notifier
from src.services.order_service import (
    confirm_payment_service,
    create_order_service,
    get_order_by_tracking_id,
    get_order_service,
    list_orders_service,
    order_to_dict,
    update_order_status_service,
)
from src.services.tracking_id import TrackingIdGenerator, get_tracking_id_generator
from src.utils.api_shapes import success

router = APIRouter()


class OrderItemIn(BaseModel):
    model_config = ConfigDict(extra='ignore')

    menu_item_id: UUID
    quantity: int = Field(ge=1)

    @model_validator(mode="before")
    @classmethod
    def normalize_input(cls, values):  # type: ignore
        if isinstance(values, dict) and 'menuItemId' in values and 'menu_item_id' not in values:
            values = {**values, 'menu_item_id': values['menuItemId']}
        return values


class OrderCreate(BaseModel):
    # Ignore unknown fields from the checkout form (cart images etc.)
    model_config = ConfigDict(extra='ignore')

    customer_name: str = Field(min_length=2)
    customer_email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    customer_phone: str = Field(min_length=10)
    delivery_address: str = Field(min_length=10)
    items: List[OrderItemIn] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def normalize_input(cls, values):  # type: ignore
        """Accept the checkout form's camelCase keys and trim strings."""
        if not isinstance(values, dict):
            return values
        key_map = {
            'customerName': 'customer_name',
            'customerEmail': 'customer_email',
            'customerPhone': 'customer_phone',
            'deliveryAddress': 'delivery_address',
        }
        values = dict(values)
        for src_key, dest_key in key_map.items():
            if src_key in values and dest_key not in values:
                values[dest_key] = values[src_key]
        for field in key_map.values():
            if isinstance(values.get(field), str):
                values[field] = values[field].strip()
        return values


class OrderStatusUpdate(BaseModel):
    model_config = ConfigDict(extra='ignore')

    status: str
    dispatch_ref: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_input(cls, values):  # type: ignore
        if isinstance(values, dict) and 'dispatchRef' in values and 'dispatch_ref' not in values:
            values = {**values, 'dispatch_ref': values['dispatchRef']}
        return values


class PaymentConfirmed(BaseModel):
    model_config = ConfigDict(extra='ignore')

    payment_reference: str = Field(min_length=1)


@router.post('', status_code=status.HTTP_201_CREATED)
@router.post('/', status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_async_db_dependency),
    generator: TrackingIdGenerator = Depends(get_tracking_id_generator),
    notifier: BaseNotifier = Depends(get_notifier),
):
    data = payload.model_dump(mode="json")
    order = await create_order_service(db, data, generator, notifier)
    return success(order_to_dict(order))


@router.get('')
@router.get('/')
async def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_async_db_dependency),
):
    orders = await list_orders_service(db, status=status_filter)
    data = [order_to_dict(o) for o in orders]
    return success(data, total=len(data))


@router.get('/track/{tracking_id}')
async def track_order(
    tracking_id: str,
    db: AsyncSession = Depends(get_async_db_dependency),
):
    order = await get_order_by_tracking_id(db, tracking_id)
    return success(order_to_dict(order))


@router.get('/{order_id}')
async def get_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_async_db_dependency),
):
    order = await get_order_service(db, order_id)
    return success(order_to_dict(order))


@router.patch('/{order_id}/status')
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_async_db_dependency),
):
    order = await update_order_status_service(
        db, order_id, payload.status, dispatch_ref=payload.dispatch_ref)
    return success(order_to_dict(order))


@router.post('/{order_id}/payment-confirmed')
async def payment_confirmed(
    order_id: UUID,
    payload: PaymentConfirmed,
    db: AsyncSession = Depends(get_async_db_dependency),
):
    """Callback from the payment gateway once a payment has settled."""
    order = await confirm_payment_service(db, order_id, payload.payment_reference)
    return success(order_to_dict(order))
