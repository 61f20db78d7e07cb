"""Order domain service layer.

Keeps persistence and business rules out of the routers. Raises domain
exceptions (never HTTPException); the app's exception handlers map them.

Order creation allocates the tracking id exactly once, inside the request's
transaction, before the order row is inserted. If allocation fails the order
is not created and the day counter is not advanced.
"""
from __future__ import annotations

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.observability import record_order_operation, record_tracking_id_failure
from src.config.settings import get_settings
from src.models.database import MenuItem, Order, OrderStatus, PaymentStatus
from src.services.notifications import BaseNotifier
from src.services.tracking_id import TrackingIdGenerator, parse_tracking_id
from src.utils.errors import OrderNotFound, OrderValidationError, StorageUnavailable

logger = logging.getLogger(__name__)

REQUIRED_CUSTOMER_FIELDS = ("customer_name", "customer_email",
                            "customer_phone", "delivery_address")
TERMINAL_STATUSES = {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value}
CENT = Decimal("0.01")


async def _resolve_items(db: AsyncSession, raw_items: Any) -> List[Dict[str, Any]]:
    """Validate cart lines and snapshot name/price from the menu."""
    if not isinstance(raw_items, list) or not raw_items:
        raise OrderValidationError("Order must contain at least one item")
    wanted: List[tuple] = []
    for idx, line in enumerate(raw_items):
        try:
            item_id = UUID(str(line["menu_item_id"]))
            quantity = int(line["quantity"])
        except (KeyError, TypeError, ValueError) as exc:
            raise OrderValidationError(
                "Invalid order item", details={"index": idx}) from exc
        if quantity < 1:
            raise OrderValidationError(
                "Item quantity must be at least 1", details={"index": idx})
        wanted.append((item_id, quantity))

    ids = {item_id for item_id, _ in wanted}
    result = await db.execute(select(MenuItem).where(MenuItem.id.in_(ids)))
    menu = {m.id: m for m in result.scalars().all()}

    lines: List[Dict[str, Any]] = []
    for item_id, quantity in wanted:
        menu_item = menu.get(item_id)
        if menu_item is None or not menu_item.available:
            raise OrderValidationError(
                "Menu item unavailable", details={"menu_item_id": str(item_id)})
        lines.append({
            "menu_item_id": str(item_id),
            "name": menu_item.name,
            "price": f"{Decimal(menu_item.price).quantize(CENT)}",
            "quantity": quantity,
        })
    return lines


def _order_total(lines: List[Dict[str, Any]]) -> Decimal:
    try:
        total = sum((Decimal(line["price"]) * line["quantity"]
                    for line in lines), Decimal("0"))
    except InvalidOperation as exc:
        raise OrderValidationError("Invalid item price") from exc
    return total.quantize(CENT)


async def create_order_service(
    db: AsyncSession,
    payload: Dict[str, Any],
    generator: TrackingIdGenerator,
    notifier: Optional[BaseNotifier] = None,
) -> Order:
    """Create an order and assign its tracking id."""
    missing = [f for f in REQUIRED_CUSTOMER_FIELDS if not payload.get(f)]
    if missing:
        raise OrderValidationError(
            "Missing required customer fields", details={"missing": missing})
    lines = await _resolve_items(db, payload.get("items"))
    total = _order_total(lines)

    timeout = get_settings().ORDER_CREATE_TIMEOUT_SECONDS
    try:
        tracking_id = await asyncio.wait_for(generator.generate(db), timeout=timeout)
    except asyncio.TimeoutError as exc:
        await db.rollback()
        record_tracking_id_failure("timeout")
        raise StorageUnavailable(
            "Timed out allocating tracking id", details={"timeout_s": timeout}) from exc
    except Exception:
        await db.rollback()
        raise

    order = Order(
        id=uuid4(),
        tracking_id=tracking_id,
        customer_name=payload["customer_name"],
        customer_email=payload["customer_email"],
        customer_phone=payload["customer_phone"],
        delivery_address=payload["delivery_address"],
        items=lines,
        total_amount=total,
        status=OrderStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
    )
    db.add(order)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(order)
    record_order_operation("create")
    logger.info("Order %s created (total=%s)", order.tracking_id, total)

    if notifier is not None:
        # Confirmation delivery never fails the order
        try:
            await notifier.send_order_confirmation(order)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Order confirmation failed for %s", order.tracking_id)
    return order


async def get_order_service(db: AsyncSession, order_id: UUID) -> Order:
    result = await db.execute(select(Order).where(Order.id == order_id))
    order = result.scalar_one_or_none()
    if not order:
        raise OrderNotFound()
    return order


async def get_order_by_tracking_id(db: AsyncSession, tracking_id: str) -> Order:
    try:
        parse_tracking_id(tracking_id)
    except ValueError as exc:
        raise OrderNotFound() from exc
    result = await db.execute(select(Order).where(Order.tracking_id == tracking_id))
    order = result.scalar_one_or_none()
    if not order:
        raise OrderNotFound()
    return order


async def list_orders_service(
    db: AsyncSession, status: Optional[str] = None, limit: int = 100
) -> List[Order]:
    stmt = select(Order).order_by(Order.created_at.desc(), Order.tracking_id.desc()).limit(limit)
    if status:
        stmt = stmt.where(Order.status == status)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def update_order_status_service(
    db: AsyncSession,
    order_id: UUID,
    status: str,
    dispatch_ref: Optional[str] = None,
) -> Order:
    valid = {s.value for s in OrderStatus}
    if status not in valid:
        raise OrderValidationError(
            "Invalid order status", details={"allowed": sorted(valid)})
    order = await get_order_service(db, order_id)
    if order.status in TERMINAL_STATUSES and order.status != status:
        raise OrderValidationError(
            f"Order is already {order.status}", details={"status": order.status})
    order.status = status
    if dispatch_ref:
        order.dispatch_ref = dispatch_ref
    await db.commit()
    await db.refresh(order)
    record_order_operation("update_status")
    return order


async def confirm_payment_service(
    db: AsyncSession, order_id: UUID, payment_reference: str
) -> Order:
    """Apply the payment gateway's payment-confirmed callback (idempotent)."""
    order = await get_order_service(db, order_id)
    if order.payment_status == PaymentStatus.PAID.value:
        return order
    if order.status == OrderStatus.CANCELLED.value:
        raise OrderValidationError("Cannot confirm payment for a cancelled order")
    order.payment_status = PaymentStatus.PAID.value
    order.payment_reference = payment_reference
    if order.status == OrderStatus.PENDING.value:
        order.status = OrderStatus.CONFIRMED.value
    await db.commit()
    await db.refresh(order)
    record_order_operation("confirm_payment")
    return order


def order_to_dict(order: Order) -> dict:
    return {
        "id": str(order.id),
        "tracking_id": order.tracking_id,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "customer_phone": order.customer_phone,
        "delivery_address": order.delivery_address,
        "items": list(order.items or []),
        "total_amount": f"{Decimal(order.total_amount).quantize(CENT)}",
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_reference": order.payment_reference,
        "dispatch_ref": order.dispatch_ref,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }
