"""
CRUD operations for orders and order items.

This module is the only place that writes to the orders, order_items and
order_events tables. None of these functions commit: callers group them into
one transaction with ``database.atomic``.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from . import models
from .enums import ItemStatus

logger = logging.getLogger(__name__)


def get_order(db: Session, order_id: int) -> Optional[models.Order]:
    """
    Retrieve a single order by ID.

    Args:
        db: Database session
        order_id: ID of the order to retrieve

    Returns:
        Order object or None if not found
    """
    return db.query(models.Order).filter(models.Order.id == order_id).first()


def order_no_exists(db: Session, order_no: str) -> bool:
    return db.query(models.Order.id).filter(models.Order.order_no == order_no).first() is not None


def get_user(db: Session, user_id: Optional[int]) -> Optional[models.User]:
    if user_id is None:
        return None
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_order_item(db: Session, item_id: int, for_update: bool = False) -> Optional[models.OrderItem]:
    """
    Retrieve a single order item by ID.

    Args:
        db: Database session
        item_id: ID of the item
        for_update: Lock the row until the end of the transaction (SELECT ... FOR UPDATE)

    Returns:
        OrderItem object or None if not found
    """
    query = db.query(models.OrderItem).filter(models.OrderItem.id == item_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()


def get_order_items(db: Session, order_id: int) -> List[models.OrderItem]:
    """Items of an order in creation order."""
    return (
        db.query(models.OrderItem)
        .filter(models.OrderItem.order_id == order_id)
        .order_by(models.OrderItem.created_at.asc(), models.OrderItem.id.asc())
        .all()
    )


def add_order(db: Session, order: models.Order, items: List[models.OrderItem]) -> models.Order:
    """
    Stage an order header and its items in the current transaction.

    Items are flushed in list order so their IDs follow request order.

    Returns:
        The order with its primary key assigned
    """
    order.items = list(items)
    db.add(order)
    db.flush()
    return order


def set_item_status(db: Session, item: models.OrderItem, expected: ItemStatus, new: ItemStatus) -> bool:
    """
    Compare-and-set an item's status.

    The UPDATE only matches while the stored status still equals ``expected``,
    so a concurrent writer that got there first makes this return False.

    Returns:
        True if the status was changed
    """
    result = db.execute(
        update(models.OrderItem)
        .where(models.OrderItem.id == item.id, models.OrderItem.status == expected.value)
        .values(status=new.value, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    db.expire(item, ["status", "updated_at"])
    return True


def set_item_quantity(db: Session, item: models.OrderItem, quantity: int, total_price) -> bool:
    """
    Change the quantity of an item that is still pending.

    Returns:
        True if the item was still pending and has been updated
    """
    result = db.execute(
        update(models.OrderItem)
        .where(models.OrderItem.id == item.id, models.OrderItem.status == ItemStatus.PENDING.value)
        .values(quantity=quantity, total_price=total_price, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    db.expire(item, ["quantity", "total_price", "updated_at"])
    return True


def log_order_event(
    db: Session,
    order_id: int,
    event_type: str,
    description: str,
    old_value: str = None,
    new_value: str = None,
    user_id: int = None,
    item_id: int = None,
) -> models.OrderEvent:
    """
    Stage an event on the order timeline.

    Args:
        db: Database session
        order_id: Order identifier
        event_type: Type of event (e.g., "created", "item_status_changed")
        description: Human-readable description
        old_value: Previous value (optional)
        new_value: New value (optional)
        user_id: User who triggered the event (optional)
        item_id: Item the event concerns (optional)
    """
    event = models.OrderEvent(
        order_id=order_id,
        item_id=item_id,
        event_type=event_type,
        description=description,
        old_value=old_value,
        new_value=new_value,
        user_id=user_id,
    )
    db.add(event)
    return event


def get_order_events(db: Session, order_id: int) -> List[models.OrderEvent]:
    """All events of an order in chronological order."""
    return (
        db.query(models.OrderEvent)
        .filter(models.OrderEvent.order_id == order_id)
        .order_by(models.OrderEvent.created_at.asc(), models.OrderEvent.id.asc())
        .all()
    )
