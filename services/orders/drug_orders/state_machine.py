"""
Order item status state machine.

``TRANSITIONS`` lists every legal edge together with the stock change it
causes, so legality and stock effect are defined in one place:

    pending      -> approved      take the item's quantity from the drug's stock
    pending      -> rejected      no stock change
    approved     -> rejected      return the quantity to stock
    approved     -> shipped       no stock change
    out_of_stock -> pending       no stock change; only once stock covers the item
    out_of_stock -> rejected      no stock change

rejected and shipped are terminal. Each transition runs in one transaction:
the item row is locked, the status is written with a compare-and-set and the
stock is adjusted with a conditional update, so a failure at any step leaves
both unchanged.
"""
import logging
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from . import crud, inventory, models, validators
from .database import atomic
from .enums import ItemStatus, Role
from .errors import (
    AuthorizationError,
    IllegalEdit,
    IllegalTransition,
    InsufficientStock,
    ItemNotFound,
)
from .numbering import line_total
from .schemas import Actor

logger = logging.getLogger(__name__)

StockDelta = Callable[[models.OrderItem], int]


def _commit_stock(item: models.OrderItem) -> int:
    return -item.quantity


def _release_stock(item: models.OrderItem) -> int:
    return item.quantity


def _no_stock_change(item: models.OrderItem) -> int:
    return 0


TRANSITIONS: Dict[ItemStatus, Dict[ItemStatus, StockDelta]] = {
    ItemStatus.PENDING: {
        ItemStatus.APPROVED: _commit_stock,
        ItemStatus.REJECTED: _no_stock_change,
    },
    ItemStatus.APPROVED: {
        ItemStatus.REJECTED: _release_stock,
        ItemStatus.SHIPPED: _no_stock_change,
    },
    ItemStatus.OUT_OF_STOCK: {
        ItemStatus.PENDING: _no_stock_change,
        ItemStatus.REJECTED: _no_stock_change,
    },
    ItemStatus.REJECTED: {},
    ItemStatus.SHIPPED: {},
}


def _require_restocked(db: Session, item: models.OrderItem) -> None:
    if item.drug_id is None:
        return
    available = inventory.current_stock(db, item.drug_id)
    if available is None or available < item.quantity:
        raise InsufficientStock(item.drug_id, requested=item.quantity, available=available)


# Extra checks run before an edge is taken
GUARDS: Dict[tuple, Callable[[Session, models.OrderItem], None]] = {
    (ItemStatus.OUT_OF_STOCK, ItemStatus.PENDING): _require_restocked,
}


def allowed_targets(current: ItemStatus) -> set:
    """Statuses reachable from ``current`` in one step."""
    return set(TRANSITIONS[current])


def is_allowed(current: ItemStatus, target: ItemStatus) -> bool:
    return target in TRANSITIONS[current]


def can_act_on(actor: Actor, item: models.OrderItem) -> bool:
    """
    Whether ``actor`` may change this item.

    Sellers act on their own lines and admins on any line. Manufacturer lines
    have no seller; the buyer who placed the order fulfils them.
    """
    if actor.role == Role.ADMIN.value:
        return True
    if item.seller_id is not None:
        return item.seller_id == actor.id
    return item.order.user_id == actor.id


def _load_for_change(db: Session, item_id: int, actor: Actor) -> models.OrderItem:
    item = crud.get_order_item(db, item_id, for_update=True)
    if item is None:
        raise ItemNotFound(item_id)
    if not can_act_on(actor, item):
        logger.warning(f"User {actor.id} denied access to order item {item_id}")
        raise AuthorizationError("Not authorized to update this order item", item_id=item_id)
    return item


def transition_item(db: Session, item_id: int, actor: Actor, target_status: Any) -> models.OrderItem:
    """
    Move an order item to a new status and apply the matching stock change.

    Args:
        db: Database session
        item_id: ID of the order item
        actor: Seller of the item or an admin
        target_status: Desired status

    Returns:
        The updated OrderItem

    Raises:
        ValidationError: Unknown target status
        ItemNotFound: No such item
        AuthorizationError: Actor is neither the item's seller nor an admin
        IllegalTransition: The edge is not in the transition table, or another
            request changed the item first
        InsufficientStock: Approval needs more stock than the drug has
        StorageError: The transaction failed
    """
    target = validators.parse_item_status(target_status)

    with atomic(db):
        item = _load_for_change(db, item_id, actor)
        current = ItemStatus(item.status)
        if not is_allowed(current, target):
            raise IllegalTransition(current.value, target.value)

        guard = GUARDS.get((current, target))
        if guard is not None:
            guard(db, item)

        if not crud.set_item_status(db, item, expected=current, new=target):
            # Someone else moved the item between our read and our write
            raise IllegalTransition(current.value, target.value)

        delta = TRANSITIONS[current][target](item)
        if delta and item.drug_id is not None:
            inventory.adjust_stock(db, item.drug_id, delta)

        crud.log_order_event(
            db,
            order_id=item.order_id,
            item_id=item.id,
            event_type="item_status_changed",
            description=f"Item {item.id} status changed from '{current.value}' to '{target.value}'",
            old_value=current.value,
            new_value=target.value,
            user_id=actor.id,
        )

    logger.info(
        f"Order item {item_id}: {current.value} -> {target.value} by user {actor.id}"
        + (f" (stock delta {delta} on drug {item.drug_id})" if delta and item.drug_id else "")
    )
    db.refresh(item)
    return item


def edit_item_quantity(db: Session, item_id: int, actor: Actor, quantity: Any) -> models.OrderItem:
    """
    Change the quantity of a pending order item.

    The order header total is not recalculated; it reflects the cart as placed.

    Args:
        db: Database session
        item_id: ID of the order item
        actor: Seller of the item or an admin
        quantity: New positive quantity

    Returns:
        The updated OrderItem

    Raises:
        ValidationError: Quantity is not a positive integer
        ItemNotFound: No such item
        AuthorizationError: Actor is neither the item's seller nor an admin
        IllegalEdit: The item is no longer pending
        StorageError: The transaction failed
    """
    quantity = validators.validate_quantity(quantity)

    with atomic(db):
        item = _load_for_change(db, item_id, actor)
        if item.status != ItemStatus.PENDING.value:
            raise IllegalEdit(item.status)

        old_quantity = item.quantity
        if not crud.set_item_quantity(db, item, quantity, line_total(item.unit_price, quantity)):
            db.refresh(item)
            raise IllegalEdit(item.status)

        crud.log_order_event(
            db,
            order_id=item.order_id,
            item_id=item.id,
            event_type="item_quantity_changed",
            description=f"Item {item.id} quantity changed from {old_quantity} to {quantity}",
            old_value=str(old_quantity),
            new_value=str(quantity),
            user_id=actor.id,
        )

    logger.info(f"Order item {item_id}: quantity {old_quantity} -> {quantity} by user {actor.id}")
    db.refresh(item)
    return item

