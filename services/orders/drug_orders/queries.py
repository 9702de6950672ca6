"""
Read-only order views for buyers, sellers and administrators.

All list views share one query builder: a scope (which orders the caller may
see), an item scope (which lines of those orders the caller may see), optional
status / transaction type filters, a free-text search and pagination. Every
order comes back with its visible items in creation order and the counters
used for dashboard badges.
"""
import logging
import math
from typing import Any, Callable, List, Optional

from sqlalchemy import and_, or_, true
from sqlalchemy.orm import Query, Session, selectinload

from . import crud, models, validators
from .enums import STATUS_PRIORITY, ItemStatus, Role
from .errors import AuthorizationError, OrderNotFound
from .schemas import Actor, OrderItemView, OrderPage, OrderView, Pagination

logger = logging.getLogger(__name__)

ItemFilter = Callable[[models.Order, models.OrderItem], bool]


def overall_status(statuses: List[str]) -> Optional[str]:
    """
    Aggregate item statuses into one order status.

    The status that comes first in STATUS_PRIORITY wins, so an order reads as
    pending as long as any of its items is pending.
    """
    present = set(statuses)
    for status in STATUS_PRIORITY:
        if status.value in present:
            return status.value
    return None


def _item_view(item: models.OrderItem) -> OrderItemView:
    return OrderItemView(
        id=item.id,
        drug_id=item.drug_id,
        drug_name=item.drug.name if item.drug is not None else item.custom_name,
        manufacturer_name=item.manufacturer_name,
        quantity=item.quantity,
        unit_price=item.unit_price,
        total_price=item.total_price,
        status=item.status,
        batch_no=item.batch_no,
        category=item.category,
        seller_id=item.seller_id,
        seller_name=item.seller.name if item.seller is not None else None,
        created_at=item.created_at,
    )


def build_order_view(order: models.Order, items: List[models.OrderItem]) -> OrderView:
    """Shape an order and the subset of its items the caller may see."""
    statuses = [i.status for i in items]
    return OrderView(
        id=order.id,
        order_no=order.order_no,
        transaction_type=order.transaction_type,
        total_amount=order.total_amount,
        notes=order.notes,
        buyer_id=order.user_id,
        buyer_name=order.buyer.name if order.buyer is not None else None,
        recipient_id=order.recipient_id,
        recipient_name=order.recipient.name if order.recipient is not None else None,
        created_at=order.created_at,
        updated_at=order.updated_at,
        overall_status=overall_status(statuses),
        item_count=len(items),
        pending_items=statuses.count(ItemStatus.PENDING.value),
        approved_items=statuses.count(ItemStatus.APPROVED.value),
        rejected_items=statuses.count(ItemStatus.REJECTED.value),
        shipped_items=statuses.count(ItemStatus.SHIPPED.value),
        out_of_stock_items=statuses.count(ItemStatus.OUT_OF_STOCK.value),
        items=[_item_view(i) for i in items],
    )


def _like_pattern(term: str) -> str:
    """Substring pattern for ``ilike`` with the term's own wildcards escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _search_clause(term: str, item_scope) -> Any:
    like = _like_pattern(term)

    def match(column):
        return column.ilike(like, escape="\\")

    item_match = or_(
        match(models.OrderItem.custom_name),
        match(models.OrderItem.manufacturer_name),
        match(models.OrderItem.batch_no),
        models.OrderItem.drug.has(match(models.Drug.name)),
        models.OrderItem.seller.has(match(models.User.name)),
    )
    return or_(
        match(models.Order.order_no),
        models.Order.buyer.has(match(models.User.name)),
        models.Order.recipient.has(match(models.User.name)),
        models.Order.items.any(and_(item_scope, item_match)),
    )


def _paginate(
    db: Session,
    scope,
    item_scope,
    item_filter: ItemFilter,
    page: Any,
    limit: Any,
    status: Optional[str],
    transaction_type: Optional[str],
    search: Optional[str],
) -> OrderPage:
    page, limit = validators.validate_pagination(page, limit)
    status = validators.normalize_filter(status)
    transaction_type = validators.normalize_filter(transaction_type)
    search = validators.normalize_filter(search)

    query: Query = db.query(models.Order).filter(scope)
    if status:
        item_status = validators.parse_item_status(status)
        query = query.filter(
            models.Order.items.any(and_(item_scope, models.OrderItem.status == item_status.value))
        )
    if transaction_type:
        query = query.filter(
            models.Order.transaction_type == validators.parse_transaction_type(transaction_type).value
        )
    if search:
        query = query.filter(_search_clause(search, item_scope))

    total = query.count()
    orders = (
        query.options(selectinload(models.Order.items))
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    views = [
        build_order_view(order, [i for i in order.items if item_filter(order, i)])
        for order in orders
    ]
    return OrderPage(
        orders=views,
        pagination=Pagination(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if total else 0,
        ),
    )


def _all_items(order: models.Order, item: models.OrderItem) -> bool:
    return True


def _seller_item_filter(user_id: int) -> ItemFilter:
    def visible(order: models.Order, item: models.OrderItem) -> bool:
        return order.recipient_id == user_id or item.seller_id == user_id
    return visible


def buyer_history(
    db: Session,
    user: Actor,
    page: Any = 1,
    limit: Any = None,
    status: Optional[str] = None,
    transaction_type: Optional[str] = None,
    search: Optional[str] = None,
) -> OrderPage:
    """
    Orders placed by the caller, each with its full item list.

    Args:
        db: Database session
        user: Caller (the buyer)
        page: Page number, starting at 1
        limit: Page size
        status: Only orders with at least one item in this status
        transaction_type: Only orders of this type
        search: Case-insensitive text matched against order number, counterpart
            names, drug/product names, batch numbers and manufacturer names

    Returns:
        OrderPage with the orders and pagination info
    """
    return _paginate(
        db,
        scope=models.Order.user_id == user.id,
        item_scope=true(),
        item_filter=_all_items,
        page=page,
        limit=limit,
        status=status,
        transaction_type=transaction_type,
        search=search,
    )


def seller_orders(
    db: Session,
    user: Actor,
    page: Any = 1,
    limit: Any = None,
    status: Optional[str] = None,
    transaction_type: Optional[str] = None,
    search: Optional[str] = None,
) -> OrderPage:
    """
    Orders in which the caller sells at least one item or is the named recipient.

    A recipient sees the whole order; a seller who is not the recipient sees
    only their own items, and the counters cover only those items.
    """
    item_scope = or_(models.OrderItem.seller_id == user.id, models.Order.recipient_id == user.id)
    scope = or_(
        models.Order.recipient_id == user.id,
        models.Order.items.any(models.OrderItem.seller_id == user.id),
    )
    return _paginate(
        db,
        scope=scope,
        item_scope=item_scope,
        item_filter=_seller_item_filter(user.id),
        page=page,
        limit=limit,
        status=status,
        transaction_type=transaction_type,
        search=search,
    )


def admin_orders(
    db: Session,
    user: Actor,
    page: Any = 1,
    limit: Any = None,
    status: Optional[str] = None,
    transaction_type: Optional[str] = None,
    search: Optional[str] = None,
) -> OrderPage:
    """
    Every order across tenants, for administrators.

    Raises:
        AuthorizationError: If the caller is not an admin
    """
    if user.role != Role.ADMIN.value:
        logger.warning(f"User {user.id} with role '{user.role}' tried to list all orders")
        raise AuthorizationError("Admin privileges required")
    return _paginate(
        db,
        scope=true(),
        item_scope=true(),
        item_filter=_all_items,
        page=page,
        limit=limit,
        status=status,
        transaction_type=transaction_type,
        search=search,
    )


def visible_items(order: models.Order, user: Actor) -> Optional[List[models.OrderItem]]:
    """
    The items of ``order`` the caller may see, or None if the order is not visible at all.

    Admins, the buyer and the header recipient see every item; any other
    seller sees only their own items.
    """
    if user.role == Role.ADMIN.value or order.user_id == user.id or order.recipient_id == user.id:
        return list(order.items)
    own = [i for i in order.items if i.seller_id == user.id]
    return own or None


def get_order_detail(db: Session, user: Actor, order_id: int) -> OrderView:
    """
    One order with the items visible to the caller.

    Raises:
        OrderNotFound: If the order does not exist or the caller has no part in it
    """
    order = crud.get_order(db, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    items = visible_items(order, user)
    if items is None:
        logger.info(f"User {user.id} has no visibility of order {order_id}")
        raise OrderNotFound(order_id)
    return build_order_view(order, items)


def get_order_timeline(db: Session, user: Actor, order_id: int) -> List[models.OrderEvent]:
    """
    Timeline events of an order visible to the caller, oldest first.

    Raises:
        OrderNotFound: If the order does not exist or the caller has no part in it
    """
    order = crud.get_order(db, order_id)
    if order is None or visible_items(order, user) is None:
        raise OrderNotFound(order_id)
    return crud.get_order_events(db, order_id)
