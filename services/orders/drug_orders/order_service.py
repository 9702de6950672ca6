"""
Order creation service.

Validates a cart and persists the order header, its items and a "created"
timeline event in one transaction. How each line is resolved depends on the
transaction type and is chosen from ``ORDER_BUILDERS``:

- institute: each line names a catalog drug; the drug's owner becomes the
  line's seller. Lines the seller cannot currently cover are kept as
  out_of_stock and left out of the total.
- manufacturer: free-form lines with buyer-supplied prices, approved at once.
- pharmacyToInstitute: every line must be a drug of the named institute with
  enough stock, otherwise nothing is written.

No stock is touched here; stock moves only when a seller approves an item.
"""
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from . import config, crud, inventory, models, validators
from .database import atomic
from .enums import ItemStatus, Role, SourceType, TransactionType
from .errors import (
    AuthorizationError,
    DrugNotFound,
    InsufficientStock,
    InvalidItemsList,
    RecipientNotAnInstitute,
    ValidationError,
)
from .numbering import format_amount, line_total, to_money, unique_order_no
from .schemas import Actor, ManufacturerItem, OrderCreated, PeerItem, PharmacyItem

logger = logging.getLogger(__name__)

# Resolves parsed lines into unsaved OrderItem rows and the header recipient
OrderBuilder = Callable[[Session, Actor, List[Any], Optional[int]], Tuple[Optional[int], List[models.OrderItem]]]

ALLOWED_CREATORS: Dict[TransactionType, Set[str]] = {
    TransactionType.INSTITUTE: {Role.INSTITUTE.value, Role.ADMIN.value},
    TransactionType.MANUFACTURER: {Role.INSTITUTE.value, Role.ADMIN.value},
    TransactionType.PHARMACY_TO_INSTITUTE: {Role.PHARMACY.value},
}


def _build_institute_items(
    db: Session, buyer: Actor, items: List[PeerItem], recipient_id: Optional[int]
) -> Tuple[Optional[int], List[models.OrderItem]]:
    order_items = []
    for item in items:
        drug = inventory.get_drug(db, item.drug_id)
        if drug is None:
            raise DrugNotFound(item.drug_id)
        if drug.created_by == buyer.id:
            raise InvalidItemsList(f"Drug {drug.id} belongs to the buyer and cannot be ordered", drug_id=drug.id)

        status = ItemStatus.PENDING if item.quantity <= drug.stock else ItemStatus.OUT_OF_STOCK
        if status == ItemStatus.OUT_OF_STOCK:
            logger.info(f"Drug {drug.id} has {drug.stock} in stock, {item.quantity} requested: item marked out_of_stock")

        order_items.append(models.OrderItem(
            drug_id=drug.id,
            quantity=item.quantity,
            unit_price=drug.price,
            total_price=line_total(drug.price, item.quantity),
            source_type=SourceType.INSTITUTE.value,
            batch_no=drug.batch_no,
            seller_id=drug.created_by,
            status=status.value,
        ))

    # The header recipient is kept for the seller view; lines are routed by drug owner
    header_recipient = recipient_id if crud.get_user(db, recipient_id) is not None else None
    return header_recipient, order_items


def _build_manufacturer_items(
    db: Session, buyer: Actor, items: List[ManufacturerItem], recipient_id: Optional[int]
) -> Tuple[Optional[int], List[models.OrderItem]]:
    order_items = [
        models.OrderItem(
            custom_name=item.custom_name,
            manufacturer_name=item.manufacturer_name,
            quantity=item.quantity,
            unit_price=to_money(item.unit_price),
            total_price=line_total(item.unit_price, item.quantity),
            source_type=SourceType.MANUFACTURER.value,
            seller_id=None,
            status=ItemStatus.APPROVED.value,
        )
        for item in items
    ]
    return None, order_items


def _build_pharmacy_items(
    db: Session, buyer: Actor, items: List[PharmacyItem], recipient_id: Optional[int]
) -> Tuple[Optional[int], List[models.OrderItem]]:
    recipient = crud.get_user(db, recipient_id)
    if recipient is None or recipient.role != Role.INSTITUTE.value:
        raise RecipientNotAnInstitute(recipient_id)

    order_items = []
    for item in items:
        drug = inventory.get_drug_for_owner(db, item.drug_id, recipient.id)
        if drug is None:
            raise DrugNotFound(item.drug_id, f"Drug with ID {item.drug_id} not available at this institute")
        if drug.stock < item.quantity:
            raise InsufficientStock(drug.id, requested=item.quantity, available=drug.stock)

        order_items.append(models.OrderItem(
            drug_id=drug.id,
            quantity=item.quantity,
            unit_price=drug.price,
            total_price=line_total(drug.price, item.quantity),
            source_type=SourceType.INSTITUTE.value,
            category=item.category.value,
            batch_no=drug.batch_no,
            seller_id=recipient.id,
            status=ItemStatus.PENDING.value,
        ))
    return recipient.id, order_items


ORDER_BUILDERS: Dict[TransactionType, OrderBuilder] = {
    TransactionType.INSTITUTE: _build_institute_items,
    TransactionType.MANUFACTURER: _build_manufacturer_items,
    TransactionType.PHARMACY_TO_INSTITUTE: _build_pharmacy_items,
}


def order_total(items: List[models.OrderItem]) -> Decimal:
    """Sum of line values, leaving out lines that could not be stocked."""
    return to_money(sum(
        (Decimal(str(i.total_price)) for i in items if i.status != ItemStatus.OUT_OF_STOCK.value),
        Decimal("0"),
    ))


def create_order(
    db: Session,
    buyer: Actor,
    transaction_type: Any,
    items: Any,
    recipient_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> OrderCreated:
    """
    Create an order with its items.

    Args:
        db: Database session
        buyer: Authenticated user placing the order
        transaction_type: "institute", "manufacturer" or "pharmacyToInstitute"
        items: Raw item list, validated against the variant of the transaction type
        recipient_id: Institute receiving a pharmacy order; stored but unused for routing otherwise
        notes: Optional free text

    Returns:
        OrderCreated with the new order's id, number and total

    Raises:
        InvalidTransactionType: Unknown transaction type
        AuthorizationError: The buyer's role may not place this kind of order
        InvalidItemsList: Empty or malformed item list
        MissingManufacturerFields: Manufacturer line without name, manufacturer or price
        DrugNotFound: A referenced drug does not exist (or is not the recipient's)
        RecipientNotAnInstitute: Pharmacy order addressed to a non-institute
        InsufficientStock: A pharmacy order line exceeds the institute's stock
        ValidationError: The order total exceeds MAX_ORDER_TOTAL
        StorageError: The transaction failed
    """
    tx_type = validators.parse_transaction_type(transaction_type)
    if buyer.role not in ALLOWED_CREATORS[tx_type]:
        raise AuthorizationError(
            f"Role '{buyer.role}' cannot place {tx_type.value} orders",
            transaction_type=tx_type.value,
        )
    parsed_items = validators.parse_order_items(tx_type, items)
    if notes is not None:
        notes = notes.strip() or None

    with atomic(db):
        header_recipient, order_items = ORDER_BUILDERS[tx_type](db, buyer, parsed_items, recipient_id)
        total = order_total(order_items)
        if total > config.MAX_ORDER_TOTAL:
            raise ValidationError(
                f"Order total {format_amount(total)} exceeds maximum ({config.MAX_ORDER_TOTAL})",
                total_amount=format_amount(total),
            )
        order = models.Order(
            order_no=unique_order_no(tx_type, lambda no: crud.order_no_exists(db, no)),
            user_id=buyer.id,
            recipient_id=header_recipient,
            transaction_type=tx_type.value,
            total_amount=total,
            notes=notes,
        )
        crud.add_order(db, order, order_items)
        crud.log_order_event(
            db,
            order_id=order.id,
            event_type="created",
            description=f"Order created with {len(order_items)} item(s), total {format_amount(order.total_amount)}",
            new_value=format_amount(order.total_amount),
            user_id=buyer.id,
        )
        created = OrderCreated(order_id=order.id, order_no=order.order_no, total_amount=order.total_amount)

    logger.info(
        f"Order {created.order_no} ({tx_type.value}) created by user {buyer.id}: "
        f"{len(order_items)} item(s), total {format_amount(created.total_amount)}"
    )
    return created
