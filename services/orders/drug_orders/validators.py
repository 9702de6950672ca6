"""
Validation utilities for the drug orders service.

Turns raw request data into typed values before any database work starts.
Item lists are parsed through ``ITEM_VARIANTS``, a dispatch table from
transaction type to the pydantic model describing a legal line of that type.
"""
from typing import Any, Dict, List, Optional, Tuple, Type, Union

import pydantic

from . import config
from .enums import ItemStatus, TransactionType
from .errors import (
    InvalidItemsList,
    InvalidTransactionType,
    MissingManufacturerFields,
    ValidationError,
)
from .schemas import ManufacturerItem, PeerItem, PharmacyItem

ParsedItem = Union[PeerItem, ManufacturerItem, PharmacyItem]

ITEM_VARIANTS: Dict[TransactionType, Type[pydantic.BaseModel]] = {
    TransactionType.INSTITUTE: PeerItem,
    TransactionType.MANUFACTURER: ManufacturerItem,
    TransactionType.PHARMACY_TO_INSTITUTE: PharmacyItem,
}

MANUFACTURER_FIELDS = {"custom_name", "manufacturer_name", "unit_price"}


def parse_transaction_type(value: Any) -> TransactionType:
    """
    Resolve a transaction type from its wire value.

    Raises:
        InvalidTransactionType: If the value is not one of the supported types
    """
    try:
        return TransactionType(value)
    except ValueError:
        raise InvalidTransactionType(value)


def parse_item_status(value: Any) -> ItemStatus:
    """
    Resolve an item status from its wire value.

    Raises:
        ValidationError: If the value is not a known status
    """
    try:
        return ItemStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ItemStatus)
        raise ValidationError(f"Valid status is required ({allowed})", status=value)


def _describe(error: Dict[str, Any]) -> str:
    loc = ".".join(str(part) for part in error.get("loc", ()))
    return f"{loc}: {error['msg']}" if loc else error["msg"]


def _variant_error(transaction_type: TransactionType, index: int, exc: pydantic.ValidationError) -> ValidationError:
    errors = exc.errors()
    details = "; ".join(_describe(e) for e in errors)
    if transaction_type == TransactionType.MANUFACTURER and any(
        e.get("loc") and e["loc"][0] in MANUFACTURER_FIELDS for e in errors
    ):
        return MissingManufacturerFields(
            f"Item {index}: custom_name, manufacturer_name and a positive unit_price are required ({details})",
            item_index=index,
        )
    return InvalidItemsList(f"Item {index}: {details}", item_index=index)


def parse_order_items(transaction_type: TransactionType, items: Any) -> List[ParsedItem]:
    """
    Validate a raw item list against the variant of the given transaction type.

    Args:
        transaction_type: Order channel, selects the item variant
        items: Raw item list from the request

    Returns:
        List of parsed item variants, in request order

    Raises:
        InvalidItemsList: If the list is empty, too long, malformed or repeats a drug
        MissingManufacturerFields: If a manufacturer item lacks its required fields
    """
    if not isinstance(items, list) or not items:
        raise InvalidItemsList("Items must be a non-empty array")

    if len(items) > config.MAX_ITEMS_PER_ORDER:
        raise InvalidItemsList(f"Order cannot contain more than {config.MAX_ITEMS_PER_ORDER} items")

    variant = ITEM_VARIANTS[transaction_type]
    parsed: List[ParsedItem] = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise InvalidItemsList(f"Item {index}: must be an object", item_index=index)
        try:
            parsed.append(variant.model_validate(raw))
        except pydantic.ValidationError as exc:
            raise _variant_error(transaction_type, index, exc)

    # Check for duplicate lines
    if transaction_type == TransactionType.MANUFACTURER:
        keys = [(i.custom_name.lower(), i.manufacturer_name.lower()) for i in parsed]
    else:
        keys = [i.drug_id for i in parsed]
    if len(keys) != len(set(keys)):
        raise InvalidItemsList("Order contains duplicate items")

    return parsed


def validate_quantity(quantity: Any) -> int:
    """
    Validate an edited item quantity.

    Raises:
        ValidationError: If the quantity is not a positive integer within bounds
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", quantity=quantity)
    if quantity > config.MAX_ITEM_QUANTITY:
        raise ValidationError(
            f"Quantity exceeds maximum ({config.MAX_ITEM_QUANTITY})", quantity=quantity
        )
    return quantity


def validate_pagination(page: Any, limit: Any) -> Tuple[int, int]:
    """
    Clamp pagination parameters to sane bounds.

    Returns:
        Tuple of (page, limit) with page >= 1 and 1 <= limit <= MAX_PAGE_SIZE
    """
    try:
        page = int(page) if page is not None else 1
        limit = int(limit) if limit is not None else config.DEFAULT_PAGE_SIZE
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    return max(1, page), max(1, min(limit, config.MAX_PAGE_SIZE))


def normalize_filter(value: Optional[str]) -> Optional[str]:
    """Treat empty strings and "all" as no filter."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() == "all":
        return None
    return value
