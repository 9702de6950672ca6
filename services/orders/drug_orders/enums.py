"""
Closed value sets used across the order engine.
"""
from enum import Enum


class TransactionType(str, Enum):
    """Order channel. Selects the item variant and the creation rules."""
    INSTITUTE = "institute"
    MANUFACTURER = "manufacturer"
    PHARMACY_TO_INSTITUTE = "pharmacyToInstitute"


class ItemStatus(str, Enum):
    """Lifecycle state of a single order item."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SHIPPED = "shipped"
    OUT_OF_STOCK = "out_of_stock"


class Role(str, Enum):
    ADMIN = "admin"
    INSTITUTE = "institute"
    PHARMACY = "pharmacy"


class SourceType(str, Enum):
    """Where an item is fulfilled from."""
    INSTITUTE = "institute"
    MANUFACTURER = "manufacturer"


class ItemCategory(str, Enum):
    """Department a pharmacy order line is destined for."""
    IPD = "IPD"
    OPD = "OPD"
    OUTREACH = "OUTREACH"


# Aggregation order for an order's overall status: the first status present
# among an order's items wins, so an order with any pending item reads as pending.
STATUS_PRIORITY = (
    ItemStatus.PENDING,
    ItemStatus.OUT_OF_STOCK,
    ItemStatus.APPROVED,
    ItemStatus.SHIPPED,
    ItemStatus.REJECTED,
)
