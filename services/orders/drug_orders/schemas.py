"""
Pydantic schemas for the drug orders service.

Two groups live here: the item variants accepted by order creation (one per
transaction type, each carrying only its legal fields) and the request and
response shapes of the HTTP API.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, Field, model_validator

from . import config
from .enums import ItemCategory


class Actor(BaseModel):
    """Resolved identity of the caller of an operation."""
    id: int
    role: str


# --- Item variants ------------------------------------------------------------

class PeerItem(BaseModel):
    """Line of an institute order: a catalog drug owned by another tenant."""
    drug_id: int = Field(..., gt=0, description="Catalog drug ID")
    quantity: int = Field(..., gt=0, le=config.MAX_ITEM_QUANTITY, strict=True, description="Quantity ordered")

    @model_validator(mode="before")
    @classmethod
    def reject_manufacturer_fields(cls, data: Any) -> Any:
        if isinstance(data, dict) and (data.get("custom_name") or data.get("manufacturer_name")):
            raise ValueError("catalog items cannot carry custom_name or manufacturer_name")
        return data


class PharmacyItem(PeerItem):
    """Line of a pharmacy order to its institute."""
    category: ItemCategory = Field(..., description="IPD, OPD or OUTREACH")


class ManufacturerItem(BaseModel):
    """Free-form line ordered directly from an external manufacturer."""
    custom_name: str = Field(..., min_length=1, description="Product name")
    manufacturer_name: str = Field(..., min_length=1, description="Manufacturer name")
    quantity: int = Field(..., gt=0, le=config.MAX_ITEM_QUANTITY, strict=True)
    unit_price: Decimal = Field(..., gt=0, le=config.MAX_UNIT_PRICE, decimal_places=2)

    class Config:
        str_strip_whitespace = True

    @model_validator(mode="before")
    @classmethod
    def reject_drug_reference(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("drug_id") is not None:
            raise ValueError("manufacturer items cannot reference a catalog drug")
        return data


# --- Requests -----------------------------------------------------------------

class OrderCreate(BaseModel):
    """
    Schema for creating a new order.

    ``items`` is validated by the creation service against the variant the
    transaction type selects, so it is accepted loosely here.
    """
    transaction_type: Any = None
    items: Any = None
    recipient_id: Optional[int] = None
    notes: Optional[str] = None


class ItemStatusUpdate(BaseModel):
    status: str


class ItemQuantityUpdate(BaseModel):
    quantity: int


# --- Responses ----------------------------------------------------------------

class OrderCreated(BaseModel):
    order_id: int
    order_no: str
    total_amount: Decimal


class OrderItem(BaseModel):
    """Schema for a single order item as stored."""
    id: int
    order_id: int
    drug_id: Optional[int] = None
    custom_name: Optional[str] = None
    manufacturer_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    source_type: str
    category: Optional[str] = None
    batch_no: Optional[str] = None
    seller_id: Optional[int] = None
    status: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderItemView(BaseModel):
    """Order item as shown in history and dashboard views."""
    id: int
    drug_id: Optional[int] = None
    drug_name: Optional[str] = None
    manufacturer_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    status: str
    batch_no: Optional[str] = None
    category: Optional[str] = None
    seller_id: Optional[int] = None
    seller_name: Optional[str] = None
    created_at: datetime


class OrderView(BaseModel):
    """
    Order header with its visible items and dashboard counters.

    Attributes:
        overall_status (str): Lowest-priority status among the visible items
        item_count (int): Number of visible items
        pending_items (int): Visible items still pending, and likewise for the other buckets
    """
    id: int
    order_no: str
    transaction_type: str
    total_amount: Decimal
    notes: Optional[str] = None
    buyer_id: int
    buyer_name: Optional[str] = None
    recipient_id: Optional[int] = None
    recipient_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    overall_status: Optional[str] = None
    item_count: int = 0
    pending_items: int = 0
    approved_items: int = 0
    rejected_items: int = 0
    shipped_items: int = 0
    out_of_stock_items: int = 0
    items: List[OrderItemView] = Field(default_factory=list)


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class OrderPage(BaseModel):
    orders: List[OrderView]
    pagination: Pagination


class OrderEvent(BaseModel):
    """
    Schema for order timeline events.

    Attributes:
        id (int): Event ID
        order_id (int): Order identifier
        item_id (int): Item identifier (optional)
        event_type (str): Type of event (created, item_status_changed, item_quantity_changed)
        description (str): Human-readable event description
        old_value (str): Previous value (optional)
        new_value (str): New value (optional)
        user_id (int): User who triggered the event (optional)
        created_at (datetime): When the event occurred
    """
    id: int
    order_id: int
    item_id: Optional[int] = None
    event_type: str
    description: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    user_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True
