"""
SQLAlchemy ORM models for the drug orders service.

Defines the order tables owned by this service (orders, order_items,
order_events) and the shared tables it reads from (users, drugs).
"""
from datetime import datetime
from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from .database import Base
from .enums import ItemStatus


class User(Base):
    """
    Directory entry for an authenticated party (admin, institute or pharmacy).

    Read-only to this service; used to resolve counterpart names and roles.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    role = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Drug(Base):
    """
    Catalog drug with its on-hand stock.

    Attributes:
        id (int): Primary key
        name (str): Drug name
        batch_no (str): Manufacturing batch number
        price (Decimal): Current unit price
        stock (int): Quantity on hand, never negative
        exp_date (date): Expiry date
        created_by (int): Owning seller (institute)
    """
    __tablename__ = "drugs"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_drugs_stock_non_negative"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    batch_no = Column(String, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    exp_date = Column(Date, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User")


class Order(Base):
    """
    Order header: one buyer-initiated purchase envelope.

    Attributes:
        id (int): Primary key
        order_no (str): Human-readable unique number, e.g. "INST-1A2B3C4D"
        user_id (int): Buyer who created the order
        recipient_id (int): Counterpart named on the header (null for manufacturer orders)
        transaction_type (str): "institute", "manufacturer" or "pharmacyToInstitute"
        total_amount (Decimal): Sum of item values excluding out-of-stock items at creation
        notes (str): Free text
        created_at (datetime): Timestamp when the order was created
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_no = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    transaction_type = Column(String, nullable=False)
    total_amount = Column(Numeric(16, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    buyer = relationship("User", foreign_keys=[user_id])
    recipient = relationship("User", foreign_keys=[recipient_id])
    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )


class OrderItem(Base):
    """
    One line of an order; the unit of seller approval and stock effect.

    A line references either a catalog drug (peer orders) or a free-form
    product from an external manufacturer, never both.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint(
            "(drug_id IS NOT NULL AND custom_name IS NULL) OR "
            "(drug_id IS NULL AND custom_name IS NOT NULL AND manufacturer_name IS NOT NULL)",
            name="ck_order_items_drug_or_custom",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    drug_id = Column(Integer, ForeignKey("drugs.id"), nullable=True, index=True)
    custom_name = Column(String, nullable=True)
    manufacturer_name = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(14, 2), nullable=False)
    source_type = Column(String, nullable=False)
    category = Column(String, nullable=True)
    batch_no = Column(String, nullable=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String, nullable=False, default=ItemStatus.PENDING.value)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    order = relationship("Order", back_populates="items")
    drug = relationship("Drug")
    seller = relationship("User")


class OrderEvent(Base):
    """
    OrderEvent model representing historical events in an order's lifecycle.

    Attributes:
        id (int): Primary key, auto-incrementing event ID
        order_id (int): Foreign key to the order
        item_id (int): Item the event concerns (optional)
        event_type (str): "created", "item_status_changed" or "item_quantity_changed"
        description (str): Human-readable description of the event
        old_value (str): Previous value (for changes, optional)
        new_value (str): New value (for changes, optional)
        user_id (int): ID of the user who triggered the event (optional)
        created_at (datetime): Timestamp when the event occurred
    """
    __tablename__ = "order_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("order_items.id"), nullable=True)
    event_type = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    old_value = Column(String, nullable=True)
    new_value = Column(String, nullable=True)
    user_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
