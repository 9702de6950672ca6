"""
Drug Orders Service API

This module implements the FastAPI application exposing the order and
inventory transaction engine: order creation, the per-item approval workflow
and the role-scoped order views.

Endpoints:
    GET /healthz: Health check endpoint for orchestration systems
    POST /orders: Create an order (institute, manufacturer or pharmacyToInstitute)
    GET /orders/history: Orders placed by the caller
    GET /orders/seller: Orders in which the caller sells items or is the recipient
    GET /orders/admin: All orders (admin only)
    GET /orders/{order_id}: One order with the items visible to the caller
    GET /orders/{order_id}/timeline: Timeline events of an order
    PATCH /order-items/{item_id}/status: Approve, reject or ship an item
    PATCH /order-items/{item_id}/quantity: Edit the quantity of a pending item

Attributes:
    app (FastAPI): The FastAPI application instance configured with the title "drug-orders-service"
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import auth, models, order_service, queries, schemas, state_machine, webhooks
from .database import engine, get_db
from .enums import Role
from .errors import OrderEngineError
from .logging_config import setup_logging
from .numbering import format_amount

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Create database tables
    models.Base.metadata.create_all(bind=engine)
    logger.info("drug-orders-service started")
    yield


app = FastAPI(title="drug-orders-service", lifespan=lifespan)


@app.exception_handler(OrderEngineError)
async def order_engine_error_handler(request: Request, exc: OrderEngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/healthz", response_model=dict)
def health():
    """
    Health check endpoint for the drug orders service.

    Returns:
        dict: {"status": "healthy"} when the service is operational.
    """
    return {"status": "healthy"}


@app.post("/orders", response_model=schemas.OrderCreated, status_code=status.HTTP_201_CREATED)
def create_order(
    order: schemas.OrderCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Create a new order with its items (authenticated users only).

    The caller is always the buyer. Institute orders keep out-of-stock lines
    and leave them out of the total; pharmacy orders are all-or-nothing;
    manufacturer lines are approved immediately.

    Raises:
        400 on invalid input, 403 if the role may not place this order type,
        404 for unknown drugs, 409 when a pharmacy order exceeds stock
    """
    created = order_service.create_order(
        db,
        buyer=current_user,
        transaction_type=order.transaction_type,
        items=order.items,
        recipient_id=order.recipient_id,
        notes=order.notes,
    )
    background_tasks.add_task(
        webhooks.notify_order_created,
        created.order_id,
        created.order_no,
        format_amount(created.total_amount),
        current_user.id,
        str(order.transaction_type),
    )
    return created


@app.get("/orders/history", response_model=schemas.OrderPage)
def list_order_history(
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    transaction_type: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Orders placed by the caller, newest first, with full item lists.

    Args:
        page: Page number (default: 1)
        limit: Orders per page (default: 10)
        status: Only orders with an item in this status
        transaction_type: Only orders of this type
        search: Free-text search
    """
    return queries.buyer_history(
        db, current_user, page=page, limit=limit, status=status,
        transaction_type=transaction_type, search=search,
    )


@app.get("/orders/seller", response_model=schemas.OrderPage)
def list_seller_orders(
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    transaction_type: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.require_roles(Role.INSTITUTE, Role.ADMIN))
):
    """
    Orders in which the caller sells at least one item or is the recipient.

    Item lists only contain the caller's own items unless the caller is the
    order's recipient.
    """
    return queries.seller_orders(
        db, current_user, page=page, limit=limit, status=status,
        transaction_type=transaction_type, search=search,
    )


@app.get("/orders/admin", response_model=schemas.OrderPage)
def list_all_orders(
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    transaction_type: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """
    All orders across tenants (admin only).

    Each order reports an overall status: the lowest-priority status among its
    items, so orders with pending items show as pending.
    """
    return queries.admin_orders(
        db, current_user, page=page, limit=limit, status=status,
        transaction_type=transaction_type, search=search,
    )


@app.get("/orders/{order_id}", response_model=schemas.OrderView)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Get a single order by ID with the items visible to the caller.

    Raises:
        404 if the order does not exist or the caller has no part in it
    """
    return queries.get_order_detail(db, current_user, order_id)


@app.get("/orders/{order_id}/timeline", response_model=List[schemas.OrderEvent])
def get_order_timeline(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Get the timeline of events for an order, in chronological order.

    Raises:
        404 if the order does not exist or the caller has no part in it
    """
    return queries.get_order_timeline(db, current_user, order_id)


@app.patch("/order-items/{item_id}/status", response_model=schemas.OrderItem)
def update_order_item_status(
    item_id: int,
    update: schemas.ItemStatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Move an order item to a new status (item seller or admin).

    Approving takes the item's quantity from the drug's stock; rejecting an
    approved item returns it.

    Raises:
        400 for an unknown status, 403 if not the item's seller, 404 if the
        item does not exist, 409 for an illegal transition or insufficient stock
    """
    item = state_machine.transition_item(db, item_id, current_user, update.status)
    background_tasks.add_task(webhooks.notify_item_status_changed, item.order_id, item.id, item.status)
    return item


@app.patch("/order-items/{item_id}/quantity", response_model=schemas.OrderItem)
def update_order_item_quantity(
    item_id: int,
    update: schemas.ItemQuantityUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Change the quantity of a pending order item (item seller or admin).

    Raises:
        400 for a non-positive quantity, 403 if not the item's seller, 404 if
        the item does not exist, 409 if the item is no longer pending
    """
    item = state_machine.edit_item_quantity(db, item_id, current_user, update.quantity)
    background_tasks.add_task(webhooks.notify_item_quantity_changed, item.order_id, item.id, item.quantity)
    return item
