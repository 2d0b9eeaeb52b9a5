"""
    Inventory Service API

    This module implements a FastAPI-based microservice that tracks item stock
    and records every quantity change as a movement, with PostgreSQL
    persistence.

    The service exposes:
    - Item endpoints: register, list, read, edit and delete items
    - Movement endpoints: record, correct and reverse movements through the
      reconciliation engine, so quantities stay consistent under concurrency
    - Analytics and CSV export of current stock
    - Health endpoint: Provides service health status for monitoring and orchestration

    Low stock notifications (webhooks, e-mail) fire after a movement commits
    and the item lands at or below its minimum.
"""
from contextlib import asynccontextmanager
from typing import List
import csv
import io
import logging
from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session
from sqlalchemy import func

from . import auth, config, crud, models, notifications, schemas, validators
from .database import engine, get_db
from .exceptions import (
    ForbiddenError,
    InvalidInputError,
    InventoryError,
    NotFoundError,
    TransactionFailedError,
)
from .reconciliation import ReconciliationEngine

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    TransactionFailedError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_notifier = notifications.build_notifier()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    models.Base.metadata.create_all(bind=engine)
    yield
    notifications.shutdown_executor()


app = FastAPI(title="inventory-service", lifespan=lifespan)


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    """
    Map typed inventory errors to HTTP responses.

    Returns:
        JSONResponse: {"detail": message, "code": machine-readable code}
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, error_status in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = error_status
            break

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": exc.code})


def get_notifier() -> notifications.ThresholdNotifier:
    """Dependency providing the configured low stock notifier."""
    return _notifier


def get_engine(
    db: Session = Depends(get_db),
    notifier: notifications.ThresholdNotifier = Depends(get_notifier),
) -> ReconciliationEngine:
    """Dependency providing a reconciliation engine bound to the request's session."""
    return ReconciliationEngine(db, notifier)


@app.get("/healthz", response_model=dict)
def health():
    """
    Health check endpoint for the inventory service.

    Returns:
        dict: {"status": "healthy"} if the service is operational.
    """
    return {"status": "healthy"}


# Items

@app.get("/items", response_model=List[schemas.Item])
def list_items(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    List items ordered by name (authenticated users only).

    Args:
        skip: Number of records to skip (default: 0)
        limit: Maximum number of records to return (default: 100)
        db: Database session (injected)
        current_user: Current authenticated user (injected)

    Returns:
        List of item objects
    """
    return crud.get_items(db, skip=skip, limit=limit)


@app.post("/items", response_model=schemas.Item, status_code=status.HTTP_201_CREATED)
def create_item(
    item: schemas.ItemCreate,
    reconciliation: ReconciliationEngine = Depends(get_engine),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """
    Register a new item (admin only).

    A SKU is generated. A non-zero opening quantity is recorded as an
    absolute movement in the same transaction, so a rejected opening
    balance leaves no item behind.

    Args:
        item: Item data to create
        reconciliation: Reconciliation engine (injected)
        current_user: Current authenticated admin user (injected)

    Returns:
        Created item object

    Raises:
        InvalidInputError: 400 if name or unit is blank or the opening quantity is out of range
    """
    db_item = reconciliation.register_item(item)
    logger.info(f"Item {db_item.id} registered by user {current_user.id}")
    return db_item


@app.get("/items/{item_id}", response_model=schemas.Item)
def get_item(
    item_id: str,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Get a single item by ID (authenticated users only).

    Raises:
        HTTPException: 404 if item not found
    """
    db_item = crud.get_item(db, item_id)
    if db_item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return db_item


@app.put("/items/{item_id}", response_model=schemas.Item)
def update_item(
    item_id: str,
    item: schemas.ItemUpdate,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """
    Update an item's descriptive fields and minimum (admin only).

    Quantity cannot be set here; it only changes through movements.

    Args:
        item_id: ID of the item to update
        item: Fields to change (only provided fields are updated)
        db: Database session (injected)
        current_user: Current authenticated admin user (injected)

    Returns:
        Updated item object

    Raises:
        InvalidInputError: 400 if no valid field was provided
        HTTPException: 404 if item not found
    """
    update_data = {
        key: value
        for key, value in item.model_dump(exclude_unset=True).items()
        if key in validators.UPDATABLE_ITEM_FIELDS
    }
    validators.require(validators.validate_item_patch(update_data))

    db_item = crud.update_item(db, item_id, update_data)
    if db_item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return db_item


@app.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(
    item_id: str,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.require_admin)
):
    """
    Delete an item and all its movements (admin only).

    Raises:
        HTTPException: 404 if item not found
    """
    if not crud.delete_item(db, item_id):
        raise HTTPException(status_code=404, detail="Item not found")
    logger.info(f"Deleted item {item_id} and its movements by user {current_user.id}")


@app.get("/items/{item_id}/movements", response_model=List[schemas.Movement])
def list_item_movements(
    item_id: str,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    List one item's movements, newest first (authenticated users only).

    Raises:
        HTTPException: 404 if item not found
    """
    if crud.get_item(db, item_id) is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return crud.get_movements(db, skip=skip, limit=limit, item_id=item_id)


# Movements

@app.get("/movements", response_model=List[schemas.Movement])
def list_movements(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """List all movements, newest first (authenticated users only)."""
    return crud.get_movements(db, skip=skip, limit=limit)


@app.post("/movements", response_model=schemas.MovementResult, status_code=status.HTTP_201_CREATED)
def apply_movement(
    movement: schemas.MovementCreate,
    reconciliation: ReconciliationEngine = Depends(get_engine),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Record a movement and update the item's quantity (authenticated users).

    Args:
        movement: Item, kind (inbound/outbound/absolute), quantity and reason
        reconciliation: Reconciliation engine (injected)
        current_user: Current authenticated user (injected)

    Returns:
        The created movement and the updated item

    Raises:
        InvalidInputError: 400 for a non-positive quantity or unknown kind
        ItemNotFoundError: 404 if the item does not exist
    """
    return reconciliation.apply_movement(
        movement.item_id, movement.kind, movement.quantity, movement.reason
    )


@app.put("/movements/{movement_id}", response_model=schemas.MovementResult)
def correct_movement(
    movement_id: str,
    correction: schemas.MovementCorrection,
    reconciliation: ReconciliationEngine = Depends(get_engine),
    current_user: auth.CurrentUser = Depends(auth.require_manager)
):
    """
    Correct a movement's quantity and reason (managers and admins).

    Raises:
        InvalidInputError: 400 for a non-positive quantity
        AbsoluteMovementError: 403 for absolute movements
        NotFoundError: 404 if the movement or its item does not exist
    """
    result = reconciliation.correct_movement(movement_id, correction.quantity, correction.reason)
    logger.info(f"Movement {movement_id} corrected by user {current_user.id}")
    return result


@app.delete("/movements/{movement_id}", response_model=schemas.ReversalResult)
def reverse_movement(
    movement_id: str,
    reconciliation: ReconciliationEngine = Depends(get_engine),
    current_user: auth.CurrentUser = Depends(auth.require_manager)
):
    """
    Delete a movement and undo its effect on stock (managers and admins).

    Raises:
        AbsoluteMovementError: 403 for absolute movements
        NotFoundError: 404 if the movement or its item does not exist
    """
    result = reconciliation.reverse_movement(movement_id)
    logger.info(f"Movement {movement_id} reversed by user {current_user.id}")
    return result


# Reporting

@app.get("/analytics")
def get_analytics(
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Get inventory analytics (authenticated users).

    An item is low on stock when it has a minimum and its quantity is at or
    below it.

    Returns:
        dict: total items, total quantity, out of stock count, low stock count
            and the low stock items themselves
    """
    total_items = db.query(func.count(models.Item.id)).scalar()
    total_quantity = db.query(func.sum(models.Item.quantity)).scalar() or 0

    out_of_stock = db.query(func.count(models.Item.id)).filter(
        models.Item.quantity == 0
    ).scalar()

    low_stock_items = db.query(models.Item).filter(
        models.Item.min_quantity.isnot(None),
        models.Item.quantity <= models.Item.min_quantity
    ).order_by(models.Item.quantity).all()

    return {
        "totalItems": total_items,
        "totalQuantity": total_quantity,
        "outOfStock": out_of_stock,
        "lowStock": len(low_stock_items),
        "lowStockItems": [
            {
                "id": item.id,
                "sku": item.sku,
                "name": item.name,
                "quantity": item.quantity,
                "minQuantity": item.min_quantity,
            }
            for item in low_stock_items
        ],
    }


@app.get("/export/csv")
def export_items_csv(
    db: Session = Depends(get_db),
    current_user: auth.CurrentUser = Depends(auth.get_current_user)
):
    """
    Export all items to CSV (authenticated users).

    Returns:
        CSV file with columns: id, sku, name, unit, quantity, min_quantity, updated_at
    """
    items = crud.get_items(db, skip=0, limit=10000)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(['id', 'sku', 'name', 'unit', 'quantity', 'min_quantity', 'updated_at'])

    for item in items:
        writer.writerow([
            item.id,
            item.sku,
            item.name,
            item.unit,
            item.quantity,
            "" if item.min_quantity is None else item.min_quantity,
            item.updated_at.isoformat() if item.updated_at else "",
        ])

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=inventory.csv"}
    )
