"""
CRUD (Create, Read, Update, Delete) operations for the Inventory service.

This module contains all database operations for items and movements.

The store functions used by the reconciliation engine (add_item, get_item,
update_item_quantity, append_movement, get_movement, update_movement,
delete_movement) never commit: they run inside the caller's unit of work
and only flush. Item patching and deletion are standalone and commit on
their own.
"""
import random
import string
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from . import models, schemas

SKU_PREFIX = "PROD-"
SKU_ALPHABET = string.ascii_uppercase + string.digits


def generate_sku(db: Session, attempts: int = 5) -> str:
    """
    Generate a SKU that is not in use yet, e.g. "PROD-4K9XQZ".

    Args:
        db: Database session
        attempts: How many random candidates to try

    Returns:
        Unused SKU string

    Raises:
        RuntimeError: if every candidate collided
    """
    for _ in range(attempts):
        sku = SKU_PREFIX + "".join(random.choices(SKU_ALPHABET, k=6))
        if get_item_by_sku(db, sku) is None:
            return sku
    raise RuntimeError(f"Could not generate a unique SKU after {attempts} attempts")


# Item store

def get_item(db: Session, item_id: str, for_update: bool = False) -> Optional[models.Item]:
    """
    Retrieve a single item by ID.

    Args:
        db: Database session
        item_id: ID of the item to retrieve
        for_update: Lock the row (SELECT ... FOR UPDATE) and refresh any
            copy already held by the session

    Returns:
        Item object or None if not found
    """
    query = db.query(models.Item).filter(models.Item.id == item_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()


def get_item_by_sku(db: Session, sku: str) -> Optional[models.Item]:
    return db.query(models.Item).filter(models.Item.sku == sku).first()


def get_items(db: Session, skip: int = 0, limit: int = 100) -> List[models.Item]:
    """
    Retrieve items ordered by name, with pagination.

    Args:
        db: Database session
        skip: Number of records to skip (offset)
        limit: Maximum number of records to return

    Returns:
        List of Item objects
    """
    return db.query(models.Item).order_by(models.Item.name).offset(skip).limit(limit).all()


def update_item_quantity(db: Session, item: models.Item, quantity: int, timestamp: datetime) -> models.Item:
    """
    Write a new quantity on a locked item.

    Args:
        db: Database session holding the item's row lock
        item: Item returned by get_item(..., for_update=True)
        quantity: New quantity (already clamped, never negative)
        timestamp: Modification time

    Returns:
        The updated Item
    """
    item.quantity = quantity
    item.updated_at = timestamp
    db.flush()
    return item


def add_item(db: Session, item: schemas.ItemCreate) -> models.Item:
    """
    Insert a new item with a generated SKU and zero quantity.

    Runs inside the caller's unit of work; the opening quantity, if any, is
    recorded by the caller as a movement in the same transaction.

    Args:
        db: Database session
        item: Item data to create

    Returns:
        The flushed Item object
    """
    db_item = models.Item(
        sku=generate_sku(db),
        quantity=0,
        **item.model_dump(exclude={"quantity"}),
    )
    db.add(db_item)
    db.flush()
    return db_item


def update_item(db: Session, item_id: str, update_data: dict) -> Optional[models.Item]:
    """
    Update descriptive fields of an existing item.

    Args:
        db: Database session
        item_id: ID of the item to update
        update_data: Validated fields to set

    Returns:
        Updated Item object or None if not found
    """
    db_item = get_item(db, item_id)
    if db_item is None:
        return None

    for key, value in update_data.items():
        setattr(db_item, key, value)
    db_item.updated_at = datetime.utcnow()

    db.commit()
    db.refresh(db_item)
    return db_item


def delete_item(db: Session, item_id: str) -> bool:
    """
    Delete an item together with its movements.

    Args:
        db: Database session
        item_id: ID of the item to delete

    Returns:
        True if item was deleted, False if not found
    """
    db_item = get_item(db, item_id)
    if db_item is None:
        return False

    db.delete(db_item)
    db.commit()
    return True


# Movement log

def append_movement(
    db: Session,
    item_id: str,
    kind: str,
    quantity: int,
    reason: Optional[str],
    timestamp: datetime,
) -> models.Movement:
    """
    Append a movement to an item's log.

    Args:
        db: Database session
        item_id: Owning item
        kind: Movement kind
        quantity: Requested magnitude (before the zero clamp)
        reason: Optional free text
        timestamp: Creation time

    Returns:
        Created Movement object
    """
    movement = models.Movement(
        item_id=item_id,
        kind=kind,
        quantity=quantity,
        reason=reason,
        created_at=timestamp,
    )
    db.add(movement)
    db.flush()
    return movement


def get_movement(db: Session, movement_id: str, for_update: bool = False) -> Optional[models.Movement]:
    """
    Retrieve a single movement by ID.

    Args:
        db: Database session
        movement_id: ID of the movement to retrieve
        for_update: Lock the row and refresh any copy held by the session

    Returns:
        Movement object or None if not found
    """
    query = db.query(models.Movement).filter(models.Movement.id == movement_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()


def get_movements(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    item_id: Optional[str] = None,
) -> List[models.Movement]:
    """
    Retrieve movements, newest first.

    Args:
        db: Database session
        skip: Number of records to skip (offset)
        limit: Maximum number of records to return
        item_id: Restrict to one item's movements

    Returns:
        List of Movement objects
    """
    query = db.query(models.Movement)
    if item_id is not None:
        query = query.filter(models.Movement.item_id == item_id)
    return query.order_by(models.Movement.created_at.desc()).offset(skip).limit(limit).all()


def update_movement(
    db: Session,
    movement: models.Movement,
    quantity: int,
    reason: Optional[str],
    timestamp: datetime,
) -> models.Movement:
    movement.quantity = quantity
    movement.reason = reason
    movement.updated_at = timestamp
    db.flush()
    return movement


def delete_movement(db: Session, movement: models.Movement) -> None:
    db.delete(movement)
    db.flush()
