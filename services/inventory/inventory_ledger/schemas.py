"""
Pydantic schemas for request/response validation in the Inventory service.

These schemas define the external representation of items and movements.
Field names are camelCase on the wire (``minQuantity``, ``itemId``) and
snake_case internally; requests may use either form.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema translating snake_case attributes to camelCase fields."""

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class ItemBase(CamelModel):
    """Base schema with the descriptive item attributes."""
    name: str
    unit: str
    description: Optional[str] = None
    category: Optional[str] = None
    min_quantity: Optional[int] = Field(None, ge=0, description="Low stock threshold; null disables alerts")
    storage_location: Optional[str] = None
    supplier: Optional[str] = None


class ItemCreate(ItemBase):
    """Schema for registering a new item. The opening quantity is optional."""
    quantity: int = Field(0, ge=0, description="Opening quantity")


class ItemUpdate(CamelModel):
    """
    Schema for updating an item's descriptive fields. All fields are optional.

    Quantity is deliberately absent: it only changes through movements.
    """
    name: Optional[str] = None
    unit: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    min_quantity: Optional[int] = Field(None, ge=0)
    storage_location: Optional[str] = None
    supplier: Optional[str] = None


class Item(ItemBase):
    """
    Schema for item responses, includes all database fields.

    Attributes:
        id (str): Item's unique identifier
        sku (str): Generated Stock Keeping Unit
        quantity (int): Current quantity
        created_at (datetime): When the item was registered
        updated_at (datetime): Last modification, if any
    """
    id: str
    sku: str
    quantity: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class MovementCreate(CamelModel):
    """Schema for recording a movement against an item."""
    item_id: str
    kind: str = Field(..., description="inbound, outbound or absolute")
    quantity: int = Field(..., description="Magnitude; the target quantity for absolute movements")
    reason: Optional[str] = None


class MovementCorrection(CamelModel):
    """Schema for correcting a recorded movement. A missing reason clears it."""
    quantity: int
    reason: Optional[str] = None


class Movement(CamelModel):
    """
    Schema for movement responses.

    Attributes:
        id (str): Movement identifier
        item_id (str): Owning item
        kind (str): inbound, outbound or absolute
        quantity (int): Requested magnitude (before the zero clamp)
        reason (str): Optional free text
        created_at (datetime): When the movement was recorded
        updated_at (datetime): When it was last corrected, if ever
    """
    id: str
    item_id: str
    kind: str
    quantity: int
    reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class MovementResult(CamelModel):
    """Outcome of applying or correcting a movement."""
    movement: Movement
    item: Item


class ReversalResult(CamelModel):
    """Outcome of reversing (deleting) a movement."""
    item: Item
    reversed_movement_id: str
