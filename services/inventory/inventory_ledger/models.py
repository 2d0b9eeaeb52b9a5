"""
SQLAlchemy ORM models for the Inventory service.

Defines the database schema for items and their stock movements.
"""
import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from .database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class MovementKind(str, enum.Enum):
    """Kinds of quantity change a movement can record."""
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    ABSOLUTE = "absolute"


class Item(Base):
    """
    Item model representing a stock-keeping unit.

    Attributes:
        id (str): Primary key, UUID string
        sku (str): Stock Keeping Unit, generated on registration
        name (str): Display name
        description (str): Optional free text
        category (str): Optional category label
        unit (str): Unit label (e.g. "un", "kg", "box")
        quantity (int): Current quantity, never negative. Only the
            reconciliation engine changes it after registration.
        min_quantity (int): Low stock threshold; None disables alerting
        storage_location (str): Optional storage location
        supplier (str): Optional supplier name
        created_at (datetime): When the item was registered
        updated_at (datetime): Last modification, None until the first change
    """
    __tablename__ = "items"

    id = Column(String(36), primary_key=True, default=new_id)
    sku = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    unit = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    min_quantity = Column(Integer, nullable=True)
    storage_location = Column(String, nullable=True)
    supplier = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    movements = relationship(
        "Movement",
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Movement(Base):
    """
    Movement model recording one quantity change against an item.

    Attributes:
        id (str): Primary key, UUID string
        item_id (str): Owning item, deleted together with it
        kind (str): "inbound", "outbound" or "absolute"
        quantity (int): Requested magnitude as submitted (before the zero
            clamp). For "absolute" this is the target quantity.
        reason (str): Optional free text
        created_at (datetime): When the movement was recorded
        updated_at (datetime): When the movement was last corrected
    """
    __tablename__ = "movements"

    id = Column(String(36), primary_key=True, default=new_id)
    item_id = Column(String(36), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=True)

    item = relationship("Item", back_populates="movements")
