"""
Typed exceptions for the Inventory service.

Every error carries a machine-readable ``code`` class attribute and keeps
its context (ids, kinds) as attributes, so callers catch by type and map
to their own presentation instead of parsing messages.

    InventoryError (base)
    |
    +-- InvalidInputError          INVALID_INPUT        rejected before any lock
    +-- NotFoundError              NOT_FOUND
    |   +-- ItemNotFoundError      ITEM_NOT_FOUND
    |   +-- MovementNotFoundError  MOVEMENT_NOT_FOUND
    +-- ForbiddenError             FORBIDDEN
    |   +-- AbsoluteMovementError  ABSOLUTE_MOVEMENT_LOCKED
    +-- TransactionFailedError     TRANSACTION_FAILED   storage error, rolled back
"""
from typing import Optional


class InventoryError(Exception):
    """Base exception for all inventory errors."""

    code: str = "INVENTORY_ERROR"


class InvalidInputError(InventoryError):
    """Caller data is malformed or out of range."""

    code: str = "INVALID_INPUT"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NotFoundError(InventoryError):
    """A referenced record does not exist (or disappeared during a race)."""

    code: str = "NOT_FOUND"


class ItemNotFoundError(NotFoundError):

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class MovementNotFoundError(NotFoundError):

    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement not found: {movement_id}")


class ForbiddenError(InventoryError):
    """The operation is well-formed but not allowed."""

    code: str = "FORBIDDEN"


class AbsoluteMovementError(ForbiddenError):
    """
    Absolute movements can only be created.

    An absolute movement resets the quantity, so there is no prior value to
    restore when correcting or reversing it.
    """

    code: str = "ABSOLUTE_MOVEMENT_LOCKED"

    def __init__(self, movement_id: str, operation: str):
        self.movement_id = movement_id
        self.operation = operation
        super().__init__(f"Absolute movement {movement_id} cannot be {operation}")


class TransactionFailedError(InventoryError):
    """A storage error aborted the unit of work. Nothing was written."""

    code: str = "TRANSACTION_FAILED"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Transaction failed during {operation}: {reason}")
