"""
Reconciliation engine for the Inventory service.

Applies, corrects and reverses movements so that an item's quantity is
always the accumulation of its committed movements. Every operation runs
in its own unit of work:

    validate -> lock rows -> read q0 -> compute q1 -> clamp at zero
    -> write item + movement -> commit -> notify if the threshold is crossed

Rows are locked with SELECT ... FOR UPDATE (movement first, then its item),
so two operations on the same item are serialised and the second one reads
the first one's committed quantity. The notifier only ever sees committed
state, and its failures never touch inventory.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, schemas
from .database import set_lock_timeout
from .exceptions import (
    AbsoluteMovementError,
    ItemNotFoundError,
    MovementNotFoundError,
    TransactionFailedError,
)
from .models import MovementKind
from .notifications import NullNotifier, ThresholdNotifier
from .validators import (
    require,
    validate_item_fields,
    validate_kind,
    validate_quantity,
    validate_reason,
)

logger = logging.getLogger(__name__)

OPENING_BALANCE_REASON = "Opening balance"


def clamp(quantity: int) -> int:
    """Quantities floor at zero; going below is not an error."""
    return max(0, quantity)


def applied_quantity(kind: str, current: int, quantity: int) -> int:
    """Quantity after applying a new movement of the given kind."""
    if kind == MovementKind.ABSOLUTE:
        return clamp(quantity)
    if kind == MovementKind.INBOUND:
        return clamp(current + quantity)
    return clamp(current - quantity)


def corrected_quantity(kind: str, current: int, old_quantity: int, new_quantity: int) -> int:
    """Quantity after changing a movement's magnitude from old to new."""
    delta = new_quantity - old_quantity
    if kind == MovementKind.INBOUND:
        return clamp(current + delta)
    return clamp(current - delta)


def reversed_quantity(kind: str, current: int, quantity: int) -> int:
    """Quantity after undoing a movement: outbound returns stock, inbound removes it."""
    if kind == MovementKind.OUTBOUND:
        return clamp(current + quantity)
    return clamp(current - quantity)


def crosses_threshold(min_quantity: Optional[int], before: int, after: int) -> bool:
    """
    Decide whether a quantity transition must raise a low stock notification.

    Judged from the new state only: every change that lands at or below the
    minimum fires, including repeated ones. No minimum, no notification.

    Args:
        min_quantity: Item's threshold, or None when alerting is disabled
        before: Quantity before the operation
        after: Quantity after the operation

    Returns:
        True when the notifier must be invoked
    """
    if min_quantity is None:
        return False
    return after <= min_quantity and after != before


class ReconciliationEngine:
    """
    Movement operations against one database session.

    Args:
        db: Session used for every unit of work of this engine
        notifier: Receives committed item snapshots that crossed their threshold
    """

    def __init__(self, db: Session, notifier: Optional[ThresholdNotifier] = None):
        self.db = db
        self.notifier = notifier or NullNotifier()

    @contextmanager
    def _unit_of_work(self, operation: str):
        """Commit on success; roll back and raise a typed failure otherwise."""
        try:
            set_lock_timeout(self.db)
            yield
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{operation} rolled back: {e}")
            raise TransactionFailedError(operation, str(e)) from e
        except Exception:
            self.db.rollback()
            raise

    def _lock_item(self, item_id: str):
        item = crud.get_item(self.db, item_id, for_update=True)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def _lock_movement(self, movement_id: str, operation: str):
        movement = crud.get_movement(self.db, movement_id, for_update=True)
        if movement is None:
            raise MovementNotFoundError(movement_id)
        if movement.kind == MovementKind.ABSOLUTE:
            raise AbsoluteMovementError(movement_id, operation)
        return movement

    def _notify_if_crossed(self, item: schemas.Item, before: int, after: int) -> None:
        if not crosses_threshold(item.min_quantity, before, after):
            return

        logger.info(f"Item {item.id} ({item.sku}) at {after}, minimum {item.min_quantity}: notifying")
        try:
            self.notifier.notify(item)
        except Exception:
            logger.exception(f"Low stock notifier failed for item {item.id}")

    def _apply(self, item, kind: str, quantity: int, reason: Optional[str]):
        """Write a new movement and the resulting quantity; returns (before, after, movement)."""
        before = item.quantity
        after = applied_quantity(kind, before, quantity)

        now = datetime.utcnow()
        crud.update_item_quantity(self.db, item, after, now)
        movement = crud.append_movement(self.db, item.id, kind, quantity, reason, now)
        return before, after, movement

    def register_item(self, item: schemas.ItemCreate) -> schemas.Item:
        """
        Insert a new item and record its opening balance in one unit of work.

        A non-zero opening quantity becomes an absolute movement, so the
        item's quantity is the net effect of its movements from the start.
        Either both rows are written or neither is.

        Args:
            item: Item data, including the opening quantity

        Returns:
            The registered item

        Raises:
            InvalidInputError: blank name or unit, or a bad opening quantity
            TransactionFailedError: storage error, nothing written
        """
        require(validate_item_fields(item.name, item.unit))
        if item.quantity:
            require(validate_quantity(item.quantity), "quantity")

        with self._unit_of_work("register_item"):
            db_item = crud.add_item(self.db, item)
            before = after = db_item.quantity
            if item.quantity:
                before, after, _ = self._apply(
                    db_item, MovementKind.ABSOLUTE.value, item.quantity, OPENING_BALANCE_REASON
                )

            result = schemas.Item.model_validate(db_item)

        logger.info(f"Registered item {result.id} ({result.sku}) with opening quantity {after}")
        self._notify_if_crossed(result, before, after)
        return result

    def apply_movement(
        self,
        item_id: str,
        kind: str,
        quantity: int,
        reason: Optional[str] = None,
    ) -> schemas.MovementResult:
        """
        Record a new movement and update the item's quantity.

        Args:
            item_id: Target item
            kind: "inbound", "outbound" or "absolute"
            quantity: Positive magnitude; the target quantity for "absolute"
            reason: Optional free text

        Returns:
            MovementResult with the created movement and the updated item

        Raises:
            InvalidInputError: bad kind, quantity or reason (nothing locked)
            ItemNotFoundError: the item does not exist at lock time
            TransactionFailedError: storage error, nothing written
        """
        kind = getattr(kind, "value", kind)
        require(validate_kind(kind), "kind")
        require(validate_quantity(quantity), "quantity")
        require(validate_reason(reason), "reason")

        with self._unit_of_work("apply_movement"):
            item = self._lock_item(item_id)
            before, after, movement = self._apply(item, kind, quantity, reason)

            result = schemas.MovementResult(
                movement=schemas.Movement.model_validate(movement),
                item=schemas.Item.model_validate(item),
            )

        logger.info(f"Applied {kind} {quantity} to item {item_id}: {before} -> {after}")
        self._notify_if_crossed(result.item, before, after)
        return result

    def correct_movement(
        self,
        movement_id: str,
        quantity: int,
        reason: Optional[str] = None,
    ) -> schemas.MovementResult:
        """
        Change a recorded movement's magnitude and reason, re-deriving the quantity.

        Args:
            movement_id: Movement to correct
            quantity: New positive magnitude
            reason: New reason; None clears it

        Returns:
            MovementResult with the corrected movement and the updated item

        Raises:
            InvalidInputError: bad quantity or reason (nothing locked)
            MovementNotFoundError: the movement does not exist
            ItemNotFoundError: the owning item disappeared
            AbsoluteMovementError: absolute movements cannot be corrected
            TransactionFailedError: storage error, nothing written
        """
        require(validate_quantity(quantity), "quantity")
        require(validate_reason(reason), "reason")

        with self._unit_of_work("correct_movement"):
            movement = self._lock_movement(movement_id, "corrected")
            item = self._lock_item(movement.item_id)
            before = item.quantity
            after = corrected_quantity(movement.kind, before, movement.quantity, quantity)
            old_quantity = movement.quantity

            now = datetime.utcnow()
            crud.update_item_quantity(self.db, item, after, now)
            crud.update_movement(self.db, movement, quantity, reason, now)

            result = schemas.MovementResult(
                movement=schemas.Movement.model_validate(movement),
                item=schemas.Item.model_validate(item),
            )

        logger.info(
            f"Corrected movement {movement_id} from {old_quantity} to {quantity}: "
            f"item {result.item.id} {before} -> {after}"
        )
        self._notify_if_crossed(result.item, before, after)
        return result

    def reverse_movement(self, movement_id: str) -> schemas.ReversalResult:
        """
        Delete a movement and undo its effect on the item's quantity.

        Args:
            movement_id: Movement to reverse

        Returns:
            ReversalResult with the updated item and the deleted movement's ID

        Raises:
            MovementNotFoundError: the movement does not exist
            ItemNotFoundError: the owning item disappeared
            AbsoluteMovementError: absolute movements cannot be reversed
            TransactionFailedError: storage error, nothing written
        """
        with self._unit_of_work("reverse_movement"):
            movement = self._lock_movement(movement_id, "reversed")
            item = self._lock_item(movement.item_id)
            before = item.quantity
            after = reversed_quantity(movement.kind, before, movement.quantity)

            crud.update_item_quantity(self.db, item, after, datetime.utcnow())
            crud.delete_movement(self.db, movement)

            result = schemas.ReversalResult(
                item=schemas.Item.model_validate(item),
                reversed_movement_id=movement_id,
            )

        logger.info(f"Reversed movement {movement_id}: item {result.item.id} {before} -> {after}")
        self._notify_if_crossed(result.item, before, after)
        return result
