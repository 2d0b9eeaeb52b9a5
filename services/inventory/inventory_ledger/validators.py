"""
Validation utilities for the Inventory service.

Business rule checks that run before any unit of work is opened, beyond
what the schemas already enforce.
"""
from typing import Any, Optional, Tuple

from .exceptions import InvalidInputError
from .models import MovementKind

MAX_QUANTITY = 1_000_000_000
MAX_REASON_LENGTH = 500

MOVEMENT_KINDS = tuple(kind.value for kind in MovementKind)

# Item fields a patch may change; quantity only moves through movements
UPDATABLE_ITEM_FIELDS = (
    "name",
    "description",
    "category",
    "unit",
    "min_quantity",
    "storage_location",
    "supplier",
)


def validate_quantity(quantity: Any) -> Tuple[bool, str]:
    """
    Validate a movement magnitude.

    Args:
        quantity: Requested magnitude (or target quantity for absolute movements)

    Returns:
        Tuple of (is_valid, error_message)
    """
    # bool is an int subclass; True is not a quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        return False, "Quantity must be an integer"

    if quantity <= 0:
        return False, "Quantity must be positive"

    if quantity > MAX_QUANTITY:
        return False, f"Quantity exceeds maximum ({MAX_QUANTITY})"

    return True, ""


def validate_kind(kind: Any) -> Tuple[bool, str]:
    """
    Validate a movement kind.

    Args:
        kind: Requested movement kind

    Returns:
        Tuple of (is_valid, error_message)
    """
    if kind not in MOVEMENT_KINDS:
        return False, f"Unknown movement kind: {kind}"
    return True, ""


def validate_reason(reason: Any) -> Tuple[bool, str]:
    if reason is None:
        return True, ""
    if not isinstance(reason, str):
        return False, "Reason must be text"
    if len(reason) > MAX_REASON_LENGTH:
        return False, f"Reason exceeds {MAX_REASON_LENGTH} characters"
    return True, ""


def validate_item_fields(name: Optional[str], unit: Optional[str]) -> Tuple[bool, str]:
    """
    Validate the mandatory descriptive fields of an item.

    None means "not provided" (patches); empty or blank strings are rejected.

    Args:
        name: Display name
        unit: Unit label

    Returns:
        Tuple of (is_valid, error_message)
    """
    if name is not None and not name.strip():
        return False, "Name cannot be empty"

    if unit is not None and not unit.strip():
        return False, "Unit cannot be empty"

    return True, ""


def validate_item_patch(update_data: dict) -> Tuple[bool, str]:
    """
    Validate the fields of an item patch.

    Args:
        update_data: Fields explicitly provided by the caller, already
            restricted to UPDATABLE_ITEM_FIELDS

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not update_data:
        return False, "No valid field to update was provided"

    for field in ("name", "unit"):
        if field in update_data and update_data[field] is None:
            return False, f"{field.capitalize()} cannot be null"

    return validate_item_fields(update_data.get("name"), update_data.get("unit"))


def require(check: Tuple[bool, str], field: Optional[str] = None) -> None:
    """
    Turn a (is_valid, error_message) check into an InvalidInputError.

    Args:
        check: Result of one of the validate_* functions
        field: Name of the offending field, if any

    Raises:
        InvalidInputError: if the check failed
    """
    is_valid, message = check
    if not is_valid:
        raise InvalidInputError(message, field=field)
