"""Validation utilities for workspace actions applied by the reducer."""

from typing import Any, List, Optional

from schemas import ItemWorkspace, Workspace

class ValidationError(Exception):
    """Base class for validation errors."""
    pass

class ActionValidationError(ValidationError):
    """Raised when a workspace action cannot be applied to the current state."""
    pass

def require_item_workspace(workspace: Optional[Workspace], action: str) -> ItemWorkspace:
    """Return ``workspace`` if it is live and holds an items array.

    Raises ActionValidationError otherwise.
    """
    if workspace is None:
        raise ActionValidationError(f"{action}: no active workspace")
    if not isinstance(workspace, ItemWorkspace):
        raise ActionValidationError(
            f"{action}: workspace of type {type(workspace).__name__} has no items"
        )
    return workspace

def require_item_index(index: Any, count: int, action: str) -> int:
    """Validate an item index against the number of items currently present."""
    if isinstance(index, bool) or not isinstance(index, int):
        raise ActionValidationError(f"{action}: item index must be an integer, got {index!r}")
    if not (0 <= index < count):
        raise ActionValidationError(
            f"{action}: item index {index} out of range for {count} item(s)"
        )
    return index

def require_new_items(items: Optional[List[Any]], action: str) -> List[Any]:
    """Ensure an add action carries a list of items to append."""
    if items is None:
        raise ActionValidationError(f"{action}: missing newContent/newProblems")
    if not isinstance(items, list):
        raise ActionValidationError(f"{action}: new items must be a list")
    return items
