# storage/layout_errors.py
from __future__ import annotations


class LayoutError(Exception):
    """Base class for layout engine errors."""


class LayoutValidationError(LayoutError, ValueError):
    """A required field is missing or a value is out of range.

    Raised before any mutating call reaches the persistence service.
    """


class NotFoundError(LayoutError, LookupError):
    """A category, item or version id is unknown in the current scope."""


class VersionNotFoundError(NotFoundError):
    """Version id is unknown or belongs to a different menu."""
