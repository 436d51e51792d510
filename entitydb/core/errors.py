"""
Typed errors raised by the record store, the query engine and the distance kernels.
"""

from typing import Any, List, Optional


class EntityDBError(Exception):
    """Base error carrying the failing operation and key."""

    def __init__(self, message: str, operation: Optional[str] = None, key: Any = None):
        self.operation = operation
        self.key = key
        self.message = message
        super().__init__(self._render())

    def _render(self) -> str:
        parts = []
        if self.operation:
            parts.append(f"[{self.operation}]")
        parts.append(self.message)
        if self.key is not None:
            parts.append(f"(key={self.key!r})")
        return " ".join(parts)


class MissingIdentifier(EntityDBError):
    """A write was attempted without an `id`."""
    pass


class DuplicateIdentifier(EntityDBError):
    """An insert reused an `id` that is already stored."""
    pass


class NotFound(EntityDBError):
    """An update referenced one or more ids that are not stored."""

    def __init__(self, message: str, operation: Optional[str] = None, key: Any = None,
                 keys: Optional[List[Any]] = None):
        self.keys = list(keys) if keys is not None else ([key] if key is not None else [])
        super().__init__(message, operation=operation, key=key)


class LengthMismatch(EntityDBError):
    """Two vectors of different lengths were compared."""

    def __init__(self, left: int, right: int, operation: Optional[str] = None, key: Any = None):
        self.left = left
        self.right = right
        super().__init__(
            f"Vectors must be of the same length ({left} != {right})",
            operation=operation,
            key=key,
        )


class IncompatibleVector(EntityDBError):
    """A stored vector does not match the representation the query mode needs."""
    pass


class AccelerationUnavailable(EntityDBError):
    """The accelerated distance kernel is missing or fails validation."""
    pass


class BackendFailure(EntityDBError):
    """Any error surfaced by the persistent backend."""
    pass
