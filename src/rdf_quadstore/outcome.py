"""
Result-or-error outcome returned by every store operation.

Store operations never raise for downstream failures (engine, parser,
transport). They return an Outcome and hand the same Outcome to the
optional completion callback.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional


class StoreError(Exception):
    """Failure reported by an engine, parser or transport."""
    pass


@dataclass(frozen=True)
class Outcome:
    """
    Outcome of a store operation.

    Attributes:
        ok: True when the operation succeeded
        value: Result payload (bindings, Graph, bool, count...)
        error: The failure, when ok is False
    """
    ok: bool
    value: Any = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, value: Any = None) -> "Outcome":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: Exception | str, value: Any = None) -> "Outcome":
        """Create a failed outcome. ``value`` may carry a partial result."""
        if isinstance(error, str):
            error = StoreError(error)
        return cls(ok=False, value=value, error=error)

    def unwrap(self) -> Any:
        """Return the value or raise the failure as a StoreError."""
        if self.ok:
            return self.value
        if isinstance(self.error, StoreError):
            raise self.error
        raise StoreError(str(self.error)) from self.error

    def __bool__(self) -> bool:
        return self.ok


OutcomeCallback = Callable[[Outcome], Any]
