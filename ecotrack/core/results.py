"""
Operation Results

Value types for outcomes that are reported rather than raised:
best-effort side effects (history, gauges, aggregates) and Shopify
mutations that may come back with user errors.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SideEffectResult:
    """
    Outcome of a non-fatal side effect.

    Truthy on success. A failed result carries the exception that caused it;
    callers log and discard it instead of failing the primary write.
    """
    operation: str
    ok: bool
    error: Optional[BaseException] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, operation: str, **details: Any) -> "SideEffectResult":
        return cls(operation=operation, ok=True, details=details)

    @classmethod
    def failure(cls, operation: str, error: BaseException, **details: Any) -> "SideEffectResult":
        return cls(operation=operation, ok=False, error=error, details=details)

    def log_if_failed(self, **context: Any) -> "SideEffectResult":
        """Emit a warning for a failed result and hand it back unchanged."""
        if not self.ok:
            logger.warning(
                "Side effect failed",
                operation=self.operation,
                error=str(self.error),
                error_type=type(self.error).__name__,
                **context,
            )
        return self


@dataclass(frozen=True)
class UserError:
    """A field-level error returned by a Shopify mutation"""
    message: str
    field: Optional[List[str]] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "UserError":
        return cls(message=payload.get("message", ""), field=payload.get("field"))


@dataclass
class MutationResult:
    """Structured result of a Shopify mutation"""
    success: bool
    user_errors: List[UserError] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def error_message(self) -> str:
        return ", ".join(e.message for e in self.user_errors)
