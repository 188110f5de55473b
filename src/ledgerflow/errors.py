"""Error taxonomy and the structured result returned by every core operation."""

from __future__ import annotations

import functools
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from .logging_config import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class LedgerError(Exception):
    """Base class for every failure the ledger core reports."""

    code = "ledger_error"
    retryable = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "kind": self.kind,
            "message": self.message,
            "details": {k: str(v) for k, v in self.details.items()},
        }

    @property
    def kind(self) -> str:
        for base in (ValidationError, NotFoundError, PolicyViolation, ConflictError, FatalError):
            if isinstance(self, base):
                return base.__name__
        return "LedgerError"


class ValidationError(LedgerError):
    """Bad input shape or range."""

    code = "validation_error"


class InvalidAmount(ValidationError):
    code = "invalid_amount"


class MissingDescription(ValidationError):
    code = "missing_description"


class NotFoundError(LedgerError):
    """A referenced record does not exist for this user."""

    code = "not_found"


class ProductNotFound(NotFoundError):
    code = "product_not_found"


class TransactionNotFound(NotFoundError):
    code = "transaction_not_found"


class RateUnavailable(NotFoundError):
    """No stored exchange rate for the ordered currency pair."""

    code = "rate_unavailable"


class PolicyViolation(LedgerError):
    """The request is well-formed but the ledger rules forbid it."""

    code = "policy_violation"


class ProductTypeNotEligible(PolicyViolation):
    code = "product_type_not_eligible"


class CurrencyMismatchUnresolvable(PolicyViolation):
    code = "currency_mismatch_unresolvable"


class InsufficientFunds(PolicyViolation):
    code = "insufficient_funds"


class CreditLimitExceeded(PolicyViolation):
    code = "credit_limit_exceeded"


class StatementClosed(PolicyViolation):
    code = "statement_closed"


class ProductInUse(PolicyViolation):
    code = "product_in_use"


class DuplicateRecord(PolicyViolation):
    code = "duplicate_record"


class ConflictError(LedgerError):
    """Concurrent modification detected; safe to retry."""

    code = "conflict"
    retryable = True


class FatalError(LedgerError):
    """Storage unavailable or otherwise broken."""

    code = "fatal"


@dataclass(frozen=True, slots=True)
class OperationResult(Generic[T]):
    """Success flag plus either a payload or a typed error."""

    ok: bool
    value: Optional[T] = None
    error: Optional[LedgerError] = None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: LedgerError) -> "OperationResult[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        """Return the payload or raise the carried error."""
        if not self.ok:
            assert self.error is not None
            raise self.error
        return self.value  # type: ignore[return-value]


def translate_storage_error(exc: SQLAlchemyError) -> LedgerError:
    """Map a SQLAlchemy failure onto the ledger taxonomy."""

    text = str(getattr(exc, "orig", exc)).lower()
    if isinstance(exc, OperationalError) and ("locked" in text or "busy" in text or "deadlock" in text):
        return ConflictError("The ledger is busy with another write; retry the operation.")
    return FatalError("Storage failure while running the operation.", cause=type(exc).__name__)


def returns_result(func: Callable[..., T]) -> Callable[..., OperationResult[T]]:
    """Wrap a service method so ledger errors come back as a failed result."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> OperationResult[T]:
        try:
            return OperationResult.success(func(*args, **kwargs))
        except LedgerError as exc:
            logger.warning(
                "Operation %s failed: %s",
                func.__qualname__,
                exc.message,
                extra={"operation": func.__qualname__, "error_code": exc.code},
            )
            return OperationResult.failure(exc)
        except SQLAlchemyError as exc:
            error = translate_storage_error(exc)
            log = logger.warning if error.retryable else logger.error
            log(
                "Operation %s hit a storage error",
                func.__qualname__,
                exc_info=not error.retryable,
                extra={"operation": func.__qualname__, "error_code": error.code},
            )
            return OperationResult.failure(error)

    return wrapper


def call_with_retry(
    operation: Callable[[], OperationResult[T]],
    *,
    attempts: int = 3,
    backoff: float = 0.05,
) -> OperationResult[T]:
    """Run ``operation`` again while it fails with a retryable conflict.

    At most ``attempts`` calls are made; the last failed result is returned on
    exhaustion so the caller learns about it.
    """

    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    result = operation()
    for attempt in range(1, attempts):
        if result.ok or result.error is None or not result.error.retryable:
            return result
        time.sleep(backoff * (2 ** (attempt - 1)))
        result = operation()
    return result
