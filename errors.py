import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError


logger = logging.getLogger(__name__)

# PostgreSQL serialization_failure and deadlock_detected.
_RETRYABLE_PGCODES = {"40001", "40P01"}


class MonthlyExpenseError(Exception):
    kind = "error"


class NotFoundError(MonthlyExpenseError, ValueError):
    kind = "not_found"


class InvalidStateError(MonthlyExpenseError, ValueError):
    kind = "invalid_state"


class PolicyViolationError(MonthlyExpenseError, ValueError):
    kind = "policy_violation"


class InsufficientBalanceError(PolicyViolationError):
    def __init__(self, balance_cents: int, amount_cents: int, minimum_cents: int) -> None:
        self.balance_cents = balance_cents
        self.amount_cents = amount_cents
        self.minimum_cents = minimum_cents
        super().__init__(
            f"Insufficient balance: current balance {balance_cents}, "
            f"debit {amount_cents}, minimum allowed {minimum_cents}"
        )


class InvalidInputError(MonthlyExpenseError, ValueError):
    kind = "validation"


class WriteConflictError(MonthlyExpenseError):
    """A concurrent mutation won the race; the whole operation may be retried."""

    kind = "write_conflict"
    retryable = True


def is_write_conflict(exc: BaseException) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, OperationalError):
        pgcode = getattr(exc.orig, "pgcode", None)
        if pgcode in _RETRYABLE_PGCODES:
            return True
        return "database is locked" in str(exc.orig).lower()
    return False


@contextmanager
def conflict_guard(operation: str) -> Iterator[None]:
    try:
        yield
    except (StaleDataError, OperationalError) as exc:
        if not is_write_conflict(exc):
            raise
        logger.warning(f"write_conflict: operation={operation} error={exc}")
        raise WriteConflictError(
            f"Concurrent update while running {operation}; please retry"
        ) from exc
