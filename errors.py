import functools
import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)


class BudgetError(ValueError):
    code = "error"
    status_code = 400


class Unauthorized(BudgetError):
    code = "unauthorized"
    status_code = 401


class InvalidInput(BudgetError):
    code = "invalid_input"
    status_code = 422


class AllocationMismatch(BudgetError):
    code = "allocation_mismatch"
    status_code = 422

    def __init__(self, total_cents: int, allocated_cents: int) -> None:
        super().__init__("Total allocations must equal total income")
        self.total_cents = total_cents
        self.allocated_cents = allocated_cents


class NotFoundOrUnauthorized(BudgetError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str) -> None:
        super().__init__(f"{entity} not found or unauthorized")
        self.entity = entity


class ReferentialConflict(BudgetError):
    code = "in_use"
    status_code = 409


class TargetNotEmpty(BudgetError):
    code = "target_not_empty"
    status_code = 409

    def __init__(self, month: str) -> None:
        super().__init__(f"Target month {month} already has budget items")
        self.month = month


class SourceEmpty(BudgetError):
    code = "source_empty"
    status_code = 409

    def __init__(self, month: str) -> None:
        super().__init__(f"No budget items found in source month {month}")
        self.month = month


class OperationFailed(RuntimeError):
    code = "operation_failed"
    status_code = 500


def storage_boundary(func: F) -> F:
    """Turn storage-layer failures of a service method into OperationFailed.

    The owning session is rolled back so nothing half-written stays visible.
    Domain errors pass through untouched.
    """

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(
                f"storage_failure: op={type(self).__name__}.{func.__name__}"
            )
            raise OperationFailed(str(exc)) from exc

    return wrapper  # type: ignore[return-value]
