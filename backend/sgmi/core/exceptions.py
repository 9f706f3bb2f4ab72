"""Domain errors raised by the production services.

Each error carries a stable ``code`` and the HTTP status the API layer
answers with. The realtime gateway reports the same errors to the
originating connection as ``batch_action_error`` messages.
"""

import uuid


class ProductionError(Exception):
    """Base class for expected failures of production operations."""

    status_code = 400
    code = "production_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(ProductionError):
    status_code = 404
    code = "not_found"


class BatchNotFound(NotFound):
    code = "batch_not_found"

    def __init__(self, batch_id: uuid.UUID) -> None:
        super().__init__(f"Batch {batch_id} not found")
        self.batch_id = batch_id


class PlanNotFound(NotFound):
    code = "production_plan_not_found"

    def __init__(self, plan_id: uuid.UUID) -> None:
        super().__init__(f"Production plan {plan_id} not found")
        self.plan_id = plan_id


class ProductNotFound(NotFound):
    code = "product_not_found"


class InvalidTransition(ProductionError):
    """An action was attempted from a status that does not allow it."""

    code = "invalid_batch_action"

    def __init__(self, action: str, status: str) -> None:
        super().__init__(f"Cannot {action} a batch in {status} status")
        self.action = action
        self.status = status


class UnknownAction(ProductionError):
    code = "invalid_action"

    def __init__(self, action: str) -> None:
        super().__init__(f"Unknown batch action: {action!r}")
        self.action = action


class DuplicateBatchNumber(ProductionError):
    status_code = 409
    code = "batch_number_conflict"

    def __init__(self, plan_id: uuid.UUID, batch_number: int) -> None:
        super().__init__(
            f"Batch number {batch_number} already exists for production plan {plan_id}"
        )
        self.plan_id = plan_id
        self.batch_number = batch_number


class InvalidRunRecord(ProductionError):
    code = "invalid_run_record"


class PersistenceFailure(ProductionError):
    """The database could not complete the operation."""

    status_code = 503
    code = "persistence_failure"
