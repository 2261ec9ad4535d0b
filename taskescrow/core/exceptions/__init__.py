"""Business Exceptions

Domain-specific exceptions. Every error raised by the engine derives from
TaskEscrowException and carries a stable ``code`` used by the HTTP layer.
"""


class TaskEscrowException(Exception):
    """Base exception for TaskEscrow"""

    code = "internal_error"
    benign = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self)


class RaceLostError(TaskEscrowException):
    """Lost a race against a concurrent operation on the same record"""

    benign = True


class ValidationError(TaskEscrowException):
    """Invalid input"""

    code = "validation_error"


class NotFoundError(TaskEscrowException):
    """Requested record does not exist"""

    code = "not_found"


class PermissionDeniedError(TaskEscrowException):
    """Actor is not allowed to perform this operation"""

    code = "permission_denied"


class InvalidStateError(TaskEscrowException):
    """Transition not allowed from the current state"""

    code = "invalid_state"

    def __init__(self, from_status: str, to_status: str, message: str = ""):
        self.from_status = str(from_status)
        self.to_status = str(to_status)
        super().__init__(
            message or f"Cannot transition from {self.from_status} to {self.to_status}"
        )


class AlreadyAssignedError(InvalidStateError, RaceLostError):
    """Task is no longer open for acceptance"""

    code = "already_assigned"

    def __init__(self, task_id: str, current_status: str):
        self.task_id = task_id
        super().__init__(
            current_status,
            "accepted",
            f"Task {task_id} is already {current_status}",
        )


class AlreadyResolvedError(InvalidStateError, RaceLostError):
    """Dispute was already resolved"""

    code = "already_resolved"

    def __init__(self, dispute_id: str):
        self.dispute_id = dispute_id
        super().__init__("resolved", "resolved", f"Dispute {dispute_id} already resolved")


class ConflictError(TaskEscrowException):
    """Idempotency key reused with a different request body"""

    code = "idempotency_conflict"


class InsufficientFundsError(TaskEscrowException):
    """Debit would take a wallet below zero"""

    code = "insufficient_funds"

    def __init__(self, user_id: str, balance: int, amount: int):
        self.user_id = user_id
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"Insufficient funds for {user_id}: balance {balance}, required {amount}"
        )


class RateLimitedError(TaskEscrowException):
    """Too many requests in the current window"""

    code = "rate_limited"

    def __init__(self, operation: str, max_requests: int, window_minutes: int):
        self.operation = operation
        self.max_requests = max_requests
        self.window_minutes = window_minutes
        super().__init__(
            f"Rate limit exceeded for {operation}: "
            f"{max_requests} requests per {window_minutes} minutes"
        )


class IdempotencyKeyRequiredError(TaskEscrowException):
    """Financial mutation called without an idempotency key"""

    code = "idempotency_key_required"


class InternalError(TaskEscrowException):
    """Storage or transaction failure"""

    code = "internal_error"


__all__ = [
    "TaskEscrowException",
    "RaceLostError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "InvalidStateError",
    "AlreadyAssignedError",
    "AlreadyResolvedError",
    "ConflictError",
    "InsufficientFundsError",
    "RateLimitedError",
    "IdempotencyKeyRequiredError",
    "InternalError",
]
