from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class ValidationError(AppException):
    """Malformed or missing input. Not retryable as-is."""
    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        payload = dict(details or {})
        if field:
            payload["field"] = field
        self.field = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=payload or None
        )

class InsufficientBalanceError(AppException):
    def __init__(
        self,
        leave_type_id: int,
        leave_type_name: str,
        requested_days: float,
        remaining_days: float,
        message: Optional[str] = None
    ):
        self.requested_days = requested_days
        self.remaining_days = remaining_days
        super().__init__(
            message=message or (
                f"Insufficient {leave_type_name} balance. "
                f"Requested: {requested_days:g} days, Remaining: {remaining_days:g} days"
            ),
            status_code=409,
            error_code="INSUFFICIENT_BALANCE",
            details={
                "leave_type_id": leave_type_id,
                "leave_type_name": leave_type_name,
                "requested_days": requested_days,
                "remaining_days": remaining_days,
            }
        )

class InvalidStateError(AppException):
    """Stale transition attempt. Callers should re-fetch and decide."""
    def __init__(self, request_id: int, status: str, action: str):
        self.status = status
        super().__init__(
            message=f"Leave request {request_id} is {status}; cannot {action}.",
            status_code=409,
            error_code="INVALID_STATE",
            details={"request_id": request_id, "status": status, "action": action}
        )

class TransientError(AppException):
    """Infrastructure hiccup. Safe to retry."""
    def __init__(self, message: str = "Temporary failure, please retry.", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=503,
            error_code="TRANSIENT_ERROR",
            details=details
        )

class NotFoundError(AppException):
    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            message=f"{entity} {entity_id} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"entity": entity, "id": entity_id}
        )

class BalanceConflictError(Exception):
    """Optimistic version check lost a race. Internal; retried, never surfaced."""
