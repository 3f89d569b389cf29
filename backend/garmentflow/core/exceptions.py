"""
Domain exceptions.

Services raise these and never build HTTP responses themselves; the global
handler in main.py converts them with to_http_exception().
"""
from typing import Any, Dict, Iterable, Optional

from fastapi import HTTPException


class GarmentFlowException(Exception):
    status_code: int = 400
    code: str = "GARMENTFLOW_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EntityNotFoundException(GarmentFlowException):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} '{entity_id}' not found", {"entity": entity, "id": str(entity_id)})
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateTransitionException(GarmentFlowException):
    status_code = 409
    code = "INVALID_STATE"

    def __init__(self, entity: str, current: str, action: str, expected: Iterable[str]):
        expected = list(expected)
        super().__init__(
            f"Cannot {action} {entity} in status {current}; expected one of: {', '.join(expected) or '-'}",
            {"entity": entity, "current": current, "action": action, "expected": expected},
        )
        self.current = current
        self.action = action
        self.expected = expected


class AuthorizationException(GarmentFlowException):
    status_code = 403
    code = "UNAUTHORIZED"


class RoleMismatchException(GarmentFlowException):
    status_code = 422
    code = "ROLE_MISMATCH"

    def __init__(self, user_id: Any, required_role: str, actual_role: Optional[str]):
        super().__init__(
            f"User '{user_id}' must have role {required_role} (has {actual_role})",
            {"user_id": str(user_id), "required_role": required_role, "actual_role": actual_role},
        )


class InsufficientStockException(GarmentFlowException):
    status_code = 409
    code = "INSUFFICIENT_STOCK"


class BelowMinimumStockException(GarmentFlowException):
    status_code = 409
    code = "BELOW_MINIMUM_STOCK"


class ExceedsAvailableException(GarmentFlowException):
    status_code = 409
    code = "EXCEEDS_AVAILABLE"


class BusinessRuleViolationException(GarmentFlowException):
    code = "BUSINESS_RULE_VIOLATION"


class ValidationException(GarmentFlowException):
    status_code = 422
    code = "VALIDATION_ERROR"


def to_http_exception(exc: GarmentFlowException) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail={"code": exc.code, "message": exc.message, "details": exc.details},
    )
