"""
Domain Errors

Every failure a service raises on purpose is a DomainError. Each class
fixes a stable `error_code` and the HTTP status the API answers with; the
API layer turns them into the envelope

    {"error": {"code": ..., "message": ..., "details": {...}}}

`details` carries machine-readable context such as the offending `field`
or the `required_roles`.
"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# --- 401 / 403 ---------------------------------------------------------------

class AuthenticationError(DomainError):
    """Gateway identity headers are missing or carry an unknown role"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class AuthorizationError(DomainError):
    error_code = "AUTHORIZATION_ERROR"
    http_status = 403


class PermissionDeniedError(AuthorizationError):
    """Wrong approver, wrong assignee, wrong project manager, missing role"""
    error_code = "PERMISSION_DENIED"


# --- 400 ---------------------------------------------------------------------

class ValidationError(DomainError):
    error_code = "VALIDATION_ERROR"
    http_status = 400


class ConfigurationValidationError(ValidationError):
    """Sub-category approval levels, approvers or queue are inconsistent"""
    error_code = "CONFIGURATION_VALIDATION_ERROR"


class HierarchyValidationError(ValidationError):
    """Reporting manager is unknown or would close a cycle"""
    error_code = "HIERARCHY_VALIDATION_ERROR"


class InsufficientLeaveBalanceError(ValidationError):
    error_code = "INSUFFICIENT_LEAVE_BALANCE"


# --- 404 ---------------------------------------------------------------------

class NotFoundError(DomainError):
    error_code = "NOT_FOUND"
    http_status = 404


class TicketNotFoundError(NotFoundError):
    error_code = "TICKET_NOT_FOUND"


class ConfigNotFoundError(NotFoundError):
    error_code = "CONFIG_NOT_FOUND"


class EmployeeNotFoundError(NotFoundError):
    error_code = "EMPLOYEE_NOT_FOUND"


class LeaveNotFoundError(NotFoundError):
    error_code = "LEAVE_NOT_FOUND"


# --- 409 ---------------------------------------------------------------------

class ConflictError(DomainError):
    error_code = "CONFLICT"
    http_status = 409


class ConcurrencyError(ConflictError):
    """
    The document changed since it was read (version mismatch)

    Callers see a retry prompt; the stale decision is never applied.
    """
    error_code = "CONCURRENCY_CONFLICT"


class InvalidStateError(ConflictError):
    """Workflow event not allowed from the current status"""
    error_code = "INVALID_STATE"


class AlreadyExistsError(ConflictError):
    error_code = "ALREADY_EXISTS"
