# Overview: Domain exception hierarchy shared by services and routes.

"""
Domain errors for BranchPOS.

Every error carries a stable ``code`` (returned to clients) and the HTTP
status the API layer maps it to. Services raise these; routes catch
``BranchPosError`` and render it with ``error_response``.

Categories:
- Validation (400): bad input, duplicate username, insufficient payment
- Authentication (401): uniform message regardless of cause
- Authorization (403): wrong branch or insufficient role
- Not found (404)
- State conflicts (409): the caller has to resolve first (e.g. pay)
- Unavailable (503): credential store unreachable
"""

from flask import jsonify


class BranchPosError(Exception):
    """Base class for domain errors."""
    code = "Error"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


# =============================================================================
# VALIDATION (400)
# =============================================================================

class ValidationError(BranchPosError):
    code = "ValidationError"
    status_code = 400


class DuplicateUsername(ValidationError):
    code = "DuplicateUsername"


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    code = "WeakPassword"


class InsufficientPayment(ValidationError):
    code = "InsufficientPayment"


class SameTable(ValidationError):
    code = "SameTable"


# =============================================================================
# AUTH (401 / 403)
# =============================================================================

class InvalidCredentials(BranchPosError):
    code = "InvalidCredentials"
    status_code = 401

    def __init__(self, message: str = "Invalid credentials", details: dict | None = None):
        super().__init__(message, details)


class AuthorizationError(BranchPosError):
    code = "Forbidden"
    status_code = 403


# =============================================================================
# NOT FOUND (404)
# =============================================================================

class NotFound(BranchPosError):
    code = "NotFound"
    status_code = 404


# =============================================================================
# STATE CONFLICTS (409)
# =============================================================================

class StateConflict(BranchPosError):
    code = "Conflict"
    status_code = 409


class CannotClearUnpaid(StateConflict):
    code = "CannotClearUnpaid"


class TargetOccupied(StateConflict):
    code = "TargetOccupied"


class TableNotAvailable(StateConflict):
    code = "TableNotAvailable"


class AlreadyPaid(StateConflict):
    code = "AlreadyPaid"


class InvalidTransition(StateConflict):
    code = "InvalidTransition"


# =============================================================================
# UNAVAILABLE (503)
# =============================================================================

class ServiceUnavailable(BranchPosError):
    code = "ServiceUnavailable"
    status_code = 503


def error_response(exc: BranchPosError):
    """Render a domain error as a (response, status) tuple."""
    return jsonify(exc.to_dict()), exc.status_code
