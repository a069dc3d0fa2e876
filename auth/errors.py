"""
auth/errors.py -- Domain exception taxonomy for authentication and verification.

Services raise these; the API layer maps them to HTTP responses in a single
exception handler (api/main.py). Each class carries the status code and the
machine-readable code it renders as, so route handlers never translate errors
by hand.

  ValidationError          204  missing or malformed body
  NotFoundError            404  no matching account / verification request
  AuthenticationError      401  credential mismatch, challenge mismatch
  LegacyMigrationRequired  501  account has no local password hash yet
  AuthorizationError       401  no session, or role insufficient
  PreconditionError        400  domain precondition failed (flags, role name)
  ConflictError            409  duplicate email, concurrent credential write
  DependencyFailure        417  hashing, mail or blob storage failed

DependencyFailure messages are generic by construction. The underlying cause
is logged by whoever raises it and never reaches the response body.

Layer rule: stdlib only.
"""

from __future__ import annotations


class MembershipError(Exception):
    """Base class. Subclasses set status_code and code."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MembershipError):
    status_code = 204
    code = "validation_error"
    default_message = "No body attached"


class NotFoundError(MembershipError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class AuthenticationError(MembershipError):
    status_code = 401
    code = "bad_credentials"
    default_message = "Invalid credentials."


class LegacyMigrationRequired(AuthenticationError):
    status_code = 501
    code = "password_migration_required"
    default_message = "Need password migration"


class AuthorizationError(MembershipError):
    status_code = 401
    code = "unauthorized"
    default_message = "Not Logged In"


class PreconditionError(MembershipError):
    status_code = 400
    code = "precondition_failed"
    default_message = "Request cannot be completed in the current state."


class ConflictError(MembershipError):
    status_code = 409
    code = "conflict"
    default_message = "Conflicting update."


class DependencyFailure(MembershipError):
    status_code = 417
    code = "dependency_failure"
    default_message = "Error has occurred"


class NotificationError(DependencyFailure):
    """Raised by a notification sink when the transport itself fails."""

    code = "notification_failure"
    default_message = "Error while sending email"
