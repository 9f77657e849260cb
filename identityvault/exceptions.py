"""
Error Taxonomy

Every failure raised by the identity core is an IdentityError carrying:
- kind: one of the ErrorKind categories below
- message: a human readable, client-safe message
- fields: optional field-level details (for validation failures)

The transport layer maps `kind` to its own status codes; the core never
swallows or retries an error.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class ErrorKind(Enum):
    """Categories of failure surfaced to callers."""

    VALIDATION_FAILED = "validation_failed"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    POLICY_VIOLATION = "policy_violation"
    DEPENDENCY_FAILURE = "dependency_failure"


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation problem."""
    field: str
    message: str


class IdentityError(Exception):
    """Base class for all identity core errors."""

    kind: ErrorKind = ErrorKind.DEPENDENCY_FAILURE
    default_message = "Identity operation failed."

    def __init__(self, message: Optional[str] = None,
                 fields: Optional[Iterable[FieldError]] = None):
        self.message = message or self.default_message
        self.fields: List[FieldError] = list(fields or [])
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for the transport layer."""
        return {
            'kind': self.kind.value,
            'code': type(self).__name__,
            'message': self.message,
            'fields': [{'field': f.field, 'message': f.message} for f in self.fields],
        }


# ============================================================================
# Kinds
# ============================================================================

class ValidationFailedError(IdentityError):
    kind = ErrorKind.VALIDATION_FAILED
    default_message = "Input validation failed."

    def __init__(self, fields: Iterable[FieldError], message: Optional[str] = None):
        fields = list(fields)
        if message is None:
            message = "Input validation failed: " + " ".join(f.message for f in fields)
        super().__init__(message, fields)


class ConflictError(IdentityError):
    kind = ErrorKind.CONFLICT
    default_message = "The resource already exists."


class NotFoundError(IdentityError):
    kind = ErrorKind.NOT_FOUND
    default_message = "The resource was not found."


class UnauthorizedError(IdentityError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Not authorized."


class PolicyViolationError(IdentityError):
    kind = ErrorKind.POLICY_VIOLATION
    default_message = "The request violates a security policy."


class DependencyFailureError(IdentityError):
    kind = ErrorKind.DEPENDENCY_FAILURE
    default_message = "A required service is unavailable."


# ============================================================================
# Conflicts
# ============================================================================

class UserAlreadyExistsError(ConflictError):
    default_message = "A user with the provided email address already exists."


class UsernameTakenError(ConflictError):
    default_message = "The provided username is already taken."


class DuplicateCodeError(ConflictError):
    default_message = "A code with the same purpose is already outstanding for this ID."


class AlreadyEnabledError(ConflictError):
    default_message = "Two-factor authentication is already enabled."


class UniqueConstraintError(ConflictError):
    """Raised by a store when a save would break a unique index."""

    def __init__(self, constraint: str):
        self.constraint = constraint
        super().__init__(f"Unique constraint '{constraint}' violated.")


class StaleWriteError(ConflictError):
    """Raised by a store when an expected row was changed or removed since it was read."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} '{entity_id}' changed since it was read.")


# ============================================================================
# Not found
# ============================================================================

class UserNotFoundError(NotFoundError):
    default_message = "User not found."


class InvalidSessionError(NotFoundError):
    default_message = "Invalid session ID."


class TempCodeNotFoundError(NotFoundError):
    default_message = "No outstanding code for this purpose."


class NotEnabledError(NotFoundError):
    default_message = "Two-factor authentication is not enabled."


# ============================================================================
# Unauthorized
# ============================================================================

class InvalidCredentialsError(UnauthorizedError):
    default_message = "Invalid email or password."


class InvalidPasswordError(InvalidCredentialsError):
    default_message = "The provided password is incorrect."


class TwoFactorRequiredError(UnauthorizedError):
    default_message = "A two-factor authentication code is required."


class InvalidTwoFactorCodeError(UnauthorizedError):
    default_message = "Invalid two-factor authentication code."


class InvalidTempCodeError(UnauthorizedError):
    default_message = "Invalid code."


class ExpiredTempCodeError(UnauthorizedError):
    default_message = "The code has expired."


# ============================================================================
# Policy violations
# ============================================================================

class WeakPasswordError(PolicyViolationError):
    default_message = "The provided password doesn't meet the required strength criteria."

    def __init__(self, score: int, feedback: Iterable[str] = ()):
        self.score = score
        self.feedback = list(feedback)
        super().__init__(
            self.default_message,
            [FieldError('password', msg) for msg in self.feedback],
        )


class MaxSessionsExceededError(PolicyViolationError):

    def __init__(self, maximum: int):
        self.maximum = maximum
        super().__init__(f"Maximum number of sessions ({maximum}) has been reached.")


class InvalidSessionExpirationError(PolicyViolationError):

    def __init__(self, earliest, latest):
        self.earliest = earliest
        self.latest = latest
        super().__init__(
            f"Expiration must be between {earliest.isoformat()} and {latest.isoformat()}.",
            [FieldError('expires_at', "Expiration is outside the allowed window.")],
        )


# ============================================================================
# Dependency failures
# ============================================================================

class MailDeliveryError(DependencyFailureError):
    default_message = "The email could not be delivered."
