"""Courier exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from CourierError for easy catching.
"""

from __future__ import annotations


class CourierError(Exception):
    """Base exception for all Courier errors.

    All custom exceptions in Courier inherit from this class,
    allowing callers to catch all Courier-related errors with
    a single except clause.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code.
    """

    code: str = "courier_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(CourierError):
    """Invalid input provided.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(CourierError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "webhook_registration").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(CourierError):
    """Registration store operation failed."""

    code: str = "storage_error"


class ConcurrencyError(StorageError):
    """Optimistic concurrency check failed.

    Raised by a registration store when the stored version no longer
    matches the version the writer read.

    Attributes:
        registration_id: Registration whose write was rejected.
        expected_version: Version the writer expected.
        actual_version: Version currently stored.
    """

    code: str = "concurrency_conflict"

    def __init__(self, registration_id: str, expected_version: int, actual_version: int) -> None:
        self.registration_id = registration_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on {registration_id}: "
            f"expected {expected_version}, found {actual_version}"
        )


class ConfigurationError(CourierError):
    """Configuration error.

    Raised when required configuration is missing or invalid. During
    delivery this is a fatal, non-retryable condition.
    """

    code: str = "configuration_error"


class SigningError(ConfigurationError):
    """Payload could not be signed (secret missing or malformed)."""

    code: str = "signing_error"


class TemplateError(ConfigurationError):
    """Payload template is invalid or could not be rendered."""

    code: str = "template_error"


class InvalidTransitionError(CourierError):
    """Requested registration status change is not allowed.

    Attributes:
        current_status: Status the registration is in.
        action: The transition that was attempted.
    """

    code: str = "invalid_transition"

    def __init__(self, current_status: str, action: str) -> None:
        self.current_status = current_status
        self.action = action
        super().__init__(f"Cannot {action} a registration in status {current_status}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "current_status": self.current_status,
                "action": self.action,
                "message": self.message,
            }
        }
