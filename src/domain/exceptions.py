"""Custom exception hierarchy for the notification pipeline.

Following error taxonomy: retryable, non-retryable, validation, lease conflicts.
"""


class HookedNotificationsError(Exception):
    """Base exception for all application errors."""

    pass


class RetryableError(HookedNotificationsError):
    """Errors that can be retried (network issues, temporary failures)."""

    pass


class NonRetryableError(HookedNotificationsError):
    """Errors that should not be retried (validation, missing data, logic errors)."""

    pass


class ValidationError(NonRetryableError):
    """Data validation errors."""

    pass


class ConfigurationError(NonRetryableError):
    """Invalid or incomplete configuration."""

    pass


class NoPushTokensError(NonRetryableError):
    """Recipient has no active push tokens; more attempts will not produce any."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__("No push tokens found for recipient")


class RepositoryError(RetryableError):
    """Database/storage errors."""

    pass


class PushGatewayError(RetryableError):
    """Push gateway transport failure or rejected messages."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class LeaseLostError(HookedNotificationsError):
    """A conditional write lost to another worker holding the job."""

    pass
