"""
Exception Classes - Strongly typed exception hierarchy.

All exceptions carry typed attributes instead of free-form payloads.
"""

from datetime import datetime


class FlikktError(Exception):
    """Base exception for all Flikkt errors."""

    pass


class ConfigurationError(FlikktError):
    """Raised when critical configuration is missing or invalid."""

    pass


class AnalysisRequestError(FlikktError):
    """Raised when an analysis request is missing required input."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthenticationError(FlikktError):
    """Raised when a bearer token is missing, invalid, or for another user."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class ScanLimitReachedError(FlikktError):
    """Raised when a free-tier user has no scans left this month."""

    def __init__(self, user_id: str, scans_remaining: int = 0) -> None:
        self.user_id = user_id
        self.scans_remaining = scans_remaining
        super().__init__(f"Monthly scan limit reached for user {user_id}")


class ScanUsageError(FlikktError):
    """Raised when the scan usage procedure fails or returns nothing."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Scan usage error: {message}")


class MedicationFetchError(FlikktError):
    """Raised when the user's medications cannot be loaded."""

    def __init__(self, user_id: str, message: str) -> None:
        self.user_id = user_id
        self.message = message
        super().__init__(f"Failed to fetch medications for {user_id}: {message}")


class HistoryWriteError(FlikktError):
    """Raised when an analysis history row cannot be stored."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"History write failed: {message}")


class LLMProviderError(FlikktError):
    """Raised when the LLM completion call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(f"LLM provider error: {message}")


class AIResponseError(FlikktError):
    """Raised when the model output is not valid analysis JSON."""

    def __init__(self, message: str, content_preview: str = "") -> None:
        self.message = message
        self.content_preview = content_preview
        super().__init__(f"Invalid AI response: {message}")


class PaymentProviderError(FlikktError):
    """Raised when payment provider operation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")


class SubscriptionNotFoundError(FlikktError):
    """Raised when a billing operation needs a customer or subscription that doesn't exist."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RateLimitExceededError(FlikktError):
    """Raised when a client-side call budget for a function is exhausted."""

    def __init__(self, function_name: str, reset_at: datetime) -> None:
        self.function_name = function_name
        self.reset_at = reset_at
        super().__init__(
            f"Too many calls to {function_name}. "
            f"Try again after {reset_at.strftime('%H:%M:%S')}."
        )
