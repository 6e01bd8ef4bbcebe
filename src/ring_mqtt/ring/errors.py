"""Exceptions raised by the Ring API client."""

from __future__ import annotations


class RingClientError(Exception):
    """Base exception for Ring API errors.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code, when the error came from a response.
        original_error: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            status_code: Optional HTTP status code.
            original_error: The underlying exception, if any.
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.original_error = original_error


class RingAuthenticationError(RingClientError):
    """Raised when the refresh token or credentials are rejected."""

    pass


class RingConnectionError(RingClientError):
    """Raised when the Ring API cannot be reached."""

    pass


class RingTwoFactorRequired(RingAuthenticationError):
    """Raised when a password grant needs a two-factor code.

    Attributes:
        prompt: Message from Ring describing where the code was sent.
    """

    def __init__(self, prompt: str = '') -> None:
        super().__init__(prompt or 'Two-factor authentication code required', status_code=412)
        self.prompt = prompt
