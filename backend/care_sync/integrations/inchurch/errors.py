"""
InChurch API error taxonomy.

Every failure surfaced by the InChurch client is an InChurchError carrying a
stable code, the HTTP status (when there was a response) and the raw details.
"""

from typing import Any, Optional


class InChurchError(Exception):
    """Raised when the InChurch API call fails."""

    def __init__(
        self,
        message: str,
        code: str,
        status: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.details = details

    @property
    def is_retryable(self) -> bool:
        """Network failures, 5xx and 429 are worth another attempt."""
        if self.code == "NETWORK_ERROR":
            return True
        if self.status is None:
            return False
        return self.status == 429 or self.status >= 500

    def __repr__(self) -> str:
        return f"<InChurchError code={self.code} status={self.status} message='{self.message}'>"


class InvalidResponseError(InChurchError):
    """Raised when the API answers with a payload we cannot parse."""

    def __init__(self, message: str, status: Optional[int] = None, details: Any = None):
        super().__init__(message, "INVALID_RESPONSE", status, details)


# status -> (code, message)
_STATUS_ERRORS = {
    400: ("BAD_REQUEST", "Bad request"),
    401: ("UNAUTHORIZED", "Invalid or expired credentials"),
    403: ("FORBIDDEN", "Access denied"),
    404: ("NOT_FOUND", "Resource not found"),
    429: ("RATE_LIMIT_EXCEEDED", "Rate limit exceeded"),
    500: ("INTERNAL_SERVER_ERROR", "InChurch internal server error"),
}


def create_inchurch_error(status: int, response_body: Any = None) -> InChurchError:
    """
    Maps an HTTP error status to a typed InChurchError.

    Args:
        status: HTTP status code of the failed response
        response_body: Parsed response body (or raw text) for diagnostics

    Returns:
        InChurchError with a stable code
    """
    code, message = _STATUS_ERRORS.get(status, ("HTTP_ERROR", f"HTTP error {status}"))
    return InChurchError(message, code, status, response_body)


def network_error(error: Exception) -> InChurchError:
    """Wraps a transport level failure (DNS, connect, timeout...)."""
    return InChurchError("Network error", "NETWORK_ERROR", None, str(error))
