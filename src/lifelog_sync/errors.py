"""Errors raised by the LifeLog client, local store and sync engine."""


class LifeLogError(Exception):
    """Base class for all LifeLog errors.

    Attributes:
        retryable: Whether re-running the sync later may succeed without
            user intervention.
    """

    retryable = True
    recovery_suggestion = "Try again or contact support if the problem persists."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message())

    def default_message(self) -> str:
        return "LifeLog operation failed"


class NetworkUnavailableError(LifeLogError):
    """No network path to the API."""

    recovery_suggestion = "Check your internet connection and try again."

    def default_message(self) -> str:
        return "No internet connection"


class RequestTimeoutError(LifeLogError):
    """A request exceeded the configured timeout."""

    recovery_suggestion = "Try again later."

    def default_message(self) -> str:
        return "Request timeout"


class UnauthorizedError(LifeLogError):
    """The API rejected the bearer token."""

    retryable = False
    recovery_suggestion = "Check your API key with 'lifelog-sync configure'."

    def default_message(self) -> str:
        return "Invalid API key"


class NotConfiguredError(LifeLogError):
    """No API URL or key has been configured."""

    retryable = False
    recovery_suggestion = "Run 'lifelog-sync configure'."

    def default_message(self) -> str:
        return "API key not configured"


class InvalidURLError(LifeLogError):
    """The configured API base URL is not usable."""

    retryable = False
    recovery_suggestion = "Check your API URL with 'lifelog-sync configure'."

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Invalid API URL: {url!r}")


class InvalidRequestError(LifeLogError):
    """A request was rejected locally before reaching the network."""

    retryable = False

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid request: {reason}")


class ServerError(LifeLogError):
    """The API answered with a non-success status."""

    recovery_suggestion = "Try again later or contact support if the problem persists."

    def __init__(self, status_code: int, message: str | None = None) -> None:
        self.status_code = status_code
        self.message = message
        if message:
            text = f"Server error ({status_code}): {message}"
        else:
            text = f"Server error ({status_code})"
        super().__init__(text)


class NotFoundError(ServerError):
    """The requested entry does not exist on the server."""

    retryable = False

    def __init__(self, message: str | None = None) -> None:
        super().__init__(404, message or "Entry not found")


class MalformedResponseError(ServerError):
    """The API answered successfully but the body could not be decoded."""

    def __init__(self, status_code: int, body: str, detail: str | None = None) -> None:
        self.body = body
        self.detail = detail
        super().__init__(status_code, f"Invalid server response: {detail or 'undecodable body'}")


class StorageError(LifeLogError):
    """The local store could not be read or written."""

    retryable = False

    def default_message(self) -> str:
        return "Local storage failed"
