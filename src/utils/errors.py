import concurrent.futures

import httpx

RETRYABLE_ERROR_CODES = {
    "57014",  # statement timeout
    "08000",
    "08001",
    "08003",
    "08004",
    "08006",
    "PGRST000",
    "PGRST001",
    "PGRST002",
    "PGRST003",
}

RETRYABLE_ERROR_SUBSTRINGS = (
    "timeout",
    "timed out",
    "network",
    "connection",
    "fetch failed",
    "econnreset",
    "econnrefused",
    "socket",
)


class RemoteServiceError(Exception):
    """A call to the backend service failed."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def retryable(self) -> bool:
        if self.code and self.code in RETRYABLE_ERROR_CODES:
            return True
        lowered = (self.message or "").lower()
        return any(part in lowered for part in RETRYABLE_ERROR_SUBSTRINGS)


class RemoteTimeoutError(RemoteServiceError):
    @property
    def retryable(self) -> bool:
        return True


class RemoteConnectionError(RemoteServiceError):
    """The connection to the backend dropped or was refused."""

    @property
    def retryable(self) -> bool:
        return True


class RemoteUnavailableError(RemoteServiceError):
    """The backend client is not configured or cannot be created."""

    @property
    def retryable(self) -> bool:
        return False


class AuthError(Exception):
    pass


def is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, RemoteServiceError):
        return exc.retryable
    if isinstance(
        exc,
        (
            TimeoutError,
            concurrent.futures.TimeoutError,
            ConnectionError,
            httpx.TimeoutException,
            httpx.TransportError,
        ),
    ):
        return True
    lowered = str(exc).lower()
    return any(part in lowered for part in RETRYABLE_ERROR_SUBSTRINGS)
