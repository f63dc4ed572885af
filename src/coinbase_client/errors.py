from __future__ import annotations


class CoinbaseClientError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class CoinbaseConfigError(CoinbaseClientError):
    """Unusable credentials or configuration (bad secret, bad header value)."""


class CoinbaseNetworkError(CoinbaseClientError):
    """Network/timeout/connection related errors."""


class CoinbaseHTTPError(CoinbaseClientError):
    """An HTTP response the client could not turn into a result."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        method: str | None = None,
        path: str | None = None,
        body: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause)
        self.status_code = status_code
        self.message = message
        self.method = method
        self.path = path
        self.body = body

    def __str__(self) -> str:
        where = f" ({self.method} {self.path})" if self.method and self.path else ""
        return f"HTTP {self.status_code}{where}: {self.message}"


class CoinbaseStatusError(CoinbaseHTTPError):
    """Non-2xx response carrying the exchange's error message."""


class CoinbaseDecodeError(CoinbaseHTTPError):
    """
    Response body did not match the expected shape.

    ``source`` is ``"response"`` when a success body failed to decode and
    ``"error"`` when the error payload of a non-2xx response failed to decode.
    """

    def __init__(self, status_code: int, message: str, *, source: str = "response", **kwargs):
        super().__init__(status_code, message, **kwargs)
        self.source = source
