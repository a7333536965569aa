"""Error taxonomy shared by the transport, RPC and identity clients."""

from __future__ import annotations

from enum import Enum

NETWORK_MESSAGE_MARKERS = (
    "connection",
    "timeout",
    "timed out",
    "network",
    "dns",
    "socket",
    "name resolution",
    "established connection was aborted",
    "unable to read data from the transport connection",
)


def looks_like_network_error(message: str | None) -> bool:
    """Fallback classifier for errors that carry no structured type."""
    text = (message or "").lower()
    return any(marker in text for marker in NETWORK_MESSAGE_MARKERS)


class NetworkErrorKind(str, Enum):
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    CORRUPTED = "corrupted"


class ApiError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def __str__(self) -> str:
        prefix = f"[{self.status_code}] " if self.status_code else ""
        if self.code:
            return f"{prefix}{self.code}: {self.message}"
        return f"{prefix}{self.message}"


class ConfigurationError(ApiError):
    pass


class TransientNetworkError(ApiError):
    def __init__(self, message: str, *, kind: NetworkErrorKind = NetworkErrorKind.CONNECTION) -> None:
        super().__init__(message)
        self.kind = kind


class TransportCorruptionError(TransientNetworkError):
    def __init__(self, message: str) -> None:
        super().__init__(message, kind=NetworkErrorKind.CORRUPTED)


class RetryExhaustedError(TransientNetworkError):
    def __init__(self, function_name: str, attempts: int, last_error: Exception) -> None:
        kind = getattr(last_error, "kind", NetworkErrorKind.CONNECTION)
        super().__init__(f"Failed to call {function_name} after {attempts} attempts: {last_error}", kind=kind)
        self.function_name = function_name
        self.attempts = attempts
        self.last_error = last_error


class ApplicationError(ApiError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message, status_code=status_code, code=code)
        self.transient = transient


class CredentialError(ApplicationError):
    pass


class AuthenticationError(ApplicationError):
    pass
