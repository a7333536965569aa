"""Shared HTTP transport with typed failure classification."""

from __future__ import annotations

import logging
from typing import Any, Callable

import requests
from urllib3.exceptions import ProtocolError

from u3d_auth.api.errors import (
    ApiError,
    NetworkErrorKind,
    TransientNetworkError,
    TransportCorruptionError,
    looks_like_network_error,
)

DEFAULT_USER_AGENT = "u3d-auth/0.1.0"
DEFAULT_TIMEOUT_SECONDS = 600.0

logger = logging.getLogger(__name__)


def classify_request_error(exc: requests.RequestException) -> ApiError:
    """Map a ``requests`` failure onto the client error taxonomy."""
    if isinstance(exc, requests.Timeout):
        return TransientNetworkError(f"Request timed out: {exc}", kind=NetworkErrorKind.TIMEOUT)
    if isinstance(exc, requests.exceptions.ChunkedEncodingError):
        return TransportCorruptionError(f"Connection broke mid-response: {exc}")
    if isinstance(exc, requests.ConnectionError):
        reason = exc.args[0] if exc.args else None
        if isinstance(reason, ProtocolError):
            return TransportCorruptionError(f"Failed to send request: {exc}")
        return TransientNetworkError(f"Connection failed: {exc}", kind=NetworkErrorKind.CONNECTION)
    if looks_like_network_error(str(exc)):
        return TransientNetworkError(f"Network error: {exc}", kind=NetworkErrorKind.CONNECTION)
    return ApiError(f"Request failed: {exc}")


def read_json(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def parse_error_body(response: requests.Response) -> tuple[str | None, str | None]:
    """Return ``(message, status)`` from a backend error body, if it has one."""
    payload = read_json(response)
    if not isinstance(payload, dict):
        return None, None
    error = payload.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        status = error.get("status")
        return (
            str(message) if message is not None else None,
            str(status) if status is not None else None,
        )
    if isinstance(error, str):
        description = payload.get("error_description")
        return str(description or error), error.upper()
    return None, None


class HttpTransport:
    """Owns the single ``requests.Session`` reused by every outbound call.

    Authorization is never stored on the session; callers pass it per
    request so retried or concurrent calls cannot pick up a stale token.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self._session_factory = session_factory
        self.session = self._build_session()

    def _build_session(self) -> requests.Session:
        session = self._session_factory()
        session.headers.update(
            {
                "Accept": "application/json",
                "User-Agent": self.user_agent,
                "Connection": "keep-alive",
            }
        )
        return session

    def reconnect(self) -> None:
        logger.warning("Recreating HTTP transport after a broken connection")
        try:
            self.session.close()
        except Exception:  # noqa: BLE001
            logger.debug("Closing the broken session failed", exc_info=True)
        self.session = self._build_session()

    def clear_authorization(self) -> None:
        self.session.headers.pop("Authorization", None)

    def close(self) -> None:
        self.session.close()

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
    ) -> requests.Response:
        try:
            return self.session.request(
                method=method,
                url=url,
                headers=headers,
                json=json,
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise classify_request_error(exc) from exc
