"""Retrying client for named backend functions."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests

from u3d_auth.api.errors import (
    ApplicationError,
    CredentialError,
    RetryExhaustedError,
    TransientNetworkError,
    TransportCorruptionError,
    looks_like_network_error,
)
from u3d_auth.api.transport import HttpTransport, parse_error_body, read_json
from u3d_auth.models import RetryAttempt, RetryPolicy

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
TRANSIENT_BACKEND_STATUSES = frozenset({"UNAVAILABLE", "DEADLINE_EXCEEDED"})
UNAUTHENTICATED_BACKEND_STATUSES = frozenset({"UNAUTHENTICATED"})

logger = logging.getLogger(__name__)


def build_application_error(response: requests.Response, function_name: str) -> ApplicationError:
    message, status = parse_error_body(response)
    if message is None:
        message = f"{function_name} failed with HTTP {response.status_code}"
        if response.text:
            message = f"{message}: {response.text[:400]}"

    lowered = message.lower()
    if (
        response.status_code == 401
        or status in UNAUTHENTICATED_BACKEND_STATUSES
        or "unauthenticated" in lowered
        or "unauthorized" in lowered
    ):
        return CredentialError(message, status_code=response.status_code, code=status)

    transient = (
        response.status_code in TRANSIENT_STATUS_CODES
        or status in TRANSIENT_BACKEND_STATUSES
        or looks_like_network_error(message)
    )
    return ApplicationError(message, status_code=response.status_code, code=status, transient=transient)


class ResilientRpcClient:
    """Calls ``POST {functions}/{name}`` with ``{"data": payload}`` and retries transient failures."""

    def __init__(
        self,
        transport: HttpTransport,
        *,
        endpoint_for: Callable[[str], str],
        token_provider: Callable[[], str],
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.transport = transport
        self.endpoint_for = endpoint_for
        self.token_provider = token_provider
        self.retry_policy = retry_policy or RetryPolicy()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _unwrap(response: requests.Response) -> Any:
        payload = read_json(response)
        if isinstance(payload, dict) and "result" in payload:
            return payload["result"]
        if payload is None and response.content:
            return response.text
        return payload

    def _backoff(self, function_name: str, attempt_number: int, error: Exception) -> None:
        attempt = RetryAttempt.after_failure(self.retry_policy, attempt_number, error)
        logger.warning(
            "%s attempt %s/%s failed with %s (%s); retrying in %sms",
            function_name,
            attempt.attempt_number,
            self.retry_policy.max_attempts,
            attempt.error_class,
            error,
            attempt.delay_ms,
        )
        time.sleep(attempt.delay_ms / 1000)

    def call(self, function_name: str, payload: Any = None) -> Any:
        body = {"data": payload if payload is not None else {}}
        max_attempts = self.retry_policy.max_attempts
        last_error: Exception | None = None

        for attempt_number in range(1, max_attempts + 1):
            url = self.endpoint_for(function_name)
            # Headers are rebuilt every attempt so a refreshed or cleared token is honoured.
            headers = self._headers()
            logger.debug("Calling %s (attempt %s/%s)", function_name, attempt_number, max_attempts)
            started = time.monotonic()
            try:
                response = self.transport.request("POST", url, headers=headers, json=body)
            except TransportCorruptionError as exc:
                last_error = exc
                if attempt_number < max_attempts:
                    self.transport.reconnect()
            except TransientNetworkError as exc:
                last_error = exc
            else:
                logger.debug(
                    "%s answered HTTP %s in %.1fs",
                    function_name,
                    response.status_code,
                    time.monotonic() - started,
                )
                if response.ok:
                    return self._unwrap(response)
                error = build_application_error(response, function_name)
                if not error.transient:
                    raise error
                last_error = error

            if attempt_number < max_attempts:
                self._backoff(function_name, attempt_number, last_error)

        logger.error("%s failed after %s attempts: %s", function_name, max_attempts, last_error)
        raise RetryExhaustedError(function_name, max_attempts, last_error) from last_error
