"""Password grant, sign-up and token refresh against the identity provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from u3d_auth.api.errors import ApplicationError, AuthenticationError
from u3d_auth.api.transport import HttpTransport, parse_error_body, read_json
from u3d_auth.models import EnvironmentConfig

DEFAULT_IDENTITY_BASE_URL = "https://identitytoolkit.googleapis.com"
DEFAULT_TOKEN_BASE_URL = "https://securetoken.googleapis.com"

SIGN_IN_MESSAGES = {
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password",
    "USER_DISABLED": "Account has been disabled",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many failed attempts. Please try again later.",
}

SIGN_UP_MESSAGES = {
    "EMAIL_EXISTS": "Account already exists",
    "WEAK_PASSWORD": "Password should be at least 6 characters",
    "INVALID_EMAIL": "Invalid email address",
}


def provider_code(message: str) -> str:
    """``"WEAK_PASSWORD : Password should be..."`` -> ``"WEAK_PASSWORD"``."""
    return message.split(" : ", 1)[0].strip()


@dataclass(slots=True)
class TokenGrant:
    id_token: str
    refresh_token: str
    email: str = ""

    @classmethod
    def from_api(cls, payload: dict) -> "TokenGrant":
        return cls(
            id_token=str(payload.get("idToken") or payload.get("id_token") or ""),
            refresh_token=str(payload.get("refreshToken") or payload.get("refresh_token") or ""),
            email=str(payload.get("email") or ""),
        )


class IdentityClient:
    """One-shot, unauthenticated calls; these are never retried."""

    def __init__(
        self,
        transport: HttpTransport,
        *,
        identity_base_url: str = DEFAULT_IDENTITY_BASE_URL,
        token_base_url: str = DEFAULT_TOKEN_BASE_URL,
    ) -> None:
        self.transport = transport
        self.identity_base_url = identity_base_url.rstrip("/")
        self.token_base_url = token_base_url.rstrip("/")

    def _post(self, url: str, payload: dict[str, Any]):
        return self.transport.request(
            "POST",
            url,
            headers={"Content-Type": "application/json"},
            json=payload,
        )

    def _password_call(
        self,
        config: EnvironmentConfig,
        action: str,
        *,
        email: str,
        password: str,
        messages: dict[str, str],
        failure_prefix: str,
    ) -> TokenGrant | None:
        response = self._post(
            config.auth_endpoint(action, identity_base_url=self.identity_base_url),
            {"email": email, "password": password, "returnSecureToken": True},
        )
        if response.ok:
            payload = read_json(response)
            if not isinstance(payload, dict) or not payload.get("idToken"):
                return None
            return TokenGrant.from_api(payload)

        message, _ = parse_error_body(response)
        if message is None:
            raise AuthenticationError(
                f"{failure_prefix}: {response.text or f'HTTP {response.status_code}'}",
                status_code=response.status_code,
            )
        code = provider_code(message)
        raise AuthenticationError(
            messages.get(code, f"{failure_prefix}: {message}"),
            status_code=response.status_code,
            code=code,
        )

    def sign_in(self, config: EnvironmentConfig, *, email: str, password: str) -> TokenGrant | None:
        return self._password_call(
            config,
            "signInWithPassword",
            email=email,
            password=password,
            messages=SIGN_IN_MESSAGES,
            failure_prefix="Login failed",
        )

    def sign_up(self, config: EnvironmentConfig, *, email: str, password: str) -> TokenGrant | None:
        return self._password_call(
            config,
            "signUp",
            email=email,
            password=password,
            messages=SIGN_UP_MESSAGES,
            failure_prefix="Registration failed",
        )

    def refresh(self, config: EnvironmentConfig, *, refresh_token: str) -> TokenGrant | None:
        """Exchange a refresh token; a 400 from the provider means the token is dead."""
        response = self._post(
            config.token_endpoint(token_base_url=self.token_base_url),
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        if response.ok:
            payload = read_json(response)
            if not isinstance(payload, dict) or not payload.get("id_token"):
                return None
            return TokenGrant.from_api(payload)

        message, status = parse_error_body(response)
        raise ApplicationError(
            message or f"Token refresh failed with HTTP {response.status_code}",
            status_code=response.status_code,
            code=status,
        )
