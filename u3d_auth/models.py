"""Typed models for session state and backend payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SETUP_REQUIRED = "setup-required"


def _text(payload: dict, key: str, default: str = "") -> str:
    value = payload.get(key)
    if value is None:
        return default
    return str(value)


@dataclass(slots=True)
class Session:
    id_token: str = ""
    refresh_token: str = ""
    user_email: str = ""
    display_name: str = ""
    creator_username: str = ""
    stay_logged_in: bool = True

    @property
    def is_logged_in(self) -> bool:
        return bool(self.id_token)

    @property
    def has_credentials(self) -> bool:
        return any(
            (self.id_token, self.refresh_token, self.user_email, self.display_name, self.creator_username)
        )

    def clear_credentials(self) -> None:
        """Drop every credential field; the stay-logged-in preference survives."""
        self.id_token = ""
        self.refresh_token = ""
        self.user_email = ""
        self.display_name = ""
        self.creator_username = ""


@dataclass(slots=True)
class EnvironmentConfig:
    api_key: str = ""
    auth_domain: str = ""
    project_id: str = ""
    storage_bucket: str = ""
    messaging_sender_id: str = ""
    app_id: str = ""
    measurement_id: str = ""

    @classmethod
    def from_api(cls, payload: dict, *, defaults: "EnvironmentConfig | None" = None) -> "EnvironmentConfig":
        base = defaults or cls()
        return cls(
            api_key=_text(payload, "apiKey", base.api_key),
            auth_domain=_text(payload, "authDomain", base.auth_domain),
            project_id=_text(payload, "projectId", base.project_id),
            storage_bucket=_text(payload, "storageBucket", base.storage_bucket),
            messaging_sender_id=_text(payload, "messagingSenderId", base.messaging_sender_id),
            app_id=_text(payload, "appId", base.app_id),
            measurement_id=_text(payload, "measurementId", base.measurement_id),
        )

    def to_api(self) -> dict[str, str]:
        return {
            "apiKey": self.api_key,
            "authDomain": self.auth_domain,
            "projectId": self.project_id,
            "storageBucket": self.storage_bucket,
            "messagingSenderId": self.messaging_sender_id,
            "appId": self.app_id,
            "measurementId": self.measurement_id,
        }

    @property
    def is_complete(self) -> bool:
        # Every endpoint needs the key; named functions also need the project host.
        return bool(self.api_key) and self.api_key != SETUP_REQUIRED and bool(self.project_id)

    def auth_endpoint(self, action: str, *, identity_base_url: str) -> str:
        return f"{identity_base_url}/v1/accounts:{action}?key={self.api_key}"

    def token_endpoint(self, *, token_base_url: str) -> str:
        return f"{token_base_url}/v1/token?key={self.api_key}"

    def function_endpoint(self, function_name: str, *, region: str) -> str:
        return f"https://{region}-{self.project_id}.cloudfunctions.net/{function_name}"


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: int = 1000

    def delay_ms(self, attempt: int) -> int:
        return int(self.base_delay_ms * 2 ** (attempt - 1))


@dataclass(slots=True, frozen=True)
class RetryAttempt:
    attempt_number: int
    delay_ms: int
    error_class: str

    @classmethod
    def after_failure(cls, policy: RetryPolicy, attempt_number: int, error: Exception) -> "RetryAttempt":
        return cls(
            attempt_number=attempt_number,
            delay_ms=policy.delay_ms(attempt_number),
            error_class=type(error).__name__,
        )


@dataclass(slots=True)
class UserProfile:
    user_id: str | None
    email: str
    display_name: str
    creator_username: str
    user_type: str = "creator"

    @classmethod
    def from_api(cls, payload: dict) -> "UserProfile":
        raw_id = payload.get("userId")
        return cls(
            user_id=str(raw_id) if raw_id is not None else None,
            email=_text(payload, "email"),
            display_name=_text(payload, "displayName"),
            creator_username=_text(payload, "creatorUsername"),
        )

    @classmethod
    def from_session(cls, session: Session) -> "UserProfile":
        return cls(
            user_id=None,
            email=session.user_email,
            display_name=session.display_name,
            creator_username=session.creator_username,
        )

    @property
    def ui_name(self) -> str:
        return (self.display_name or self.creator_username or self.email or "Creator").strip()


@dataclass(slots=True)
class UsernameCheck:
    available: bool
    suggestions: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, payload: Any) -> "UsernameCheck":
        if not isinstance(payload, dict):
            return cls(available=False)
        raw_suggestions = payload.get("suggestions") or []
        if not isinstance(raw_suggestions, list):
            raw_suggestions = []
        return cls(
            available=payload.get("available") is True,
            suggestions=[str(item) for item in raw_suggestions],
        )
