"""Application configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from PyQt6.QtCore import QStandardPaths

from u3d_auth.api.identity import DEFAULT_IDENTITY_BASE_URL, DEFAULT_TOKEN_BASE_URL
from u3d_auth.api.transport import DEFAULT_TIMEOUT_SECONDS
from u3d_auth.models import RetryPolicy
from u3d_auth.services.config_resolver import (
    DEFAULT_DEVELOPMENT_CONFIG_URL,
    DEFAULT_FUNCTIONS_REGION,
    DEFAULT_PRODUCTION_CONFIG_URL,
    PRODUCTION,
)

PREFERENCES_FILE_NAME = "preferences.json"


@dataclass(slots=True, frozen=True)
class AppConfig:
    production_config_url: str
    development_config_url: str | None
    identity_base_url: str
    token_base_url: str
    functions_region: str
    environment: str
    timeout_seconds: float
    retry_policy: RetryPolicy
    company_name: str
    product_name: str
    app_data_dir: Path

    @property
    def preferences_path(self) -> Path:
        return self.app_data_dir / PREFERENCES_FILE_NAME


def _normalize_url(raw: str | None, *, default: str) -> str:
    value = (raw or "").strip().rstrip("/")
    if not value:
        value = default.rstrip("/")

    if not urlparse(value).scheme:
        value = f"https://{value}"
    return value.rstrip("/")


def _optional_url(raw: str | None, *, default: str) -> str | None:
    # An explicitly empty variable switches the endpoint off.
    if raw is not None and not raw.strip():
        return None
    return _normalize_url(raw, default=default)


def _resolve_app_data_dir() -> Path:
    override = (os.getenv("U3D_DATA_DIR", "") or "").strip()
    if override:
        path = Path(override).expanduser()
    else:
        location = QStandardPaths.writableLocation(QStandardPaths.StandardLocation.AppDataLocation)
        if location:
            path = Path(location)
        else:
            path = Path.cwd() / ".u3d-auth-data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def load_config() -> AppConfig:
    production_config_url = _normalize_url(
        os.getenv("U3D_PRODUCTION_CONFIG_URL"),
        default=DEFAULT_PRODUCTION_CONFIG_URL,
    )
    development_config_url = _optional_url(
        os.getenv("U3D_DEVELOPMENT_CONFIG_URL"),
        default=DEFAULT_DEVELOPMENT_CONFIG_URL,
    )
    identity_base_url = _normalize_url(os.getenv("U3D_IDENTITY_BASE_URL"), default=DEFAULT_IDENTITY_BASE_URL)
    token_base_url = _normalize_url(os.getenv("U3D_TOKEN_BASE_URL"), default=DEFAULT_TOKEN_BASE_URL)
    functions_region = (os.getenv("U3D_FUNCTIONS_REGION", "") or "").strip() or DEFAULT_FUNCTIONS_REGION
    environment = (os.getenv("U3D_ENVIRONMENT", "") or "").strip().lower() or PRODUCTION
    timeout_seconds = float(os.getenv("U3D_REQUEST_TIMEOUT", str(DEFAULT_TIMEOUT_SECONDS)))
    retry_policy = RetryPolicy(
        max_attempts=int(os.getenv("U3D_MAX_ATTEMPTS", "3")),
        base_delay_ms=int(os.getenv("U3D_RETRY_BASE_DELAY_MS", "1000")),
    )
    if retry_policy.max_attempts < 1:
        raise ValueError("U3D_MAX_ATTEMPTS must be at least 1")
    return AppConfig(
        production_config_url=production_config_url,
        development_config_url=development_config_url,
        identity_base_url=identity_base_url,
        token_base_url=token_base_url,
        functions_region=functions_region,
        environment=environment,
        timeout_seconds=timeout_seconds,
        retry_policy=retry_policy,
        company_name=(os.getenv("U3D_COMPANY_NAME", "") or "").strip(),
        product_name=(os.getenv("U3D_PRODUCT_NAME", "") or "").strip(),
        app_data_dir=_resolve_app_data_dir(),
    )
