from __future__ import annotations

import json
from typing import Any

import pytest

from u3d_auth.api.identity import IdentityClient
from u3d_auth.models import EnvironmentConfig
from u3d_auth.services.config_resolver import ConfigurationResolver
from u3d_auth.services.credential_store import CredentialStore, LegacyKeyScheme
from u3d_auth.services.preferences import PreferenceStore
from u3d_auth.services.session_manager import SessionManager

PROD_CONFIG_URL = "https://prod.example/api/config"
DEV_CONFIG_URL = "https://dev.example/api/config"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, *, text: str | None = None) -> None:
        self.status_code = status_code
        self.headers = {"content-type": "application/json"}
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text
        self.content = text.encode("utf-8")

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        return json.loads(self.text)


class FakeTransport:
    """Answers requests from per-URL queues; the last outcome of a queue repeats."""

    def __init__(self) -> None:
        self.routes: list[tuple[str, list[Any]]] = []
        self.calls: list[dict[str, Any]] = []
        self.reconnects = 0
        self.authorization_cleared = 0
        self.closed = False

    def queue(self, url_fragment: str, *outcomes: Any) -> None:
        self.routes.append((url_fragment, list(outcomes)))

    def calls_to(self, url_fragment: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if url_fragment in call["url"]]

    def request(self, method: str, url: str, *, headers=None, json=None):
        self.calls.append({"method": method, "url": url, "headers": dict(headers or {}), "json": json})
        for fragment, outcomes in self.routes:
            if fragment in url:
                outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        raise AssertionError(f"unexpected request: {method} {url}")

    def reconnect(self) -> None:
        self.reconnects += 1

    def clear_authorization(self) -> None:
        self.authorization_cleared += 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def preferences(tmp_path) -> PreferenceStore:
    return PreferenceStore(tmp_path / "prefs.json")


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    delays: list[float] = []
    monkeypatch.setattr("u3d_auth.api.client.time.sleep", delays.append)
    return delays


@pytest.fixture
def resolver(transport, preferences) -> ConfigurationResolver:
    resolver = ConfigurationResolver(
        transport,
        preferences,
        production_config_url=PROD_CONFIG_URL,
        development_config_url=DEV_CONFIG_URL,
    )
    resolver.set_environment_config("production", EnvironmentConfig(api_key="K1", project_id="p1"))
    return resolver


@pytest.fixture
def credential_store(preferences) -> CredentialStore:
    return CredentialStore(preferences, legacy=LegacyKeyScheme(company_name="Acme", product_name="World"))


@pytest.fixture
def manager(transport, credential_store, resolver, sleeps) -> SessionManager:
    manager = SessionManager(
        transport=transport,
        credential_store=credential_store,
        resolver=resolver,
        identity=IdentityClient(transport),
    )
    return manager.open()
