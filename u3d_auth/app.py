"""Startup wiring for hosts embedding the session client."""

from __future__ import annotations

from u3d_auth.api.identity import IdentityClient
from u3d_auth.api.transport import HttpTransport
from u3d_auth.config import AppConfig, load_config
from u3d_auth.logging_setup import configure_logging
from u3d_auth.services.config_resolver import ConfigurationResolver
from u3d_auth.services.credential_store import CredentialStore, LegacyKeyScheme
from u3d_auth.services.preferences import PreferenceStore
from u3d_auth.services.session_manager import SessionManager


def build_session_manager(config: AppConfig) -> SessionManager:
    transport = HttpTransport(timeout_seconds=config.timeout_seconds)
    preferences = PreferenceStore(config.preferences_path)
    resolver = ConfigurationResolver(
        transport,
        preferences,
        production_config_url=config.production_config_url,
        development_config_url=config.development_config_url,
        environment=config.environment,
        functions_region=config.functions_region,
    )
    credential_store = CredentialStore(
        preferences,
        legacy=LegacyKeyScheme(company_name=config.company_name, product_name=config.product_name),
    )
    identity = IdentityClient(
        transport,
        identity_base_url=config.identity_base_url,
        token_base_url=config.token_base_url,
    )
    return SessionManager(
        transport=transport,
        credential_store=credential_store,
        resolver=resolver,
        identity=identity,
        retry_policy=config.retry_policy,
    )


def open_session(config: AppConfig | None = None, *, setup_logging: bool = True) -> SessionManager:
    """Build the session client and run its one-time startup (credential load and migration)."""
    if setup_logging:
        configure_logging()
    manager = build_session_manager(config or load_config())
    return manager.open()
