"""Resolution of per-environment backend configuration from the bootstrap endpoints."""

from __future__ import annotations

import logging
from dataclasses import fields, replace

from u3d_auth.api.errors import ApiError, ConfigurationError
from u3d_auth.api.transport import HttpTransport, read_json
from u3d_auth.models import SETUP_REQUIRED, EnvironmentConfig
from u3d_auth.services.preferences import PreferenceStore

DEFAULT_PRODUCTION_CONFIG_URL = "https://unreality3d.web.app/api/config"
DEFAULT_DEVELOPMENT_CONFIG_URL = "https://unreality3d2025.web.app/api/config"
DEFAULT_FUNCTIONS_REGION = "us-central1"

PRODUCTION = "production"
DEVELOPMENT = "development"
AUTO = "auto"
ENVIRONMENT_KEY = "U3D_Environment"

# Public identifiers of the development project. The API key is never shipped.
DEVELOPMENT_FALLBACK = EnvironmentConfig(
    api_key=SETUP_REQUIRED,
    auth_domain="unreality3d2025.firebaseapp.com",
    project_id="unreality3d2025",
    storage_bucket="unreality3d2025.firebasestorage.app",
    messaging_sender_id="244081840635",
    app_id="1:244081840635:web:71c37efb6b172a706dbb5e",
    measurement_id="G-YXC3XB3PFL",
)

logger = logging.getLogger(__name__)


def _pref_name(field_name: str) -> str:
    # api_key -> ApiKey
    return "".join(part.capitalize() for part in field_name.split("_"))


class ConfigurationResolver:
    def __init__(
        self,
        transport: HttpTransport,
        preferences: PreferenceStore,
        *,
        production_config_url: str = DEFAULT_PRODUCTION_CONFIG_URL,
        development_config_url: str | None = DEFAULT_DEVELOPMENT_CONFIG_URL,
        environment: str = PRODUCTION,
        functions_region: str = DEFAULT_FUNCTIONS_REGION,
    ) -> None:
        self.transport = transport
        self.preferences = preferences
        self.production_config_url = production_config_url
        self.development_config_url = development_config_url
        self.default_environment = environment
        self.functions_region = functions_region
        self._configs: dict[str, EnvironmentConfig] = {}
        self._established = False
        self._load_persisted()

    @staticmethod
    def _prefix(environment: str) -> str:
        return f"U3D_Firebase_{environment.upper()}_"

    def _load_persisted(self) -> None:
        for environment in (PRODUCTION, DEVELOPMENT):
            prefix = self._prefix(environment)
            if not self.preferences.has_key(prefix + "ApiKey"):
                continue
            values = {
                item.name: self.preferences.get_string(prefix + _pref_name(item.name))
                for item in fields(EnvironmentConfig)
            }
            self._configs[environment] = EnvironmentConfig(**values)
            logger.debug("Loaded persisted %s configuration", environment)

    @property
    def environment(self) -> str:
        selected = self.preferences.get_string(ENVIRONMENT_KEY, self.default_environment).strip().lower()
        if selected in ("", AUTO):
            return PRODUCTION
        return selected

    @property
    def current_config(self) -> EnvironmentConfig | None:
        config = self._configs.get(self.environment)
        return replace(config) if config is not None else None

    def is_configuration_complete(self) -> bool:
        config = self._configs.get(self.environment)
        return config is not None and config.is_complete

    def available_environments(self) -> list[str]:
        return list(self._configs)

    def set_environment_config(self, environment: str, config: EnvironmentConfig) -> None:
        prefix = self._prefix(environment)
        for item in fields(EnvironmentConfig):
            self.preferences.set_string(prefix + _pref_name(item.name), getattr(config, item.name))
        self._configs[environment] = replace(config)
        logger.info("Registered %s configuration (project %s)", environment, config.project_id or "-")

    def clear_environment_config(self, environment: str) -> None:
        prefix = self._prefix(environment)
        self.preferences.delete_keys([prefix + _pref_name(item.name) for item in fields(EnvironmentConfig)])
        self._configs.pop(environment, None)
        logger.info("Cleared %s configuration", environment)

    def ensure_configuration(self) -> EnvironmentConfig:
        """Return the active config, bootstrapping it first when it is missing or incomplete.

        The bootstrap runs at most once per resolver. Once it has succeeded,
        an incomplete config fails fast with ``code=setup-required`` instead of
        repeating the round trip.
        """
        if self.is_configuration_complete():
            return self.current_config  # type: ignore[return-value]

        if not self._established:
            logger.info("Establishing backend configuration")
            self.establish_dynamic_configuration()

        config = self._configs.get(self.environment)
        if config is None or not config.is_complete:
            raise ConfigurationError(
                f"Configuration for '{self.environment}' is not set up",
                code=SETUP_REQUIRED,
            )
        return replace(config)

    def establish_dynamic_configuration(self) -> None:
        try:
            response = self.transport.request("GET", self.production_config_url)
        except ApiError as exc:
            raise ConfigurationError(f"Unable to reach configuration endpoint: {exc}") from exc
        if not response.ok:
            logger.error("Configuration endpoint answered HTTP %s", response.status_code)
            raise ConfigurationError(
                "Unable to establish backend configuration",
                status_code=response.status_code,
            )

        payload = read_json(response)
        if not isinstance(payload, dict):
            raise ConfigurationError("Configuration endpoint returned an unexpected payload")

        production = EnvironmentConfig.from_api(payload)
        development = self._fetch_development_config()

        self.set_environment_config(PRODUCTION, production)
        if development is not None:
            self.set_environment_config(DEVELOPMENT, development)
        self._established = True

    def _fetch_development_config(self) -> EnvironmentConfig | None:
        if not self.development_config_url:
            return None
        try:
            response = self.transport.request("GET", self.development_config_url)
        except ApiError as exc:
            logger.warning("Could not fetch development configuration: %s", exc)
            return replace(DEVELOPMENT_FALLBACK)
        payload = read_json(response) if response.ok else None
        if not isinstance(payload, dict):
            logger.warning("Development configuration unavailable (HTTP %s)", response.status_code)
            return replace(DEVELOPMENT_FALLBACK)
        logger.info("Development configuration loaded")
        return EnvironmentConfig.from_api(payload, defaults=DEVELOPMENT_FALLBACK)

    def function_endpoint(self, function_name: str) -> str:
        config = self._configs.get(self.environment)
        if config is None or not config.is_complete:
            raise ConfigurationError(
                f"Cannot call {function_name}: configuration for '{self.environment}' is not set up",
                code=SETUP_REQUIRED,
            )
        return config.function_endpoint(function_name, region=self.functions_region)
