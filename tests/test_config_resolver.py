import pytest

from u3d_auth.api.errors import ConfigurationError, TransientNetworkError
from u3d_auth.models import SETUP_REQUIRED, EnvironmentConfig
from u3d_auth.services.config_resolver import (
    DEVELOPMENT_FALLBACK,
    ENVIRONMENT_KEY,
    ConfigurationResolver,
)
from u3d_auth.services.preferences import PreferenceStore

from conftest import DEV_CONFIG_URL, PROD_CONFIG_URL, FakeResponse

PROD_PAYLOAD = {
    "apiKey": "K1",
    "authDomain": "p1.firebaseapp.com",
    "projectId": "P1",
    "storageBucket": "p1.appspot.com",
    "messagingSenderId": "111",
    "appId": "1:111:web:abc",
    "measurementId": "G-1",
}


@pytest.fixture
def fresh_resolver(transport, preferences) -> ConfigurationResolver:
    return ConfigurationResolver(
        transport,
        preferences,
        production_config_url=PROD_CONFIG_URL,
        development_config_url=DEV_CONFIG_URL,
    )


def test_bootstrap_builds_production_and_development(fresh_resolver, transport) -> None:
    transport.queue(PROD_CONFIG_URL, FakeResponse(200, PROD_PAYLOAD))
    transport.queue(DEV_CONFIG_URL, FakeResponse(200, {"apiKey": "DEV-KEY"}))

    config = fresh_resolver.ensure_configuration()

    assert config.api_key == "K1"
    assert config.project_id == "P1"
    assert config.measurement_id == "G-1"
    assert [call["url"] for call in transport.calls] == [PROD_CONFIG_URL, DEV_CONFIG_URL]
    assert sorted(fresh_resolver.available_environments()) == ["development", "production"]


def test_development_response_is_used_without_the_fallback(fresh_resolver, transport, preferences) -> None:
    transport.queue(PROD_CONFIG_URL, FakeResponse(200, PROD_PAYLOAD))
    transport.queue(DEV_CONFIG_URL, FakeResponse(200, {"apiKey": "DEV-KEY", "projectId": "dev-project"}))

    fresh_resolver.ensure_configuration()

    assert preferences.get_string("U3D_Firebase_DEVELOPMENT_ApiKey") == "DEV-KEY"
    assert preferences.get_string("U3D_Firebase_DEVELOPMENT_ProjectId") == "dev-project"


@pytest.mark.parametrize(
    "dev_outcome",
    [FakeResponse(503, text="down"), TransientNetworkError("connection refused"), FakeResponse(200, text="not json")],
)
def test_development_failure_falls_back_to_setup_required(fresh_resolver, transport, preferences, dev_outcome) -> None:
    transport.queue(PROD_CONFIG_URL, FakeResponse(200, PROD_PAYLOAD))
    transport.queue(DEV_CONFIG_URL, dev_outcome)

    fresh_resolver.ensure_configuration()

    assert preferences.get_string("U3D_Firebase_DEVELOPMENT_ApiKey") == SETUP_REQUIRED
    assert preferences.get_string("U3D_Firebase_DEVELOPMENT_ProjectId") == DEVELOPMENT_FALLBACK.project_id


def test_development_fetch_can_be_disabled(transport, preferences) -> None:
    resolver = ConfigurationResolver(
        transport,
        preferences,
        production_config_url=PROD_CONFIG_URL,
        development_config_url=None,
    )
    transport.queue(PROD_CONFIG_URL, FakeResponse(200, PROD_PAYLOAD))

    resolver.ensure_configuration()

    assert [call["url"] for call in transport.calls] == [PROD_CONFIG_URL]
    assert resolver.available_environments() == ["production"]


def test_complete_configuration_skips_the_bootstrap(fresh_resolver, transport) -> None:
    fresh_resolver.set_environment_config("production", EnvironmentConfig(api_key="K1", project_id="P1"))

    assert fresh_resolver.ensure_configuration().api_key == "K1"
    assert transport.calls == []


@pytest.mark.parametrize(
    "outcome",
    [FakeResponse(500, text="boom"), TransientNetworkError("timed out"), FakeResponse(200, ["not", "an", "object"])],
)
def test_failed_primary_bootstrap_raises(fresh_resolver, transport, outcome) -> None:
    transport.queue(PROD_CONFIG_URL, outcome)

    with pytest.raises(ConfigurationError):
        fresh_resolver.ensure_configuration()

    assert not fresh_resolver.is_configuration_complete()


def test_bootstrap_without_api_key_is_rejected(fresh_resolver, transport) -> None:
    transport.queue(PROD_CONFIG_URL, FakeResponse(200, {"projectId": "P1"}))
    transport.queue(DEV_CONFIG_URL, FakeResponse(404, text=""))

    with pytest.raises(ConfigurationError) as info:
        fresh_resolver.ensure_configuration()

    assert info.value.code == SETUP_REQUIRED


def test_setup_required_config_fails_fast_for_function_calls(fresh_resolver) -> None:
    fresh_resolver.set_environment_config("production", EnvironmentConfig(api_key=SETUP_REQUIRED, project_id="P1"))

    with pytest.raises(ConfigurationError) as info:
        fresh_resolver.function_endpoint("getUserProfile")

    assert info.value.code == SETUP_REQUIRED


def test_function_endpoint_uses_region_and_project(fresh_resolver) -> None:
    fresh_resolver.set_environment_config("production", EnvironmentConfig(api_key="K1", project_id="P1"))

    assert fresh_resolver.function_endpoint("reserveUsername") == "https://us-central1-P1.cloudfunctions.net/reserveUsername"


def test_registered_configs_survive_a_restart(fresh_resolver, transport, preferences) -> None:
    fresh_resolver.set_environment_config("production", EnvironmentConfig.from_api(PROD_PAYLOAD))

    restarted = ConfigurationResolver(transport, PreferenceStore(preferences.file_path))

    assert restarted.current_config == EnvironmentConfig.from_api(PROD_PAYLOAD)
    assert restarted.ensure_configuration().api_key == "K1"
    assert transport.calls == []


def test_environment_selection(fresh_resolver, preferences) -> None:
    fresh_resolver.set_environment_config("production", EnvironmentConfig(api_key="K1", project_id="P1"))
    fresh_resolver.set_environment_config("development", EnvironmentConfig(api_key="K2", project_id="P2"))

    assert fresh_resolver.environment == "production"
    preferences.set_string(ENVIRONMENT_KEY, "development")
    assert fresh_resolver.current_config.project_id == "P2"
    preferences.set_string(ENVIRONMENT_KEY, "auto")
    assert fresh_resolver.current_config.project_id == "P1"


def test_clear_environment_config(fresh_resolver, preferences) -> None:
    fresh_resolver.set_environment_config("development", EnvironmentConfig(api_key="K2"))

    fresh_resolver.clear_environment_config("development")

    assert fresh_resolver.available_environments() == []
    assert not [key for key in preferences.keys() if key.startswith("U3D_Firebase_DEVELOPMENT_")]


def test_incomplete_config_after_bootstrap_fails_without_another_request(fresh_resolver, transport, preferences) -> None:
    preferences.set_string(ENVIRONMENT_KEY, "development")
    transport.queue(PROD_CONFIG_URL, FakeResponse(200, PROD_PAYLOAD))
    transport.queue(DEV_CONFIG_URL, FakeResponse(503, text="down"))

    with pytest.raises(ConfigurationError) as first:
        fresh_resolver.ensure_configuration()
    requests_after_bootstrap = len(transport.calls)

    with pytest.raises(ConfigurationError) as second:
        fresh_resolver.ensure_configuration()

    assert requests_after_bootstrap == 2
    assert len(transport.calls) == requests_after_bootstrap
    assert first.value.code == second.value.code == SETUP_REQUIRED


def test_failed_primary_bootstrap_is_attempted_again(fresh_resolver, transport) -> None:
    transport.queue(PROD_CONFIG_URL, TransientNetworkError("timed out"), FakeResponse(200, PROD_PAYLOAD))
    transport.queue(DEV_CONFIG_URL, FakeResponse(200, {"apiKey": "DEV-KEY"}))

    with pytest.raises(ConfigurationError):
        fresh_resolver.ensure_configuration()

    assert fresh_resolver.ensure_configuration().project_id == "P1"


def test_bootstrap_without_project_id_is_rejected(fresh_resolver, transport) -> None:
    transport.queue(PROD_CONFIG_URL, FakeResponse(200, {"apiKey": "K1"}))
    transport.queue(DEV_CONFIG_URL, FakeResponse(404, text=""))

    with pytest.raises(ConfigurationError) as info:
        fresh_resolver.ensure_configuration()

    assert info.value.code == SETUP_REQUIRED
    assert not EnvironmentConfig(api_key="K1").is_complete
