import io
import json

import httpx
import pytest
from conftest import BASE_URL, JWKS_URL

import fireface as m


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch):
    for name in ("SERVER_URL", "SECRET_KEY", "DEBUG", "MIN_REFRESH_INTERVAL", "HTTP_TIMEOUT"):
        monkeypatch.delenv(f"FIREFACE_{name}", raising=False)
    return monkeypatch


def test_settings_defaults(env):
    settings = m.AppSettings(_env_file=None)

    assert settings.server_url == "https://fireface.4armedlabs.run"
    assert settings.secret_key == ""
    assert settings.debug is False
    assert settings.min_refresh_interval == 300.0


def test_settings_from_environment(env):
    env.setenv("FIREFACE_SERVER_URL", BASE_URL)
    env.setenv("FIREFACE_SECRET_KEY", "sk_env")
    env.setenv("FIREFACE_DEBUG", "true")
    env.setenv("FIREFACE_MIN_REFRESH_INTERVAL", "60")

    settings = m.AppSettings(_env_file=None)

    assert settings.server_url == BASE_URL
    assert settings.secret_key == "sk_env"
    assert settings.debug is True
    assert settings.min_refresh_interval == 60.0


def test_app_auth_returns_warmed_client(env, jwks_server):
    settings = m.AppSettings(_env_file=None, server_url=BASE_URL, secret_key="sk_app")
    app = m.App(settings, logger=m.build_logger(stream=io.StringIO()))

    client = app.auth(http_client=jwks_server.client())

    assert client.jwks_url == JWKS_URL
    assert client.config.secret_key == "sk_app"
    assert client.config.logger is app.logger
    assert client.key_cache.entry is not None


def test_app_auth_without_secret_fails(env):
    app = m.App(m.AppSettings(_env_file=None, server_url=BASE_URL))

    with pytest.raises(m.ConfigError):
        app.auth()


def test_app_auth_unreachable_server_fails(env, jwks_server):
    jwks_server.fail_with = httpx.ConnectError("connection refused")
    app = m.App(m.AppSettings(_env_file=None, server_url=BASE_URL, secret_key="sk"))

    with pytest.raises(m.FetchError):
        app.auth(http_client=jwks_server.client(), timeout=1.0)


def test_build_logger_renders_json_with_service():
    stream = io.StringIO()
    logger = m.build_logger(stream=stream)

    logger.debug("hidden")
    logger.info("jwks_refreshed", key_count=2)

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert len(lines) == 1
    assert lines[0]["event"] == "jwks_refreshed"
    assert lines[0]["service"] == "fireface-sdk-python"
    assert lines[0]["level"] == "info"
    assert lines[0]["key_count"] == 2


def test_build_logger_debug_adds_callsite():
    stream = io.StringIO()
    logger = m.build_logger(debug=True, stream=stream)

    logger.debug("verifying_id_token")

    line = json.loads(stream.getvalue())
    assert line["level"] == "debug"
    assert line["func_name"] == "test_build_logger_debug_adds_callsite"
    assert "lineno" in line
