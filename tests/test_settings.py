import pytest

from drift_guardian.errors import ConfigError
from drift_guardian.settings import DEFAULT_GITLAB_API_URL, Settings, load_settings_from_env

ENV_VARS = [
    "REDIS_URL", "LOG_LEVEL", "ENABLE_AUTHENTICATION", "BEARER_TOKEN", "GITLAB_API_TOKEN",
    "GITLAB_API_URL", "GITLAB_SKIP_TLS_VERIFY", "COMPARISION_BRANCH", "COMPARISON_BRANCH",
    "DEFAULT_DRIFT_THRESHOLD", "REQUEST_TIMEOUT_SECONDS", "HOST", "PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = load_settings_from_env(dotenv=False)
    assert s.redis_url == ""
    assert s.gitlab_base_url == DEFAULT_GITLAB_API_URL
    assert s.comparison_branch == "main"
    assert s.drift_threshold == 1
    assert s.port == 8080
    assert s.enable_authentication is False


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
    monkeypatch.setenv("ENABLE_AUTHENTICATION", "true")
    monkeypatch.setenv("BEARER_TOKEN", "tok")
    monkeypatch.setenv("GITLAB_API_URL", "https://gitlab.internal/api/v4/")
    monkeypatch.setenv("GITLAB_SKIP_TLS_VERIFY", "TRUE")
    monkeypatch.setenv("DEFAULT_DRIFT_THRESHOLD", "4")
    monkeypatch.setenv("PORT", "9090")

    s = load_settings_from_env(dotenv=False)

    assert s.redis_url == "redis://cache:6379/1"
    assert s.enable_authentication is True
    assert s.gitlab_base_url == "https://gitlab.internal/api/v4"
    assert s.gitlab_skip_tls is True
    assert s.drift_threshold == 4
    assert s.port == 9090


def test_historical_branch_variable_takes_precedence(monkeypatch):
    monkeypatch.setenv("COMPARISON_BRANCH", "develop")
    assert load_settings_from_env(dotenv=False).comparison_branch == "develop"
    monkeypatch.setenv("COMPARISION_BRANCH", "release")
    assert load_settings_from_env(dotenv=False).comparison_branch == "release"


def test_invalid_integer_falls_back(monkeypatch):
    monkeypatch.setenv("DEFAULT_DRIFT_THRESHOLD", "many")
    assert load_settings_from_env(dotenv=False).drift_threshold == 1


@pytest.mark.parametrize(
    "settings,field",
    [
        (Settings(redis_url=""), "REDIS_URL"),
        (Settings(redis_url="redis://x", enable_authentication=True), "BEARER_TOKEN"),
        (Settings(redis_url="redis://x", drift_threshold=0), "DEFAULT_DRIFT_THRESHOLD"),
    ],
)
def test_validate_rejects(settings, field):
    with pytest.raises(ConfigError) as exc:
        settings.validate()
    assert exc.value.field == field


def test_public_view_hides_credentials():
    s = Settings(redis_url="redis://:pw@cache:6379", bearer_token="secret", gitlab_token="glpat-secret")
    view = s.public_view()
    assert "secret" not in repr(view)
    assert "pw" not in repr(view)
    assert view["gitlab_token_configured"] is True
