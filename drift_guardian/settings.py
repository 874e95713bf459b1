import os
from dataclasses import dataclass
from typing import Any, Dict

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_GITLAB_API_URL = "https://gitlab.com/api/v4"


@dataclass
class Settings:
    redis_url: str
    log_level: str = "info"
    enable_authentication: bool = False
    bearer_token: str = ""
    gitlab_token: str = ""
    gitlab_base_url: str = DEFAULT_GITLAB_API_URL
    gitlab_skip_tls: bool = False
    comparison_branch: str = "main"
    drift_threshold: int = 1
    request_timeout_seconds: float = 30.0
    host: str = "0.0.0.0"
    port: int = 8080

    def validate(self) -> None:
        if not self.redis_url:
            raise ConfigError("REDIS_URL", "Redis URL is required")
        if self.enable_authentication and not self.bearer_token:
            raise ConfigError("BEARER_TOKEN", "Bearer token is required when authentication is enabled")
        if self.drift_threshold < 1:
            raise ConfigError("DEFAULT_DRIFT_THRESHOLD", "threshold must be a positive integer")

    def public_view(self) -> Dict[str, Any]:
        """Settings safe to log (no credentials)."""
        return {
            "log_level": self.log_level,
            "authentication_enabled": self.enable_authentication,
            "gitlab_base_url": self.gitlab_base_url,
            "gitlab_token_configured": bool(self.gitlab_token),
            "gitlab_skip_tls": self.gitlab_skip_tls,
            "comparison_branch": self.comparison_branch,
            "drift_threshold": self.drift_threshold,
            "request_timeout_seconds": self.request_timeout_seconds,
            "port": self.port,
        }


def _env_str(key: str, default: str = "") -> str:
    value = (os.getenv(key) or "").strip()
    return value or default


def _env_bool(key: str, default: bool = False) -> bool:
    value = _env_str(key)
    if not value:
        return default
    return value.lower() == "true"


def _env_int(key: str, default: int) -> int:
    try:
        return int(_env_str(key))
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(_env_str(key))
    except ValueError:
        return default


def load_settings_from_env(dotenv: bool = True) -> Settings:
    # Load .env if present (local dev). Real deployments inject the environment.
    if dotenv:
        load_dotenv()
    return Settings(
        redis_url=_env_str("REDIS_URL"),
        log_level=_env_str("LOG_LEVEL", "info"),
        enable_authentication=_env_bool("ENABLE_AUTHENTICATION", False),
        bearer_token=_env_str("BEARER_TOKEN"),
        gitlab_token=_env_str("GITLAB_API_TOKEN"),
        gitlab_base_url=_env_str("GITLAB_API_URL", DEFAULT_GITLAB_API_URL).rstrip("/"),
        gitlab_skip_tls=_env_bool("GITLAB_SKIP_TLS_VERIFY", False),
        # COMPARISION_BRANCH is the historical (misspelled) name; keep honouring it
        comparison_branch=_env_str("COMPARISION_BRANCH") or _env_str("COMPARISON_BRANCH", "main"),
        drift_threshold=_env_int("DEFAULT_DRIFT_THRESHOLD", 1),
        request_timeout_seconds=_env_float("REQUEST_TIMEOUT_SECONDS", 30.0),
        host=_env_str("HOST", "0.0.0.0"),
        port=_env_int("PORT", 8080),
    )
