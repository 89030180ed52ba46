"""Application configuration helpers."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class AppConfig:
    """Runtime configuration for the marketplace API."""

    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    db_connect_timeout: int
    jwt_secret_key: str
    jwt_exp_minutes: int
    app_base_url: str
    cors_origins: Tuple[str, ...]
    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    agent_api_url: str
    agent_api_bearer_token: Optional[str]
    agent_api_timeout: float
    openai_api_key: Optional[str]
    openai_chat_model: str
    openai_image_model: str
    log_level: str = "INFO"

    @property
    def db_settings(self) -> Dict[str, object]:
        """Keyword arguments accepted by :func:`psycopg2.connect`."""

        return dict(
            host=self.db_host,
            port=self.db_port,
            dbname=self.db_name,
            user=self.db_user,
            password=self.db_password,
            connect_timeout=self.db_connect_timeout,
        )


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def _parse_connect_timeout(raw_value: Optional[str]) -> int:
    timeout = _to_float(raw_value, default=5.0)
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


def _split_origins(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ("http://localhost:3000",)
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


def load_app_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load :class:`AppConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    jwt_exp_minutes = _to_int(env_mapping.get("JWT_EXP_MINUTES"), default=60 * 24 * 7)
    if jwt_exp_minutes <= 0:
        raise ValueError("JWT_EXP_MINUTES must be positive")

    return AppConfig(
        db_host=env_mapping.get("DB_HOST", "127.0.0.1"),
        db_port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        db_name=env_mapping.get("DB_NAME", "culinary_market"),
        db_user=env_mapping.get("DB_USER", "culinary"),
        db_password=env_mapping.get("DB_PASSWORD", "culinary"),
        db_connect_timeout=_parse_connect_timeout(env_mapping.get("DB_CONNECT_TIMEOUT")),
        jwt_secret_key=env_mapping.get("JWT_SECRET_KEY", "dev-secret-change-me"),
        jwt_exp_minutes=jwt_exp_minutes,
        app_base_url=env_mapping.get("APP_BASE_URL", "http://localhost:3000").rstrip("/"),
        cors_origins=_split_origins(env_mapping.get("CORS_ORIGINS")),
        stripe_secret_key=env_mapping.get("STRIPE_SECRET_KEY") or None,
        stripe_webhook_secret=env_mapping.get("STRIPE_WEBHOOK_SECRET") or None,
        agent_api_url=env_mapping.get("AGENT_API_URL", "http://localhost:8080").rstrip("/"),
        agent_api_bearer_token=env_mapping.get("AGENT_API_BEARER_TOKEN") or None,
        agent_api_timeout=max(1.0, _to_float(env_mapping.get("AGENT_API_TIMEOUT"), default=60.0)),
        openai_api_key=env_mapping.get("OPENAI_API_KEY") or None,
        openai_chat_model=env_mapping.get("OPENAI_CHAT_MODEL", "gpt-4o-mini"),
        openai_image_model=env_mapping.get("OPENAI_IMAGE_MODEL", "dall-e-3"),
        log_level=(env_mapping.get("LOG_LEVEL") or "INFO").strip().upper(),
    )


__all__ = ["AppConfig", "load_app_config"]
