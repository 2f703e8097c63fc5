"""
serverless/config.py -- Settings for the serverless caller (pydantic-settings).

Separate from core.config.Settings because the caller runs in its own process
and needs none of the backend's keys. Unlike the backend there is no dev
fallback: a missing BACKEND_URL or SERVERLESS_SECRET_KEY is reported by
UsersQueryFunction as ConfigurationError when it is constructed.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerlessSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backend_url: str = ""
    serverless_secret_key: str = ""
    users_path: str = "/api/v1/users"
    signature_header: str = "serverlessSignature"
    signature_bind_path: bool = False
    signature_max_skew_seconds: int = 300
    request_timeout_seconds: float = 10.0


@lru_cache
def get_serverless_settings() -> ServerlessSettings:
    return ServerlessSettings()
