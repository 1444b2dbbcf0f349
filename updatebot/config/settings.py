"""Process settings loaded from RENOVATE_* environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Forge API base URL, e.g. https://forgejo.example.com/api/v1
    endpoint: str = ""

    # Token referenced by the github.com / api.github.com host rules
    github_token: str = ""

    # Optional JSON file with camelCase bot config keys
    config_file: str = ""

    # Outbound HTTP
    http_timeout: float = 30.0  # seconds

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {
        "env_prefix": "RENOVATE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()
