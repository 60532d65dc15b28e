from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Stack Manager API"
    api_v1_prefix: str = "/api/v1"

    database_url: str = Field(default="sqlite:///./data/stacks.db", alias="DATABASE_URL")

    docker_base_url: str = Field(default="unix:///var/run/docker.sock", alias="DOCKER_BASE_URL")
    docker_timeout: int = Field(default=60, alias="DOCKER_TIMEOUT")

    api_keys: list[str] = Field(default_factory=list, alias="API_KEYS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    default_log_tail: int = Field(default=100, alias="DEFAULT_LOG_TAIL")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
