from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    project_name: str = "Thai Meow Daily Challenges"
    api_prefix: str = "/api"

    mongodb_uri: str = Field(default="mongodb://mongo:27017")
    mongodb_db: str = Field(default="thai_meow")
    mongodb_timeout_ms: int = Field(default=5000, gt=0)

    redis_url: str = Field(default="redis://redis:6379/0")

    cors_origins: str = Field(default="http://localhost:8081,http://localhost:19006,http://localhost")

    # Calendar day boundaries for the daily catalog
    challenge_timezone: str = Field(default="Asia/Bangkok")
    challenge_catalog_path: Path | None = Field(
        default=None, description="JSON file with challenge templates (env: CHALLENGE_CATALOG_PATH)"
    )

    evaluation_lock_timeout_seconds: float = Field(default=10.0, gt=0)
    evaluation_lock_wait_seconds: float = Field(default=5.0, ge=0)

    admin_api_key: str = Field(default="")  # empty disables the admin key check

    log_level: str = Field(default="INFO")

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
