from dataclasses import dataclass
from functools import lru_cache
import json
from typing import Optional

from pydantic import PostgresDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


PRODUCTION_MODES = {"prod", "production", "live"}


def parse_cors_origins(value: str) -> list[str]:
    if not value:
        return []

    parsed: list[str]
    raw = value.strip()
    if raw.startswith("["):
        try:
            items = json.loads(raw)
            parsed = [str(item).strip() for item in items if str(item).strip()]
        except (TypeError, ValueError):
            parsed = []
    else:
        parsed = [origin.strip() for origin in raw.split(",") if origin.strip()]

    # Preserve order and remove duplicates.
    return list(dict.fromkeys(parsed))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    app_name: str = "PPOB Gateway"
    environment: str = "development"
    api_v1_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Security (tokens are issued by the auth service; we only verify them)
    secret_key: str
    jwt_algorithm: str = "HS256"

    # Database
    database_url: PostgresDsn
    db_pool_size: int = 10
    db_max_overflow: int = 5
    db_pool_timeout: int = 15
    db_pool_recycle: int = 1200
    db_pool_pre_ping: bool = True
    # Applied to non-local hosts; empty disables it.
    db_sslmode: str = "require"

    # Digiflazz
    digiflazz_username: str = ""
    digiflazz_dev_key: str = ""
    digiflazz_prod_key: str = ""
    digiflazz_mode: str = "dev"
    digiflazz_base_url: str = "https://api.digiflazz.com/v1"
    digiflazz_timeout_seconds: int = 30
    # Pause before the confirmatory status query after a purchase.
    digiflazz_status_delay_seconds: float = 2.0

    # Firebase Cloud Messaging
    firebase_service_account: str = "secrets/firebase-adminsdk.json"
    notification_concurrency: int = 8
    notification_timeout_seconds: int = 15

    # CORS
    cors_origins: str = "*"
    auto_create_tables: bool = False


@dataclass(frozen=True)
class ProviderConfig:
    username: str
    api_key: str
    base_url: str
    use_production: bool
    timeout_seconds: int = 30

    @property
    def key_label(self) -> str:
        return "prod" if self.use_production else "dev"

    @property
    def key_suffix(self) -> str:
        return self.api_key[-4:]


def provider_config_from_settings(settings: Settings) -> ProviderConfig:
    use_production = str(settings.digiflazz_mode or "").strip().lower() in PRODUCTION_MODES
    api_key = settings.digiflazz_prod_key if use_production else settings.digiflazz_dev_key
    return ProviderConfig(
        username=str(settings.digiflazz_username or "").strip(),
        api_key=str(api_key or "").strip(),
        base_url=str(settings.digiflazz_base_url or "").strip().rstrip("/"),
        use_production=use_production,
        timeout_seconds=int(settings.digiflazz_timeout_seconds),
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_provider_config() -> ProviderConfig:
    return provider_config_from_settings(get_settings())
