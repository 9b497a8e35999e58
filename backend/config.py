"""Application configuration using pydantic-settings."""

from typing import Any

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Load credential fields from the OS keychain via ``keyring``.

    Only fields whose uppercase name appears in
    :data:`~services.credential_manager.CREDENTIAL_KEYS` are looked up.
    All other fields return ``None`` so the next source in the chain
    handles them.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        env_name = field_name.upper()
        if env_name not in CREDENTIAL_KEYS:
            return None, field_name, False
        value = get_credential(env_name)
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            value, key, is_complex = self.get_field_value(field_info, field_name)
            if value is not None:
                d[key] = value
        return d


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Database
    DATABASE_URL: str = "sqlite:///./ledger.db"

    # Plaid credentials (keychain or env)
    PLAID_CLIENT_ID: str = ""
    PLAID_SECRET: str = ""
    PLAID_ENVIRONMENT: str = "sandbox"
    PLAID_REQUEST_TIMEOUT_SECONDS: float = 30.0
    PLAID_SYNC_PAGE_SIZE: int = 500
    # Ask the institution for fresh data before each sync (best-effort)
    PLAID_REFRESH_BEFORE_SYNC: bool = False

    # Sync engine
    SYNC_FETCH_TIMEOUT_SECONDS: float = 120.0
    SYNC_TRANSACTION_TIMEOUT_SECONDS: float = 15.0
    SYNC_RATE_LIMIT: int = 5
    SYNC_RATE_WINDOW_SECONDS: int = 60
    SYNC_MERGE_WINDOW_DAYS: int = 3

    # Plaid webhooks
    WEBHOOK_SYNC_RATE_LIMIT: int = 3
    WEBHOOK_SYNC_RATE_WINDOW_SECONDS: int = 60
    # Reject webhook signatures older than this
    WEBHOOK_MAX_TOKEN_AGE_SECONDS: int = 300
    WEBHOOK_KEY_CACHE_SECONDS: int = 1800

    @field_validator("PLAID_ENVIRONMENT", mode="before")
    @classmethod
    def normalize_environment(cls, v: str) -> str:
        """Lower-case the Plaid environment name (``Sandbox`` -> ``sandbox``)."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
