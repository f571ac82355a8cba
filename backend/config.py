"""Application configuration using pydantic-settings."""

from typing import Any, Optional

from pydantic import ValidationInfo, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential

DEFAULT_CACHE_MAX_SIZE = 5000
DEFAULT_SMALL_CACHE_MAX_SIZE = 1000
DEFAULT_CACHE_TTL_SECONDS = 60 * 60 * 6


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
    DATABASE_URL: str = "sqlite+aiosqlite:///./harvest_sync.db"

    # Harvest credentials (required by the connector, checked at construction)
    HARVEST_ACCESS_TOKEN: str = ""
    HARVEST_ACCOUNT_ID: str = ""
    HARVEST_BASE_URL: str = "https://api.harvestapp.com/v2"
    HARVEST_USER_AGENT: str = "Harvest Sync"
    HARVEST_TIMEOUT_SECONDS: float = 30.0

    # Reference-id cache; clients and projects outnumber tasks and people
    HARVEST_CACHE_MAX_SIZE: int = DEFAULT_CACHE_MAX_SIZE
    HARVEST_TASK_CACHE_MAX_SIZE: int = DEFAULT_SMALL_CACHE_MAX_SIZE
    HARVEST_PERSON_CACHE_MAX_SIZE: int = DEFAULT_SMALL_CACHE_MAX_SIZE
    HARVEST_CACHE_TTL_SECONDS: int = DEFAULT_CACHE_TTL_SECONDS

    # Upstream retry policy
    CONNECTOR_MAX_RETRIES: int = 3
    CONNECTOR_RETRY_BASE_DELAY_MS: int = 500
    CONNECTOR_RETRY_MAX_DELAY_MS: Optional[int] = None

    # Storage
    SYNC_BATCH_SIZE: int = 1000
    MEMORY_WARNING_THRESHOLD_MB: int = 400

    @field_validator(
        "HARVEST_CACHE_MAX_SIZE",
        "HARVEST_TASK_CACHE_MAX_SIZE",
        "HARVEST_PERSON_CACHE_MAX_SIZE",
        mode="before",
    )
    @classmethod
    def default_non_positive_cache_size(cls, v: Any, info: ValidationInfo) -> Any:
        """Fall back to the field's default size for zero or negative values."""
        try:
            if int(v) <= 0:
                return cls.model_fields[info.field_name].default
        except (TypeError, ValueError):
            return v
        return v

    @field_validator(
        "CONNECTOR_MAX_RETRIES",
        "CONNECTOR_RETRY_BASE_DELAY_MS",
        "CONNECTOR_RETRY_MAX_DELAY_MS",
        "SYNC_BATCH_SIZE",
    )
    @classmethod
    def reject_negative(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    @property
    def cache_sizes(self) -> dict[str, int]:
        """Max cache entries keyed by reference table name."""
        return {
            "clients": self.HARVEST_CACHE_MAX_SIZE,
            "projects": self.HARVEST_CACHE_MAX_SIZE,
            "tasks": self.HARVEST_TASK_CACHE_MAX_SIZE,
            "people": self.HARVEST_PERSON_CACHE_MAX_SIZE,
        }

    @property
    def cache_ttl_ms(self) -> Optional[int]:
        """Cache TTL in milliseconds, or ``None`` when expiry is disabled."""
        if self.HARVEST_CACHE_TTL_SECONDS <= 0:
            return None
        return self.HARVEST_CACHE_TTL_SECONDS * 1000

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
