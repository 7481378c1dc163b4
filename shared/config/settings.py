"""Application settings and configuration management."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Import pipeline settings with environment variable support."""

    # Application
    app_name: str = Field(default="MRV CSV Import", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    environment: str = Field(default="production", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    json_logs: bool = Field(default=False, alias="JSON_LOGS")

    # CSV parsing
    csv_delimiter: str = Field(default=",", alias="CSV_DELIMITER")
    csv_encoding: str = Field(default="utf-8", alias="CSV_ENCODING")
    csv_max_preview_rows: int = Field(default=10, alias="CSV_MAX_PREVIEW_ROWS")

    # Import behaviour
    import_skip_invalid_rows: bool = Field(default=True, alias="IMPORT_SKIP_INVALID_ROWS")
    import_default_type: str = Field(default="water_quality", alias="IMPORT_DEFAULT_TYPE")
    import_batch_size: int = Field(default=100, alias="IMPORT_BATCH_SIZE")
    import_timezone: str = Field(default="Asia/Tokyo", alias="IMPORT_TIMEZONE")

    # Column mapping profiles
    mapping_profile_dir: Optional[str] = Field(default=None, alias="MAPPING_PROFILE_DIR")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("csv_delimiter")
    @classmethod
    def validate_delimiter(cls, v: str) -> str:
        """Delimiter must be exactly one character (tab given as \\t is accepted)."""
        if v == "\\t":
            return "\t"
        if len(v) != 1:
            raise ValueError("CSV delimiter must be a single character")
        return v

    @field_validator("csv_max_preview_rows")
    @classmethod
    def validate_preview_rows(cls, v: int) -> int:
        """Preview cap must be positive."""
        if v < 1:
            raise ValueError("Preview row cap must be at least 1")
        return v

    @field_validator("import_default_type")
    @classmethod
    def validate_default_type(cls, v: str) -> str:
        """Default measurement type must be a known type."""
        valid_types = ["water_quality", "atmospheric", "soil"]
        if v not in valid_types:
            raise ValueError(f"Default type must be one of: {valid_types}")
        return v

    @field_validator("import_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        """Batch size is capped by the measurement API (100 per request)."""
        if not 1 <= v <= 100:
            raise ValueError("Batch size must be between 1 and 100")
        return v


# Global settings instance
settings = Settings()
