"""
polyref/config.py

Runtime settings, read from environment variables (prefix ``POLYREF_``)
and an optional ``.env`` file.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """polyref settings"""

    # Database
    DATABASE_URL: str = "sqlite:///./polyref.db"
    ECHO_SQL: bool = False

    # Discriminator (role / label) columns
    DISCRIMINATOR_MAX_LENGTH: int = 64

    # Owner column pair defaults
    OWNER_TYPE_COLUMN: str = "owner_type"
    OWNER_ID_COLUMN: str = "owner_id"

    # Length of generated <slot>_type columns
    TYPE_COLUMN_LENGTH: int = 255

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="POLYREF_",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
