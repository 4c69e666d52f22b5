"""Application configuration using Pydantic Settings."""

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ScanStageProvider(str, Enum):
    """Supported scan stage backends."""
    EDGE_FUNCTIONS = "edge_functions"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    db_name: str = "bodyscan_db"

    # Backend-as-a-service functions gateway
    edge_functions_url: str = "http://localhost:54321"
    edge_functions_api_key: str = ""
    edge_function_timeout: float = 60.0

    # Scan pipeline
    scan_stage_provider: ScanStageProvider = ScanStageProvider.EDGE_FUNCTIONS
    archetype_match_limit: int = 5
    mapping_version: str = "v1.0"
    avatar_model_version: str = "v4.13"
    material_config_version: str = "pbr-v2"
    avatar_version: str = "v2.0"

    # Commit retry policy
    commit_max_attempts: int = 3
    commit_retry_delay_seconds: float = 2.0

    # App
    debug: bool = False
    log_level: str = "INFO"
    app_name: str = "Body Scan API"
    api_version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def is_edge_functions_configured(self) -> bool:
        """Check if the functions gateway has credentials."""
        return bool(self.edge_functions_url and self.edge_functions_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
