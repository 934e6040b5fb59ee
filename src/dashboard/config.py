"""Configuration management using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Aqueduct Food"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Carto query service
    carto_domain: str = "carto.com"
    carto_timeout: float = 30.0     # seconds, per HTTP request

    # Initial map view
    map_zoom: float = 3
    map_min_zoom: float = 2
    map_max_zoom: float = 10
    map_center_lat: float = 20.0
    map_center_lng: float = -30.0


settings = Settings()
