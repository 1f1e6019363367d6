"""Configuration management using Pydantic settings."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SHAPEDESK_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "ShapeDesk"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Initial map view (geographic, captured once when the view is ready)
    initial_center_x: float = -100.0
    initial_center_y: float = 40.0
    initial_zoom: float = 4.0
    viewport_width: int = 1024
    viewport_height: int = 768

    # Layers
    object_id_field: str = "OBJECTID"

    # Selection
    box_select_modifier: str = "shift"   # desktop modifier for drag-box
    point_select_modifier: str = "ctrl"  # desktop modifier for accumulative click
    hit_tolerance_px: float = 4.0

    # Load / export
    goto_padding: int = 50
    min_archive_bytes: int = 100  # sanity floor for generated shapefile zips
    export_indent: int = 2

    # None = wait forever on the map engine / codec
    external_call_timeout: Optional[float] = None


settings = Settings()
