"""
Bridge Configuration Settings
"""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Storage (use BRIDGE_ prefix)
    db_path: Path = Field(
        default=Path("./data/bridge.db"),
        alias="BRIDGE_DB_PATH",
        description="SQLite database holding people and facts"
    )

    # Server
    port: int = Field(default=8000, alias="BRIDGE_PORT")
    host: str = Field(default="0.0.0.0", alias="BRIDGE_HOST")

    log_level: str = Field(default="INFO", alias="BRIDGE_LOG_LEVEL")

    # Origin (the user's own record)
    # Matched by word containment against normalized person names, so
    # "michelle  CAMPEAU" and "Michelle Campeau-Smith" both resolve.
    origin_name: str = Field(
        default="Michelle Campeau",
        alias="BRIDGE_ORIGIN_NAME",
        min_length=1,
        description="Default identity of the Origin person"
    )

    # Ranking
    min_rank_score: float = Field(
        default=2.0,
        alias="BRIDGE_MIN_RANK_SCORE",
        description="Candidates scoring at or below this are dropped from rankings"
    )

    # Bulk import
    max_import_rows: int = Field(default=500, alias="BRIDGE_MAX_IMPORT_ROWS")


settings = Settings()
