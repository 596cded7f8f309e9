# Path: config/settings.py
# Purpose: Provide typed application configuration models.
# Layer: config.
# Details: Centralizes settings for the database pool, the embedding engine, media storage and ingestion;
#          values come from defaults, an optional JSON config file and APP_-prefixed environment variables.

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict, SettingsError
from sqlalchemy.engine import URL

from core.errors import ValidationError

CONFIG_FILE_ENV = "APP_CONFIG"
DEFAULT_CONFIG_FILE = Path("config.json")


class DatabaseSettings(BaseModel):
    """Connection parameters and pool bounds for the persistence store."""

    host: str = Field(default="localhost", description="PostgreSQL host name.")
    port: int = Field(default=5432, description="PostgreSQL port.")
    username: str = Field(default="postgres", description="Database user.")
    password: str = Field(default="", description="Database password.")
    database: str = Field(default="semantic_gallery", description="Database name.")
    url: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides the individual connection fields when set.",
    )
    pool_size: int = Field(default=5, gt=0, description="Number of pooled connections kept open.")
    max_overflow: int = Field(default=0, ge=0, description="Connections allowed above pool_size.")
    pool_timeout: float = Field(default=10.0, gt=0, description="Seconds to wait for a pooled connection.")
    connect_timeout: int = Field(default=5, gt=0, description="Seconds to wait when opening a connection.")
    echo: bool = Field(default=False, description="Log emitted SQL statements.")

    @property
    def sqlalchemy_url(self) -> str:
        """Return the URL handed to SQLAlchemy's create_engine."""

        if self.url:
            return self.url
        # URL.create escapes reserved characters in the credentials.
        url = URL.create(
            "postgresql+psycopg2",
            username=self.username,
            password=self.password or None,
            host=self.host,
            port=self.port,
            database=self.database,
        )
        return url.render_as_string(hide_password=False)


class EmbedderSettings(BaseModel):
    """Settings describing which embedding model to load and where its artifacts live."""

    model_path: Path = Field(
        default=Path("models/clip-vit-base-patch32/model.safetensors"),
        description="Safetensors weights file or a pretrained model directory.",
    )
    tokenizer_path: Path = Field(
        default=Path("models/clip-vit-base-patch32/tokenizer.json"),
        description="Serialized tokenizer (tokenizer.json).",
    )
    model_name: str = Field(default="clip-vit-base-patch32", description="Model identifier stored with each vector.")
    model_version: str = Field(default="v1", description="Model version stored with each vector.")
    dimension: int = Field(default=512, description="Expected embedding dimensionality.")
    device: str = Field(default="auto", description="Target device: auto, cpu, cuda or mps.")


class StorageSettings(BaseModel):
    """Filesystem locations owned by the application."""

    media_path: Path = Field(default=Path("storage/media"), description="Media storage root.")


class IngestionSettings(BaseModel):
    """Defaults for discovery and batch ingestion."""

    max_depth: int = Field(default=5, ge=0, description="Deepest directory level visited when recursing.")
    workers: int = Field(default=1, gt=0, description="Files processed concurrently.")
    persist_attempts: int = Field(default=3, gt=0, description="Attempts for a retryable persistence failure.")


class AppSettings(BaseSettings):
    """Top-level application settings shared across services and interfaces."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    embedder: EmbedderSettings = Field(default_factory=EmbedderSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    log_level: str = Field(default="INFO", description="Verbosity level for application logs.")
    log_json: bool = Field(default=False, description="Emit logs as JSON objects.")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment overrides values passed in, which carry the config file contents.
        return env_settings, init_settings

    @classmethod
    def load(cls, config_file: Optional[Path | str] = None) -> "AppSettings":
        """Build settings from the config file (if any) overlaid with environment variables.

        The file is taken from ``config_file``, then ``$APP_CONFIG``, then ``./config.json``.
        A missing file is not an error; unreadable or ill-typed values raise ``ValidationError``.
        """

        path = Path(config_file or os.getenv(CONFIG_FILE_ENV) or DEFAULT_CONFIG_FILE)
        payload = _read_config_file(path)
        try:
            return cls(**payload)
        except (PydanticValidationError, SettingsError) as exc:
            raise ValidationError(f"Invalid configuration: {exc}") from exc

    @classmethod
    def from_env(cls) -> "AppSettings":
        """Instantiate settings from environment variables only."""

        return cls()

    def validate_startup(self) -> None:
        """Check the settings the core relies on and prepare the media root.

        Raises ``ValidationError`` on the first problem found.
        """

        if not self.database.url and not self.database.host.strip():
            raise ValidationError("Database host cannot be empty")

        if not self.embedder.model_path.exists():
            raise ValidationError(f"Embedding model path does not exist: {self.embedder.model_path}")

        if not self.embedder.tokenizer_path.exists():
            raise ValidationError(f"Tokenizer path does not exist: {self.embedder.tokenizer_path}")

        if self.embedder.dimension <= 0:
            raise ValidationError("Embedding dimension must be greater than 0")

        self.storage.media_path.mkdir(parents=True, exist_ok=True)


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Could not read config file {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValidationError(f"Config file {path} must contain a JSON object")
    return payload


__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "EmbedderSettings",
    "IngestionSettings",
    "StorageSettings",
]
