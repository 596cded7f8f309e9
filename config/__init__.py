# Path: config/__init__.py
# Purpose: Package initializer for configuration module.
# Layer: config.
# Details: Exposes settings models and logging setup for application-wide configuration.

from .logging_config import setup_logging
from .settings import AppSettings, DatabaseSettings, EmbedderSettings, IngestionSettings, StorageSettings

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "EmbedderSettings",
    "IngestionSettings",
    "StorageSettings",
    "setup_logging",
]
