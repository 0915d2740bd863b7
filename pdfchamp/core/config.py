"""
Application configuration, read from the environment and optional .env files.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import dotenv_values

from pdfchamp.utils.resource_loader import APP_NAME, get_annotations_dir, get_config_dir

logger = logging.getLogger(__name__)

DEFAULT_ANNOTATIONS_TABLE = "pdf_annotations"


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() == "true"


@dataclass
class AppConfig:
    """Settings for the annotation layer and its backends."""

    supabase_url: str = ""
    supabase_anon_key: str = ""
    annotations_table: str = DEFAULT_ANNOTATIONS_TABLE
    enable_cloud_sync: bool = True
    annotations_dir: Optional[Path] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None
    app_name: str = APP_NAME
    app_env: str = "development"

    @property
    def has_supabase_config(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def resolve_annotations_dir(self) -> Path:
        """Return the configured annotations directory, or the platform default."""
        if self.annotations_dir is not None:
            return self.annotations_dir
        return get_annotations_dir(self.app_name)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Optional[str]]) -> "AppConfig":
        """Build a config from a flat mapping of environment-style keys."""
        annotations_dir = values.get("ANNOTATIONS_DIR")
        return cls(
            supabase_url=values.get("SUPABASE_URL") or "",
            supabase_anon_key=values.get("SUPABASE_ANON_KEY") or "",
            annotations_table=values.get("SUPABASE_ANNOTATIONS_TABLE") or DEFAULT_ANNOTATIONS_TABLE,
            enable_cloud_sync=_parse_bool(values.get("ENABLE_CLOUD_SYNC"), True),
            annotations_dir=Path(annotations_dir).expanduser() if annotations_dir else None,
            log_level=(values.get("LOG_LEVEL") or "INFO").upper(),
            log_file=values.get("LOG_FILE") or None,
            app_name=values.get("APP_NAME") or APP_NAME,
            app_env=values.get("APP_ENV") or "development",
        )

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "AppConfig":
        """
        Load configuration.

        Values from the process environment take precedence over the .env
        file. Without an explicit ``env_file``, ``.env`` in the working
        directory and then in the user config directory are tried.

        Args:
            env_file: Optional path to a .env file

        Returns:
            The loaded configuration
        """
        values: Dict[str, Optional[str]] = {}
        for candidate in cls._env_candidates(env_file):
            if candidate.is_file():
                logger.info("Loading environment configuration from %s", candidate)
                values.update(dotenv_values(candidate))
                break
        values.update(os.environ)

        config = cls.from_mapping(values)
        if not config.has_supabase_config:
            logger.info("Supabase configuration not found; cloud sync disabled")
        return config

    @staticmethod
    def _env_candidates(env_file: Optional[Union[str, Path]]):
        if env_file is not None:
            return [Path(env_file)]
        return [Path.cwd() / ".env", get_config_dir() / ".env"]

    def to_dict(self) -> Dict[str, Any]:
        """Summarize the configuration without secrets."""
        return {
            "app": {"name": self.app_name, "environment": self.app_env},
            "features": {"cloud_sync": self.enable_cloud_sync},
            "storage": {
                "annotations_dir": str(self.annotations_dir) if self.annotations_dir else None,
                "annotations_table": self.annotations_table,
            },
            "logging": {"level": self.log_level, "file": self.log_file},
            "services": {"supabase": self.has_supabase_config},
        }
