"""
Application startup for the annotation layer.
"""
import logging
from pathlib import Path
from typing import Optional, Union

from pdfchamp.core.annotations import AnnotationSyncService
from pdfchamp.core.config import AppConfig
from pdfchamp.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


async def bootstrap(env_file: Optional[Union[str, Path]] = None) -> AnnotationSyncService:
    """
    Load configuration, set up logging and build the sync service.

    Args:
        env_file: Optional .env file; defaults to the one in the config dir

    Returns:
        A service wired to the configured stores
    """
    config = AppConfig.from_env(env_file)
    setup_logging(config.log_level, config.log_file)
    logger.info("Starting %s: %s", config.app_name, config.to_dict())
    return await AnnotationSyncService.from_config(config)
