"""
Utility functions and helpers.
"""
from .logging_config import setup_logging
from .resource_loader import (
    APP_NAME,
    get_annotations_dir,
    get_app_data_dir,
    get_config_dir,
)

__all__ = [
    # Paths
    'APP_NAME',
    'get_annotations_dir',
    'get_app_data_dir',
    'get_config_dir',

    # Logging
    'setup_logging',
]
