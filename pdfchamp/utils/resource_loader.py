"""
Per-platform locations for application data and settings.
"""
import os
import sys
from pathlib import Path

APP_NAME = "PDFChamp"


def get_app_data_dir(app_name: str = APP_NAME) -> Path:
    """
    Get the application data directory for storing user data.

    Args:
        app_name: Name of the application

    Returns:
        Path to the app data directory
    """
    if os.name == 'nt':  # Windows
        base_dir = os.environ.get('APPDATA', os.path.expanduser('~'))
    elif sys.platform == 'darwin':  # macOS
        base_dir = os.path.expanduser('~/Library/Application Support')
    else:  # Linux and others
        base_dir = os.environ.get('XDG_DATA_HOME', os.path.expanduser('~/.local/share'))

    app_dir = Path(base_dir) / app_name
    app_dir.mkdir(parents=True, exist_ok=True)

    return app_dir


def get_config_dir(app_name: str = APP_NAME) -> Path:
    """
    Get the configuration directory for storing settings.

    Args:
        app_name: Name of the application

    Returns:
        Path to the config directory
    """
    if os.name == 'nt':  # Windows
        config_dir = get_app_data_dir(app_name) / "config"
    elif sys.platform == 'darwin':  # macOS
        config_dir = Path.home() / "Library" / "Preferences" / app_name
    else:  # Linux
        config_dir = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / ".config")) / app_name

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_annotations_dir(app_name: str = APP_NAME) -> Path:
    """Get the private directory that per-document annotation files live in."""
    annotations_dir = get_app_data_dir(app_name) / "annotations"
    annotations_dir.mkdir(parents=True, exist_ok=True)
    return annotations_dir
