import asyncio
import logging
from pathlib import Path

import pytest

from pdfchamp.app import bootstrap
from pdfchamp.core.config import AppConfig
from pdfchamp.utils.logging_config import setup_logging

ENV_KEYS = [
    "SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_ANNOTATIONS_TABLE", "ENABLE_CLOUD_SYNC",
    "ANNOTATIONS_DIR", "LOG_LEVEL", "LOG_FILE", "APP_NAME", "APP_ENV",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults():
    config = AppConfig.from_mapping({})
    assert config.annotations_table == "pdf_annotations"
    assert config.enable_cloud_sync is True
    assert config.log_level == "INFO"
    assert config.is_development
    assert not config.has_supabase_config


def test_env_file_is_read(tmp_path, clean_env):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "SUPABASE_URL=https://example.supabase.co\n"
        "SUPABASE_ANON_KEY=anon-key\n"
        "ENABLE_CLOUD_SYNC=False\n"
        f"ANNOTATIONS_DIR={tmp_path / 'notes'}\n"
        "APP_ENV=production\n",
        encoding='utf-8',
    )
    config = AppConfig.from_env(env_file)
    assert config.has_supabase_config
    assert config.enable_cloud_sync is False
    assert config.resolve_annotations_dir() == Path(tmp_path / 'notes')
    assert config.is_production


def test_process_environment_wins(tmp_path, clean_env):
    env_file = tmp_path / ".env"
    env_file.write_text("LOG_LEVEL=debug\nSUPABASE_ANNOTATIONS_TABLE=from_file\n", encoding='utf-8')
    clean_env.setenv("SUPABASE_ANNOTATIONS_TABLE", "from_env")

    config = AppConfig.from_env(env_file)
    assert config.log_level == "DEBUG"
    assert config.annotations_table == "from_env"


def test_summary_has_no_secrets():
    config = AppConfig(supabase_url="https://example.supabase.co", supabase_anon_key="secret")
    summary = config.to_dict()
    assert summary["services"]["supabase"] is True
    assert "secret" not in repr(summary)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_writes_file(tmp_path, restore_logging):
    log_file = tmp_path / "logs" / "pdfchamp.log"
    setup_logging("WARNING", log_file)
    logging.getLogger("pdfchamp.test").debug("detail for the file")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "detail for the file" in log_file.read_text(encoding='utf-8')


def test_bootstrap_applies_logging_and_storage(tmp_path, clean_env, restore_logging):
    log_file = tmp_path / "logs" / "app.log"
    env_file = tmp_path / ".env"
    env_file.write_text(
        "ENABLE_CLOUD_SYNC=false\n"
        f"ANNOTATIONS_DIR={tmp_path / 'notes'}\n"
        "LOG_LEVEL=error\n"
        f"LOG_FILE={log_file}\n",
        encoding='utf-8',
    )

    service = asyncio.run(bootstrap(env_file))
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert service.local_store.annotations_dir == tmp_path / "notes"
    assert service.remote_store is None
    levels = sorted(handler.level for handler in logging.getLogger().handlers)
    assert levels == [logging.DEBUG, logging.ERROR]
    assert "Starting" in log_file.read_text(encoding='utf-8')
