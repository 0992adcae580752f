"""Tests for runtime settings."""
import logging

import pytest
from pydantic import ValidationError

from crash_diagnosis.config import EngineSettings, load_settings

SETTING_NAMES = ('PARALLEL', 'MAX_WORKERS', 'LOG_LEVEL', 'MAX_DUMP_SIZE_MB')


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in SETTING_NAMES:
        monkeypatch.delenv(f'CRASH_DIAGNOSIS_{name}', raising=False)


def test_defaults():
    settings = load_settings(env_file=None)
    assert settings.parallel is False
    assert settings.max_workers == 4
    assert settings.log_level == 'INFO'
    assert settings.max_dump_size_bytes == 500 * 1024 * 1024


def test_values_from_environment(monkeypatch):
    monkeypatch.setenv('CRASH_DIAGNOSIS_PARALLEL', 'yes')
    monkeypatch.setenv('CRASH_DIAGNOSIS_MAX_WORKERS', '8')
    monkeypatch.setenv('CRASH_DIAGNOSIS_LOG_LEVEL', 'debug')
    monkeypatch.setenv('CRASH_DIAGNOSIS_MAX_DUMP_SIZE_MB', '64')
    settings = load_settings(env_file=None)
    assert settings.parallel
    assert settings.max_workers == 8
    assert settings.log_level == 'DEBUG'
    assert settings.max_dump_size_mb == 64


def test_invalid_values_fall_back(monkeypatch, caplog):
    monkeypatch.setenv('CRASH_DIAGNOSIS_PARALLEL', 'maybe')
    monkeypatch.setenv('CRASH_DIAGNOSIS_MAX_WORKERS', 'lots')
    monkeypatch.setenv('CRASH_DIAGNOSIS_LOG_LEVEL', 'chatty')
    monkeypatch.setenv('CRASH_DIAGNOSIS_MAX_DUMP_SIZE_MB', '-5')
    with caplog.at_level(logging.WARNING, logger='crash_diagnosis.config'):
        settings = load_settings(env_file=None)
    assert settings.parallel is False
    assert settings.max_workers == 4
    assert settings.log_level == 'INFO'
    assert settings.max_dump_size_mb == 500
    assert 'maybe' in caplog.text
    assert 'lots' in caplog.text
    assert 'chatty' in caplog.text.lower()
    assert "'-5'" in caplog.text


def test_dotenv_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("CRASH_DIAGNOSIS_MAX_WORKERS=3\nCRASH_DIAGNOSIS_PARALLEL=true\n", encoding='utf-8')
    settings = load_settings(env_file=str(env_file))
    assert settings.max_workers == 3
    assert settings.parallel


def test_environment_overrides_dotenv(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("CRASH_DIAGNOSIS_MAX_WORKERS=3\n", encoding='utf-8')
    monkeypatch.setenv('CRASH_DIAGNOSIS_MAX_WORKERS', '6')
    assert load_settings(env_file=str(env_file)).max_workers == 6


def test_keyword_arguments():
    settings = EngineSettings(_env_file=None, parallel=True, max_workers=2, max_dump_size_mb=1)
    assert settings.parallel
    assert settings.max_workers == 2
    assert settings.max_dump_size_bytes == 1024 * 1024


def test_settings_are_frozen():
    settings = load_settings(env_file=None)
    with pytest.raises(ValidationError):
        settings.max_workers = 16
