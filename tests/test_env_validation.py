import os

import pytest

import env_validation
from env_validation import EnvironmentError, get_env_bool, get_env_float, validate_environment


def test_defaults_are_applied(monkeypatch):
    # setenv first so monkeypatch restores the original value afterwards
    monkeypatch.setenv("DB_PATH", "placeholder")
    monkeypatch.setenv("DB_MAX_CONNECTIONS", "1")
    monkeypatch.delenv("DB_PATH")
    monkeypatch.delenv("DB_MAX_CONNECTIONS")
    monkeypatch.delenv("SUMMARY_ENABLED", raising=False)

    validate_environment()

    assert os.environ["DB_PATH"] == "data.db"
    assert os.environ["DB_MAX_CONNECTIONS"] == "10"


def test_enabled_summaries_require_url(monkeypatch):
    monkeypatch.setenv("SUMMARY_ENABLED", "true")
    monkeypatch.delenv("SUMMARY_LLM_URL", raising=False)

    with pytest.raises(EnvironmentError, match="SUMMARY_LLM_URL"):
        validate_environment()


def test_invalid_url_is_rejected(monkeypatch):
    monkeypatch.setenv("SUMMARY_LLM_URL", "llm.local:8080")

    with pytest.raises(EnvironmentError, match="Invalid URL"):
        validate_environment()


def test_negative_timeout_is_rejected(monkeypatch):
    monkeypatch.delenv("SUMMARY_LLM_URL", raising=False)
    monkeypatch.setenv("REPORT_SOURCE_TIMEOUT", "-1")

    with pytest.raises(EnvironmentError, match="REPORT_SOURCE_TIMEOUT"):
        validate_environment()


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("FLAG", "Yes")
    monkeypatch.setenv("SECONDS", "2.5")

    assert get_env_bool("FLAG") is True
    assert get_env_bool("MISSING_FLAG", default=True) is True
    assert get_env_float("SECONDS") == 2.5
    assert get_env_float("MISSING_SECONDS") is None

    monkeypatch.setenv("SECONDS", "soon")
    with pytest.raises(env_validation.EnvironmentError):
        get_env_float("SECONDS")
