"""Shared fixtures for the voice intake tests."""

import pytest

from voice_intake.config import get_settings
from voice_intake.logging_config import session_id_var, trace_id_var
from voice_intake.services.extraction_session import ExtractionSession


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached; every test starts from a clean read of the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def fresh_correlation_ids():
    """Sessions bind their ID in the shared test context; restore it after every test."""
    tokens = [session_id_var.set(""), trace_id_var.set("")]
    yield
    for var, token in zip((session_id_var, trace_id_var), tokens):
        var.reset(token)


@pytest.fixture
def configure(monkeypatch):
    """Override settings through the environment, e.g. ``configure(review_threshold=0.8)``."""

    def _configure(**values):
        for name, value in values.items():
            monkeypatch.setenv(name.upper(), str(value))
        get_settings.cache_clear()
        return get_settings()

    return _configure


@pytest.fixture
def session():
    s = ExtractionSession()
    s.start()
    return s
