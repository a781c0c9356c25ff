"""Pytest fixtures and config."""


import pytest


@pytest.fixture(autouse=True)
def env_cleanup(monkeypatch):
    """Avoid picking up real provider credentials in tests."""
    for name in (
        "LLM_API_KEY",
        "LLM_PROTOCOL",
        "LLM_MODEL",
        "LLM_API_BASE",
        "LOG_LEVEL",
        "STREAMCHAT_ENV_PREFIX",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
