"""Pytest configuration for all tests."""

import os

import pytest


@pytest.fixture
def settings_env(monkeypatch):
    """Provide the required RESPONDER_ environment and clear the rest."""
    for key in list(os.environ):
        if key.startswith("RESPONDER_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("RESPONDER_GITHUB_TOKEN", "ghp_test_token")
    monkeypatch.setenv("RESPONDER_LLM_API_KEY", "sk-test-key")
    return monkeypatch
