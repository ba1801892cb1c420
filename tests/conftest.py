"""
Pytest configuration and fixtures for the chat relay test suite.

Nothing here talks to the network: the upstream chat API is replaced by
``httpx.MockTransport`` and child processes by in-memory handles.
"""

import os
import tempfile
from typing import Any, Callable, Dict, List

# Keep test runs from writing into the working tree's logs/
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="chat-relay-logs-"))

import pytest

from chat_relay.core.config_manager import ConfigManager
from tests.helpers import TEST_API_KEY

CONFIG_ENV_VARS = [
    "OPENROUTER_API_KEY", "OPENROUTER_MODEL", "OPENROUTER_BASE_URL", "APP_URL", "APP_TITLE",
    "API_PORT", "SERVICE_REGISTRY_PORT", "SERVICE_REGISTRY_URL", "REGISTRY_FILE", "FRONTEND_PORT",
    "DATABASE_URL", "CORS_ORIGINS", "RATE_LIMIT_MAX", "RATE_LIMIT_WINDOW_SECONDS", "DEBUG",
]


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Start every test from an environment without any relay configuration."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(f"VITE_{name}", raising=False)
    yield


@pytest.fixture
def config_dir(tmp_path) -> str:
    path = tmp_path / "config"
    path.mkdir()
    return str(path)


@pytest.fixture
def make_config(monkeypatch, config_dir, tmp_path) -> Callable[..., ConfigManager]:
    """Build a ConfigManager from the given environment variables."""
    def factory(**env: str) -> ConfigManager:
        env.setdefault("REGISTRY_FILE", str(tmp_path / "data" / "service-registry.json"))
        for name, value in env.items():
            monkeypatch.setenv(name, value)
        return ConfigManager(config_dir)
    return factory


@pytest.fixture
def config(make_config) -> ConfigManager:
    return make_config(OPENROUTER_API_KEY=TEST_API_KEY)


@pytest.fixture
def sample_messages() -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": "You are a helpful assistant."},
        {"role": "user", "content": "Hello!"},
    ]


@pytest.fixture
def completion_response() -> Dict[str, Any]:
    return {
        "id": "gen-123",
        "model": "openai/gpt-4o-mini",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hi there!"}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
    }

