import contextlib
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from llm_compare.core.app.application_factory import build_app
from llm_compare.core.config.app_config import AppConfig
from llm_compare.core.domain.backend_type import BackendType
from tests.doubles import ScriptedConnector, scripted_registry


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    env = {
        "APP_HOST": "localhost",
        "APP_PORT": "9000",
        "PROXY_TIMEOUT": "30",
        "OPENAI_API_KEY": "test_openai_key",
        "ANTHROPIC_API_KEY": "test_anthropic_key",
        "GOOGLE_API_KEY": "your_google_api_key_here",
    }
    for k, v in env.items():
        monkeypatch.setenv(k, v)
    for var in ("MISTRAL_API_KEY", "LLAMA_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    return env


@pytest.fixture
def temp_config_path(tmp_path: Path) -> Path:
    """Create a minimal valid YAML config file and return its path."""
    import yaml

    cfg = {
        "host": "localhost",
        "port": 9000,
        "logging": {"level": "DEBUG"},
        "backends": {"mistral": {"model": "mistral-small-latest"}},
    }
    p = tmp_path / "app.config.yaml"
    with p.open("w", encoding="utf-8") as f:
        yaml.safe_dump(cfg, f, sort_keys=False)
    return p


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration with defaults for openai and anthropic only."""
    return AppConfig(
        backends={
            "openai": {"api_key": "sk-default-openai"},
            "anthropic": {"api_key": "sk-default-anthropic"},
            "gemini": {"api_key": "your_gemini_key_here"},
        }
    )


@pytest.fixture
def scripts() -> dict[BackendType, ScriptedConnector]:
    return {
        BackendType.OPENAI: ScriptedConnector(["He", "llo"]),
        BackendType.ANTHROPIC: ScriptedConnector(
            ["Par"], error=RuntimeError("overloaded")
        ),
        BackendType.GEMINI: ScriptedConnector(["never"]),
        BackendType.MISTRAL: ScriptedConnector(["Bon", "jour"]),
        BackendType.LLAMA: ScriptedConnector([]),
    }


@pytest.fixture
def test_client(
    app_config: AppConfig, scripts: dict[BackendType, ScriptedConnector]
) -> Iterator[TestClient]:
    """A TestClient over an app whose backends replay `scripts`."""
    app = build_app(app_config, backend_registry=scripted_registry(scripts))
    client = TestClient(app)
    try:
        yield client
    finally:
        with contextlib.suppress(Exception):
            client.close()
