import httpx
from fastapi.testclient import TestClient

from llm_compare.core.app.application_factory import build_app
from llm_compare.core.config.app_config import AppConfig
from llm_compare.core.domain.backend_type import BackendType
from tests.doubles import ScriptedConnector, scripted_registry


def test_build_app_accepts_dict_config() -> None:
    app = build_app(
        {"proxy_timeout": 5, "connect_timeout": 2, "backends": {"openai": {"api_key": "sk"}}},
        backend_registry=scripted_registry({}),
    )

    assert isinstance(app.state.config, AppConfig)
    client: httpx.AsyncClient = app.state.httpx_client
    assert client.timeout.read == 5
    assert client.timeout.connect == 2
    assert app.state.compare_service.configured_backends()[BackendType.OPENAI]


def test_lifespan_closes_shared_client() -> None:
    app = build_app(AppConfig(), backend_registry=scripted_registry({}))

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        assert not app.state.httpx_client.is_closed

    assert app.state.httpx_client.is_closed


def test_request_logging_middleware_keeps_stream_intact() -> None:
    config = AppConfig(
        logging={"request_logging": True, "response_logging": True},
        backends={"openai": {"api_key": "sk-default"}},
    )
    app = build_app(
        config,
        backend_registry=scripted_registry(
            {BackendType.OPENAI: ScriptedConnector(["a", "b"])}
        ),
    )
    client = TestClient(app)

    response = client.post("/api/compare", json={"prompt": "Hi", "providers": ["openai"]})

    assert response.status_code == 200
    assert response.text.count("data: ") == 3
