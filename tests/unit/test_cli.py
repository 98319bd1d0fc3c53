import argparse
import io
import json
from pathlib import Path

import pytest
from pytest_httpx import HTTPXMock

from llm_compare.cli import apply_cli_args, parse_cli_args, run_ask
from llm_compare.core.config.app_config import LogLevel
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.domain.compare import StreamEvent
from llm_compare.core.transport.sse import encode_event

SERVER = "http://compare.test"


def test_serve_arguments_override_config(
    temp_config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("APP_PORT", raising=False)
    monkeypatch.delenv("APP_HOST", raising=False)
    args = parse_cli_args(
        ["serve", "--config", str(temp_config_path), "--port", "9500", "--log-level", "WARNING"]
    )

    config = apply_cli_args(args)

    assert config.host == "localhost"
    assert config.port == 9500
    assert config.logging.level is LogLevel.WARNING


def test_ask_parses_providers_and_key_overrides() -> None:
    args = parse_cli_args(
        ["ask", "Hi", "-p", "openai", "-p", "gemini", "--api-key", "gemini=g-key"]
    )

    assert args.providers == ["openai", "gemini"]
    assert args.api_keys == [(BackendType.GEMINI, "g-key")]


def test_ask_rejects_unknown_backend_in_key_override() -> None:
    with pytest.raises(SystemExit):
        parse_cli_args(["ask", "Hi", "--api-key", "cohere=abc"])


def _ask_args(tmp_path: Path, **overrides: object) -> argparse.Namespace:
    keys_file = tmp_path / "keys.json"
    keys_file.write_text(json.dumps({"mistral": "from-file"}), encoding="utf-8")
    argv = ["ask", "Hi", "-p", "openai", "-p", "mistral", "--url", SERVER]
    argv += ["--keys-file", str(keys_file), "--api-key", "openai=from-flag"]
    args = parse_cli_args(argv)
    for name, value in overrides.items():
        setattr(args, name, value)
    return args


@pytest.mark.asyncio
async def test_run_ask_prints_fragments_and_summary(
    tmp_path: Path, httpx_mock: HTTPXMock
) -> None:
    events = [
        StreamEvent.fragment(BackendType.OPENAI, "Hello"),
        StreamEvent.failed(BackendType.MISTRAL, "Mistral AI API error (401): Unauthorized"),
        StreamEvent.completed(BackendType.OPENAI),
    ]
    httpx_mock.add_response(
        url=f"{SERVER}/api/compare",
        method="POST",
        content=b"".join(encode_event(e) for e in events),
    )
    out = io.StringIO()

    status = await run_ask(_ask_args(tmp_path), out)

    assert status == 0
    output = out.getvalue()
    assert "[openai] Hello\n" in output
    assert "OpenAI: 5 characters" in output
    assert "Mistral AI: failed: Mistral AI API error (401): Unauthorized" in output
    request = httpx_mock.get_request()
    assert request is not None
    assert json.loads(request.content)["apiKeys"] == {
        "mistral": "from-file",
        "openai": "from-flag",
    }


@pytest.mark.asyncio
async def test_run_ask_fails_when_every_backend_failed(
    tmp_path: Path, httpx_mock: HTTPXMock
) -> None:
    events = [
        StreamEvent.failed(BackendType.OPENAI, "credential not configured"),
        StreamEvent.failed(BackendType.MISTRAL, "credential not configured"),
    ]
    httpx_mock.add_response(
        url=f"{SERVER}/api/compare",
        method="POST",
        content=b"".join(encode_event(e) for e in events),
    )

    status = await run_ask(_ask_args(tmp_path), io.StringIO())

    assert status == 1
