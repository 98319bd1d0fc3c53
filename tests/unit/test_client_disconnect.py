import asyncio
import contextlib
import json

import pytest
from starlette.requests import ClientDisconnect
from starlette.types import Message

from llm_compare.core.app.application_factory import build_app
from llm_compare.core.config.app_config import AppConfig
from llm_compare.core.domain.backend_type import BackendType
from tests.doubles import ScriptedConnector, scripted_registry

HANGING = (BackendType.OPENAI, BackendType.ANTHROPIC, BackendType.MISTRAL)


def _scope(body: bytes, spec_version: str) -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": spec_version},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/api/compare",
        "raw_path": b"/api/compare",
        "query_string": b"",
        "root_path": "",
        "headers": [
            (b"host", b"testserver"),
            (b"content-type", b"application/json"),
            (b"content-length", str(len(body)).encode()),
        ],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "spec_version",
    [
        # Disconnect arrives as an http.disconnect message
        "2.3",
        # Disconnect surfaces as OSError from send
        "2.4",
    ],
)
async def test_client_disconnect_cancels_every_backend(
    app_config: AppConfig, spec_version: str
) -> None:
    scripts = {b: ScriptedConnector(["first"], hang=True) for b in HANGING}
    app = build_app(app_config, backend_registry=scripted_registry(scripts))
    body = json.dumps(
        {
            "prompt": "Hi",
            "providers": [b.value for b in HANGING],
            "apiKeys": {"mistral": "m-key"},
        }
    ).encode()

    first_frame_sent = asyncio.Event()
    body_requested = False
    frames: list[bytes] = []

    def all_started() -> bool:
        return all(s.started.is_set() for s in scripts.values())

    async def receive() -> Message:
        nonlocal body_requested
        if not body_requested:
            body_requested = True
            return {"type": "http.request", "body": body, "more_body": False}
        await first_frame_sent.wait()
        await asyncio.gather(*(s.started.wait() for s in scripts.values()))
        return {"type": "http.disconnect"}

    async def send(message: Message) -> None:
        if message["type"] != "http.response.body" or not message.get("body"):
            return
        if spec_version == "2.4" and frames and all_started():
            raise OSError("connection reset by peer")
        frames.append(message["body"])
        first_frame_sent.set()

    with contextlib.suppress(ClientDisconnect):
        await asyncio.wait_for(app(_scope(body, spec_version), receive, send), timeout=5)

    assert frames
    assert frames[0].startswith(b"data: ")
    for backend, script in scripts.items():
        assert script.calls, backend
        assert script.cancelled, backend
        assert script.closed, backend
