import asyncio
import contextlib

import pytest

from llm_compare.core.common.exceptions import BackendError
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.domain.compare import (
    BackendState,
    CredentialResolution,
    StreamEvent,
)
from llm_compare.core.services.credential_resolver import CREDENTIAL_NOT_CONFIGURED
from llm_compare.core.services.stream_multiplexer import (
    MultiplexSession,
    StreamMultiplexer,
)
from tests.doubles import ConnectorTable, ScriptedConnector

OPENAI = BackendType.OPENAI
ANTHROPIC = BackendType.ANTHROPIC
GEMINI = BackendType.GEMINI
MISTRAL = BackendType.MISTRAL


async def _collect(session: MultiplexSession) -> list[StreamEvent]:
    return [event async for event in session.events()]


def _for(events: list[StreamEvent], backend: BackendType) -> list[StreamEvent]:
    return [e for e in events if e.provider == backend]


@pytest.mark.asyncio
async def test_rejected_and_streaming_backends_both_terminate() -> None:
    table = ConnectorTable({OPENAI: ScriptedConnector(["He", "llo"])})
    resolution = CredentialResolution(
        usable={OPENAI: "sk-openai"},
        rejected={ANTHROPIC: CREDENTIAL_NOT_CONFIGURED},
    )
    session = MultiplexSession("Hi", resolution, table)

    events = await _collect(session)

    assert _for(events, ANTHROPIC) == [
        StreamEvent.failed(ANTHROPIC, CREDENTIAL_NOT_CONFIGURED)
    ]
    assert _for(events, OPENAI) == [
        StreamEvent.fragment(OPENAI, "He"),
        StreamEvent.fragment(OPENAI, "llo"),
        StreamEvent.completed(OPENAI),
    ]
    # The rejected backend never reaches a connector
    assert table.requested == [OPENAI]
    assert table.connectors[OPENAI].calls == [("Hi", "sk-openai")]
    assert session.states == {
        OPENAI: BackendState.COMPLETED,
        ANTHROPIC: BackendState.REJECTED,
    }


@pytest.mark.asyncio
async def test_rejections_are_emitted_before_any_fragment() -> None:
    table = ConnectorTable({OPENAI: ScriptedConnector(["a"])})
    resolution = CredentialResolution(
        usable={OPENAI: "k"},
        rejected={GEMINI: CREDENTIAL_NOT_CONFIGURED, MISTRAL: CREDENTIAL_NOT_CONFIGURED},
    )

    events = await _collect(MultiplexSession("p", resolution, table))

    assert [e.provider for e in events[:2]] == [GEMINI, MISTRAL]
    assert all(e.done and e.error == CREDENTIAL_NOT_CONFIGURED for e in events[:2])


@pytest.mark.asyncio
async def test_failure_mid_stream_becomes_terminal_error_event() -> None:
    table = ConnectorTable(
        {
            ANTHROPIC: ScriptedConnector(
                ["Par"], error=BackendError("Anthropic Claude API error: overloaded")
            )
        }
    )
    session = MultiplexSession(
        "p", CredentialResolution(usable={ANTHROPIC: "k"}), table
    )

    events = await _collect(session)

    assert events == [
        StreamEvent(provider=ANTHROPIC, chunk="Par", done=False),
        StreamEvent(
            provider=ANTHROPIC,
            chunk="",
            done=True,
            error="Anthropic Claude API error: overloaded",
        ),
    ]
    assert session.states[ANTHROPIC] is BackendState.FAILED


@pytest.mark.asyncio
async def test_failure_without_message_reports_unknown_error() -> None:
    table = ConnectorTable({GEMINI: ScriptedConnector([], error=RuntimeError())})

    events = await _collect(
        MultiplexSession("p", CredentialResolution(usable={GEMINI: "k"}), table)
    )

    assert events == [StreamEvent.failed(GEMINI, "Unknown error")]


@pytest.mark.asyncio
async def test_one_failure_does_not_affect_other_backends() -> None:
    table = ConnectorTable(
        {
            OPENAI: ScriptedConnector(["x"], error=RuntimeError("boom")),
            MISTRAL: ScriptedConnector(["Bon", "jour"], delay=0.01),
        }
    )
    resolution = CredentialResolution(usable={OPENAI: "k1", MISTRAL: "k2"})

    events = await _collect(MultiplexSession("p", resolution, table))

    assert _for(events, MISTRAL)[-1] == StreamEvent.completed(MISTRAL)
    assert "".join(e.chunk for e in _for(events, MISTRAL)) == "Bonjour"
    assert _for(events, OPENAI)[-1].error == "boom"


@pytest.mark.asyncio
async def test_each_backend_gets_exactly_one_terminal_event_last() -> None:
    table = ConnectorTable(
        {
            OPENAI: ScriptedConnector(["a", "b", "c"], delay=0.002),
            ANTHROPIC: ScriptedConnector(["d"], error=RuntimeError("x")),
            GEMINI: ScriptedConnector([]),
        }
    )
    resolution = CredentialResolution(
        usable={OPENAI: "1", ANTHROPIC: "2", GEMINI: "3"},
        rejected={MISTRAL: CREDENTIAL_NOT_CONFIGURED},
    )

    events = await _collect(MultiplexSession("p", resolution, table))

    for backend in (OPENAI, ANTHROPIC, GEMINI, MISTRAL):
        per_backend = _for(events, backend)
        assert [e.done for e in per_backend].count(True) == 1
        assert per_backend[-1].done


@pytest.mark.asyncio
async def test_slow_backend_does_not_block_fast_backend() -> None:
    slow = ScriptedConnector(["slow"], hang=True)
    fast = ScriptedConnector(["f1", "f2"])
    table = ConnectorTable({OPENAI: slow, MISTRAL: fast})
    session = MultiplexSession(
        "p", CredentialResolution(usable={OPENAI: "1", MISTRAL: "2"}), table
    )

    received: list[StreamEvent] = []

    async def consume_until_fast_done() -> None:
        gen = session.events()
        async with contextlib.aclosing(gen):
            async for event in gen:
                received.append(event)
                if event.provider == MISTRAL and event.done:
                    break

    await asyncio.wait_for(consume_until_fast_done(), timeout=2)

    assert [e.chunk for e in _for(received, MISTRAL)] == ["f1", "f2", ""]
    assert slow.cancelled


@pytest.mark.asyncio
async def test_closing_consumer_cancels_running_producers() -> None:
    connectors = {
        backend: ScriptedConnector(["first"], hang=True)
        for backend in (OPENAI, ANTHROPIC, GEMINI)
    }
    session = MultiplexSession(
        "p",
        CredentialResolution(usable={b: "k" for b in connectors}),
        ConnectorTable(connectors),
    )

    gen = session.events()
    first = await gen.__anext__()
    assert first.chunk == "first"
    for connector in connectors.values():
        await asyncio.wait_for(connector.started.wait(), timeout=1)
    await gen.aclose()

    for backend, task in session.producers.items():
        assert task.done(), backend
    assert all(c.cancelled and c.closed for c in connectors.values())


@pytest.mark.asyncio
async def test_session_can_only_be_consumed_once() -> None:
    session = MultiplexSession(
        "p", CredentialResolution(rejected={OPENAI: "nope"}), ConnectorTable({})
    )
    await _collect(session)

    with pytest.raises(RuntimeError):
        await _collect(session)


@pytest.mark.asyncio
async def test_only_rejected_backends_need_no_producers() -> None:
    table = ConnectorTable({})
    session = MultiplexSession(
        "p", CredentialResolution(rejected={OPENAI: CREDENTIAL_NOT_CONFIGURED}), table
    )

    events = await _collect(session)

    assert events == [StreamEvent.failed(OPENAI, CREDENTIAL_NOT_CONFIGURED)]
    assert session.producers == {}


@pytest.mark.asyncio
async def test_connector_construction_failure_is_reported_per_backend() -> None:
    def provider(backend: BackendType) -> ScriptedConnector:
        raise ValueError(f"Backend '{backend.value}' is not registered.")

    events = await _collect(
        MultiplexSession("p", CredentialResolution(usable={GEMINI: "k"}), provider)
    )

    assert events == [
        StreamEvent.failed(GEMINI, "Backend 'gemini' is not registered.")
    ]


@pytest.mark.asyncio
async def test_small_buffer_still_delivers_everything_in_order() -> None:
    fragments = [str(i) for i in range(50)]
    table = ConnectorTable({OPENAI: ScriptedConnector(fragments)})
    multiplexer = StreamMultiplexer(table, max_buffered_events=1)

    events = [
        e
        async for e in multiplexer.run(CredentialResolution(usable={OPENAI: "k"}), "p")
    ]

    assert [e.chunk for e in events[:-1]] == fragments
    assert events[-1] == StreamEvent.completed(OPENAI)
