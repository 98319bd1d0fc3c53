"""
Fan-out/fan-in multiplexing of backend streams.

One producer task is started per backend with a usable credential. Every
fragment a producer receives is wrapped in a `StreamEvent` and pushed onto a
single queue shared by all producers; the session's consumer drains that
queue in arrival order. Producers never wait on each other, only on their own
network reads and on queue capacity, so a slow backend cannot hold back a
fast one.

Every requested backend gets exactly one terminal event: rejected backends
get theirs before any producer starts, and each producer converts its own
normal end or failure into one. Failures never leave the producer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Callable

from llm_compare.connectors.base import LLMBackend
from llm_compare.core.common.exceptions import LLMCompareError
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.domain.compare import (
    BackendState,
    CredentialResolution,
    StreamEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFERED_EVENTS = 256

ConnectorProvider = Callable[[BackendType], LLMBackend]


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, LLMCompareError):
        return exc.message
    return str(exc)


class MultiplexSession:
    """The producers and merged output of one comparison request.

    A session is consumed once, through `events()`. Closing that generator
    early (client disconnect, request abort) cancels all producers that are
    still running and waits for them to release their connections.
    """

    def __init__(
        self,
        prompt: str,
        resolution: CredentialResolution,
        connector_provider: ConnectorProvider,
        *,
        max_buffered_events: int = DEFAULT_MAX_BUFFERED_EVENTS,
    ) -> None:
        self.prompt = prompt
        self._resolution = resolution
        self._connector_provider = connector_provider
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue(
            maxsize=max_buffered_events
        )
        self._tasks: dict[BackendType, asyncio.Task[None]] = {}
        self._states: dict[BackendType, BackendState] = dict.fromkeys(
            resolution.backends, BackendState.PENDING
        )
        self._consumed = False

    @property
    def states(self) -> dict[BackendType, BackendState]:
        """Current lifecycle state per backend, as seen by the consumer."""
        return dict(self._states)

    @property
    def producers(self) -> dict[BackendType, asyncio.Task[None]]:
        return dict(self._tasks)

    def _transition(self, backend: BackendType, state: BackendState) -> None:
        current = self._states[backend]
        if current.is_terminal:
            raise RuntimeError(
                f"Backend {backend.value} is already {current.value}; cannot move to {state.value}"
            )
        self._states[backend] = state

    async def events(self) -> AsyncGenerator[StreamEvent, None]:
        """Yield every event of the session, ending once all backends are terminal."""
        if self._consumed:
            raise RuntimeError("A multiplex session can only be consumed once")
        self._consumed = True

        usable = self._resolution.usable
        rejected = self._resolution.rejected
        logger.info(
            "Starting comparison session: %d streaming, %d rejected",
            len(usable),
            len(rejected),
        )

        for backend, reason in rejected.items():
            self._transition(backend, BackendState.REJECTED)
            yield StreamEvent.failed(backend, reason)

        for backend, credential in usable.items():
            self._tasks[backend] = asyncio.create_task(
                self._produce(backend, credential),
                name=f"llm-compare-producer-{backend.value}",
            )

        remaining = len(self._tasks)
        try:
            while remaining:
                event = await self._queue.get()
                if self._states[event.provider].is_terminal:
                    logger.error(
                        "Dropping event for %s after its terminal event",
                        event.provider.value,
                    )
                    continue
                if event.done:
                    remaining -= 1
                    self._transition(
                        event.provider,
                        BackendState.FAILED if event.error else BackendState.COMPLETED,
                    )
                yield event
        finally:
            await self._cancel_producers()

    async def _produce(self, backend: BackendType, credential: str) -> None:
        self._transition(backend, BackendState.STREAMING)
        terminal: StreamEvent
        try:
            connector = self._connector_provider(backend)
            stream: AsyncIterator[str] = connector.stream_text(self.prompt, credential)
            try:
                async for fragment in stream:
                    await self._queue.put(StreamEvent.fragment(backend, fragment))
            finally:
                # Release the upstream connection on every exit, cancellation included
                close = getattr(stream, "aclose", None)
                if callable(close):
                    await close()
        except Exception as exc:
            if logger.isEnabledFor(logging.WARNING):
                logger.warning(
                    "Backend %s failed: %s", backend.value, exc, exc_info=True
                )
            terminal = StreamEvent.failed(backend, _error_message(exc))
        else:
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Backend %s completed", backend.value)
            terminal = StreamEvent.completed(backend)

        await self._queue.put(terminal)

    async def _cancel_producers(self) -> None:
        pending = [task for task in self._tasks.values() if not task.done()]
        if not pending:
            return
        logger.info(
            "Consumer went away; cancelling %d running producer(s): %s",
            len(pending),
            ", ".join(task.get_name() for task in pending),
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


class StreamMultiplexer:
    """Creates multiplex sessions over a shared connector provider."""

    def __init__(
        self,
        connector_provider: ConnectorProvider,
        *,
        max_buffered_events: int = DEFAULT_MAX_BUFFERED_EVENTS,
    ) -> None:
        self._connector_provider = connector_provider
        self._max_buffered_events = max_buffered_events

    def open_session(
        self, resolution: CredentialResolution, prompt: str
    ) -> MultiplexSession:
        return MultiplexSession(
            prompt,
            resolution,
            self._connector_provider,
            max_buffered_events=self._max_buffered_events,
        )

    def run(
        self, resolution: CredentialResolution, prompt: str
    ) -> AsyncGenerator[StreamEvent, None]:
        """Open a session and return its event stream."""
        return self.open_session(resolution, prompt).events()
