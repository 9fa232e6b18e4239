"""
Request lifecycle for streamed queries.

``StreamController`` turns one submitted query into an ordered sequence of
``StreamEvent`` values: ``START``, any number of ``CHUNK`` events, then
exactly one ``DONE`` or ``ERROR``. Each ``submit`` opens a new session; every
event carries the id of the session that produced it, so consumers can drop
output from a query that has since been superseded.

State machine::

    IDLE -> REQUESTING -> STREAMING -> (COMPLETED | FAILED) -> IDLE
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from contextlib import aclosing
from dataclasses import dataclass

from streamchat.logging_utils import ContextualLogger, StreamErrorHandler

from .client import StreamingLLMClient
from .models import StreamRequest
from .streaming.models import StreamEvent, StreamEventType, StreamPhase


@dataclass(frozen=True)
class StreamCallbacks:
    """Lifecycle callbacks of the UI layer."""
    on_start: Callable[[], None]
    on_chunk: Callable[[str], None]
    on_error: Callable[[str], None]
    on_done: Callable[[], None] | None = None


class StreamController:
    """
    Single-flight controller for streamed completion requests.

    Only the most recently submitted session is current. A superseded
    session never touches ``loading`` or ``phase``; with
    ``abort_superseded`` it also stops reading at its next fragment and
    emits nothing more.
    """

    def __init__(
        self,
        client: StreamingLLMClient,
        *,
        url: str,
        model: str,
        bearer_token: str | None = None,
        abort_superseded: bool = True,
    ) -> None:
        self.client = client
        self.url = url
        self.model = model
        self.bearer_token = bearer_token
        self.abort_superseded = abort_superseded

        self.phase = StreamPhase.IDLE
        self.loading = False
        self.last_outcome: StreamPhase | None = None
        self._session = 0
        self._active = False
        self._logger = ContextualLogger({"model": model})

    @property
    def current_session(self) -> int:
        return self._session

    def is_current(self, event: StreamEvent) -> bool:
        return event.session_id == self._session

    def build_request(self, query: str) -> StreamRequest:
        return StreamRequest(
            url=self.url,
            model=self.model,
            query=query,
            bearer_token=self.bearer_token,
        )

    async def submit(self, query: str) -> AsyncGenerator[StreamEvent]:
        """Run one query and yield its lifecycle events in order."""
        session_id = self._begin_session()
        log = self._logger.bind(session_id=session_id)

        try:
            yield StreamEvent(session_id, StreamEventType.START)

            chunks = 0
            try:
                async with aclosing(self._fragments(session_id, query)) as fragments:
                    async for text in fragments:
                        chunks += 1
                        yield StreamEvent(session_id, StreamEventType.CHUNK, text=text)
            except Exception as e:
                message = StreamErrorHandler.report(
                    e,
                    "stream_completion",
                    {"session_id": session_id, "model": self.model, "chunks": chunks},
                )
                outcome = StreamPhase.FAILED
                terminal = StreamEvent(session_id, StreamEventType.ERROR, error=message)
            else:
                outcome = StreamPhase.COMPLETED
                terminal = StreamEvent(session_id, StreamEventType.DONE)

            if self._should_abort(session_id):
                log.info("Superseded stream abandoned", chunks=chunks)
                return

            self._finish(session_id, outcome)
            log.debug("Stream finished", outcome=outcome.value, chunks=chunks)
            yield terminal

        finally:
            # Closed or cancelled before a terminal event.
            self._finish(session_id, None)

    async def run(self, query: str, callbacks: StreamCallbacks) -> None:
        """Drive ``submit`` and route current-session events to callbacks."""
        async with aclosing(self.submit(query)) as events:
            async for event in events:
                if not self.is_current(event):
                    continue
                if event.type is StreamEventType.START:
                    callbacks.on_start()
                elif event.type is StreamEventType.CHUNK:
                    callbacks.on_chunk(event.text)
                elif event.type is StreamEventType.ERROR:
                    callbacks.on_error(event.error or "")
                elif callbacks.on_done is not None:
                    callbacks.on_done()

    async def _fragments(self, session_id: int, query: str) -> AsyncGenerator[str]:
        request = self.build_request(query)
        async with self.client.open_stream(request) as fragments:
            self._set_phase(session_id, StreamPhase.STREAMING)
            async for text in fragments:
                if self._should_abort(session_id):
                    return
                yield text

    def _begin_session(self) -> int:
        if self._active:
            self._logger.bind(session_id=self._session).info(
                "Query superseded by new submission"
            )
        self._session += 1
        self._active = True
        self.loading = True
        self.last_outcome = None
        self._set_phase(self._session, StreamPhase.REQUESTING)
        return self._session

    def _should_abort(self, session_id: int) -> bool:
        return self.abort_superseded and session_id != self._session

    def _set_phase(self, session_id: int, phase: StreamPhase) -> None:
        if session_id != self._session:
            return
        self._logger.debug(
            "Stream phase changed",
            session_id=session_id,
            previous=self.phase.value,
            phase=phase.value,
        )
        self.phase = phase

    def _finish(self, session_id: int, outcome: StreamPhase | None) -> None:
        if session_id != self._session or not self._active:
            return
        if outcome is not None:
            self._set_phase(session_id, outcome)
        self.last_outcome = outcome
        self._active = False
        self.loading = False
        self._set_phase(session_id, StreamPhase.IDLE)
