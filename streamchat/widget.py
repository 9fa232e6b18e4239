"""
UI-side state for the search widget.

``StreamState`` is what a front end renders: the loading flag, the reply
accumulated so far and the last error. ``SearchWidget`` folds the
controller's events into it, dropping events of superseded sessions.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable

import structlog
from pydantic import BaseModel

from streamchat.llm.controller import StreamController
from streamchat.llm.streaming.models import StreamEvent, StreamEventType

logger = structlog.get_logger(__name__)

Listener = Callable[[str, "StreamState"], None]


class StreamState(BaseModel):
    """Render state of one widget."""
    loading: bool = False
    reply: str = ""
    error: str = ""
    session_id: int = 0

    def on_start(self) -> None:
        self.loading = True
        self.reply = ""
        self.error = ""

    def on_chunk(self, text: str) -> None:
        self.reply += text

    def on_error(self, message: str) -> None:
        # The partial reply stays visible next to the error.
        self.error = message
        self.loading = False

    def on_done(self) -> None:
        self.loading = False

    def apply(self, event: StreamEvent) -> bool:
        """
        Fold one controller event into the state.

        A ``START`` from a newer session adopts it; events of any other
        session are ignored. Returns whether the state changed.
        """
        if event.type is StreamEventType.START and event.session_id > self.session_id:
            self.session_id = event.session_id
        elif event.session_id != self.session_id:
            return False

        if event.type is StreamEventType.START:
            self.on_start()
        elif event.type is StreamEventType.CHUNK:
            self.on_chunk(event.text)
        elif event.type is StreamEventType.ERROR:
            self.on_error(event.error or "")
        else:
            self.on_done()
        return True


class SearchWidget:
    """
    Binds a ``StreamController`` to a ``StreamState``.

    Listeners are called after every state change with the name of the
    lifecycle step (``start``, ``chunk``, ``error``, ``done``) and the state.
    """

    def __init__(
        self,
        controller: StreamController,
        state: StreamState | None = None,
        listeners: list[Listener] | None = None,
    ) -> None:
        self.controller = controller
        self.state = state or StreamState()
        self.listeners: list[Listener] = list(listeners or [])
        self._tasks: set[asyncio.Task] = set()

    def add_listener(self, listener: Listener) -> None:
        self.listeners.append(listener)

    async def ask(self, query: str) -> StreamState:
        """Run one query to completion and return the resulting state."""
        query = query.strip()
        if not query:
            return self.state

        logger.debug("Query submitted", query_chars=len(query))
        async with contextlib.aclosing(self.controller.submit(query)) as events:
            async for event in events:
                if not self.controller.is_current(event):
                    continue
                if self.state.apply(event):
                    for listener in self.listeners:
                        listener(event.type.value, self.state)
        return self.state

    def ask_in_background(self, query: str) -> asyncio.Task:
        """Start ``ask`` as a task; a later ask supersedes this one."""
        task = asyncio.create_task(self.ask(query))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every background ask to settle."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            with contextlib.suppress(asyncio.CancelledError):
                await task
