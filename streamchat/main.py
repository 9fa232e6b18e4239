"""
Terminal front end for the streamchat search widget.

``ask`` streams a single answer; ``chat`` keeps reading queries from stdin,
and each new query supersedes the one still streaming.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
import threading

import structlog
import typer
from rich.console import Console
from rich.text import Text

from streamchat.config import Configuration, WidgetSettings
from streamchat.llm.client import StreamingLLMClient
from streamchat.llm.controller import StreamController
from streamchat.logging_utils import configure_logging, log_operation, operation_context
from streamchat.widget import SearchWidget, StreamState

MISSING_TOKEN = "please include a ?token=XXX query param"
QUIT_COMMANDS = (":q", "quit", "exit")

console = Console()
logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="streamchat",
    help="Ask questions against a streaming chat completion endpoint.",
    no_args_is_help=True,
)


class TerminalRenderer:
    """Prints the reply incrementally as the widget state grows."""

    def __init__(self, output: Console) -> None:
        self.output = output
        self._printed = 0

    def __call__(self, step: str, state: StreamState) -> None:
        if step == "start":
            if self._printed:
                self.output.print()
            self._printed = 0
        elif step == "chunk":
            self.output.print(
                state.reply[self._printed:],
                end="",
                markup=False,
                highlight=False,
                soft_wrap=True,
            )
            self._printed = len(state.reply)
        elif step == "error":
            if self._printed:
                self.output.print()
            self.output.print(Text(state.error, style="bold red"))
            self._printed = 0
        elif step == "done":
            self.output.print()
            self._printed = 0


def load_settings(
    config: Configuration,
    *,
    url: str | None = None,
    model: str | None = None,
    token: str | None = None,
    query_string: str | None = None,
) -> WidgetSettings:
    """YAML and env first, then the query string, then explicit options."""
    settings = config.get_widget_settings()
    if query_string:
        settings = settings.with_query_string(query_string)
    return settings.with_overrides(url=url, model=model, bearer_token=token)


def build_widget(
    config: Configuration,
    settings: WidgetSettings,
    client: StreamingLLMClient,
) -> SearchWidget:
    streaming_config = config.get_streaming_config()
    controller = StreamController(
        client,
        url=settings.url,
        model=settings.model,
        bearer_token=settings.bearer_token,
        abort_superseded=streaming_config["abort_superseded"],
    )
    return SearchWidget(controller, listeners=[TerminalRenderer(console)])


def _prepare(
    config_path: str | None,
    url: str | None,
    model: str | None,
    token: str | None,
    query_string: str | None,
    allow_anonymous: bool,
) -> tuple[Configuration, WidgetSettings]:
    try:
        config = Configuration(config_path)
        configure_logging(**config.get_logging_config())
        settings = load_settings(
            config, url=url, model=model, token=token, query_string=query_string
        )
    except (OSError, ValueError) as e:
        console.print(Text(f"Configuration error: {e}", style="bold red"))
        raise typer.Exit(2) from None

    if not settings.bearer_token and not allow_anonymous:
        console.print(Text(MISSING_TOKEN, style="bold red"))
        raise typer.Exit(2)

    return config, settings


@log_operation("ask_query")
async def run_ask(config: Configuration, settings: WidgetSettings, query: str) -> StreamState:
    http_config = config.get_http_client_config()
    async with StreamingLLMClient.from_config(
        http_config, config.get_streaming_config()
    ) as client:
        widget = build_widget(config, settings, client)
        return await widget.ask(query)


def _start_stdin_reader(
    loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[str | None]
) -> None:
    def read() -> None:
        for line in sys.stdin:
            loop.call_soon_threadsafe(queue.put_nowait, line)
        loop.call_soon_threadsafe(queue.put_nowait, None)

    threading.Thread(target=read, name="stdin-reader", daemon=True).start()


async def chat_loop(widget: SearchWidget, queue: asyncio.Queue[str | None]) -> None:
    """Submit every line read from stdin until EOF or a quit command."""
    while True:
        line = await queue.get()
        if line is None:
            await widget.wait_idle()
            return
        query = line.strip()
        if query in QUIT_COMMANDS:
            return
        if query:
            widget.ask_in_background(query)


async def run_chat(config: Configuration, settings: WidgetSettings) -> None:
    """Interactive loop with graceful shutdown on SIGINT/SIGTERM."""
    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Received shutdown signal, initiating graceful shutdown")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler)

    queue: asyncio.Queue[str | None] = asyncio.Queue()
    _start_stdin_reader(loop, queue)

    async with operation_context("chat_session", context={"model": settings.model}):
        http_config = config.get_http_client_config()
        async with StreamingLLMClient.from_config(
            http_config, config.get_streaming_config()
        ) as client:
            widget = build_widget(config, settings, client)
            console.print(
                Text(f"{settings.model} @ {settings.url} (type :q to quit)", style="dim")
            )
            chat_task = asyncio.create_task(chat_loop(widget, queue))
            try:
                done, pending = await asyncio.wait(
                    [chat_task, asyncio.create_task(shutdown_event.wait())],
                    return_when=asyncio.FIRST_COMPLETED,
                )
                for task in pending:
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
                for task in done:
                    if task is chat_task and task.exception() is not None:
                        raise task.exception()
            finally:
                await widget.aclose()
                logger.info("Chat session closed")


@app.command()
def ask(
    query: str = typer.Argument(..., help="Question to send to the endpoint"),
    url: str = typer.Option(None, "--url", help="Chat completion endpoint URL"),
    model: str = typer.Option(None, "--model", "-m", help="Model identifier"),
    token: str = typer.Option(None, "--token", "-t", help="Bearer token, sent verbatim"),
    query_string: str = typer.Option(
        None, "--query-string", "-q",
        help="Host page style settings, e.g. '?url=...&model=...&token=...'",
    ),
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    allow_anonymous: bool = typer.Option(
        False, "--allow-anonymous", help="Send requests without a bearer token",
    ),
) -> None:
    """Stream one answer to stdout."""
    config, settings = _prepare(
        config_path, url, model, token, query_string, allow_anonymous
    )
    state = asyncio.run(run_ask(config, settings, query))
    if state.error:
        raise typer.Exit(1)


@app.command()
def chat(
    url: str = typer.Option(None, "--url", help="Chat completion endpoint URL"),
    model: str = typer.Option(None, "--model", "-m", help="Model identifier"),
    token: str = typer.Option(None, "--token", "-t", help="Bearer token, sent verbatim"),
    query_string: str = typer.Option(
        None, "--query-string", "-q",
        help="Host page style settings, e.g. '?url=...&model=...&token=...'",
    ),
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    allow_anonymous: bool = typer.Option(
        False, "--allow-anonymous", help="Send requests without a bearer token",
    ),
) -> None:
    """Read queries from stdin; a new query supersedes the running one."""
    config, settings = _prepare(
        config_path, url, model, token, query_string, allow_anonymous
    )
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run_chat(config, settings))


if __name__ == "__main__":
    app()
