"""Command-line entry point for roundtrip."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from roundtrip.config import Config, set_config
from roundtrip.exceptions import RoundtripError
from roundtrip.logging import configure_logging, get_logger
from roundtrip.session import ResponsesSession
from roundtrip.tools import SubprocessShellHandler
from roundtrip.transport import create_transport
from roundtrip.types.events import OutputItemDelta, OutputItemDone, ResponseEvent
from roundtrip.types.items import FunctionCall, LocalShellCall, ResponseItem
from roundtrip.types.response import Response

log = get_logger(__name__)

app = typer.Typer(help="roundtrip - drive tool-calling conversations against a responses API")
console = Console()
err_console = Console(stderr=True)


def _describe_call(item: ResponseItem) -> str:
    if isinstance(item, LocalShellCall):
        return " ".join(item.action.command)
    if isinstance(item, FunctionCall):
        return item.arguments
    return item.type


def _print_event(event: ResponseEvent) -> None:
    if isinstance(event, OutputItemDelta) and event.kind == "text":
        console.print(event.delta, end="", markup=False, highlight=False)
    elif isinstance(event, OutputItemDone) and getattr(event.item, "requires_output", False):
        console.print()
        console.print(f"[cyan]tool call[/cyan] {event.item.tool_key}: {_describe_call(event.item)}")  # type: ignore[attr-defined]


def _print_summary(session: ResponsesSession, response: Response, streamed: bool) -> None:
    if streamed:
        console.print()
    if response.output_text and not streamed:
        console.print(Panel(response.output_text, title="answer", border_style="green"))

    table = Table(title="rounds", show_header=True)
    table.add_column("#", justify="right")
    table.add_column("response")
    table.add_column("status")
    table.add_column("items", justify="right")
    table.add_column("calls", justify="right")
    for index, item in enumerate(session.responses, start=1):
        table.add_row(str(index), item.id, item.status, str(len(item.output)), str(len(item.tool_calls)))
    err_console.print(table)


async def _ask(prompt: str, stream: bool, shell: bool) -> Response:
    tools = [SubprocessShellHandler()] if shell else []
    transport = create_transport()
    session = ResponsesSession(input=prompt, tools=tools, transport=transport, stream=stream)
    if stream:
        session.subscribe(_print_event)
    try:
        response = await session.run()
    finally:
        await transport.close()
    _print_summary(session, response, streamed=stream)
    return response


def ask(
    prompt: str,
    model: str = "",
    stream: bool | None = None,
    store: bool | None = None,
    shell: bool = False,
    config: str = "",
    verbose: bool = False,
) -> None:
    """Send a prompt and run rounds until the model stops calling tools."""
    if config:
        try:
            cfg = Config.from_yaml(Path(config))
        except Exception as e:
            err_console.print(f"[red]Failed to load config:[/red] {e}")
            raise typer.Exit(code=2)
    else:
        cfg = Config.load()

    if verbose:
        cfg.logging.level = "DEBUG"
    if model:
        cfg.session.model = model
    if stream is not None:
        cfg.session.stream = stream
    if store is not None:
        cfg.session.store = store

    set_config(cfg)
    configure_logging()

    try:
        asyncio.run(_ask(prompt, stream=cfg.session.stream, shell=shell))
    except KeyboardInterrupt:
        log.info("Interrupted")
        sys.exit(130)
    except RoundtripError as e:
        err_console.print(f"[red]{type(e).__name__}:[/red] {e}")
        sys.exit(1)


def version() -> None:
    """Show version information."""
    from roundtrip import __version__
    console.print(f"roundtrip v{__version__}")


@app.command("ask")
def ask_command(
    prompt: str = typer.Argument(..., help="User prompt"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    stream: Optional[bool] = typer.Option(None, "--stream/--no-stream", help="Stream events"),
    store: Optional[bool] = typer.Option(None, "--store/--no-store", help="Keep conversation state server-side"),
    shell: bool = typer.Option(False, "--shell", help="Register the local shell tool"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    ask(prompt, model=model, stream=stream, store=store, shell=shell, config=config, verbose=verbose)


@app.command("version")
def version_command() -> None:
    version()


if __name__ == "__main__":
    app()
