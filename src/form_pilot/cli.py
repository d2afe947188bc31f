"""Command line interface for form-pilot."""

from __future__ import annotations

import logging
import uuid
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console

from .config import AppConfig, load_config
from .errors import FormPilotError, ToolLoopExceeded
from .factory import build_history, build_llm, build_notifier, build_orchestrator, build_registry

app = typer.Typer(help="Form Pilot: chat with an agent that fills web forms in a real browser")

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to YAML configuration."),
]
EnvFileOption = Annotated[
    Optional[Path],
    typer.Option("--env-file", help="Path to an .env file with default configuration values."),
]


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging before executing any command."""

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command()
def version() -> None:
    """Print the package version."""

    try:
        typer.echo(get_version("form-pilot"))
    except PackageNotFoundError:  # pragma: no cover - when running from source tree
        typer.echo("0.0.0")


@app.command()
def serve(
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    host: Annotated[Optional[str], typer.Option("--host", help="Binding address.")] = None,
    port: Annotated[Optional[int], typer.Option("--port", help="HTTP port.")] = None,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on code changes.")] = False,
) -> None:
    """Run the HTTP chat service."""

    import uvicorn

    from .service import app as service_app

    config = load_config(config_path, env_file=env_file)
    service_app.configure(config)
    uvicorn.run(
        service_app.app,
        host=host or config.service.host,
        port=port or config.service.port,
        reload=reload,
    )


@app.command()
def chat(
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    session_id: Annotated[
        Optional[str],
        typer.Option("--session", help="Session identifier; a random one is used when omitted."),
    ] = None,
    llm_provider: Annotated[Optional[str], typer.Option("--llm-provider", help="LLM provider to use.")] = None,
    model: Annotated[Optional[str], typer.Option("--model", help="LLM model identifier.")] = None,
    api_key: Annotated[Optional[str], typer.Option("--api-key", help="API key for the LLM provider.")] = None,
    headless: Annotated[
        Optional[bool],
        typer.Option("--headless/--headed", help="Run the browser in headless mode (or headed)."),
    ] = None,
) -> None:
    """Chat with an agent session from the terminal.

    Type ``/continue`` after solving a verification challenge and ``/quit`` to exit.
    """

    overrides: dict[str, Any] = {}
    if any([llm_provider, model, api_key]):
        overrides.setdefault("llm", {})
        if llm_provider:
            overrides["llm"]["provider"] = llm_provider
        if model:
            overrides["llm"]["model"] = model
        if api_key:
            overrides["llm"]["api_key"] = api_key
    if headless is not None:
        overrides["browser"] = {"headless": headless}

    config = load_config(config_path, env_file=env_file, **overrides)
    _chat_loop(config, session_id or uuid.uuid4().hex[:8], Console())


def _chat_loop(config: AppConfig, session_id: str, console: Console) -> None:
    history = build_history(config.history)
    orchestrator = build_orchestrator(
        config,
        llm=build_llm(config.llm),
        history=history,
        notifier=build_notifier(config.notifications),
    )
    registry = build_registry(config)
    console.print(f"Session {session_id}. Type /continue to resume after a pause, /quit to exit.")
    try:
        while True:
            try:
                line = console.input("[bold]you>[/bold] ").strip()
            except EOFError:
                break
            if not line:
                continue
            if line == "/quit":
                break
            try:
                session = registry.get_or_create(session_id)
                if line == "/continue":
                    outcome = orchestrator.resume(session)
                else:
                    outcome = orchestrator.handle_message(session, line)
            except ToolLoopExceeded as exc:
                console.print(f"Stopped after {exc.iterations} model turns without a final answer.", style="red")
                continue
            except FormPilotError as exc:
                console.print(f"{exc.error_type}: {exc}", style="red", markup=False)
                continue
            for entry in outcome.tool_trace:
                status = "ok" if entry.result.success else "failed"
                console.print(f"  {entry.name} [{status}] {entry.result.message}", style="dim", markup=False)
            console.print(outcome.reply, markup=False)
            if outcome.paused:
                console.print("Paused for human verification. Type /continue when done.", style="yellow")
    finally:
        registry.close_all()
        orchestrator.close()


if __name__ == "__main__":
    app()
