"""Commands for the local bridge agent that drives the design tool."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from garment_forge.bridge.agent import BridgeAgent, BridgeScheduler
from garment_forge.bridge.client import WebServiceClient
from garment_forge.bridge.executor import ScriptExecutor
from garment_forge.bridge.script import render_script
from garment_forge.bridge.settings import BridgeSettings

bridge_app = typer.Typer(help="Run the bridge agent against the web service.")
console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _load_settings(env_file: Path | None) -> BridgeSettings:
    load_dotenv(dotenv_path=env_file)
    return BridgeSettings.from_env()


def _build(settings: BridgeSettings) -> tuple[WebServiceClient, BridgeAgent]:
    client = WebServiceClient(settings.web_app_url, token=settings.api_token)
    executor = ScriptExecutor(settings.tool_path, tool_app=settings.tool_app, timeout=settings.script_timeout)
    return client, BridgeAgent(client, executor, settings)


@bridge_app.command("run")
def run(
    env_file: Annotated[Path | None, typer.Option("--env-file", help="Path to a .env file.")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log at DEBUG level.")] = False,
) -> None:
    """Poll the web service for jobs until interrupted."""
    _configure_logging(verbose)
    settings = _load_settings(env_file)
    console.print(f"[green]Bridge polling {settings.web_app_url}[/green]")

    async def _run() -> None:
        client, agent = _build(settings)
        scheduler = BridgeScheduler(
            client, agent, poll_interval=settings.poll_interval, batch_size=settings.batch_size
        )
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):  # Windows
                loop.add_signal_handler(sig, scheduler.stop)
        async with client:
            await scheduler.run()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("Bridge stopped.")


@bridge_app.command("once")
def once(
    env_file: Annotated[Path | None, typer.Option("--env-file", help="Path to a .env file.")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log at DEBUG level.")] = False,
) -> None:
    """Claim and process a single batch, then exit."""
    _configure_logging(verbose)
    settings = _load_settings(env_file)

    async def _run() -> int:
        client, agent = _build(settings)
        async with client:
            scheduler = BridgeScheduler(
                client, agent, poll_interval=settings.poll_interval, batch_size=settings.batch_size
            )
            return await scheduler.tick()

    handled = asyncio.run(_run())
    console.print(f"Processed {handled} job(s).")


@bridge_app.command("render-script")
def render(
    template: Annotated[Path, typer.Argument(help="Local master document path.")],
    output_base: Annotated[Path, typer.Argument(help="Output path without extension.")],
    instructions: Annotated[Path, typer.Argument(help="JSON file with the job instructions.")],
) -> None:
    """Print the automation script for a job without running it."""
    try:
        payload = json.loads(instructions.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[red]Cannot read instructions: {exc}[/red]")
        raise typer.Exit(1) from exc
    typer.echo(render_script(template, output_base, payload))
