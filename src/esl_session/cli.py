"""Event Socket client CLI.

Connects to the Event Socket port directly. To reach a switch behind an SSH
tunnel, forward the port first (e.g. `ssh -L 8021:127.0.0.1:8021 host`) and
point --host/--port at the local end.

Usage:
    esl-session run --command "bgapi status" --until Event-Name=BACKGROUND_JOB
    esl-session originate 'sofia/internal/1000%127.0.0.1' '&park'
    esl-session api status
    esl-session config                     # Show effective configuration

    esl-session --config esl.yaml run      # Settings from YAML
    ESL_PASSWORD=secret esl-session run    # Settings from environment
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click
from pydantic import ValidationError

from .config import ClientConfig, CompletionRule, load_config
from .display import event_to_json, format_event
from .driver import EventLoopDriver
from .errors import AuthenticationFailed, EventSocketError, InvalidCommand, StreamClosed
from .protocol.commands import Command
from .protocol.events import ContentType, Event
from .session import Session
from .transport.base import open_tcp_transport

logger = logging.getLogger(__name__)

# Output format options
FORMAT_TEXT = "text"
FORMAT_JSON = "json"

EXIT_ERROR = 1
EXIT_AUTH_FAILED = 2

TERMINATORS = {"lf": "\n", "blank-line": "\n\n"}


def configure_logging(level: str) -> None:
    """Send all logging to stderr so stdout only carries events."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(stderr_handler)
    root_logger.setLevel(level.upper())


def parse_until(value: str | None) -> CompletionRule | None:
    if value is None:
        return None
    try:
        return CompletionRule.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--until") from e


def parse_commands(values: list[str], param_hint: str) -> list[Command]:
    try:
        return [Command(text=value) for value in values]
    except InvalidCommand as e:
        raise click.BadParameter(str(e), param_hint=param_hint) from e


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file with client settings",
)
@click.option("--host", default=None, help="Event Socket host")
@click.option("--port", type=int, default=None, help="Event Socket port")
@click.option("--password", default=None, help="Event Socket password")
@click.option("--read-timeout", type=float, default=None, help="Seconds to wait for each read")
@click.option(
    "--terminator",
    type=click.Choice(sorted(TERMINATORS)),
    default=None,
    help="Command line terminator (blank-line for servers that expect one)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice([FORMAT_TEXT, FORMAT_JSON]),
    default=FORMAT_TEXT,
    help="Event output format",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default="warning",
    help="Logging level (logs go to stderr)",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: str | None,
    host: str | None,
    port: int | None,
    password: str | None,
    read_timeout: float | None,
    terminator: str | None,
    output_format: str,
    log_level: str,
) -> None:
    """Event Socket client: authenticate, send commands, watch events."""
    configure_logging(log_level)
    try:
        config = load_config(
            config_path,
            host=host,
            port=port,
            password=password,
            read_timeout=read_timeout,
            command_terminator=TERMINATORS.get(terminator) if terminator else None,
        )
    except (ValidationError, ValueError) as e:
        raise click.UsageError(f"Invalid configuration: {e}") from e

    ctx.obj = {"config": config, "format": output_format}


def _echo_event(output_format: str, event: Event, index: int) -> None:
    if output_format == FORMAT_JSON:
        click.echo(event_to_json(event))
    else:
        click.echo(format_event(event, index))
        click.echo()


def _run_driver(
    ctx: click.Context,
    config: ClientConfig,
    commands: list[Command | str],
    completion: CompletionRule | None,
) -> None:
    output_format = ctx.obj["format"]
    driver = EventLoopDriver.from_config(
        config,
        extra_commands=commands,
        completion=completion.matches if completion else None,
    )

    def on_event(event: Event) -> None:
        _echo_event(output_format, event, driver.events_seen)

    try:
        result = asyncio.run(driver.run(on_event))
    except AuthenticationFailed as e:
        click.echo(f"Authentication failed: {e}", err=True)
        ctx.exit(EXIT_AUTH_FAILED)
    except StreamClosed as e:
        if driver.config.completion is None:
            click.echo(f"Server closed the connection after {driver.events_seen} events", err=True)
            return
        click.echo(f"Error ({e.stage}): {e}", err=True)
        ctx.exit(EXIT_ERROR)
    except EventSocketError as e:
        click.echo(f"Error ({e.stage}): {e}", err=True)
        ctx.exit(EXIT_ERROR)
    else:
        click.echo(f"Completed after {result.events_seen} events", err=True)


@main.command("run")
@click.option("--subscribe", default=None, help="Subscription command (default from config)")
@click.option("--command", "commands", multiple=True, help="Command to send (repeatable)")
@click.option("--until", default=None, help="Stop at the first event with HEADER=VALUE")
@click.pass_context
def run_cmd(
    ctx: click.Context,
    subscribe: str | None,
    commands: tuple[str, ...],
    until: str | None,
) -> None:
    """Subscribe, send commands, and print events until completion."""
    config: ClientConfig = ctx.obj["config"]
    if subscribe is not None:
        [subscription] = parse_commands([subscribe], "--subscribe")
        config = config.model_copy(update={"subscription": subscription.text})
    completion = parse_until(until) or config.completion
    _run_driver(ctx, config, parse_commands(list(commands), "--command"), completion)


@main.command("originate")
@click.argument("destination")
@click.argument("application")
@click.option(
    "--until",
    default="Answer-State=hangup",
    show_default=True,
    help="Stop at the first event with HEADER=VALUE",
)
@click.pass_context
def originate_cmd(ctx: click.Context, destination: str, application: str, until: str) -> None:
    """Originate a call in the background and follow it until hangup."""
    config: ClientConfig = ctx.obj["config"]
    config = config.model_copy(update={"action": None})
    try:
        originate = Command.originate(destination, application)
    except InvalidCommand as e:
        raise click.BadParameter(str(e), param_hint="DESTINATION/APPLICATION") from e
    _run_driver(ctx, config, [originate], parse_until(until))


@main.command("api")
@click.argument("command", nargs=-1, required=True)
@click.pass_context
def api_cmd(ctx: click.Context, command: tuple[str, ...]) -> None:
    """Run an API command and print its response body."""
    config: ClientConfig = ctx.obj["config"]
    [api] = parse_commands([f"api {' '.join(command)}"], "COMMAND")
    try:
        response = asyncio.run(_api_call(config, api))
    except AuthenticationFailed as e:
        click.echo(f"Authentication failed: {e}", err=True)
        ctx.exit(EXIT_AUTH_FAILED)
    except EventSocketError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_ERROR)

    click.echo(response.body_text.rstrip("\n"))
    if response.is_error_reply():
        ctx.exit(EXIT_ERROR)


async def _api_call(config: ClientConfig, command: Command) -> Event:
    """Send an `api` command and wait for its api/response frame."""
    stream = await open_tcp_transport(
        config.host,
        config.port,
        connect_timeout=config.connect_timeout,
        read_timeout=config.read_timeout,
    )
    session = await Session.connect(
        stream,
        config.password,
        command_terminator=config.command_terminator,
        expand_event_bodies=config.expand_event_bodies,
    )
    async with session:
        await session.send(command)
        async for event in session.events():
            if event.content_type == ContentType.API_RESPONSE.value:
                return event
            logger.debug(f"Skipping {event.content_type or 'event'} while waiting for api response")
    raise StreamClosed("Session ended without an api response")


@main.command("config")
@click.pass_context
def config_cmd(ctx: click.Context) -> None:
    """Show the effective configuration (password masked)."""
    config: ClientConfig = ctx.obj["config"]
    data: dict[str, Any] = config.redacted()
    click.echo(json.dumps(data, indent=2))


if __name__ == "__main__":
    main()
