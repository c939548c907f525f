"""Command line entry for the bridge.

:func:`build_cli` wraps an :class:`~showerguard._app.App` in a one-command
Typer app.  Flags override the corresponding settings after the
environment and ``.env`` file have been read; the process exits with one
of the ``EXIT_*`` codes below.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING, Annotated, get_args

import typer
from pydantic import ValidationError

from showerguard._settings import LoggingSettings

if TYPE_CHECKING:
    from showerguard._app import App
    from showerguard._settings import Settings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUNTIME_ERROR = 3


def _literal_choices(field: str) -> tuple[str, ...]:
    return get_args(LoggingSettings.model_fields[field].annotation)


def _choice(
    field: str,
    normalise: Callable[[str], str],
) -> Callable[[str | None], str | None]:
    """Option callback that normalises a value and checks it is allowed."""
    allowed = _literal_choices(field)

    def check(value: str | None) -> str | None:
        if value is None:
            return None
        value = normalise(value)
        if value not in allowed:
            raise typer.BadParameter(f"{value!r} is not one of {', '.join(allowed)}")
        return value

    return check


def _load_settings(
    app: App,
    env_file: str,
    log_level: str | None,
    log_format: str | None,
) -> Settings:
    """Read settings, then layer the logging flags on top."""
    try:
        settings: Settings = app._settings_class(_env_file=env_file)  # type: ignore[call-arg]
    except ValidationError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise SystemExit(EXIT_CONFIG_ERROR) from exc

    overrides = {
        key: value
        for key, value in (("level", log_level), ("format", log_format))
        if value is not None
    }
    if overrides:
        settings.logging = settings.logging.model_copy(update=overrides)
    return settings


def build_cli(app: App) -> typer.Typer:
    """Typer app that runs *app* until it is signalled to stop."""
    cli = typer.Typer(help=f"{app._name} v{app._version}: {app._description}")

    @cli.callback(invoke_without_command=True)
    def main(
        show_version: Annotated[
            bool,
            typer.Option("--version", is_eager=True, help="Print version and exit."),
        ] = False,
        dry_run: Annotated[
            bool,
            typer.Option(
                "--dry-run",
                help="Log hot water commands instead of sending them.",
            ),
        ] = False,
        log_level: Annotated[
            str | None,
            typer.Option(
                "--log-level",
                callback=_choice("level", str.upper),
                help="Override logging.level.",
            ),
        ] = None,
        log_format: Annotated[
            str | None,
            typer.Option(
                "--log-format",
                callback=_choice("format", str.lower),
                help="Override logging.format (json or text).",
            ),
        ] = None,
        env_file: Annotated[
            str,
            typer.Option("--env-file", help="dotenv file to read settings from."),
        ] = ".env",
    ) -> None:
        if show_version:
            typer.echo(f"{app._name} v{app._version}")
            raise typer.Exit

        if dry_run:
            app._dry_run = True
        settings = _load_settings(app, env_file, log_level, log_format)

        try:
            with contextlib.suppress(KeyboardInterrupt):
                asyncio.run(app._run_async(settings=settings))
        except SystemExit:
            raise
        except Exception as exc:
            logger.error("Bridge stopped on error: %s", exc)
            sys.exit(EXIT_RUNTIME_ERROR)

    return cli
