"""Typer application and CLI entry point for authrelay.

The root :data:`app` registers the built-in sub-commands (``auth``,
``call``, ``config``). :func:`main` is the console-script entry point
declared in ``pyproject.toml``; it maps
:class:`~authrelay.exceptions.AuthRelayError` to the error's exit code and
writes a crash log for anything unexpected.

See Also:
    :mod:`authrelay.config`: Configuration resolution used by
    :func:`main_callback`.
    :mod:`authrelay.output`: Output formatting initialised in
    :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from authrelay import __version__
from authrelay.commands.auth import auth_app
from authrelay.commands.call import call_command
from authrelay.commands.config import config_app
from authrelay.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="authrelay",
    help="Authenticated API client with single-flight token refresh.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

app.add_typer(auth_app, name="auth", help="Log in, log out and inspect credentials.")
app.add_typer(config_app, name="config", help="Configuration management.")
app.command("call")(call_command)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"authrelay {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="API root URL (overrides config and AUTHRELAY_BASE_URL)."
    ),
    namespace: Optional[str] = typer.Option(
        None, "--namespace", help="Credential namespace (overrides AUTHRELAY_NAMESPACE)."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output and request logging."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Resolves the effective configuration, installs the global
    :class:`~authrelay.output.OutputManager`, attaches the log handler and
    stores the resolved config in ``ctx.obj["config"]``. Entries already in
    ``ctx.obj`` (``storage``, ``transport``) are preserved.
    """
    from authrelay.config import resolve_config
    from authrelay.output import OutputFormat, OutputManager, configure_logging, set_output

    cli_format: Optional[str] = None
    if json_output:
        cli_format = "json"
    elif plain_output:
        cli_format = "plain"

    config = resolve_config(cli_base_url=base_url, cli_namespace=namespace, cli_format=cli_format)

    try:
        fmt = OutputFormat(config.output.format)
    except ValueError:
        fmt = OutputFormat.AUTO

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    configure_logging(output)

    obj = ctx.ensure_object(dict)
    obj["config"] = config
    obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback to the data directory and return its path."""
    from authrelay.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``authrelay`` console script.

    :class:`~authrelay.exceptions.AuthRelayError` exits with the error's
    ``exit_code``; any other exception produces a crash log and a generic
    failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app(standalone_mode=True)
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from authrelay.exceptions import AuthRelayError
        from authrelay.output import error

        if isinstance(exc, AuthRelayError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
