"""Config commands -- view and modify global configuration.

Provides the ``authrelay config`` sub-command group. Settings live in
``config.json`` under the authrelay config directory and hold the
:class:`~authrelay.models.ClientConfig` defaults and the output format.
"""

from __future__ import annotations

import typer

from authrelay.commands import get_config
from authrelay.exceptions import ConfigError
from authrelay.output import format_response, info, success


config_app = typer.Typer(no_args_is_help=True)

_OUTPUT_FORMATS = ("auto", "json", "plain", "rich")


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    effective: bool = typer.Option(
        False, "--effective", help="Show the merged configuration, including env and project overrides."
    ),
) -> None:
    """Show the stored (or effective) configuration.

    Example::

        authrelay config show
        authrelay --json config show --effective
    """
    from authrelay.config import get_config_dir, load_global_config

    config = get_config(ctx) if effective else load_global_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key, e.g. 'client.base_url' or 'output.format'."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Client keys are validated against
    :class:`~authrelay.models.ClientConfig`, so ``client.timeout abc`` is
    rejected before anything is written.

    Example::

        authrelay config set client.base_url https://api.example.com
        authrelay config set client.expiry_margin 60
        authrelay config set output.format json
    """
    from authrelay.config import load_global_config, save_global_config, set_client_option

    config = load_global_config()
    section, _, name = key.partition(".")
    if section == "client" and name:
        config = set_client_option(config, name, value)
    elif key == "output.format":
        if value not in _OUTPUT_FORMATS:
            raise ConfigError(f"Invalid output format '{value}'. Use one of: {', '.join(_OUTPUT_FORMATS)}")
        config.output.format = value
    else:
        raise ConfigError(f"Unknown config key: {key}")

    save_global_config(config)
    success(f"Set {key} = {value}")
