"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from ltfw import __version__


@click.group()
@click.version_option(version=__version__, prog_name="ltfw")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    envvar="LTFW_CONFIG",
    help="Config file (default: ./config.toml, then ~/.config/ltfw, then /etc/ltfw).",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress output.")
@click.option("--verbose", "-v", is_flag=True, help="Comprehensive output.")
@click.pass_context
def main(
    ctx: click.Context, config_path: str | None, quiet: bool, verbose: bool
) -> None:
    """ltfw — Light Touch Firewall.

    Blocks every listening socket that is not explicitly allowed.
    """
    if quiet and verbose:
        raise click.UsageError("--quiet and --verbose are mutually exclusive")

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["quiet"] = quiet
    ctx.obj["verbose"] = verbose

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from ltfw.cli.run import run  # noqa: F811

    main.add_command(run)


_register_commands()
