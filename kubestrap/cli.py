import importlib
import logging
import sys
from types import ModuleType
from typing import List, Optional

import click
import typer

from kubestrap.commands import app
from kubestrap.config import Config

PROG_NAME = "kubestrap"


# Configure logging
def setup_logging(debug_mode: bool = False):
    """Configure logging based on debug mode."""
    log_level = logging.DEBUG if debug_mode else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=Config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler()
        ]
    )
    # Disable debug logging for noisy libraries
    if not debug_mode:
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('kubernetes').setLevel(logging.WARNING)


def click_core(command: click.Command) -> ModuleType:
    """The click core module a command class is built on.

    Recent typer releases ship their own copy of click, whose Context and
    UsageError are distinct from the top-level click package.
    """
    for cls in type(command).__mro__:
        if cls.__name__ == "Command":
            return importlib.import_module(cls.__module__)
    return click.core


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point. Returns the process exit code."""
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    command = typer.main.get_command(app)
    core = click_core(command)

    if not argv:
        with core.Context(command, info_name=PROG_NAME) as ctx:
            # Rich-formatted help is printed directly and comes back empty
            help_text = command.get_help(ctx)
        if help_text:
            typer.echo(help_text)
        return 0

    setup_logging('--debug' in argv or '-d' in argv)
    try:
        result = command.main(args=argv, prog_name=PROG_NAME, standalone_mode=False)
    except core.UsageError as e:
        # Unknown or malformed options are configuration errors
        if e.ctx is not None:
            typer.echo(e.ctx.get_usage(), err=True)
        typer.echo(f"❌ {e.format_message()}", err=True)
        return 1
    return result or 0


if __name__ == "__main__":
    sys.exit(main())
