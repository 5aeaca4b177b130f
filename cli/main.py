# cli/main.py
"""Main CLI entry point for Workflow Compiler."""

import click

from workflow_compiler import __version__
from workflow_compiler.config import get_settings
from workflow_compiler.log import configure_logging


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Log compiler events to stderr')
@click.pass_context
def cli(ctx, verbose: bool):
    """Workflow Compiler CLI - turn canvas workflow graphs into Agents SDK code."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose

    settings = get_settings()
    configure_logging(level='DEBUG' if verbose else settings.log_level, json=settings.log_json)


def register_commands():
    """Register all CLI commands."""
    from cli.commands.compile import compile_command, structure, validate
    cli.add_command(compile_command)
    cli.add_command(validate)
    cli.add_command(structure)


register_commands()


if __name__ == '__main__':
    cli()
