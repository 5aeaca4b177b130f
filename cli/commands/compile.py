# cli/commands/compile.py
"""Compile, validate and inspect workflow graph documents."""

import json
import sys
from pathlib import Path
from typing import Any, Optional

import click
import yaml

from workflow_compiler import CompilerError, compile_workflow
from workflow_compiler.compiler import check_workflow, structure_workflow


def load_document(path: Path) -> Any:
    """Read a workflow document; YAML files are decoded, JSON is passed through."""
    text = path.read_text(encoding='utf-8')
    if path.suffix.lower() in ('.yaml', '.yml'):
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            click.echo(f"❌ Invalid YAML in {path}: {e}", err=True)
            sys.exit(1)
    return text


# ============================================================================
# Commands
# ============================================================================

@click.command(name='compile')
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path),
              help='Write generated code here instead of stdout')
@click.option('--json', 'as_json', is_flag=True, help='Print the {code, error, warnings} result as JSON')
def compile_command(input_file: Path, output: Optional[Path], as_json: bool):
    """Compile a workflow graph into Python source."""
    result = compile_workflow(load_document(input_file))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    for warning in result.warnings:
        click.echo(f"⚠️  {warning}", err=True)

    if not result.ok:
        click.echo(f"❌ {result.error}", err=True)
        sys.exit(1)

    if output:
        output.write_text(result.code, encoding='utf-8')
        click.echo(f"✅ Generated {output}", err=True)
    else:
        click.echo(result.code, nl=False)


@click.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(input_file: Path):
    """Check a workflow graph without generating code."""
    try:
        report = check_workflow(load_document(input_file))
    except CompilerError as e:
        click.echo(f"❌ {e.describe()}", err=True)
        sys.exit(1)

    for warning in report.warnings:
        click.echo(f"⚠️  {warning}")
    click.echo(f"✅ Workflow is valid ({len(report.reachable)} reachable nodes)")


@click.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def structure(input_file: Path):
    """Print the recovered sequence/branch/loop tree as YAML."""
    try:
        tree = structure_workflow(load_document(input_file))
    except CompilerError as e:
        click.echo(f"❌ {e.describe()}", err=True)
        sys.exit(1)

    click.echo(yaml.safe_dump(tree.to_dict(), sort_keys=False), nl=False)
