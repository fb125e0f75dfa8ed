"""Schema CLI commands — validate and show."""

import json
from pathlib import Path

import click

from schemacrud.config import Settings
from schemacrud.core.types import FieldTypeRegistry
from schemacrud.exceptions import SchemaCrudError
from schemacrud.schema.loader import SchemaLoader
from schemacrud.schema.service import SchemaService


def _loader(target_path: Path | None) -> SchemaLoader:
    settings = Settings.from_env()
    paths = [target_path] if target_path is not None else settings.schema_paths
    return SchemaLoader(paths, FieldTypeRegistry(settings.password_schemes))


@click.group()
def schema():
    """Schema commands."""
    pass


@schema.command()
@click.option(
    "--path",
    "target_path",
    default=None,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Validate one schema directory instead of SCHEMACRUD_SCHEMA_PATH.",
)
def validate(target_path: Path | None):
    """Load and validate every schema document."""
    loader = _loader(target_path)
    models = loader.list_models()
    if not models:
        dirs = ", ".join(str(p) for p in loader.schema_paths)
        click.echo(f"Error: No schema documents found in {dirs}", err=True)
        raise SystemExit(1)

    failures = 0
    for model in models:
        try:
            loaded = loader.load(model)
        except SchemaCrudError as exc:
            failures += 1
            click.echo(click.style(f"  ✗ {model}: {exc.message}", fg="red"))
            continue
        click.echo(
            f"  ✓ {model} ({len(loaded.fields)} fields, "
            f"{len(loaded.relationships)} relationships, table: {loaded.table})"
        )

    if failures:
        click.echo(
            click.style(f"\n{failures} invalid schema(s) found", fg="red", bold=True)
        )
        raise SystemExit(1)

    click.echo(click.style(f"\nAll {len(models)} schemas are valid.", fg="green", bold=True))


@schema.command("show")
@click.argument("model")
@click.option("--context", default=None, help="Context to render, e.g. list, form or 'list,detail'.")
@click.option(
    "--path",
    "target_path",
    default=None,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Schema directory to search instead of SCHEMACRUD_SCHEMA_PATH.",
)
def show(model: str, context: str | None, target_path: Path | None):
    """Print the JSON document for MODEL in the requested context."""
    service = SchemaService(_loader(target_path))
    try:
        document = service.load_context(model, context)
    except SchemaCrudError as exc:
        click.echo(click.style(f"Error: {exc.message}", fg="red"), err=True)
        raise SystemExit(1)
    click.echo(json.dumps(document, indent=2, default=str))
