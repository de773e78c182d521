"""CLI commands for seed-intel."""

import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

import click
import psycopg

from seed_intel.config import CONFIG_FILENAME, DEFAULT_CONFIG, Config
from seed_intel.constraints.catalog import PostgresCatalog
from seed_intel.constraints.discovery import ConstraintDiscoveryEngine
from seed_intel.detection.integrator import DetectionIntegrator
from seed_intel.exceptions import CircularDependencyError, DatabaseConnectionError
from seed_intel.introspection import SchemaIntrospector
from seed_intel.models import ConstraintDiscoveryResult, UnifiedDetectionResult

logger = logging.getLogger(__name__)


def _load_config(path: str | None) -> Config:
    if path is not None:
        return Config.from_toml(path)
    try:
        return Config.find_and_load()
    except FileNotFoundError:
        logger.debug(f"No {CONFIG_FILENAME} found, using defaults")
        return Config()


def _connect(url: str) -> psycopg.Connection:
    try:
        return psycopg.connect(url)
    except psycopg.OperationalError as e:
        raise DatabaseConnectionError(url, str(e)) from e


@click.group()
@click.version_option(package_name="seed-intel")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help=f"Path to {CONFIG_FILENAME} (default: search upwards from cwd)",
)
@click.option("--database-url", help="Override [database] url")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, database_url: str | None, verbose: bool):
    """seed-intel - schema classification and constraint discovery for seeding."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["database_url"] = database_url


def _context_config(ctx: click.Context) -> Config:
    config = _load_config(ctx.obj["config_path"])
    if ctx.obj["database_url"]:
        config.database.url = ctx.obj["database_url"]
    return config


@cli.command()
@click.option("--path", type=click.Path(file_okay=False), default=".", help="Target directory")
@click.option("--force", is_flag=True, help=f"Overwrite an existing {CONFIG_FILENAME}")
def init(path: str, force: bool) -> None:
    """Create a default seed-intel.toml."""
    target = Path(path) / CONFIG_FILENAME
    if target.exists() and not force:
        click.echo(f"Error: {target} already exists (use --force to overwrite)", err=True)
        sys.exit(1)
    DEFAULT_CONFIG.to_toml(target)
    click.echo(f"Created {target}")


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def detect(ctx: click.Context, output_json: bool) -> None:
    """Classify the schema architecture and domain."""
    config = _context_config(ctx)
    try:
        with _connect(config.database.url) as conn:
            integrator = DetectionIntegrator(
                SchemaIntrospector(conn, schema=config.database.schema_name),
                config=config.detection,
                database_url=config.database.url,
            )
            result = integrator.detect()
    except DatabaseConnectionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output_json:
        click.echo(json.dumps(detection_to_dict(result), indent=2, default=str))
        return

    architecture = result.architecture
    domain = result.domain
    integration = result.integration
    click.echo(
        f"Architecture: {architecture.primary} "
        f"({architecture.confidence:.2f}, {architecture.confidence_level})"
    )
    click.echo(
        f"Domain:       {domain.primary} ({domain.confidence:.2f}, {domain.confidence_level})"
    )
    if result.framework.detected:
        click.echo(f"Framework:    {result.framework.name} {result.framework.version or ''}")
    click.echo(f"Overall:      {integration.overall_confidence:.2f}")
    for conflict in integration.conflicts:
        click.echo(f"  ! [{conflict.severity}] {conflict.description}")
    for recommendation in integration.recommendations:
        click.echo(f"  - {recommendation}")
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)


@cli.command()
@click.argument("tables", nargs=-1)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def discover(ctx: click.Context, tables: tuple[str, ...], output_json: bool) -> None:
    """Discover trigger-enforced business rules (all tables when none given)."""
    result = _run_discovery(ctx, tables)

    if output_json:
        click.echo(json.dumps(discovery_to_dict(result), indent=2, default=str))
        return

    for table in sorted(result.tables):
        rules = result.rules_for(table)
        if not rules:
            continue
        click.echo(f"{table}:")
        for rule in rules:
            click.echo(f"  [{rule.type}/{rule.action} {rule.confidence:.2f}] {rule.condition}")
            if rule.error_message:
                click.echo(f"      raises: {rule.error_message}")
    click.echo(f"{len(result.rules)} rules, confidence {result.confidence:.2f}")
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)
    for error in result.errors:
        click.echo(f"Error: {error}", err=True)


@cli.command()
@click.argument("tables", nargs=-1)
@click.option("--strict", is_flag=True, help="Fail on circular dependencies")
@click.pass_context
def order(ctx: click.Context, tables: tuple[str, ...], strict: bool) -> None:
    """Print a safe table creation order."""
    result = _run_discovery(ctx, tables)
    try:
        ordered = result.graph.topological_sort(strict=strict)
    except CircularDependencyError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for table in ordered:
        click.echo(table)
    for edge in result.graph.broken_edges:
        click.echo(
            f"Warning: dropped {edge.relationship} dependency "
            f"{edge.from_table} -> {edge.to_table} to break a cycle",
            err=True,
        )


def _run_discovery(ctx: click.Context, tables: tuple[str, ...]) -> ConstraintDiscoveryResult:
    config = _context_config(ctx)
    try:
        with _connect(config.database.url) as conn:
            schema = config.database.schema_name
            snapshot = SchemaIntrospector(conn, schema=schema).load_snapshot()
            engine = ConstraintDiscoveryEngine(
                PostgresCatalog(conn, schema=schema),
                config=config.discovery,
                snapshot=snapshot,
            )
            return engine.discover(list(tables) or list(snapshot.tables))
    except DatabaseConnectionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def detection_to_dict(result: UnifiedDetectionResult) -> dict:
    """JSON-friendly view of a detection result (schema reduced to table names)."""
    data = asdict(result)
    data["schema"] = {
        "tables": list(result.schema.tables),
        "confidence": result.schema.confidence,
    }
    return data


def discovery_to_dict(result: ConstraintDiscoveryResult) -> dict:
    """JSON-friendly view of a discovery result."""
    return {
        "rules": [asdict(rule) for rule in result.rules],
        "dependencies": [asdict(dependency) for dependency in result.dependencies],
        "creation_order": result.graph.creation_order,
        "cycles": result.graph.cycles,
        "broken_edges": [asdict(edge) for edge in result.graph.broken_edges],
        "confidence": result.confidence,
        "fallback_used": result.fallback_used,
        "warnings": result.warnings,
        "errors": result.errors,
    }


if __name__ == "__main__":
    cli()
