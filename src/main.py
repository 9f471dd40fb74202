"""
PD CSI test-config generator — CLI entrypoint.

Usage:
    python -m src.main --help
    python -m src.main generate --platform linux --deployment-strategy gke
    python -m src.main resolve --json
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from src import __version__
from src.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    level_from_flags,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="pdtest-config")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to a params YAML file.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """PD CSI test-config generator — write the e2e storage test driver config."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(
        level=level_from_flags(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
    )


# ── Shared options ──────────────────────────────────────────────


def _param_options(func):
    """Attach the generation input options to a command."""
    options = [
        click.option("--platform", default=None,
                     help="Node OS under test (windows narrows capabilities)."),
        click.option("--deployment-strategy", "deployment_strategy", default=None,
                     help="Where the driver is deployed: gce or gke."),
        click.option("--storage-class-file", "storage_class_file", default=None,
                     help="Storage class file in test/k8s-integration/config."),
        click.option("--snapshot-class-file", "snapshot_class_file", default=None,
                     help="Snapshot class file; omit to skip snapshot tests."),
        click.option("--package-root", "package_root",
                     type=click.Path(file_okay=False, path_type=Path), default=None,
                     help="Driver checkout root (default: auto-detect)."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _load_params(ctx: click.Context, **overrides):
    """Build GenerationParams from the params file, then CLI overrides."""
    from src.core.config.loader import (
        ConfigError,
        GenerationParams,
        find_package_root,
        load_params,
    )

    config_path: Path | None = ctx.obj.get("config_path")
    try:
        if config_path is not None:
            params = load_params(config_path)
        else:
            params = GenerationParams(package_root=find_package_root() or Path.cwd())
        return params.merged(**overrides)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
    except ValidationError as e:
        click.secho(f"❌ Invalid parameters: {e}", fg="red")
        sys.exit(1)


# ── Commands ────────────────────────────────────────────────────


@cli.command()
@_param_options
@click.option("--template", "template_path",
              type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Template to render (default: test-config-template.in).")
@click.option("--output", "output_path",
              type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Destination file (default: test-config.yaml).")
@click.option("--init-template", is_flag=True,
              help="Write the bundled template first if none exists.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def generate(
    ctx: click.Context,
    template_path: Path | None,
    output_path: Path | None,
    init_template: bool,
    as_json: bool,
    **overrides,
) -> None:
    """Resolve the driver config and write test-config.yaml."""
    from src.core.services.generators.render import write_default_template
    from src.core.use_cases.generate import run_generate

    params = _load_params(ctx, **overrides)

    if init_template and template_path is None:
        created = write_default_template(params.package_root)
        if created and not as_json and not ctx.obj.get("quiet"):
            click.echo(f"📝 Wrote default template: {created}")

    result = run_generate(params, template_path=template_path, output_path=output_path)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if not result.ok:
        click.secho(f"❌ {result.error_type}: {result.error}", fg="red")
        sys.exit(1)

    if ctx.obj.get("quiet"):
        click.echo(str(result.output_path))
        return

    assert result.config is not None  # guaranteed when ok
    click.secho("✅ Test config written", fg="green", bold=True)
    click.echo(f"   Path: {result.output_path}")
    click.echo(f"   Storage class: {result.config.storage_class}")
    click.echo(f"   Capabilities: {', '.join(result.config.capabilities)}")


@cli.command()
@_param_options
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def resolve(ctx: click.Context, as_json: bool, **overrides) -> None:
    """Show the resolved driver config without writing anything."""
    from src.core.services.generators.errors import DriverConfigError
    from src.core.use_cases.generate import resolve_params

    params = _load_params(ctx, **overrides)

    try:
        config = resolve_params(params)
    except DriverConfigError as e:
        if as_json:
            click.echo(json.dumps({"error": str(e), "error_type": type(e).__name__}, indent=2))
        else:
            click.secho(f"❌ {type(e).__name__}: {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(config.model_dump(), indent=2))
        return

    click.secho(f"\n📋 {config.storage_class}", fg="cyan", bold=True)
    click.echo(f"   Storage class file: {config.storage_class_file}")
    click.echo(f"   Snapshot class file: {config.snapshot_class_file or '(none)'}")
    click.echo(f"   Filesystems: {', '.join(config.supported_fs_types)}")
    click.echo(f"   Minimum volume size: {config.minimum_volume_size}")
    click.echo(f"   Allowed topologies: {config.num_allowed_topologies}")
    click.secho(f"   Capabilities: {len(config.capabilities)}", fg="white", bold=True)
    for cap in config.capabilities:
        click.echo(f"     • {cap}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def capabilities(as_json: bool) -> None:
    """List capability tags the driver can advertise and the ones it never does."""
    from src.core.models.driver_config import KNOWN_CAPABILITIES
    from src.core.services.generators.driver_config import UNSUPPORTED_CAPABILITIES

    supported = [c for c in KNOWN_CAPABILITIES if c not in UNSUPPORTED_CAPABILITIES]

    if as_json:
        click.echo(json.dumps({
            "supported": supported,
            "unsupported": list(UNSUPPORTED_CAPABILITIES),
        }, indent=2))
        return

    click.secho("Advertised when applicable:", fg="green", bold=True)
    for cap in supported:
        click.echo(f"   • {cap}")
    click.secho("Never advertised:", fg="yellow", bold=True)
    for cap in UNSUPPORTED_CAPABILITIES:
        click.echo(f"   • {cap}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
