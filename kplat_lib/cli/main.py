"""CLI main entry point."""

from pathlib import Path

import click

from kplat_lib import __version__
from kplat_lib.cli._common import get_container, handle_errors
from kplat_lib.cli.context import context
from kplat_lib.cli.secret import secret
from kplat_lib.logging_setup import configure_logging


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="kplat")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Provision and operate the multi-cloud Kubernetes platform."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(verbose)


@cli.command()
@click.option("--delete", is_flag=True, help="Tear the platform down instead of creating it")
@click.option("--cloud", type=click.Choice(["aws", "azure"]), help="Cloud provider (CLOUD_PROVIDER)")
@click.option("--region", help="Cloud region (REGION)")
@click.option("--cluster-name", help="Host cluster name (CLUSTER_NAME)")
@click.option(
    "--manifest",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Platform manifest (defaults to the packaged platform.yaml)",
)
@click.option("--dry-run", is_flag=True, help="Print the stage plan without changing anything")
@click.pass_context
@handle_errors
def provision(
    ctx: click.Context,
    delete: bool,
    cloud: str | None,
    region: str | None,
    cluster_name: str | None,
    manifest: Path | None,
    dry_run: bool,
) -> None:
    """Create (or with --delete, tear down) the platform.

    Re-running after a partial failure resumes: completed stages are skipped.
    """
    overrides = {"cloud": cloud, "region": region, "cluster_name": cluster_name, "manifest_path": manifest}
    container = get_container(ctx, overrides)
    config = container.config()
    orchestrator = container.orchestrator()
    ctx.call_on_close(container.provider_adapter().close)

    if dry_run:
        click.echo(f"Plan for {config.cloud.value} cluster {config.cluster_name} in {config.region}:")
        for stage, satisfied in orchestrator.plan():
            status = {True: "in place (skip)", False: "pending", None: "unknown"}[satisfied]
            click.echo(f"  {stage.ordinal:>4}  {stage.name:<32} {status}")
        return

    if delete:
        report = orchestrator.delete()
        click.echo(report.summary())
        if not report.ok:
            click.echo("⚠ Some resources may need manual cleanup", err=True)
        for resource in container.resource_registry().existing():
            state = resource.observed_state.value
            click.echo(f"⚠ Still present: {resource.kind.value} {resource.name} ({state})", err=True)
        return

    report = orchestrator.create()
    click.echo(report.summary())
    click.echo(f"✓ Platform {config.cluster_name} is ready")


cli.add_command(secret)
cli.add_command(context)


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
