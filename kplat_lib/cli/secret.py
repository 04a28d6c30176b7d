"""``kplat secret``: platform secrets and kubeconfig backups."""

from pathlib import Path

import click
import yaml

from kplat_lib.any.utils import write_private_file
from kplat_lib.cli._common import get_container, handle_errors
from kplat_lib.security.records import CATEGORIES

CLI_SOURCE = "kplat-cli"


@click.group()
def secret() -> None:
    """Store and retrieve platform secrets (Vault, falling back to SSM)."""


@secret.command("put")
@click.argument("path")
@click.argument("source", type=click.File("rb"), default="-")
@click.pass_context
@handle_errors
def put_secret(ctx: click.Context, path: str, source) -> None:
    """Store SOURCE (a file, or stdin) at PATH."""
    store = get_container(ctx).secret_store()
    record = store.put(path, source.read(), source=CLI_SOURCE)
    click.echo(f"✓ Stored {record.path} in {store.backend_name}")


@secret.command("get")
@click.argument("path")
@click.argument("target", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
@handle_errors
def get_secret(ctx: click.Context, path: str, target: Path | None) -> None:
    """Print the value at PATH, or write it to TARGET with owner-only permissions."""
    value = get_container(ctx).secret_store().get(path)
    if target is None:
        click.echo(value, nl=False)
        return
    write_private_file(target, value)
    click.echo(f"✓ Wrote {path} to {target}")


@secret.command("list")
@click.argument("prefix", default="")
@click.pass_context
@handle_errors
def list_secrets(ctx: click.Context, prefix: str) -> None:
    """List secret paths under PREFIX."""
    for path in get_container(ctx).secret_store().list(prefix):
        click.echo(path)


@secret.command("backup")
@click.pass_context
@handle_errors
def backup_secrets(ctx: click.Context) -> None:
    """Snapshot the local kubeconfig directory."""
    snapshot_id = get_container(ctx).secret_store().backup()
    click.echo(f"✓ Backup created: {snapshot_id}")


@secret.command("snapshots")
@click.pass_context
@handle_errors
def list_snapshots(ctx: click.Context) -> None:
    """List kubeconfig backup snapshots, oldest first."""
    for snapshot_id in get_container(ctx).secret_store().snapshots():
        click.echo(snapshot_id)


@secret.command("restore")
@click.argument("name")
@click.argument("target", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--snapshot", "snapshot_id", help="Restore from a local backup snapshot instead of the secret store")
@click.pass_context
@handle_errors
def restore_secret(ctx: click.Context, name: str, target: Path | None, snapshot_id: str | None) -> None:
    """Restore the kubeconfig of context NAME.

    From the secret store by default (to TARGET, or the context's kubeconfig path),
    or from a backup snapshot with --snapshot.
    """
    container = get_container(ctx)
    contexts = container.context_manager()
    entry = contexts.entry(name)

    if snapshot_id is not None:
        if target is not None:
            raise click.UsageError("TARGET cannot be combined with --snapshot")
        for path in container.secret_store().restore(snapshot_id, name=entry.path.name):
            click.echo(f"✓ Restored {path} from snapshot {snapshot_id}")
        return

    if target is None:
        click.echo(f"✓ Kubeconfig for {entry.name} at {contexts.restore(entry.name)}")
        return

    write_private_file(target, container.secret_store().get(entry.secret_path))
    click.echo(f"✓ Kubeconfig for {entry.name} written to {target}")


@secret.command("dump")
@click.argument("category", type=click.Choice([*CATEGORIES, "all"]), default="all")
@click.pass_context
@handle_errors
def dump_secrets(ctx: click.Context, category: str) -> None:
    """Print platform secrets of CATEGORY as YAML."""
    store = get_container(ctx).secret_store()
    categories = CATEGORIES if category == "all" else (category,)
    click.echo(yaml.safe_dump({name: store.dump(name) for name in categories}, sort_keys=False), nl=False)
