"""``kplat context``: switch between the host cluster and virtual clusters."""

import shlex

import click

from kplat_lib.cli._common import get_container, handle_errors


@click.group()
def context() -> None:
    """Manage the active kubeconfig context."""


@context.command("switch")
@click.argument("name")
@click.pass_context
@handle_errors
def switch_context(ctx: click.Context, name: str) -> None:
    """Make NAME (or one of its aliases) the active context."""
    entry = get_container(ctx).context_manager().switch(name)
    click.echo(f"✓ Active context: {entry.name} ({entry.path})")


@context.command("current")
@click.pass_context
@handle_errors
def current_context(ctx: click.Context) -> None:
    """Print the active context."""
    click.echo(get_container(ctx).context_manager().current())


@context.command("list")
@click.pass_context
@handle_errors
def list_contexts(ctx: click.Context) -> None:
    """List contexts; the active one is marked with *."""
    manager = get_container(ctx).context_manager()
    active = manager.current()
    for entry in manager.entries():
        marker = "*" if entry.name == active else " "
        aliases = f" (aliases: {', '.join(entry.aliases)})" if entry.aliases else ""
        status = "" if entry.path.exists() else " [no kubeconfig]"
        click.echo(f"{marker} {entry.name:<12} {entry.kind:<8}{aliases}{status}")


@context.command("restore")
@click.argument("name")
@click.pass_context
@handle_errors
def restore_context(ctx: click.Context, name: str) -> None:
    """Pull NAME's kubeconfig from the secret store if it is missing locally."""
    path = get_container(ctx).context_manager().restore(name)
    click.echo(f"✓ {path}")


@context.command("env")
@click.argument("name", required=False)
@click.pass_context
@handle_errors
def context_env(ctx: click.Context, name: str | None) -> None:
    """Print shell exports for NAME (default: active). Use with eval "$(kplat context env)"."""
    for key, value in get_container(ctx).context_manager().env(name).items():
        click.echo(f"export {key}={shlex.quote(value)}")
