"""Helpers shared by the kplat commands."""

from collections.abc import Callable
from functools import wraps
from typing import Any

import click
from dependency_injector import containers

from kplat_lib.any.container import create_container
from kplat_lib.any.exceptions import KPlatError
from kplat_lib.config.loaders import load_platform_config


def get_container(ctx: click.Context, overrides: dict[str, Any] | None = None) -> containers.DynamicContainer:
    """
    Container for this invocation.

    A container placed in ``ctx.obj["container"]`` (tests) wins; otherwise one is built
    from the environment plus ``overrides`` and cached on the context.
    """
    ctx.ensure_object(dict)
    container = ctx.obj.get("container")
    if container is None:
        container = create_container(load_platform_config(overrides))
        ctx.obj["container"] = container
    return container


def handle_errors(func: Callable) -> Callable:
    """Report KPlat and validation errors as a single ✗ line and exit 1."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (KPlatError, ValueError) as e:
            click.echo(f"✗ {e}", err=True)
            raise SystemExit(1) from e

    return wrapper
