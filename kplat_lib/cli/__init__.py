"""Command line interface (``kplat``)."""

from kplat_lib.cli.main import cli

__all__ = ["cli"]
