"""Command-line entrypoints for the zk-rollup SDK."""

from .main import app, main, run  # noqa: F401

__all__ = ["app", "main", "run"]
