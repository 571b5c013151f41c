"""Lazily-populated local mirror of a remote registry of markdown bundles."""

__version__ = "0.1.0"
