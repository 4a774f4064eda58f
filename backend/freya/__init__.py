"""Freya Chat - command-driven chat backend."""

__version__ = "1.0.0"
