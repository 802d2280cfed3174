"""Utility helpers."""

from .logging_setup import configure_logging, instance_context

__all__ = [
    "configure_logging",
    "instance_context",
]
