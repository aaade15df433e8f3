"""Utility modules for polyrel."""

from polyrel.utils.logging import setup_logging

__all__ = ["setup_logging"]
