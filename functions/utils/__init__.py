"""Utility modules for BuildBid functions."""

from utils.logging import configure_logging

__all__ = ["configure_logging"]
