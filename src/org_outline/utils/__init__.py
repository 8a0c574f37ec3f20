"""Shared utilities for org_outline."""

from org_outline.utils.logging import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
