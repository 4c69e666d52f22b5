"""API routes."""

from . import body_scan

__all__ = ["body_scan"]
