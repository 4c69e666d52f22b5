"""Repository classes for database access."""

from .base import BaseRepository
from .body_scans import BodyScanRepository

__all__ = ["BaseRepository", "BodyScanRepository"]
