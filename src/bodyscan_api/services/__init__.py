"""Business logic services."""

from .commit import CommitAttemptError, CommitCoordinator
from .events import LoggingEventSink, ScanEventSink
from .pipeline import BodyScanPipeline
from .refinement import MorphologicalRefinementService, enforce_envelope, filter_finite_numeric

__all__ = [
    "BodyScanPipeline",
    "CommitAttemptError",
    "CommitCoordinator",
    "LoggingEventSink",
    "MorphologicalRefinementService",
    "ScanEventSink",
    "enforce_envelope",
    "filter_finite_numeric",
]
