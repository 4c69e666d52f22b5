"""
Scan stage services.

Provides the interfaces for the five pipeline stages and their
edge-function implementations.
"""

from .base import (
    ArchetypeMatcher,
    BodyMeasurementEstimator,
    MorphologicalRefiner,
    ScanCommitter,
    ScanStage,
    SemanticClassifier,
    StageServiceError,
)
from .factory import ScanStages, clear_stage_cache, get_scan_stages

__all__ = [
    "ArchetypeMatcher",
    "BodyMeasurementEstimator",
    "MorphologicalRefiner",
    "ScanCommitter",
    "ScanStage",
    "ScanStages",
    "SemanticClassifier",
    "StageServiceError",
    "clear_stage_cache",
    "get_scan_stages",
]
