"""
Factory for creating the scan stage services.

Reads the configured provider from settings and builds all five stages.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache

from bodyscan_api.core.config import ScanStageProvider, get_settings
from bodyscan_api.services.edge_functions import get_edge_function_client

from .base import (
    ArchetypeMatcher,
    BodyMeasurementEstimator,
    MorphologicalRefiner,
    ScanCommitter,
    SemanticClassifier,
)
from .edge_provider import (
    EdgeArchetypeMatcher,
    EdgeMeasurementEstimator,
    EdgeMorphologicalRefiner,
    EdgeScanCommitter,
    EdgeSemanticClassifier,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanStages:
    """The five stage services used by one pipeline."""

    estimator: BodyMeasurementEstimator
    classifier: SemanticClassifier
    matcher: ArchetypeMatcher
    refiner: MorphologicalRefiner
    committer: ScanCommitter


def _build_edge_function_stages() -> ScanStages:
    client = get_edge_function_client()
    return ScanStages(
        estimator=EdgeMeasurementEstimator(client),
        classifier=EdgeSemanticClassifier(client),
        matcher=EdgeArchetypeMatcher(client),
        refiner=EdgeMorphologicalRefiner(client),
        committer=EdgeScanCommitter(client),
    )


# Supported providers
PROVIDERS = {
    ScanStageProvider.EDGE_FUNCTIONS: _build_edge_function_stages,
}


@lru_cache(maxsize=1)
def get_scan_stages() -> ScanStages:
    """
    Get the configured scan stage services.

    Returns:
        ScanStages built for ``settings.scan_stage_provider``

    Raises:
        ValueError: If the provider is not supported
    """
    provider = get_settings().scan_stage_provider

    logger.info(f"Initializing scan stage provider: {provider}")

    builder = PROVIDERS.get(provider)
    if builder is None:
        raise ValueError(
            f"Unknown scan stage provider: {provider} "
            f"(supported: {[p.value for p in PROVIDERS]})"
        )
    return builder()


def clear_stage_cache():
    """Clear the cached stage services (useful for testing)."""
    get_scan_stages.cache_clear()
