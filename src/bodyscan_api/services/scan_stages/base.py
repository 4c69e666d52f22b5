"""
Base classes for the body scan stage services.

Each stage of the pipeline runs inside an external service. The interfaces
below are what the orchestrator depends on, so tests can substitute
fixture-backed doubles for the live services.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from bodyscan_api.models.body_scan import (
    EstimateRequest,
    EstimateResult,
    MatchRequest,
    MatchResult,
    RefinerProposal,
    RefineRequest,
    SemanticRequest,
    SemanticResult,
)
from bodyscan_api.services.edge_functions import EdgeFunctionResponse


class ScanStage(str, Enum):
    """Pipeline stages, in execution order."""

    ESTIMATE = "estimate"
    SEMANTIC = "semantic"
    MATCH = "match"
    REFINE = "refine"
    COMMIT = "commit"


class StageServiceError(Exception):
    """A stage service returned a non-success response."""

    def __init__(
        self,
        message: str,
        stage: ScanStage,
        error_code: str = "SERVICE_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.error_code = error_code
        self.details = details or {}


class BodyMeasurementEstimator(ABC):
    """Turns photos and declared biometrics into raw measurements."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of this provider."""
        ...

    @abstractmethod
    async def estimate(self, request: EstimateRequest) -> EstimateResult:
        """
        Estimate body measurements.

        Raises:
            StageServiceError: If the estimator fails
        """
        ...


class SemanticClassifier(ABC):
    """Classifies measurements and photos into a semantic profile."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def classify(self, request: SemanticRequest) -> SemanticResult:
        ...


class ArchetypeMatcher(ABC):
    """Searches the archetype population and derives the envelope."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def match(self, request: MatchRequest) -> MatchResult:
        """
        Match archetypes for a scan.

        The matcher is expected to relax its BMI filter until at least one
        candidate is found and report that in ``debug_phase_a``.
        """
        ...


class MorphologicalRefiner(ABC):
    """Generative correction step over the blended parameters."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def refine(self, request: RefineRequest) -> RefinerProposal:
        """
        Propose refined parameters.

        The returned proposal is advisory; callers clamp it to the envelope.
        """
        ...


class ScanCommitter(ABC):
    """Persists the scan aggregate."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def submit(self, client_scan_id: str, body: bytes) -> EdgeFunctionResponse | None:
        """
        Send one commit attempt.

        Args:
            client_scan_id: Idempotency key of the scan
            body: Serialized commit payload, sent verbatim

        Returns:
            The raw service response, or None if no response was received
        """
        ...
