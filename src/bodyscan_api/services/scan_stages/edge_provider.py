"""
Edge function implementations of the scan stages.

Each stage posts its request model to a named function on the gateway and
validates the JSON response into the stage's result model.
"""

import logging
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

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
from bodyscan_api.services.edge_functions import EdgeFunctionClient, EdgeFunctionResponse

from .base import (
    ArchetypeMatcher,
    BodyMeasurementEstimator,
    MorphologicalRefiner,
    ScanCommitter,
    ScanStage,
    SemanticClassifier,
    StageServiceError,
)

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", bound=BaseModel)


class EdgeFunctionStage:
    """Shared invocation and response validation for edge-backed stages."""

    stage: ScanStage
    function_name: str

    def __init__(self, client: EdgeFunctionClient):
        self.client = client

    @property
    def provider_name(self) -> str:
        return "edge_functions"

    async def _call(self, request: BaseModel, result_model: type[ResultT]) -> ResultT:
        body = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        response = await self.client.invoke(self.function_name, body)
        data = self._require_data(response)

        try:
            return result_model.model_validate(data)
        except PydanticValidationError as e:
            raise StageServiceError(
                message=f"Invalid response from {self.function_name}: {e.error_count()} validation errors",
                stage=self.stage,
                error_code="INVALID_RESPONSE",
                details={"function": self.function_name, "errors": e.errors(include_url=False)},
            ) from e

    def _require_data(self, response: EdgeFunctionResponse) -> Any:
        if response.error is not None:
            status = response.error.get("status")
            raise StageServiceError(
                message=response.error_message,
                stage=self.stage,
                error_code="CONNECTION_ERROR" if status is None else "SERVICE_ERROR",
                details={"function": self.function_name, "status": status},
            )

        data = response.data
        if data is None:
            raise StageServiceError(
                message=f"No data returned from {self.function_name}",
                stage=self.stage,
                error_code="EMPTY_RESPONSE",
                details={"function": self.function_name},
            )

        if isinstance(data, dict) and data.get("success") is False:
            raise StageServiceError(
                message=str(data.get("error") or f"{self.function_name} reported failure"),
                stage=self.stage,
                error_code="SERVICE_ERROR",
                details={"function": self.function_name},
            )

        return data


class EdgeMeasurementEstimator(EdgeFunctionStage, BodyMeasurementEstimator):
    stage = ScanStage.ESTIMATE
    function_name = "scan-estimate"

    async def estimate(self, request: EstimateRequest) -> EstimateResult:
        return await self._call(request, EstimateResult)


class EdgeSemanticClassifier(EdgeFunctionStage, SemanticClassifier):
    stage = ScanStage.SEMANTIC
    function_name = "scan-semantic"

    async def classify(self, request: SemanticRequest) -> SemanticResult:
        return await self._call(request, SemanticResult)


class EdgeArchetypeMatcher(EdgeFunctionStage, ArchetypeMatcher):
    stage = ScanStage.MATCH
    function_name = "scan-match"

    async def match(self, request: MatchRequest) -> MatchResult:
        return await self._call(request, MatchResult)


class EdgeMorphologicalRefiner(EdgeFunctionStage, MorphologicalRefiner):
    stage = ScanStage.REFINE
    function_name = "scan-refine-morphs"

    async def refine(self, request: RefineRequest) -> RefinerProposal:
        logger.debug(
            f"Requesting refinement for {len(request.blend_shape_params)} shape params, "
            f"{len(request.blend_limb_masses)} limb masses"
        )
        return await self._call(request, RefinerProposal)


class EdgeScanCommitter(EdgeFunctionStage, ScanCommitter):
    stage = ScanStage.COMMIT
    function_name = "scan-commit"

    async def submit(self, client_scan_id: str, body: bytes) -> EdgeFunctionResponse | None:
        logger.debug(f"Submitting commit for scan {client_scan_id} ({len(body)} bytes)")
        return await self.client.invoke(self.function_name, content=body)
