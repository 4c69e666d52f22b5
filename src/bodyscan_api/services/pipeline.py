"""
Body scan pipeline orchestrator.

Runs estimate -> semantic -> match -> refine -> commit strictly in order for
one scan attempt. Only commit is retried; a failure in any other stage
aborts the attempt. Every failure is surfaced as a ``ScanStageError``
naming the stage and preserving the original message.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import Any

from bodyscan_api.core.config import Settings, get_settings
from bodyscan_api.core.exceptions import ScanStageError
from bodyscan_api.models.body_scan import (
    CommitPayload,
    DataQualityReport,
    EnvelopeDefect,
    EstimateRequest,
    EstimateResult,
    MatchingConfig,
    MatchRequest,
    MatchResult,
    PhotoMetadata,
    RefinementResult,
    RefineRequest,
    ScanProcessingConfig,
    ScanProcessingResult,
    SemanticIndices,
    SemanticRequest,
    SemanticResult,
    SkinTone,
    UserMeasurements,
    VisionClassification,
)
from bodyscan_api.services.commit import CommitAttemptError, CommitCoordinator
from bodyscan_api.services.events import LoggingEventSink, ScanEventSink
from bodyscan_api.services.morphology import (
    EnvelopeContractError,
    MorphologyMappingService,
    blend_archetypes,
    build_morph_policy,
    validate_envelope,
)
from bodyscan_api.services.refinement import MorphologicalRefinementService
from bodyscan_api.services.scan_stages import ScanStage, ScanStages, StageServiceError
from bodyscan_api.services.skin_tone import resolve_skin_tone

logger = logging.getLogger(__name__)


class BodyScanPipeline:
    """Sequences the five scan stages for a single scan attempt."""

    def __init__(
        self,
        stages: ScanStages,
        mapping_service: MorphologyMappingService,
        event_sink: ScanEventSink | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.stages = stages
        self.mapping_service = mapping_service
        self.event_sink = event_sink or LoggingEventSink()
        self.settings = settings or get_settings()
        self.refinement = MorphologicalRefinementService(stages.refiner, self.event_sink)
        self.committer = CommitCoordinator(
            stages.committer,
            event_sink=self.event_sink,
            max_attempts=self.settings.commit_max_attempts,
            retry_delay=self.settings.commit_retry_delay_seconds,
            sleep=sleep,
        )

    @contextmanager
    def _stage(self, stage: ScanStage, client_scan_id: str) -> Iterator[None]:
        """Wrap any failure inside the block as a ``ScanStageError``."""
        try:
            yield
        except ScanStageError:
            raise
        except Exception as e:
            message, error_code = _describe_failure(e)
            self.event_sink.record(
                "pipeline.stage_failed",
                {
                    "client_scan_id": client_scan_id,
                    "stage": stage.value,
                    "error_code": error_code,
                    "error": message,
                },
            )
            raise ScanStageError(stage.value, client_scan_id, message, error_code) from e

    async def process(self, config: ScanProcessingConfig) -> ScanProcessingResult:
        """
        Run one complete scan attempt.

        Raises:
            ScanStageError: If any stage fails
        """
        cid = config.client_scan_id
        gender = config.resolved_gender
        logger.info(f"Processing body scan {cid} for user {config.user_id} ({gender})")

        with self._stage(ScanStage.ESTIMATE, cid):
            estimate = await self._estimate(config)

        with self._stage(ScanStage.SEMANTIC, cid):
            semantic = await self._classify(config, estimate)

        with self._stage(ScanStage.MATCH, cid):
            match, defects = await self._match(config, estimate, semantic)
            blend_shape, blend_limbs = self._starting_parameters(match)

        with self._stage(ScanStage.REFINE, cid):
            refinement = await self._refine(config, estimate, semantic, match, blend_shape, blend_limbs)

        skin_tone = resolve_skin_tone(estimate, config.photos, cid, self.event_sink)

        with self._stage(ScanStage.COMMIT, cid):
            payload = self._build_payload(config, estimate, semantic, match, refinement, skin_tone)
            commit = await self.committer.commit(payload)

        report = DataQualityReport(
            degraded_mode=match.mapping_metadata.fallback_used,
            mapping_source=match.mapping_metadata.mapping_source,
            bmi_relaxation_applied=match.bmi_relaxation_applied,
            envelope_defects=defects,
            out_of_range_count=refinement.out_of_range_count,
            missing_keys_added=refinement.missing_keys_added,
            extra_keys_removed=refinement.extra_keys_removed,
            limb_mass_keys_dropped=refinement.limb_mass_keys_dropped,
            skin_tone_source=skin_tone.source,
        )
        self.event_sink.record(
            "pipeline.completed",
            {
                "client_scan_id": cid,
                "server_scan_id": commit.scan_id,
                "high_confidence": report.is_high_confidence,
            },
        )

        return ScanProcessingResult(
            client_scan_id=cid,
            server_scan_id=commit.scan_id,
            resolved_gender=gender,
            estimate=estimate,
            semantic=semantic,
            match=match,
            refinement=refinement,
            skin_tone=skin_tone,
            commit=commit,
            data_quality=report,
        )

    async def _estimate(self, config: ScanProcessingConfig) -> EstimateResult:
        request = EstimateRequest(
            user_id=config.user_id,
            photos=config.photos,
            user_declared_height_cm=config.scan_params.height_cm,
            user_declared_weight_kg=config.scan_params.weight_kg,
            user_declared_gender=config.resolved_gender,
            client_scan_id=config.client_scan_id,
            resolved_gender=config.resolved_gender,
        )
        estimate = await self.stages.estimator.estimate(request)

        data = estimate.extracted_data
        self.event_sink.record(
            "estimate.completed",
            {
                "client_scan_id": config.client_scan_id,
                "estimated_bmi": data.estimated_bmi,
                "processing_confidence": data.processing_confidence,
            },
        )
        return estimate

    async def _classify(self, config: ScanProcessingConfig, estimate: EstimateResult) -> SemanticResult:
        request = SemanticRequest(
            user_id=config.user_id,
            photos=config.photos,
            extracted_data=estimate.extracted_data,
            user_declared_gender=config.resolved_gender,
            client_scan_id=config.client_scan_id,
            resolved_gender=config.resolved_gender,
        )
        semantic = await self.stages.classifier.classify(request)

        profile = semantic.semantic_profile
        self.event_sink.record(
            "semantic.completed",
            {
                "client_scan_id": config.client_scan_id,
                "obesity": profile.obesity,
                "muscularity": profile.muscularity,
                "morphotype": profile.morphotype,
                "level": profile.level,
                "semantic_confidence": semantic.semantic_confidence,
                "adjustments_count": len(semantic.adjustments_made),
            },
        )
        return semantic

    async def _match(
        self,
        config: ScanProcessingConfig,
        estimate: EstimateResult,
        semantic: SemanticResult,
    ) -> tuple[MatchResult, list[EnvelopeDefect]]:
        cid = config.client_scan_id
        profile = semantic.semantic_profile
        request = MatchRequest(
            user_id=config.user_id,
            extracted_data=estimate.extracted_data,
            semantic_profile=profile,
            user_semantic_indices=SemanticIndices(
                morph_index=profile.morph_index or 0.0,
                muscle_index=profile.muscle_index or 0.0,
            ),
            matching_config=MatchingConfig(
                gender=config.resolved_gender,
                limit=self.settings.archetype_match_limit,
            ),
            client_scan_id=cid,
            resolved_gender=config.resolved_gender,
        )
        match = await self.stages.matcher.match(request)

        if not match.selected_archetypes:
            raise StageServiceError(
                message="Archetype matcher returned no archetypes",
                stage=ScanStage.MATCH,
                error_code="EMPTY_RESPONSE",
            )

        defects = validate_envelope(match.k5_envelope)
        for defect in defects:
            self.event_sink.record(
                "envelope.defect",
                {
                    "client_scan_id": cid,
                    "key": defect.key,
                    "kind": defect.kind.value,
                    "reason": defect.reason,
                },
            )

        metadata = match.mapping_metadata
        if metadata.fallback_used:
            self.event_sink.record(
                "match.degraded_mode",
                {
                    "client_scan_id": cid,
                    "mapping_source": metadata.mapping_source,
                    "fallback_reason": metadata.fallback_reason,
                },
            )

        stats = match.filtering_stats
        if match.bmi_relaxation_applied:
            self.event_sink.record(
                "match.bmi_relaxation_applied",
                {
                    "client_scan_id": cid,
                    "total_archetypes": stats.total_archetypes,
                    "after_bmi_filter": stats.after_bmi_filter,
                    "estimated_bmi": estimate.extracted_data.estimated_bmi,
                },
            )

        self.event_sink.record(
            "match.completed",
            {
                "client_scan_id": cid,
                "archetype_ids": [a.id for a in match.selected_archetypes],
                "strategy_used": match.strategy_used,
                "semantic_coherence_score": match.semantic_coherence_score,
                "shape_keys": len(match.k5_envelope.shape_params_envelope),
                "limb_keys": len(match.k5_envelope.limb_masses_envelope),
            },
        )
        return match, defects

    def _starting_parameters(self, match: MatchResult) -> tuple[dict[str, float], dict[str, Any]]:
        """Matcher-provided blend when present, otherwise a local blend."""
        shape = match.blended_shape_params
        limbs = match.blended_limb_masses
        if shape is None or limbs is None:
            blend = blend_archetypes(match.selected_archetypes)
            shape = blend.shape_params if shape is None else shape
            limbs = blend.limb_masses if limbs is None else limbs
        return dict(shape), dict(limbs)

    async def _refine(
        self,
        config: ScanProcessingConfig,
        estimate: EstimateResult,
        semantic: SemanticResult,
        match: MatchResult,
        blend_shape: dict[str, float],
        blend_limbs: dict[str, Any],
    ) -> RefinementResult:
        cid = config.client_scan_id
        mapping = await self.mapping_service.get_mapping(cid)
        policy = build_morph_policy(mapping, config.resolved_gender)

        limb_masses, dropped = self.refinement.prepare_limb_masses(cid, blend_limbs)

        profile = semantic.semantic_profile
        data = estimate.extracted_data
        request = RefineRequest(
            scan_id=cid,
            user_id=config.user_id,
            resolved_gender=config.resolved_gender,
            photos=config.photos,
            blend_shape_params=blend_shape,
            blend_limb_masses=limb_masses,
            mapping_version=self.settings.mapping_version,
            k5_envelope=match.k5_envelope,
            vision_classification=VisionClassification(
                muscularity=profile.muscularity,
                obesity=profile.obesity,
                morphotype=profile.morphotype,
                level=profile.level,
            ),
            user_measurements=UserMeasurements(
                height_cm=config.scan_params.height_cm,
                weight_kg=config.scan_params.weight_kg,
                estimated_bmi=data.estimated_bmi,
                raw_measurements=data.raw_measurements,
            ),
        )
        return await self.refinement.refine(cid, request, policy=policy, limb_mass_keys_dropped=dropped)

    def _build_payload(
        self,
        config: ScanProcessingConfig,
        estimate: EstimateResult,
        semantic: SemanticResult,
        match: MatchResult,
        refinement: RefinementResult,
        skin_tone: SkinTone,
    ) -> CommitPayload:
        gender = config.resolved_gender
        return CommitPayload(
            user_id=config.user_id,
            client_scan_id=config.client_scan_id,
            resolved_gender=gender,
            estimate_result=estimate,
            semantic_result=semantic,
            match_result=match,
            morph_bounds=match.k5_envelope,
            ai_refinement_result=refinement,
            final_shape_params=refinement.final_shape_params,
            final_limb_masses=refinement.final_limb_masses,
            skin_tone=skin_tone,
            photos_metadata=[
                PhotoMetadata(type=photo.view, capture_report=photo.report) for photo in config.photos
            ],
            mapping_version=self.settings.mapping_version,
            gltf_model_id=f"{gender}_{self.settings.avatar_model_version}",
            material_config_version=self.settings.material_config_version,
            avatar_version=self.settings.avatar_version,
        )


def _describe_failure(error: Exception) -> tuple[str, str]:
    """Original message and error code for a stage failure."""
    if isinstance(error, StageServiceError):
        return error.message, error.error_code
    if isinstance(error, CommitAttemptError):
        return error.message, "COMMIT_FAILED"
    if isinstance(error, EnvelopeContractError):
        return error.message, "ENVELOPE_CONTRACT"
    return str(error) or type(error).__name__, "STAGE_FAILED"
