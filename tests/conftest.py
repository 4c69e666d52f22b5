"""Pytest configuration and fixtures."""

from typing import Any

import pytest

from bodyscan_api.core.config import Settings
from bodyscan_api.models.body_scan import (
    Envelope,
    EstimateResult,
    MatchResult,
    PhotoView,
    RefinerProposal,
    ScanPhoto,
    ScanProcessingConfig,
    SemanticResult,
    UserScanParams,
)
from bodyscan_api.services.edge_functions import EdgeFunctionResponse
from bodyscan_api.services.pipeline import BodyScanPipeline
from bodyscan_api.services.scan_stages import ScanStages

from doubles import (
    CLIENT_SCAN_ID,
    FakeClassifier,
    FakeCommitter,
    FakeEstimator,
    FakeMatcher,
    FakeRefiner,
    FakeSleep,
    RecordingEventSink,
    StaticMappingService,
    bounds,
)

# =============================================================================
# Fixture data
# =============================================================================


@pytest.fixture
def envelope_data() -> dict[str, Any]:
    """Envelope whose outer ranges equal the masculine DB ranges."""
    return {
        "shape_params_envelope": {
            "bigHips": bounds(-0.5, 1.0, -0.2, 0.6),
            "assLarge": bounds(-0.6, 1.1, -0.3, 0.5),
        },
        "limb_masses_envelope": {
            "armMass": bounds(0.3, 1.8, 0.8, 1.2),
            "thighMass": bounds(0.4, 1.95, 0.9, 1.3),
        },
        "envelope_metadata": {"archetypes_count": 2},
    }


@pytest.fixture
def envelope(envelope_data) -> Envelope:
    return Envelope.model_validate(envelope_data)


@pytest.fixture
def estimate_data() -> dict[str, Any]:
    return {
        "extracted_data": {
            "raw_measurements": {"waist_cm": 82.0, "chest_cm": 98.0, "hips_cm": 96.0},
            "estimated_bmi": 24.0,
            "processing_confidence": 0.86,
            "skin_tone": {"r": 180, "g": 140, "b": 110, "confidence": 0.9},
        }
    }


@pytest.fixture
def semantic_data() -> dict[str, Any]:
    return {
        "semantic_profile": {
            "obesity": "Non obèse",
            "muscularity": "Normal costaud",
            "level": "Normal",
            "morphotype": "REC",
            "morph_index": 0.4,
            "muscle_index": 0.2,
        },
        "semantic_confidence": 0.8,
        "adjustments_made": [],
    }


@pytest.fixture
def match_data(envelope_data) -> dict[str, Any]:
    return {
        "selected_archetypes": [
            {
                "id": "MAS-REC-01",
                "name": "Rectangle normal",
                "bmi_range": {"min": 22.0, "max": 26.0},
                "obesity": "Non obèse",
                "morph_values": {"bigHips": 0.2, "assLarge": 0.1},
                "limb_masses": {"armMass": 1.0, "thighMass": 1.1},
                "distance": 0.3,
            },
            {
                "id": "MAS-REC-02",
                "name": "Rectangle costaud",
                "bmi_range": {"min": 23.0, "max": 27.0},
                "obesity": "Non obèse",
                "morph_values": {"bigHips": 0.4, "assLarge": 0.3},
                "limb_masses": {"armMass": 1.2, "thighMass": 1.2},
                "distance": 0.6,
            },
        ],
        "strategy_used": "semantic_knn",
        "semantic_coherence_score": 0.9,
        "k5_envelope": envelope_data,
        "mapping_metadata": {"fallback_used": False, "mapping_source": "database"},
        "debug_phase_a": {
            "filtering_stats": {
                "totalArchetypes": 40,
                "afterBMIFilter": 6,
                "bmiRelaxationApplied": False,
            }
        },
    }


@pytest.fixture
def proposal_data() -> dict[str, Any]:
    return {
        "final_shape_params": {"bigHips": 0.3, "assLarge": 0.2},
        "final_limb_masses": {"armMass": 1.0, "thighMass": 1.1},
        "ai_refine": True,
        "ai_confidence": 0.82,
        "clamped_keys": [],
        "envelope_violations": [],
        "db_violations": [],
        "missing_keys_added": [],
        "extra_keys_removed": [],
        "out_of_range_count": 0,
    }


@pytest.fixture
def commit_success() -> EdgeFunctionResponse:
    return EdgeFunctionResponse(
        data={"scan_id": "srv-scan-001", "success": True, "processing_complete": True}
    )


@pytest.fixture
def scan_config() -> ScanProcessingConfig:
    return ScanProcessingConfig(
        user_id="user_123",
        client_scan_id=CLIENT_SCAN_ID,
        photos=[
            ScanPhoto(view=PhotoView.FRONT, url="https://storage.test/front.jpg", report={"lighting": "good"}),
            ScanPhoto(view=PhotoView.SIDE, url="https://storage.test/side.jpg", report={"lighting": "good"}),
        ],
        scan_params=UserScanParams(sex="male", height_cm=180, weight_kg=78),
        resolved_gender="masculine",
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def event_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


# =============================================================================
# Pipeline wiring
# =============================================================================


@pytest.fixture
def stage_doubles(estimate_data, semantic_data, match_data, proposal_data, commit_success):
    """One double per stage, preloaded with the clean-path responses."""
    return {
        "estimator": FakeEstimator(EstimateResult.model_validate(estimate_data)),
        "classifier": FakeClassifier(SemanticResult.model_validate(semantic_data)),
        "matcher": FakeMatcher(MatchResult.model_validate(match_data)),
        "refiner": FakeRefiner(RefinerProposal.model_validate(proposal_data)),
        "committer": FakeCommitter([commit_success]),
    }


@pytest.fixture
def mapping_service() -> StaticMappingService:
    return StaticMappingService()


@pytest.fixture
def make_pipeline(stage_doubles, mapping_service, event_sink, settings, fake_sleep):
    """Build a pipeline over the current stage doubles."""

    def _make() -> BodyScanPipeline:
        return BodyScanPipeline(
            ScanStages(**stage_doubles),
            mapping_service,
            event_sink=event_sink,
            settings=settings,
            sleep=fake_sleep,
        )

    return _make
