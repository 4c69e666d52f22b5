"""Pydantic models for the body scan pipeline contract.

Covers the five stage exchanges (estimate, semantic, match, refine, commit),
the locally enforced refinement result, and the HTTP request/response
surface of the /body-scan endpoints.

Stage responses come from external services, so their models keep unknown
fields (``extra="allow"``) and are forwarded verbatim to the commit payload.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

# =============================================================================
# Shared types
# =============================================================================

Gender = Literal["masculine", "feminine"]
DeclaredSex = Literal["male", "female"]


class ServiceModel(BaseModel):
    """Base for payloads produced by external stage services."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class PhotoView(str, Enum):
    """Capture angle of a scan photo."""

    FRONT = "front"
    SIDE = "side"


class ParameterKind(str, Enum):
    """Which avatar parameter family a key belongs to."""

    SHAPE = "shape"
    LIMB = "limb"


class ScanPhoto(BaseModel):
    """An uploaded scan photo plus its on-device capture report."""

    view: PhotoView = Field(..., description="Capture angle")
    url: str = Field(..., description="Storage URL of the uploaded photo")
    report: dict[str, Any] | None = Field(
        None, description="Capture quality report (lighting, framing, skin tone)"
    )


class UserScanParams(BaseModel):
    """Biometrics declared by the user for this scan."""

    sex: DeclaredSex
    height_cm: float = Field(..., gt=0, le=300, description="Declared height in cm")
    weight_kg: float = Field(..., gt=0, le=500, description="Declared weight in kg")


# =============================================================================
# Estimate
# =============================================================================


class EstimateRequest(BaseModel):
    """Request body for the scan-estimate function."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str
    photos: list[ScanPhoto] = Field(..., min_length=1, max_length=2)
    user_declared_height_cm: float
    user_declared_weight_kg: float
    user_declared_gender: Gender
    client_scan_id: str = Field(..., alias="clientScanId")
    resolved_gender: Gender = Field(..., alias="resolvedGender")


class RawMeasurements(ServiceModel):
    """Body dimensions extracted from the photos (cm)."""

    waist_cm: float | None = None
    chest_cm: float | None = None
    hips_cm: float | None = None


class ExtractedData(ServiceModel):
    """Measurement estimator output."""

    raw_measurements: RawMeasurements
    estimated_bmi: float
    processing_confidence: float = Field(..., ge=0.0, le=1.0)
    skin_tone: dict[str, Any] | None = None


class EstimateResult(ServiceModel):
    """Response of the scan-estimate function."""

    extracted_data: ExtractedData


# =============================================================================
# Semantic classification
# =============================================================================


class SemanticRequest(BaseModel):
    """Request body for the scan-semantic function."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str
    photos: list[ScanPhoto]
    extracted_data: ExtractedData
    user_declared_gender: Gender
    client_scan_id: str = Field(..., alias="clientScanId")
    resolved_gender: Gender = Field(..., alias="resolvedGender")


class SemanticProfile(ServiceModel):
    """Categorical body descriptors. Values are opaque classifier tags."""

    obesity: str
    muscularity: str
    level: str
    morphotype: str
    morph_index: float | None = None
    muscle_index: float | None = None


class SemanticResult(ServiceModel):
    """Response of the scan-semantic function."""

    semantic_profile: SemanticProfile
    semantic_confidence: float = Field(..., ge=0.0, le=1.0)
    adjustments_made: list[Any] = Field(default_factory=list)


# =============================================================================
# Archetype matching
# =============================================================================


class SemanticIndices(BaseModel):
    """Scalars summarizing the semantic profile for nearest-neighbour search."""

    morph_index: float = 0.0
    muscle_index: float = 0.0


class MatchingConfig(BaseModel):
    """Matcher options."""

    gender: Gender
    limit: int = Field(5, ge=1)


class MatchRequest(BaseModel):
    """Request body for the scan-match function."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str
    extracted_data: ExtractedData
    semantic_profile: SemanticProfile
    user_semantic_indices: SemanticIndices
    matching_config: MatchingConfig
    client_scan_id: str = Field(..., alias="clientScanId")
    resolved_gender: Gender = Field(..., alias="resolvedGender")


class BMIRange(ServiceModel):
    """Inclusive BMI range covered by an archetype."""

    min: float
    max: float


class Archetype(ServiceModel):
    """Reference body-shape template returned by the matcher."""

    id: str
    name: str | None = None
    bmi_range: BMIRange | None = None
    obesity: str | None = None
    morph_values: dict[str, float] = Field(default_factory=dict)
    # Raw values; non-finite or non-numeric entries are filtered downstream.
    limb_masses: dict[str, Any] = Field(default_factory=dict)
    distance: float | None = None


class ParameterBounds(BaseModel):
    """Envelope bounds for one parameter.

    ``min``/``max`` are the hard allowable range; ``archetype_min``/
    ``archetype_max`` the range actually spanned by the matched archetypes.
    """

    min: float
    max: float
    archetype_min: float
    archetype_max: float

    @property
    def archetype_midpoint(self) -> float:
        return (self.archetype_min + self.archetype_max) / 2


class Envelope(ServiceModel):
    """Permissible parameter ranges derived from the matched archetypes."""

    shape_params_envelope: dict[str, ParameterBounds] = Field(default_factory=dict)
    limb_masses_envelope: dict[str, ParameterBounds] = Field(default_factory=dict)
    envelope_metadata: dict[str, Any] = Field(default_factory=dict)

    def section(self, kind: ParameterKind) -> dict[str, ParameterBounds]:
        """Bounds for one parameter family."""
        if kind == ParameterKind.SHAPE:
            return self.shape_params_envelope
        return self.limb_masses_envelope


class FilteringStats(ServiceModel):
    """BMI filtering statistics reported by the matcher."""

    total_archetypes: int | None = Field(None, alias="totalArchetypes")
    after_bmi_filter: int | None = Field(None, alias="afterBMIFilter")
    bmi_relaxation_applied: bool = Field(False, alias="bmiRelaxationApplied")

    @property
    def rejected_by_bmi(self) -> int | None:
        if self.total_archetypes is None or self.after_bmi_filter is None:
            return None
        return self.total_archetypes - self.after_bmi_filter


class DebugPhaseA(ServiceModel):
    """Matcher diagnostics."""

    filtering_stats: FilteringStats | None = None


class MappingMetadata(ServiceModel):
    """Where the matcher got its mapping data from."""

    fallback_used: bool = False
    mapping_source: str | None = None
    fallback_reason: str | None = None


class MatchResult(ServiceModel):
    """Response of the scan-match function."""

    selected_archetypes: list[Archetype] = Field(default_factory=list)
    strategy_used: str | None = None
    semantic_coherence_score: float | None = None
    k5_envelope: Envelope
    mapping_metadata: MappingMetadata = Field(default_factory=MappingMetadata)
    debug_phase_a: DebugPhaseA | None = None
    blended_shape_params: dict[str, float] | None = None
    blended_limb_masses: dict[str, Any] | None = None

    @property
    def filtering_stats(self) -> FilteringStats | None:
        if self.debug_phase_a is None:
            return None
        return self.debug_phase_a.filtering_stats

    @property
    def bmi_relaxation_applied(self) -> bool:
        stats = self.filtering_stats
        return bool(stats and stats.bmi_relaxation_applied)


class EnvelopeDefect(BaseModel):
    """A data-quality defect found in a matcher envelope."""

    key: str
    kind: ParameterKind
    reason: str
    bounds: ParameterBounds


# =============================================================================
# Morphological refinement
# =============================================================================


class VisionClassification(BaseModel):
    """Classification context forwarded to the refiner."""

    muscularity: str
    obesity: str
    morphotype: str
    level: str


class UserMeasurements(BaseModel):
    """User measurements forwarded to the refiner."""

    height_cm: float
    weight_kg: float
    estimated_bmi: float
    raw_measurements: RawMeasurements


class RefineRequest(BaseModel):
    """Request body for the scan-refine-morphs function.

    ``blend_limb_masses`` only ever holds finite numbers; filtering happens
    before this model is built.
    """

    model_config = ConfigDict(populate_by_name=True)

    scan_id: str
    user_id: str
    resolved_gender: Gender = Field(..., alias="resolvedGender")
    photos: list[ScanPhoto]
    blend_shape_params: dict[str, float]
    blend_limb_masses: dict[str, float]
    mapping_version: str
    k5_envelope: Envelope
    vision_classification: VisionClassification
    user_measurements: UserMeasurements


class RefinerProposal(ServiceModel):
    """Raw generative refinement output, before local enforcement."""

    final_shape_params: dict[str, Any] = Field(default_factory=dict)
    final_limb_masses: dict[str, Any] = Field(default_factory=dict)
    ai_refine: bool = True
    ai_confidence: float | None = None
    clamped_keys: list[Any] = Field(default_factory=list)
    envelope_violations: list[Any] = Field(default_factory=list)
    db_violations: list[Any] = Field(default_factory=list)
    missing_keys_added: list[Any] = Field(default_factory=list)
    extra_keys_removed: list[Any] = Field(default_factory=list)
    out_of_range_count: int | None = None


class BoundViolation(BaseModel):
    """A proposed value that fell outside a bound."""

    key: str
    kind: ParameterKind
    proposed: float
    min: float
    max: float


class RefinementResult(BaseModel):
    """Locally enforced refinement output plus its audit trail."""

    final_shape_params: dict[str, float]
    final_limb_masses: dict[str, float]
    clamped_keys: list[str] = Field(default_factory=list)
    envelope_violations: list[BoundViolation] = Field(default_factory=list)
    db_violations: list[BoundViolation] = Field(default_factory=list)
    missing_keys_added: list[str] = Field(default_factory=list)
    extra_keys_removed: list[str] = Field(default_factory=list)
    required_keys_missing: list[str] = Field(default_factory=list)
    out_of_range_count: int = 0
    ai_refine: bool = True
    ai_confidence: float | None = None
    mapping_version: str | None = None
    limb_mass_keys_dropped: list[str] = Field(default_factory=list)
    service_audit: dict[str, Any] = Field(default_factory=dict)

    @computed_field
    @property
    def active_keys_count(self) -> int:
        return len(self.final_shape_params) + len(self.final_limb_masses)


# =============================================================================
# Skin tone
# =============================================================================


class RGB255(BaseModel):
    r: int = Field(..., ge=0, le=255)
    g: int = Field(..., ge=0, le=255)
    b: int = Field(..., ge=0, le=255)


class RGBFloat(BaseModel):
    r: float
    g: float
    b: float


class SkinTone(BaseModel):
    """Canonical (V2) skin tone with every representation the renderer uses."""

    model_config = ConfigDict(populate_by_name=True)

    schema_version: Literal["v2"] = Field("v2", alias="schema")
    space: Literal["sRGB"] = "sRGB"
    format: Literal["rgb255"] = "rgb255"
    rgb: RGB255
    hex: str
    srgb_f32: RGBFloat
    linear_f32: RGBFloat
    source: str | None = None
    confidence: float | None = None
    pixel_count: int | None = Field(None, alias="pixelCount")


# =============================================================================
# Commit
# =============================================================================


class PhotoMetadata(BaseModel):
    """Photo metadata persisted alongside the scan."""

    model_config = ConfigDict(populate_by_name=True)

    type: PhotoView
    capture_report: dict[str, Any] | None = Field(None, alias="captureReport")


class CommitPayload(BaseModel):
    """
    The aggregate persisted by scan-commit.

    Frozen: it is assembled once per scan attempt and serialized once, so
    every retry resends identical bytes under the same ``clientScanId``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: str
    client_scan_id: str = Field(..., alias="clientScanId")
    resolved_gender: Gender
    estimate_result: EstimateResult
    semantic_result: SemanticResult
    match_result: MatchResult
    morph_bounds: Envelope
    ai_refinement_result: RefinementResult
    final_shape_params: dict[str, float]
    final_limb_masses: dict[str, float]
    skin_tone: SkinTone
    photos_metadata: list[PhotoMetadata]
    mapping_version: str
    gltf_model_id: str
    material_config_version: str
    avatar_version: str

    def to_wire(self) -> dict[str, Any]:
        """Wire representation; gender is sent under both legacy names."""
        data = self.model_dump(mode="json", by_alias=True)
        data["resolvedGender"] = self.resolved_gender
        return data

    def serialize(self) -> bytes:
        """Encode the payload exactly once for transmission."""
        return json.dumps(self.to_wire(), separators=(",", ":")).encode("utf-8")


class CommitResult(ServiceModel):
    """Response of the scan-commit function."""

    scan_id: str | None = None
    success: bool = True
    processing_complete: bool = False
    message: str | None = None
    empty_response: bool = False


# =============================================================================
# Pipeline input / output
# =============================================================================


class ScanProcessingConfig(BaseModel):
    """Everything the orchestrator needs to run one scan attempt."""

    user_id: str
    client_scan_id: str
    photos: list[ScanPhoto] = Field(..., min_length=1, max_length=2)
    scan_params: UserScanParams
    resolved_gender: Gender


class DataQualityReport(BaseModel):
    """Non-fatal signals that lower the precision of a scan."""

    degraded_mode: bool = False
    mapping_source: str | None = None
    bmi_relaxation_applied: bool = False
    envelope_defects: list[EnvelopeDefect] = Field(default_factory=list)
    out_of_range_count: int = 0
    missing_keys_added: list[str] = Field(default_factory=list)
    extra_keys_removed: list[str] = Field(default_factory=list)
    limb_mass_keys_dropped: list[str] = Field(default_factory=list)
    skin_tone_source: str | None = None

    @computed_field
    @property
    def is_high_confidence(self) -> bool:
        return not (
            self.degraded_mode
            or self.bmi_relaxation_applied
            or self.envelope_defects
            or self.out_of_range_count
            or self.missing_keys_added
            or self.extra_keys_removed
            or self.limb_mass_keys_dropped
        )


class ScanProcessingResult(BaseModel):
    """Complete output of a successful scan attempt."""

    client_scan_id: str
    server_scan_id: str | None = None
    resolved_gender: Gender
    estimate: EstimateResult
    semantic: SemanticResult
    match: MatchResult
    refinement: RefinementResult
    skin_tone: SkinTone
    commit: CommitResult
    data_quality: DataQualityReport


# =============================================================================
# HTTP surface
# =============================================================================


class BodyScanProcessRequest(BaseModel):
    """Request payload for POST /body-scan/process."""

    user_id: str = Field(..., description="User identifier")
    client_scan_id: str | None = Field(
        None, description="Idempotency key; generated when omitted"
    )
    photos: list[ScanPhoto] = Field(..., min_length=1, max_length=2)
    sex: DeclaredSex
    height_cm: float = Field(..., gt=0, le=300)
    weight_kg: float = Field(..., gt=0, le=500)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "user_id": "user_123",
                "photos": [
                    {"view": "front", "url": "https://storage.example/scans/front.jpg"},
                    {"view": "side", "url": "https://storage.example/scans/side.jpg"},
                ],
                "sex": "female",
                "height_cm": 168,
                "weight_kg": 62,
            }
        }
    )


class BodyScanRecord(ServiceModel):
    """A persisted scan as stored in the body_scans collection."""

    id: str | None = None
    user_id: str
    created_at: datetime | None = None
    resolved_gender: str | None = None
    morph_values: dict[str, float] | None = None
    limb_masses: dict[str, float] | None = None
    skin_tone: dict[str, Any] | None = None
    weight: float | None = None
