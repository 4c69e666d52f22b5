"""Pydantic models for API schemas."""

from .body_scan import (
    Archetype,
    BMIRange,
    BodyScanProcessRequest,
    BodyScanRecord,
    BoundViolation,
    CommitPayload,
    CommitResult,
    DataQualityReport,
    DeclaredSex,
    Envelope,
    EnvelopeDefect,
    EstimateRequest,
    EstimateResult,
    ExtractedData,
    FilteringStats,
    Gender,
    MappingMetadata,
    MatchRequest,
    MatchResult,
    ParameterBounds,
    ParameterKind,
    PhotoMetadata,
    PhotoView,
    RawMeasurements,
    RefinementResult,
    RefinerProposal,
    RefineRequest,
    ScanPhoto,
    ScanProcessingConfig,
    ScanProcessingResult,
    SemanticProfile,
    SemanticRequest,
    SemanticResult,
    SkinTone,
    UserScanParams,
)

__all__ = [
    # Shared
    "Gender",
    "DeclaredSex",
    "PhotoView",
    "ParameterKind",
    "ScanPhoto",
    "UserScanParams",
    # Stages
    "EstimateRequest",
    "EstimateResult",
    "ExtractedData",
    "RawMeasurements",
    "SemanticRequest",
    "SemanticResult",
    "SemanticProfile",
    "MatchRequest",
    "MatchResult",
    "Archetype",
    "BMIRange",
    "Envelope",
    "EnvelopeDefect",
    "ParameterBounds",
    "FilteringStats",
    "MappingMetadata",
    "RefineRequest",
    "RefinerProposal",
    "RefinementResult",
    "BoundViolation",
    # Output
    "SkinTone",
    "PhotoMetadata",
    "CommitPayload",
    "CommitResult",
    "ScanProcessingConfig",
    "ScanProcessingResult",
    "DataQualityReport",
    # HTTP
    "BodyScanProcessRequest",
    "BodyScanRecord",
]
