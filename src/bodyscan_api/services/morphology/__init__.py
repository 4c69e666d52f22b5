"""
Morphology helpers: key normalization, envelope checks, archetype blending
and the database-defined morph bounds.
"""

from .blend import BlendResult, blend_archetypes, calculate_blend_weights
from .envelope import EnvelopeContractError, clamp, is_finite_number, validate_envelope
from .keys import to_canonical_key, to_db_gender, to_gender_key
from .mapping import (
    MorphologyMapping,
    MorphologyMappingService,
    MorphPolicy,
    ValueRange,
    build_morph_policy,
    fallback_mapping,
    get_morphology_mapping_service,
    validate_mapping,
)

__all__ = [
    "BlendResult",
    "EnvelopeContractError",
    "MorphPolicy",
    "MorphologyMapping",
    "MorphologyMappingService",
    "ValueRange",
    "blend_archetypes",
    "build_morph_policy",
    "calculate_blend_weights",
    "clamp",
    "fallback_mapping",
    "get_morphology_mapping_service",
    "is_finite_number",
    "to_canonical_key",
    "to_db_gender",
    "to_gender_key",
    "validate_envelope",
    "validate_mapping",
]
