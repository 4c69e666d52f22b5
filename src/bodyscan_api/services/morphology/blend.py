"""
Archetype blending.

Produces the starting shape parameters and limb masses handed to the
refiner when the matcher did not return a pre-blended set.
"""

import logging
import math
from dataclasses import dataclass, field

from bodyscan_api.models.body_scan import Archetype

from .envelope import is_finite_number
from .keys import to_canonical_key

logger = logging.getLogger(__name__)

DISTANCE_EPSILON = 0.1
SOFTMAX_TEMPERATURE = 2.0
MIN_WEIGHT = 0.01
EXTREME_VALUE = 3.0


@dataclass
class BlendResult:
    """Weighted blend of the selected archetypes."""

    shape_params: dict[str, float] = field(default_factory=dict)
    limb_masses: dict[str, float] = field(default_factory=dict)
    weights: list[tuple[str, float]] = field(default_factory=list)
    confidence: float = 0.0
    quality_score: float = 0.0


def _distance(archetype: Archetype) -> float:
    return 1.0 if archetype.distance is None else archetype.distance


def calculate_blend_weights(archetypes: list[Archetype]) -> list[tuple[str, float]]:
    """
    Inverse-distance weights, smoothed with a softmax.

    Weights below 1% are dropped and the remainder renormalized.
    """
    if len(archetypes) == 1:
        return [(archetypes[0].id, 1.0)]

    raw = [(a.id, 1.0 / (DISTANCE_EPSILON + _distance(a))) for a in archetypes]
    total = sum(w for _, w in raw)
    normalized = [(aid, w / total) for aid, w in raw]

    exp_weights = [(aid, math.exp(w / SOFTMAX_TEMPERATURE)) for aid, w in normalized]
    exp_sum = sum(w for _, w in exp_weights)
    softmax = [(aid, w / exp_sum) for aid, w in exp_weights]

    significant = [(aid, w) for aid, w in softmax if w >= MIN_WEIGHT]
    final_sum = sum(w for _, w in significant)
    return [(aid, w / final_sum) for aid, w in significant]


def _lookup_shape_value(archetype: Archetype, canonical_key: str) -> float:
    for key, value in archetype.morph_values.items():
        if to_canonical_key(key) == canonical_key:
            return value
    return 0.0


def _limb_value(archetype: Archetype, key: str) -> float:
    value = archetype.limb_masses.get(key)
    return float(value) if is_finite_number(value) else 1.0


def _blend_confidence(archetypes: list[Archetype], weights: list[tuple[str, float]]) -> float:
    avg_distance = sum(_distance(a) for a in archetypes) / len(archetypes)
    distance_confidence = max(0.1, 1 / (1 + avg_distance))
    diversity_bonus = min(0.2, len(archetypes) * 0.05)

    entropy = -sum(w * math.log(w) for _, w in weights if w > 0)
    max_entropy = math.log(len(weights)) if weights else 0.0
    entropy_bonus = (entropy / max_entropy) * 0.1 if max_entropy > 0 else 0.0

    return min(0.95, distance_confidence + diversity_bonus + entropy_bonus)


def _blend_quality(weights: list[tuple[str, float]], shape_params: dict[str, float]) -> float:
    consistency = 1.0
    for value in shape_params.values():
        if abs(value) > EXTREME_VALUE:
            consistency *= 0.9

    effective = sum(1 for _, w in weights if w > 0.1)
    diversity_bonus = min(0.2, effective * 0.05)
    return max(0.1, min(1.0, consistency + diversity_bonus))


def blend_archetypes(archetypes: list[Archetype]) -> BlendResult:
    """
    Blend archetype templates by weighted mean.

    Shape keys are canonicalized; an archetype lacking a shape key
    contributes 0.0, one lacking a limb mass (or carrying a non-finite one)
    contributes 1.0. Limb keys with no finite value anywhere are left out.

    Raises:
        ValueError: If no archetypes are given
    """
    if not archetypes:
        raise ValueError("No archetypes provided for blending")

    weights = calculate_blend_weights(archetypes)
    weight_by_id = dict(weights)
    weighted = [(a, weight_by_id[a.id]) for a in archetypes if a.id in weight_by_id]
    total_weight = sum(w for _, w in weighted)

    shape_keys = sorted({to_canonical_key(k) for a in archetypes for k in a.morph_values})
    limb_keys = sorted({k for a in archetypes for k, v in a.limb_masses.items() if is_finite_number(v)})

    shape_params = {}
    for key in shape_keys:
        weighted_sum = sum(_lookup_shape_value(a, key) * w for a, w in weighted)
        shape_params[key] = weighted_sum / total_weight if total_weight > 0 else 0.0

    limb_masses = {}
    for key in limb_keys:
        weighted_sum = sum(_limb_value(a, key) * w for a, w in weighted)
        limb_masses[key] = weighted_sum / total_weight if total_weight > 0 else 1.0

    result = BlendResult(
        shape_params=shape_params,
        limb_masses=limb_masses,
        weights=weights,
        confidence=_blend_confidence(archetypes, weights),
        quality_score=_blend_quality(weights, shape_params),
    )

    logger.info(
        f"Blended {len(archetypes)} archetypes: {len(shape_params)} shape keys, "
        f"{len(limb_masses)} limb keys, confidence={result.confidence:.3f}, "
        f"quality={result.quality_score:.3f}"
    )
    return result
