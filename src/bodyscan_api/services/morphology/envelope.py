"""Envelope validation and clamping helpers."""

import logging
import math

from bodyscan_api.models.body_scan import (
    Envelope,
    EnvelopeDefect,
    ParameterBounds,
    ParameterKind,
)

logger = logging.getLogger(__name__)


class EnvelopeContractError(Exception):
    """The envelope cannot be enforced at all."""

    def __init__(self, message: str, key: str, kind: ParameterKind):
        super().__init__(message)
        self.message = message
        self.key = key
        self.kind = kind


def clamp(value: float, low: float, high: float) -> float:
    """Force ``value`` into ``[low, high]``."""
    return max(low, min(high, value))


def is_finite_number(value: object) -> bool:
    """True for real ints/floats that are neither NaN nor infinite."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def check_bounds(key: str, kind: ParameterKind, bounds: ParameterBounds) -> list[EnvelopeDefect]:
    """
    Check one envelope entry.

    Returns:
        Data-quality defects on the archetype range (logged, not fatal)

    Raises:
        EnvelopeContractError: If the hard bounds are non-finite or inverted
    """
    values = (bounds.min, bounds.max, bounds.archetype_min, bounds.archetype_max)
    if not all(math.isfinite(v) for v in values):
        raise EnvelopeContractError(f"Non-finite envelope bound for {kind.value} parameter '{key}'", key, kind)
    if bounds.min > bounds.max:
        raise EnvelopeContractError(
            f"Inverted envelope for {kind.value} parameter '{key}': min {bounds.min} > max {bounds.max}",
            key,
            kind,
        )

    defects = []
    if bounds.archetype_min < bounds.min:
        defects.append(EnvelopeDefect(key=key, kind=kind, reason="archetype_min_below_min", bounds=bounds))
    if bounds.archetype_max > bounds.max:
        defects.append(EnvelopeDefect(key=key, kind=kind, reason="archetype_max_above_max", bounds=bounds))
    if bounds.archetype_min > bounds.archetype_max:
        defects.append(EnvelopeDefect(key=key, kind=kind, reason="archetype_range_inverted", bounds=bounds))
    return defects


def validate_envelope(envelope: Envelope) -> list[EnvelopeDefect]:
    """
    Validate every parameter of an envelope.

    Every entry must satisfy ``min <= archetype_min <= archetype_max <= max``.
    Violations of the inner range are returned as defects; an unusable outer
    range raises ``EnvelopeContractError``.
    """
    defects = []
    for kind in ParameterKind:
        for key, bounds in envelope.section(kind).items():
            defects.extend(check_bounds(key, kind, bounds))

    if defects:
        logger.warning(f"Envelope has {len(defects)} data-quality defects")
    return defects
