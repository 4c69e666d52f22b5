"""
Morphological refinement enforcement.

The generative refiner only proposes values. Every proposal is clamped to
the matcher envelope (intersected with the database-defined ranges) before
it can reach the avatar, and every correction is recorded on the result.
"""

import logging
from typing import Any

from bodyscan_api.models.body_scan import (
    BoundViolation,
    Envelope,
    ParameterKind,
    RefinementResult,
    RefinerProposal,
    RefineRequest,
)
from bodyscan_api.services.events import LoggingEventSink, ScanEventSink
from bodyscan_api.services.morphology import (
    MorphPolicy,
    clamp,
    is_finite_number,
    to_canonical_key,
)
from bodyscan_api.services.scan_stages import MorphologicalRefiner

logger = logging.getLogger(__name__)

CLAMP_TOLERANCE = 1e-9


def filter_finite_numeric(values: dict[str, Any]) -> tuple[dict[str, float], list[str]]:
    """
    Keep only finite numeric entries.

    Returns:
        (kept values as floats, sorted list of dropped keys)
    """
    kept = {}
    dropped = []
    for key, value in values.items():
        if is_finite_number(value):
            kept[key] = float(value)
        else:
            dropped.append(key)
    return kept, sorted(dropped)


def enforce_envelope(
    proposal: RefinerProposal,
    envelope: Envelope,
    policy: MorphPolicy | None = None,
    mapping_version: str | None = None,
    limb_mass_keys_dropped: list[str] | None = None,
) -> RefinementResult:
    """
    Clamp a refiner proposal to the envelope and audit every change.

    For each envelope key:
      - a missing, non-numeric or non-finite proposal is replaced by the
        archetype midpoint clamped to ``[min, max]`` (``missing_keys_added``)
      - otherwise the value is clamped to the envelope intersected with the
        DB range; if the two do not overlap the envelope alone applies
    Proposed keys outside the envelope are dropped (``extra_keys_removed``).
    Required DB morph keys the envelope never covered are listed in
    ``required_keys_missing``.
    """
    finals: dict[ParameterKind, dict[str, float]] = {}
    clamped_keys = []
    envelope_violations = []
    db_violations = []
    missing_keys_added = []
    extra_keys_removed = []

    sections = (
        (ParameterKind.SHAPE, proposal.final_shape_params),
        (ParameterKind.LIMB, proposal.final_limb_masses),
    )
    for kind, proposed_values in sections:
        bounds_by_key = envelope.section(kind)
        extra_keys_removed.extend(k for k in proposed_values if k not in bounds_by_key)
        final = finals.setdefault(kind, {})

        for key, bounds in bounds_by_key.items():
            proposed = proposed_values.get(key)
            if not is_finite_number(proposed):
                final[key] = clamp(bounds.archetype_midpoint, bounds.min, bounds.max)
                missing_keys_added.append(key)
                continue

            proposed = float(proposed)
            low, high = bounds.min, bounds.max
            if not low <= proposed <= high:
                envelope_violations.append(
                    BoundViolation(key=key, kind=kind, proposed=proposed, min=low, max=high)
                )

            db_range = None
            if policy is not None:
                db_key = to_canonical_key(key) if kind == ParameterKind.SHAPE else key
                db_range = policy.range_for(kind, db_key)
            if db_range is not None:
                if not db_range.contains(proposed):
                    db_violations.append(
                        BoundViolation(
                            key=key, kind=kind, proposed=proposed, min=db_range.min, max=db_range.max
                        )
                    )
                overlap_low = max(low, db_range.min)
                overlap_high = min(high, db_range.max)
                if overlap_low <= overlap_high:
                    low, high = overlap_low, overlap_high
                else:
                    logger.warning(
                        f"DB range for {key} [{db_range.min}, {db_range.max}] does not overlap "
                        f"envelope [{bounds.min}, {bounds.max}]; enforcing envelope only"
                    )

            value = clamp(proposed, low, high)
            if abs(value - proposed) > CLAMP_TOLERANCE:
                clamped_keys.append(key)
            final[key] = value

    required_keys_missing = []
    if policy is not None:
        covered = {to_canonical_key(k) for k in finals[ParameterKind.SHAPE]}
        required_keys_missing = sorted(k for k in policy.required_keys if k not in covered)

    return RefinementResult(
        final_shape_params=finals[ParameterKind.SHAPE],
        final_limb_masses=finals[ParameterKind.LIMB],
        clamped_keys=sorted(clamped_keys),
        envelope_violations=sorted(envelope_violations, key=lambda v: (v.kind.value, v.key)),
        db_violations=sorted(db_violations, key=lambda v: (v.kind.value, v.key)),
        missing_keys_added=sorted(missing_keys_added),
        extra_keys_removed=sorted(extra_keys_removed),
        required_keys_missing=required_keys_missing,
        out_of_range_count=len(clamped_keys),
        ai_refine=proposal.ai_refine,
        ai_confidence=proposal.ai_confidence,
        mapping_version=mapping_version,
        limb_mass_keys_dropped=sorted(limb_mass_keys_dropped or []),
        service_audit={
            "clamped_keys": proposal.clamped_keys,
            "envelope_violations": proposal.envelope_violations,
            "db_violations": proposal.db_violations,
            "missing_keys_added": proposal.missing_keys_added,
            "extra_keys_removed": proposal.extra_keys_removed,
            "out_of_range_count": proposal.out_of_range_count,
        },
    )


class MorphologicalRefinementService:
    """Runs the refiner and enforces its output against the envelope."""

    def __init__(self, refiner: MorphologicalRefiner, event_sink: ScanEventSink | None = None):
        self.refiner = refiner
        self.event_sink = event_sink or LoggingEventSink()

    def prepare_limb_masses(self, client_scan_id: str, limb_masses: dict[str, Any]) -> tuple[dict[str, float], list[str]]:
        """Drop non-finite limb masses before they reach the refiner."""
        kept, dropped = filter_finite_numeric(limb_masses)
        if dropped:
            self.event_sink.record(
                "refine.limb_masses_filtered",
                {"client_scan_id": client_scan_id, "dropped_keys": dropped, "kept_count": len(kept)},
            )
        return kept, dropped

    async def refine(
        self,
        client_scan_id: str,
        request: RefineRequest,
        policy: MorphPolicy | None = None,
        limb_mass_keys_dropped: list[str] | None = None,
    ) -> RefinementResult:
        """
        Request a refinement and clamp it.

        Refiner failures propagate; there is no fallback to the blend.
        """
        proposal = await self.refiner.refine(request)

        result = enforce_envelope(
            proposal,
            request.k5_envelope,
            policy=policy,
            mapping_version=request.mapping_version,
            limb_mass_keys_dropped=limb_mass_keys_dropped,
        )
        self._record_audit(client_scan_id, result)
        return result

    def _record_audit(self, client_scan_id: str, result: RefinementResult) -> None:
        audits = {
            "refine.clamped": result.clamped_keys,
            "refine.envelope_violations": [v.key for v in result.envelope_violations],
            "refine.db_violations": [v.key for v in result.db_violations],
            "refine.missing_keys_added": result.missing_keys_added,
            "refine.extra_keys_removed": result.extra_keys_removed,
            "refine.required_keys_missing": result.required_keys_missing,
        }
        for event, keys in audits.items():
            if keys:
                self.event_sink.record(
                    event, {"client_scan_id": client_scan_id, "keys": keys, "count": len(keys)}
                )

        self.event_sink.record(
            "refine.completed",
            {
                "client_scan_id": client_scan_id,
                "active_keys_count": result.active_keys_count,
                "out_of_range_count": result.out_of_range_count,
                "ai_confidence": result.ai_confidence,
            },
        )
