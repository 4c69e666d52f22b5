"""
Database-defined morphology bounds.

The ``morphology-mapping`` function publishes, per gender, the min/max range
of every morph value and limb mass observed across the archetype
population. These ranges are the hard bounds refinement output is checked
against in addition to the matcher envelope.
"""

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from bodyscan_api.models.body_scan import ParameterKind
from bodyscan_api.services.edge_functions import EdgeFunctionClient, get_edge_function_client
from bodyscan_api.services.events import LoggingEventSink, ScanEventSink

from .keys import to_canonical_key, to_gender_key

logger = logging.getLogger(__name__)

MAPPING_FUNCTION = "morphology-mapping"

# Face morphs may be missing from a model; they are never required.
FACE_KEYS = (
    "FaceLowerEyelashLength",
    "eyelashLength",
    "eyelashesSpecial",
    "eyesShape",
    "eyesSpacing",
    "eyesDown",
    "eyesUp",
    "eyesSpacingWide",
    "eyesClosedL",
    "eyesClosedR",
)
FACE_DEFAULT_RANGE = (-2.0, 2.0)


class ValueRange(BaseModel):
    min: float
    max: float

    @property
    def is_disabled(self) -> bool:
        """A [0, 0] range switches the morph off."""
        return self.min == 0 and self.max == 0

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


class GenderMapping(BaseModel):
    """Observed ranges and categorical vocabularies for one gender."""

    morph_values: dict[str, ValueRange]
    limb_masses: dict[str, ValueRange]
    face_values: dict[str, ValueRange] = Field(default_factory=dict)
    levels: list[str] = Field(default_factory=list)
    obesity: list[str] = Field(default_factory=list)
    morphotypes: list[str] = Field(default_factory=list)
    muscularity: list[str] = Field(default_factory=list)
    bmi_range: ValueRange | None = None
    height_range: ValueRange | None = None
    weight_range: ValueRange | None = None
    morph_index: ValueRange | None = None
    muscle_index: ValueRange | None = None


class MorphologyMapping(BaseModel):
    """Ranges for both genders plus where they came from."""

    mapping_masculine: GenderMapping
    mapping_feminine: GenderMapping
    source: Literal["database", "fallback"] = "database"

    def for_gender(self, gender: str) -> GenderMapping:
        if to_gender_key(gender) == "male":
            return self.mapping_masculine
        return self.mapping_feminine


@dataclass
class MorphPolicy:
    """Required/optional keys and DB ranges for one gender."""

    required_keys: list[str] = field(default_factory=list)
    optional_keys: list[str] = field(default_factory=list)
    shape_ranges: dict[str, ValueRange] = field(default_factory=dict)
    limb_ranges: dict[str, ValueRange] = field(default_factory=dict)

    def range_for(self, kind: ParameterKind, key: str) -> ValueRange | None:
        ranges = self.shape_ranges if kind == ParameterKind.SHAPE else self.limb_ranges
        return ranges.get(key)


def build_morph_policy(mapping: MorphologyMapping, gender: str) -> MorphPolicy:
    """
    Build the morph policy for a gender from the mapping.

    Keys with a [0, 0] range are optional (disabled); every other mapped key
    is required. Face keys not present in the mapping are optional with a
    default range of [-2, 2].
    """
    gender_mapping = mapping.for_gender(gender)
    policy = MorphPolicy()

    for key, value_range in gender_mapping.morph_values.items():
        canonical = to_canonical_key(key)
        policy.shape_ranges[canonical] = value_range
        if value_range.is_disabled:
            policy.optional_keys.append(canonical)
        else:
            policy.required_keys.append(canonical)

    for key in FACE_KEYS:
        canonical = to_canonical_key(key)
        if canonical in policy.required_keys or canonical in policy.optional_keys:
            continue
        policy.optional_keys.append(canonical)
        if canonical not in policy.shape_ranges:
            low, high = FACE_DEFAULT_RANGE
            policy.shape_ranges[canonical] = ValueRange(min=low, max=high)

    for key, value_range in gender_mapping.limb_masses.items():
        policy.limb_ranges[key] = value_range

    logger.debug(
        f"Morph policy for {gender} ({mapping.source}): "
        f"{len(policy.required_keys)} required, {len(policy.optional_keys)} optional, "
        f"{len(policy.limb_ranges)} limb ranges"
    )
    return policy


class MorphologyMappingService:
    """Loads the morphology mapping, falling back to built-in ranges."""

    def __init__(self, client: EdgeFunctionClient, event_sink: ScanEventSink | None = None):
        self.client = client
        self.event_sink = event_sink or LoggingEventSink()

    async def get_mapping(self, client_scan_id: str | None = None) -> MorphologyMapping:
        """
        Fetch the current morphology mapping.

        Never raises: any service error or malformed payload yields the
        built-in fallback mapping, recorded as a data-quality event.
        """
        response = await self.client.invoke(MAPPING_FUNCTION, method="GET")

        if response.error is not None:
            return self._fallback(client_scan_id, f"service error: {response.error_message}")

        payload = response.data
        if not isinstance(payload, dict) or not payload.get("success"):
            return self._fallback(client_scan_id, "invalid response")

        data = payload.get("data")
        if not isinstance(data, dict):
            return self._fallback(client_scan_id, "missing mapping data")

        issues = validate_mapping(data)
        if issues:
            return self._fallback(client_scan_id, "; ".join(issues))

        try:
            mapping = MorphologyMapping.model_validate(data)
        except PydanticValidationError as e:
            return self._fallback(client_scan_id, f"invalid mapping data: {e.error_count()} errors")

        version = (payload.get("metadata") or {}).get("version")
        logger.info(
            f"Morphology mapping loaded (version={version}): "
            f"{len(mapping.mapping_masculine.morph_values)} masculine / "
            f"{len(mapping.mapping_feminine.morph_values)} feminine morph values"
        )
        return mapping

    def _fallback(self, client_scan_id: str | None, reason: str) -> MorphologyMapping:
        self.event_sink.record(
            "morphology_mapping.fallback",
            {"client_scan_id": client_scan_id, "reason": reason},
        )
        return fallback_mapping()


def validate_mapping(mapping: dict[str, Any]) -> list[str]:
    """Return structural issues in a raw mapping payload (empty when valid)."""
    issues = []
    for gender in ("masculine", "feminine"):
        section = mapping.get(f"mapping_{gender}")
        if not isinstance(section, dict):
            issues.append(f"Missing mapping_{gender}")
            continue
        if not section.get("morph_values"):
            issues.append(f"Missing {gender} morph_values")
        if not section.get("limb_masses"):
            issues.append(f"Missing {gender} limb_masses")
        if not isinstance(section.get("levels"), list):
            issues.append(f"Invalid {gender} levels")
        if not isinstance(section.get("obesity"), list):
            issues.append(f"Invalid {gender} obesity")
    return issues


def _ranges(values: dict[str, tuple[float, float]]) -> dict[str, ValueRange]:
    return {key: ValueRange(min=low, max=high) for key, (low, high) in values.items()}


def fallback_mapping() -> MorphologyMapping:
    """Built-in mapping used when the mapping service is unavailable."""
    return MorphologyMapping(
        source="fallback",
        mapping_masculine=GenderMapping(
            levels=["Émacié", "Mince", "Normal", "Obèse", "Obèse morbide", "Obèse sévère", "Surpoids"],
            obesity=["Non obèse", "Obèse", "Obésité morbide", "Surpoids"],
            morphotypes=["OVA", "POI", "POM", "REC", "SAB", "TRI"],
            muscularity=[
                "Atrophié sévère",
                "Légèrement atrophié",
                "Moyen musclé",
                "Musclé",
                "Normal costaud",
            ],
            bmi_range=ValueRange(min=15.9, max=48.1),
            height_range=ValueRange(min=164, max=191),
            weight_range=ValueRange(min=50, max=175),
            morph_index=ValueRange(min=-0.6, max=2),
            muscle_index=ValueRange(min=-0.92, max=1.45),
            limb_masses=_ranges(
                {
                    "gate": (1, 1),
                    "armMass": (0.3, 1.8),
                    "calfMass": (0.3, 1.75),
                    "neckMass": (0.2, 1.6),
                    "thighMass": (0.4, 1.95),
                    "torsoMass": (0.3, 1.95),
                    "forearmMass": (0.2, 1.6),
                }
            ),
            morph_values=_ranges(
                {
                    "bigHips": (-0.5, 1),
                    "nipples": (0, 0),
                    "assLarge": (-0.6, 1.1),
                    "dollBody": (0, 0.7),
                    "pregnant": (0, 0),
                    "animeNeck": (0, 0.8),
                    "emaciated": (-2.2, 1.5),
                    "animeWaist": (-1, 1),
                    "breastsSag": (-1, 1.3),
                    "pearFigure": (-0.5, 2),
                    "narrowWaist": (-2, 0),
                    "superBreast": (-0.5, 0),
                    "breastsSmall": (0, 2),
                    "animeProportion": (0, 0),
                    "bodybuilderSize": (-0.8, 1.5),
                    "bodybuilderDetails": (-1.5, 2.5),
                    "FaceLowerEyelashLength": (0, 1),
                }
            ),
        ),
        mapping_feminine=GenderMapping(
            levels=["Émacié", "Normal", "Obèse", "Obèse morbide", "Obèse sévère", "Surpoids"],
            obesity=["Non obèse", "Obèse", "Obésité morbide", "Surpoids"],
            morphotypes=["OVA", "POI", "POM", "REC", "SAB", "TRI"],
            muscularity=[
                "Atrophiée sévère",
                "Moins musclée",
                "Moyennement musclée",
                "Musclée",
                "Normal costaud",
            ],
            bmi_range=ValueRange(min=16.5, max=47),
            height_range=ValueRange(min=158, max=178),
            weight_range=ValueRange(min=43, max=140),
            morph_index=ValueRange(min=-0.16, max=1.92),
            muscle_index=ValueRange(min=-0.79, max=1.08),
            limb_masses=_ranges(
                {
                    "gate": (1, 1),
                    "armMass": (0.862, 1.325),
                    "calfMass": (0.9, 1.35),
                    "neckMass": (0.889, 1.25),
                    "thighMass": (0.935, 1.525),
                    "torsoMass": (0.745, 1.375),
                    "forearmMass": (0.759, 1.2),
                }
            ),
            morph_values=_ranges(
                {
                    "bigHips": (-1, 0.9),
                    "nipples": (0, 0),
                    "assLarge": (-0.8, 1.2),
                    "dollBody": (0, 0.6),
                    "pregnant": (0, 0),
                    "animeNeck": (0, 0),
                    "emaciated": (-2.3, 0.3),
                    "animeWaist": (-0.5, 0.8),
                    "breastsSag": (-0.8, 0.95),
                    "pearFigure": (-0.4, 1.8),
                    "narrowWaist": (-1.8, 1),
                    "superBreast": (0, 0.3),
                    "breastsSmall": (0, 1),
                    "animeProportion": (0, 0),
                    "bodybuilderSize": (-0.8, 1.2),
                    "bodybuilderDetails": (-1, 0.8),
                    "FaceLowerEyelashLength": (1, 1),
                }
            ),
        ),
    )


@lru_cache
def get_morphology_mapping_service() -> MorphologyMappingService:
    """Get a cached mapping service bound to the shared edge client."""
    return MorphologyMappingService(get_edge_function_client())
