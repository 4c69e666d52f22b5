"""
Skin tone normalization.

All skin tones are converted to the V2 representation (8-bit sRGB plus
float sRGB, linear and hex forms) before they are committed.
"""

import logging
import statistics
from typing import Any

from bodyscan_api.models.body_scan import RGB255, EstimateResult, RGBFloat, ScanPhoto, SkinTone
from bodyscan_api.services.events import ScanEventSink
from bodyscan_api.services.morphology import is_finite_number

logger = logging.getLogger(__name__)

EMERGENCY_RGB = (153, 108, 78)
EMERGENCY_CONFIDENCE = 0.3
LEGACY_CONFIDENCE = 0.5


def srgb_to_linear(c: float) -> float:
    """Standard sRGB transfer function inverse."""
    c = max(0.0, min(1.0, c))
    if c <= 0.04045:
        return c / 12.92
    return ((c + 0.055) / 1.055) ** 2.4


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return "#" + "".join(f"{max(0, min(255, round(x))):02x}" for x in (r, g, b))


def _clamp255(value: float) -> int:
    return max(0, min(255, int(value)))


def create_skin_tone(
    r: float,
    g: float,
    b: float,
    source: str,
    confidence: float | None = None,
    pixel_count: int | None = None,
) -> SkinTone:
    """Build a complete V2 skin tone from 8-bit channel values."""
    r8, g8, b8 = _clamp255(r), _clamp255(g), _clamp255(b)
    srgb = RGBFloat(r=r8 / 255, g=g8 / 255, b=b8 / 255)
    return SkinTone(
        rgb=RGB255(r=r8, g=g8, b=b8),
        hex=rgb_to_hex(r8, g8, b8),
        srgb_f32=srgb,
        linear_f32=RGBFloat(
            r=srgb_to_linear(srgb.r),
            g=srgb_to_linear(srgb.g),
            b=srgb_to_linear(srgb.b),
        ),
        source=source,
        confidence=confidence,
        pixel_count=pixel_count,
    )


def is_v2_tone(value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    rgb = value.get("rgb")
    return (
        value.get("schema") == "v2"
        and value.get("space") == "sRGB"
        and value.get("format") == "rgb255"
        and isinstance(rgb, dict)
        and all(is_finite_number(rgb.get(c)) for c in "rgb")
    )


def is_legacy_tone(value: Any) -> bool:
    return isinstance(value, dict) and all(is_finite_number(value.get(c)) for c in "rgb")


def normalize_skin_tone(value: Any) -> SkinTone | None:
    """Convert a V2 or legacy ``{r, g, b}`` tone to V2; None if unrecognized."""
    if is_v2_tone(value):
        rgb = value["rgb"]
        return create_skin_tone(
            rgb["r"],
            rgb["g"],
            rgb["b"],
            source=value.get("source") or "v2",
            confidence=value.get("confidence"),
            pixel_count=value.get("pixelCount"),
        )
    if is_legacy_tone(value):
        return create_skin_tone(
            value["r"],
            value["g"],
            value["b"],
            source=value.get("source") or "legacy_converted",
            confidence=value.get("confidence") or LEGACY_CONFIDENCE,
            pixel_count=value.get("pixelCount"),
        )
    return None


def _capture_report_median(photos: list[ScanPhoto]) -> SkinTone | None:
    tones = []
    for photo in photos:
        report = photo.report or {}
        tone = report.get("skin_tone")
        if is_legacy_tone(tone):
            tones.append(tone)
        elif is_v2_tone(tone):
            tones.append(tone["rgb"])
    if not tones:
        return None

    return create_skin_tone(
        statistics.median(t["r"] for t in tones),
        statistics.median(t["g"] for t in tones),
        statistics.median(t["b"] for t in tones),
        source="capture_report_median",
        confidence=LEGACY_CONFIDENCE,
    )


def resolve_skin_tone(
    estimate: EstimateResult,
    photos: list[ScanPhoto],
    client_scan_id: str,
    event_sink: ScanEventSink,
) -> SkinTone:
    """
    Pick the skin tone to commit.

    Order: estimator tone (V2, then legacy), median of the capture reports,
    then the emergency tone, which is recorded as a fallback event.
    """
    tone = normalize_skin_tone(estimate.extracted_data.skin_tone)
    if tone is not None:
        return tone

    tone = _capture_report_median(photos)
    if tone is not None:
        logger.info(f"Skin tone for scan {client_scan_id} taken from capture reports")
        return tone

    event_sink.record(
        "skin_tone.fallback",
        {"client_scan_id": client_scan_id, "rgb": list(EMERGENCY_RGB)},
    )
    return create_skin_tone(*EMERGENCY_RGB, source="emergency_fallback", confidence=EMERGENCY_CONFIDENCE)
