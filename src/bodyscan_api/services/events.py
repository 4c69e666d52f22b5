"""Structured scan events.

Every pipeline decision that affects precision (clamps, fallbacks,
relaxed filters, retries) is reported through a ``ScanEventSink`` so
callers can audit a scan without parsing log text.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class ScanEventSink(ABC):
    """Receiver of structured pipeline events."""

    @abstractmethod
    def record(self, event: str, fields: dict[str, Any]) -> None:
        """
        Record one event.

        Args:
            event: Dotted event name, e.g. ``refine.clamped``
            fields: Event payload; always includes ``client_scan_id``
        """
        pass


class LoggingEventSink(ScanEventSink):
    """Event sink that writes each event to the standard logger."""

    WARNING_EVENTS = frozenset(
        {
            "match.degraded_mode",
            "match.bmi_relaxation_applied",
            "envelope.defect",
            "refine.limb_masses_filtered",
            "refine.clamped",
            "refine.envelope_violations",
            "refine.db_violations",
            "refine.missing_keys_added",
            "refine.extra_keys_removed",
            "morphology_mapping.fallback",
            "skin_tone.fallback",
            "commit.retry_scheduled",
            "commit.empty_response",
        }
    )
    ERROR_EVENTS = frozenset(
        {"commit.attempt_failed", "commit.exhausted", "pipeline.stage_failed"}
    )

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def level_for(self, event: str) -> int:
        if event in self.ERROR_EVENTS:
            return logging.ERROR
        if event in self.WARNING_EVENTS:
            return logging.WARNING
        return logging.INFO

    def record(self, event: str, fields: dict[str, Any]) -> None:
        payload = json.dumps(fields, default=str, sort_keys=True)
        self._log.log(self.level_for(event), f"{event} {payload}", extra={"scan_event": event})
