"""
Commit coordinator.

Persists the scan aggregate through the committer with a bounded number of
attempts and a fixed delay between them. The payload is serialized once;
every attempt sends the same bytes under the same ``clientScanId`` so the
service can discard a duplicate write whose acknowledgment was lost.

The retry loop is an explicit state machine::

    Attempting(n) -> Succeeded(n)
    Attempting(n) -> TransientFailure(n) -> Attempting(n + 1)   (after delay)
    TransientFailure(max_attempts) -> Exhausted
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
from pydantic import ValidationError as PydanticValidationError

from bodyscan_api.models.body_scan import CommitPayload, CommitResult
from bodyscan_api.services.edge_functions import EdgeFunctionResponse
from bodyscan_api.services.events import LoggingEventSink, ScanEventSink
from bodyscan_api.services.scan_stages import ScanCommitter, StageServiceError

logger = logging.getLogger(__name__)

COMMIT_FUNCTION = "scan-commit"


class CommitAttemptError(Exception):
    """One commit attempt failed."""

    def __init__(self, message: str, attempt: int, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.attempt = attempt
        self.status = status


@dataclass(frozen=True)
class Attempting:
    attempt: int


@dataclass(frozen=True)
class Succeeded:
    attempt: int
    result: CommitResult


@dataclass(frozen=True)
class TransientFailure:
    attempt: int
    error: Exception


@dataclass(frozen=True)
class Exhausted:
    attempts: int
    error: Exception


CommitState = Attempting | Succeeded | TransientFailure | Exhausted

# Failures worth another attempt with the same payload
RETRYABLE_ERRORS = (CommitAttemptError, StageServiceError, httpx.HTTPError)


class CommitCoordinator:
    """Drives the commit protocol for one payload at a time."""

    def __init__(
        self,
        committer: ScanCommitter,
        event_sink: ScanEventSink | None = None,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.committer = committer
        self.event_sink = event_sink or LoggingEventSink()
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep

    async def commit(self, payload: CommitPayload) -> CommitResult:
        """
        Persist the payload.

        Returns:
            The result of the first successful attempt

        Raises:
            The last attempt's error, unchanged, once attempts are exhausted
        """
        client_scan_id = payload.client_scan_id
        body = payload.serialize()

        state: CommitState = Attempting(1)
        while True:
            if isinstance(state, Attempting):
                state = await self._attempt(client_scan_id, body, state.attempt)
            elif isinstance(state, TransientFailure):
                state = await self._after_failure(client_scan_id, state)
            elif isinstance(state, Succeeded):
                return state.result
            elif isinstance(state, Exhausted):
                self.event_sink.record(
                    "commit.exhausted",
                    {
                        "client_scan_id": client_scan_id,
                        "attempts": state.attempts,
                        "error": str(state.error),
                    },
                )
                raise state.error

    async def _attempt(self, client_scan_id: str, body: bytes, attempt: int) -> CommitState:
        logger.debug(f"Commit attempt {attempt}/{self.max_attempts} for scan {client_scan_id}")
        try:
            response = await self.committer.submit(client_scan_id, body)
            result = self._interpret(client_scan_id, response, attempt)
        except RETRYABLE_ERRORS as e:
            self.event_sink.record(
                "commit.attempt_failed",
                {"client_scan_id": client_scan_id, "attempt": attempt, "error": str(e)},
            )
            return TransientFailure(attempt, e)

        self.event_sink.record(
            "commit.succeeded",
            {"client_scan_id": client_scan_id, "attempt": attempt, "scan_id": result.scan_id},
        )
        return Succeeded(attempt, result)

    async def _after_failure(self, client_scan_id: str, state: TransientFailure) -> CommitState:
        if state.attempt >= self.max_attempts:
            return Exhausted(state.attempt, state.error)

        next_attempt = state.attempt + 1
        self.event_sink.record(
            "commit.retry_scheduled",
            {
                "client_scan_id": client_scan_id,
                "next_attempt": next_attempt,
                "delay_seconds": self.retry_delay,
            },
        )
        await self._sleep(self.retry_delay)
        return Attempting(next_attempt)

    def _interpret(
        self, client_scan_id: str, response: EdgeFunctionResponse | None, attempt: int
    ) -> CommitResult:
        """Map a raw response to a result; error wins over data."""
        if response is None:
            raise CommitAttemptError(f"No response received from {COMMIT_FUNCTION} function", attempt)

        if response.error is not None:
            raise CommitAttemptError(
                f"Scan commit failed: {response.error_message}",
                attempt,
                status=response.error.get("status"),
            )

        if response.data is None:
            self.event_sink.record(
                "commit.empty_response", {"client_scan_id": client_scan_id, "attempt": attempt}
            )
            return CommitResult(
                success=True, message="Commit completed without data", empty_response=True
            )

        if not isinstance(response.data, dict):
            raise CommitAttemptError(
                f"Scan commit returned an unexpected payload type: {type(response.data).__name__}",
                attempt,
            )

        try:
            return CommitResult.model_validate(response.data)
        except PydanticValidationError as e:
            raise CommitAttemptError(f"Scan commit returned an invalid payload: {e}", attempt) from e
