"""Tests for the commit retry protocol."""

import httpx
import pytest
from pydantic import ValidationError

from bodyscan_api.models.body_scan import (
    CommitPayload,
    EstimateResult,
    MatchResult,
    PhotoMetadata,
    PhotoView,
    RefinerProposal,
    SemanticResult,
)
from bodyscan_api.services.commit import CommitAttemptError, CommitCoordinator
from bodyscan_api.services.edge_functions import EdgeFunctionResponse
from bodyscan_api.services.refinement import enforce_envelope
from bodyscan_api.services.skin_tone import create_skin_tone

from doubles import CLIENT_SCAN_ID, FakeCommitter


@pytest.fixture
def payload(estimate_data, semantic_data, match_data, proposal_data, envelope) -> CommitPayload:
    refinement = enforce_envelope(RefinerProposal.model_validate(proposal_data), envelope)
    return CommitPayload(
        user_id="user_123",
        client_scan_id=CLIENT_SCAN_ID,
        resolved_gender="masculine",
        estimate_result=EstimateResult.model_validate(estimate_data),
        semantic_result=SemanticResult.model_validate(semantic_data),
        match_result=MatchResult.model_validate(match_data),
        morph_bounds=envelope,
        ai_refinement_result=refinement,
        final_shape_params=refinement.final_shape_params,
        final_limb_masses=refinement.final_limb_masses,
        skin_tone=create_skin_tone(180, 140, 110, source="legacy_converted", confidence=0.9),
        photos_metadata=[PhotoMetadata(type=PhotoView.FRONT, capture_report={"lighting": "good"})],
        mapping_version="v1.0",
        gltf_model_id="masculine_v4.13",
        material_config_version="pbr-v2",
        avatar_version="v2.0",
    )


def _error(message: str, status: int | None = 503) -> EdgeFunctionResponse:
    return EdgeFunctionResponse(error={"message": message, "status": status})


def _coordinator(committer, event_sink, fake_sleep) -> CommitCoordinator:
    return CommitCoordinator(committer, event_sink=event_sink, max_attempts=3, retry_delay=2.0, sleep=fake_sleep)


class TestCommitPayload:
    """Tests for the commit payload wire format."""

    def test_wire_format_carries_both_gender_fields(self, payload):
        wire = payload.to_wire()

        assert wire["clientScanId"] == CLIENT_SCAN_ID
        assert wire["resolvedGender"] == "masculine"
        assert wire["resolved_gender"] == "masculine"
        assert wire["morph_bounds"]["shape_params_envelope"]["bigHips"]["max"] == 1.0
        assert wire["skin_tone"]["schema"] == "v2"
        assert wire["photos_metadata"] == [{"type": "front", "captureReport": {"lighting": "good"}}]

    def test_payload_is_frozen(self, payload):
        with pytest.raises(ValidationError):
            payload.mapping_version = "v2.0"


class TestCommitCoordinator:
    """Tests for CommitCoordinator."""

    @pytest.mark.asyncio
    async def test_first_attempt_success_never_sleeps(self, payload, commit_success, event_sink, fake_sleep):
        committer = FakeCommitter([commit_success])

        result = await _coordinator(committer, event_sink, fake_sleep).commit(payload)

        assert result.scan_id == "srv-scan-001"
        assert result.processing_complete is True
        assert len(committer.calls) == 1
        assert fake_sleep.delays == []
        assert event_sink.of("commit.succeeded")[0]["attempt"] == 1

    @pytest.mark.asyncio
    async def test_transient_failures_then_success(self, payload, event_sink, fake_sleep):
        third = EdgeFunctionResponse(data={"scan_id": "srv-scan-003", "success": True})
        committer = FakeCommitter(
            [
                httpx.ConnectError("connection reset"),
                _error("gateway timeout", 504),
                third,
            ]
        )

        result = await _coordinator(committer, event_sink, fake_sleep).commit(payload)

        assert result.scan_id == "srv-scan-003"
        assert len(committer.calls) == 3
        assert fake_sleep.delays == [2.0, 2.0]
        assert sum(fake_sleep.delays) == pytest.approx(4.0)
        assert [f["attempt"] for f in event_sink.of("commit.attempt_failed")] == [1, 2]
        assert [f["next_attempt"] for f in event_sink.of("commit.retry_scheduled")] == [2, 3]

    @pytest.mark.asyncio
    async def test_every_attempt_sends_identical_bytes(self, payload, event_sink, fake_sleep):
        committer = FakeCommitter([None, _error("boom"), EdgeFunctionResponse(data={"scan_id": "x"})])

        await _coordinator(committer, event_sink, fake_sleep).commit(payload)

        bodies = {body for _, body in committer.calls}
        ids = {scan_id for scan_id, _ in committer.calls}
        assert len(bodies) == 1
        assert ids == {CLIENT_SCAN_ID}
        assert bodies.pop() == payload.serialize()

    @pytest.mark.asyncio
    async def test_exhaustion_raises_third_error(self, payload, event_sink, fake_sleep):
        committer = FakeCommitter([_error("first"), _error("second"), _error("third")])

        with pytest.raises(CommitAttemptError) as exc_info:
            await _coordinator(committer, event_sink, fake_sleep).commit(payload)

        assert exc_info.value.message == "Scan commit failed: third"
        assert exc_info.value.attempt == 3
        assert len(committer.calls) == 3
        assert fake_sleep.delays == [2.0, 2.0]
        (exhausted,) = event_sink.of("commit.exhausted")
        assert exhausted["attempts"] == 3

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_transport_error_unchanged(self, payload, event_sink, fake_sleep):
        last = httpx.ReadTimeout("read timed out")
        committer = FakeCommitter([_error("a"), _error("b"), last])

        with pytest.raises(httpx.ReadTimeout) as exc_info:
            await _coordinator(committer, event_sink, fake_sleep).commit(payload)

        assert exc_info.value is last

    @pytest.mark.asyncio
    async def test_no_response_is_a_failed_attempt(self, payload, event_sink, fake_sleep):
        committer = FakeCommitter([None, None, None])

        with pytest.raises(CommitAttemptError, match="No response received from scan-commit function"):
            await _coordinator(committer, event_sink, fake_sleep).commit(payload)

    @pytest.mark.asyncio
    async def test_error_field_wins_over_data(self, payload, event_sink, fake_sleep):
        mixed = EdgeFunctionResponse(data={"scan_id": "ghost"}, error={"message": "constraint violation", "status": 409})
        committer = FakeCommitter([mixed, mixed, mixed])

        with pytest.raises(CommitAttemptError, match="constraint violation"):
            await _coordinator(committer, event_sink, fake_sleep).commit(payload)

    @pytest.mark.asyncio
    async def test_empty_response_is_successful(self, payload, event_sink, fake_sleep):
        committer = FakeCommitter([EdgeFunctionResponse()])

        result = await _coordinator(committer, event_sink, fake_sleep).commit(payload)

        assert result.success is True
        assert result.empty_response is True
        assert result.scan_id is None
        assert result.message == "Commit completed without data"
        assert event_sink.of("commit.empty_response")
        assert len(committer.calls) == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_not_retried(self, payload, event_sink, fake_sleep):
        committer = FakeCommitter([RuntimeError("bug"), EdgeFunctionResponse(data={"scan_id": "x"})])

        with pytest.raises(RuntimeError):
            await _coordinator(committer, event_sink, fake_sleep).commit(payload)

        assert len(committer.calls) == 1

    def test_rejects_zero_attempts(self, event_sink):
        with pytest.raises(ValueError):
            CommitCoordinator(FakeCommitter([]), event_sink=event_sink, max_attempts=0)
