"""Body scan API routes."""

import logging
from uuid import uuid4

from fastapi import APIRouter, Query

from bodyscan_api.api.dependencies import PipelineDep, UoWDep
from bodyscan_api.core.exceptions import NotFoundError
from bodyscan_api.models.body_scan import (
    BodyScanProcessRequest,
    BodyScanRecord,
    ScanProcessingConfig,
    ScanProcessingResult,
    UserScanParams,
)
from bodyscan_api.services.morphology import to_db_gender

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_HISTORY = 1000


@router.post("/process", response_model=ScanProcessingResult)
async def process_body_scan(request: BodyScanProcessRequest, pipeline: PipelineDep):
    """
    Run the full scan pipeline for one scan attempt.

    - **client_scan_id**: idempotency key; generated when omitted
    - **photos**: front and/or side photo with capture reports

    A failure in any stage returns 502 with the failing stage and the
    client scan id, so the whole attempt can be retried.
    """
    client_scan_id = request.client_scan_id or str(uuid4())
    config = ScanProcessingConfig(
        user_id=request.user_id,
        client_scan_id=client_scan_id,
        photos=request.photos,
        scan_params=UserScanParams(
            sex=request.sex,
            height_cm=request.height_cm,
            weight_kg=request.weight_kg,
        ),
        resolved_gender=to_db_gender(request.sex),
    )
    logger.info(f"Body scan {client_scan_id} requested by {request.user_id}")
    return await pipeline.process(config)


@router.get("/latest", response_model=BodyScanRecord | None)
async def get_latest_scan(
    uow: UoWDep,
    user_id: str,
    with_morph_data: bool = False,
):
    """
    Get the user's most recent scan (null when the user has none).

    - **with_morph_data**: only consider scans that carry morph values and limb masses
    """
    if with_morph_data:
        return await uow.body_scans.get_latest_with_morph_data(user_id)
    return await uow.body_scans.get_latest(user_id)


@router.get("/history", response_model=list[BodyScanRecord])
async def get_scan_history(
    uow: UoWDep,
    user_id: str,
    limit: int = Query(MAX_HISTORY, ge=1, le=MAX_HISTORY),
):
    """Get the user's scans, newest first."""
    return await uow.body_scans.get_history(user_id, limit=limit)


@router.get("/{scan_id}", response_model=BodyScanRecord)
async def get_scan(scan_id: str, uow: UoWDep):
    """Get a single scan by id."""
    scan = await uow.body_scans.get_by_id(scan_id)
    if scan is None:
        raise NotFoundError("Body scan", scan_id)
    return scan
