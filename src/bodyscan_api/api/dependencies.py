"""FastAPI dependency injection factories."""

from typing import Annotated

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from bodyscan_api.core.config import Settings, get_settings
from bodyscan_api.db.mongo import MongoDB
from bodyscan_api.db.unit_of_work import UnitOfWork
from bodyscan_api.services.events import LoggingEventSink, ScanEventSink
from bodyscan_api.services.morphology import MorphologyMappingService, get_morphology_mapping_service
from bodyscan_api.services.pipeline import BodyScanPipeline
from bodyscan_api.services.scan_stages import ScanStages, get_scan_stages

# Type aliases for cleaner route signatures
SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_database() -> AsyncIOMotorDatabase:
    """Get the MongoDB database instance."""
    settings = get_settings()
    return MongoDB.get_database(settings.db_name)


def get_uow(db: AsyncIOMotorDatabase = Depends(get_database)) -> UnitOfWork:
    """Get Unit of Work instance."""
    return UnitOfWork(db)


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]


def get_event_sink() -> ScanEventSink:
    return LoggingEventSink()


def get_body_scan_pipeline(
    settings: SettingsDep,
    stages: ScanStages = Depends(get_scan_stages),
    mapping_service: MorphologyMappingService = Depends(get_morphology_mapping_service),
    event_sink: ScanEventSink = Depends(get_event_sink),
) -> BodyScanPipeline:
    """
    Get a BodyScanPipeline instance.

    The pipeline holds no per-scan state, so one instance per request is
    enough; stage clients are shared through their cached factories.
    """
    return BodyScanPipeline(
        stages,
        mapping_service,
        event_sink=event_sink,
        settings=settings,
    )


PipelineDep = Annotated[BodyScanPipeline, Depends(get_body_scan_pipeline)]
