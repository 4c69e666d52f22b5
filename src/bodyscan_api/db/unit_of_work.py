"""Unit of Work pattern for managing repository access."""

from motor.motor_asyncio import AsyncIOMotorDatabase

from .repositories.body_scans import BodyScanRepository

BODY_SCANS_COLLECTION = "body_scans"


class UnitOfWork:
    """
    Groups repository access behind a single injection point.

    Usage:
        uow = UnitOfWork(db)
        latest = await uow.body_scans.get_latest(user_id)
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._body_scans: BodyScanRepository | None = None

    @property
    def body_scans(self) -> BodyScanRepository:
        """Body scan repository (lazy loaded)."""
        if self._body_scans is None:
            self._body_scans = BodyScanRepository(self._db[BODY_SCANS_COLLECTION])
        return self._body_scans
