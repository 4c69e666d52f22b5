"""Repository for persisted body scans."""

from pymongo import DESCENDING

from bodyscan_api.models.body_scan import BodyScanRecord

from .base import BaseRepository

NEWEST_FIRST = [("created_at", DESCENDING)]


class BodyScanRepository(BaseRepository[BodyScanRecord]):
    """
    Read access to the body_scans collection.

    Scans are written by the scan-commit function; this service only reads
    them back.
    """

    model_class = BodyScanRecord

    async def get_latest(self, user_id: str) -> BodyScanRecord | None:
        """Most recent scan for a user."""
        return await self.find_one({"user_id": user_id}, sort=NEWEST_FIRST)

    async def get_history(self, user_id: str, limit: int = 1000) -> list[BodyScanRecord]:
        """A user's scans, newest first."""
        return await self.find_many({"user_id": user_id}, sort=NEWEST_FIRST, limit=limit)

    async def get_by_id(self, scan_id: str) -> BodyScanRecord | None:
        return await self.find_by_id(scan_id)

    async def get_latest_with_morph_data(self, user_id: str) -> BodyScanRecord | None:
        """Most recent scan that carries both morph values and limb masses."""
        return await self.find_one(
            {
                "user_id": user_id,
                "morph_values": {"$ne": None},
                "limb_masses": {"$ne": None},
            },
            sort=NEWEST_FIRST,
        )
