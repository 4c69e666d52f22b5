"""Tests for the body scan repository."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo import DESCENDING

from bodyscan_api.db.repositories import BodyScanRepository
from bodyscan_api.db.unit_of_work import UnitOfWork
from bodyscan_api.models.body_scan import BodyScanRecord


@pytest.fixture
def collection():
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    return collection


class TestBodyScanRepository:
    """Tests for BodyScanRepository."""

    @pytest.mark.asyncio
    async def test_get_latest_sorts_newest_first(self, collection):
        object_id = ObjectId()
        collection.find_one.return_value = {"_id": object_id, "user_id": "user_123", "weight": 78}
        repository = BodyScanRepository(collection)

        scan = await repository.get_latest("user_123")

        assert isinstance(scan, BodyScanRecord)
        assert scan.id == str(object_id)
        assert scan.weight == 78
        collection.find_one.assert_awaited_once_with({"user_id": "user_123"}, sort=[("created_at", DESCENDING)])

    @pytest.mark.asyncio
    async def test_get_latest_with_morph_data_filters_incomplete_scans(self, collection):
        repository = BodyScanRepository(collection)

        assert await repository.get_latest_with_morph_data("user_123") is None

        query = collection.find_one.call_args.args[0]
        assert query["morph_values"] == {"$ne": None}
        assert query["limb_masses"] == {"$ne": None}

    @pytest.mark.asyncio
    async def test_get_by_id_with_invalid_id(self, collection):
        repository = BodyScanRepository(collection)

        assert await repository.get_by_id("not-an-object-id") is None
        collection.find_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_history(self, collection):
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.to_list = AsyncMock(return_value=[{"_id": ObjectId(), "user_id": "u"}, {"_id": ObjectId(), "user_id": "u"}])
        collection.find.return_value = cursor
        repository = BodyScanRepository(collection)

        scans = await repository.get_history("u", limit=2)

        assert [s.user_id for s in scans] == ["u", "u"]
        cursor.limit.assert_called_once_with(2)

    def test_unit_of_work_reuses_repository(self):
        db = MagicMock()
        uow = UnitOfWork(db)

        assert uow.body_scans is uow.body_scans
        db.__getitem__.assert_called_once_with("body_scans")
