"""Base repository class with common read operations."""

from typing import Any, Generic, TypeVar

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """
    Base repository over one Motor collection.

    Subclasses set ``model_class`` to get documents back as models.
    """

    model_class: type[T] | None = None

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    def _to_model(self, doc: dict[str, Any] | None) -> T | dict[str, Any] | None:
        """Convert a MongoDB document to the model, exposing ``_id`` as ``id``."""
        if doc is None:
            return None
        if self.model_class is not None:
            if "_id" in doc:
                doc["id"] = str(doc.pop("_id"))
            return self.model_class.model_validate(doc)
        return doc

    def _to_models(self, docs: list[dict[str, Any]]) -> list[T | dict[str, Any]]:
        return [self._to_model(doc) for doc in docs if doc is not None]

    async def find_by_id(self, id: str) -> T | dict[str, Any] | None:
        """
        Find a document by its ObjectId string.

        Returns:
            The document, or None if missing or ``id`` is not a valid ObjectId
        """
        try:
            object_id = ObjectId(id)
        except (InvalidId, TypeError):
            return None
        doc = await self.collection.find_one({"_id": object_id})
        return self._to_model(doc)

    async def find_one(
        self,
        filter: dict[str, Any],
        sort: list[tuple[str, int]] | None = None,
    ) -> T | dict[str, Any] | None:
        doc = await self.collection.find_one(filter, sort=sort)
        return self._to_model(doc)

    async def find_many(
        self,
        filter: dict[str, Any] | None = None,
        sort: list[tuple[str, int]] | None = None,
        limit: int = 100,
        skip: int = 0,
    ) -> list[T | dict[str, Any]]:
        """
        Find documents matching a filter.

        Args:
            filter: MongoDB query filter
            sort: List of (field, direction) tuples
            limit: Maximum documents to return
            skip: Number of documents to skip
        """
        cursor = self.collection.find(filter or {})
        if sort:
            cursor = cursor.sort(sort)
        cursor = cursor.skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        return self._to_models(docs)
