"""MongoDB connection management using Motor async driver."""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

logger = logging.getLogger(__name__)


class MongoDB:
    """
    MongoDB connection manager.

    Holds one client (and its connection pool) for the application lifecycle.
    """

    client: AsyncIOMotorClient | None = None
    _db_name: str = "bodyscan_db"

    @classmethod
    def connect(cls, uri: str, db_name: str = "bodyscan_db") -> None:
        """
        Initialize the MongoDB client.

        Args:
            uri: MongoDB connection URI
            db_name: Default database name
        """
        cls.client = AsyncIOMotorClient(uri)
        cls._db_name = db_name
        logger.info(f"MongoDB client created for database '{db_name}'")

    @classmethod
    def close(cls) -> None:
        """Close the MongoDB client."""
        if cls.client is not None:
            cls.client.close()
            cls.client = None

    @classmethod
    def get_client(cls) -> AsyncIOMotorClient:
        """
        Get the MongoDB client.

        Raises:
            RuntimeError: If MongoDB is not connected
        """
        if cls.client is None:
            raise RuntimeError("MongoDB not connected. Call MongoDB.connect() first.")
        return cls.client

    @classmethod
    def get_database(cls, name: str | None = None) -> AsyncIOMotorDatabase:
        """Get a database instance (the default one unless ``name`` is given)."""
        return cls.get_client()[name or cls._db_name]

    @classmethod
    def is_connected(cls) -> bool:
        return cls.client is not None
