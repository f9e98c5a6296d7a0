#!/usr/bin/env python3
"""Direct MongoDB client using Motor - the query executor behind every repository"""

from motor.motor_asyncio import AsyncIOMotorClient
from typing import Dict, Any, List, Optional, Sequence, Tuple, Union
import asyncio
import logging

# Configure logging
logger = logging.getLogger(__name__)
from mongo.constants import (
    DATABASE_NAME,
    MONGODB_CONNECTION_STRING,
    MONGODB_MAX_POOL_SIZE,
    MONGODB_MIN_POOL_SIZE,
    MONGODB_SERVER_SELECTION_TIMEOUT_MS,
    MONGODB_SOCKET_TIMEOUT_MS,
)

SortSpec = Sequence[Tuple[str, int]]


def _as_filter(query: Any) -> Dict[str, Any]:
    """Accept either a raw filter document or a predicate node."""
    if query is None:
        return {}
    if hasattr(query, "to_mongo"):
        return query.to_mongo()
    return query


def _as_stages(pipeline: Any) -> List[Dict[str, Any]]:
    """Accept either a raw stage list or a built Pipeline."""
    if hasattr(pipeline, "to_mongo"):
        return pipeline.to_mongo()
    return list(pipeline)


class DirectMongoClient:
    """Direct MongoDB client using Motor (async PyMongo)

    Read queries are single-shot: errors from the driver propagate unchanged
    and nothing is retried or cached here.
    """

    def __init__(self, connection_string: str = MONGODB_CONNECTION_STRING, database: str = DATABASE_NAME):
        self.client: AsyncIOMotorClient | None = None
        self.connected = False
        self.connection_string = connection_string
        self.database = database
        self._connect_lock = asyncio.Lock()

    async def connect(self):
        """Initialize MongoDB connection with a persistent connection pool"""
        try:
            async with self._connect_lock:
                if self.connected and self.client:
                    return

                self.client = AsyncIOMotorClient(
                    self.connection_string,
                    maxPoolSize=MONGODB_MAX_POOL_SIZE,
                    minPoolSize=MONGODB_MIN_POOL_SIZE,
                    maxIdleTimeMS=45000,
                    waitQueueTimeoutMS=5000,
                    serverSelectionTimeoutMS=MONGODB_SERVER_SELECTION_TIMEOUT_MS,
                    connectTimeoutMS=10000,
                    socketTimeoutMS=MONGODB_SOCKET_TIMEOUT_MS,
                )

                # Test connection
                await self.client.admin.command('ping')

                self.connected = True
                logger.info(f"Connected to MongoDB database '{self.database}'")

        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def disconnect(self):
        """Disconnect from MongoDB"""
        if self.client:
            self.client.close()
        self.connected = False
        self.client = None

    def _collection(self, collection: str, database: Optional[str] = None):
        if not self.client:
            raise RuntimeError("MongoDB client not initialized. Call connect() first.")
        return self.client[database or self.database][collection]

    async def aggregate(self, collection: str, pipeline: Any, database: Optional[str] = None) -> List[Dict[str, Any]]:
        """Execute an aggregation pipeline

        Args:
            collection: Collection name
            pipeline: Built Pipeline or raw list of stage documents
            database: Database name, defaults to the configured one

        Returns:
            List of result documents
        """
        coll = self._collection(collection, database)
        stages = _as_stages(pipeline)
        logger.debug(f"aggregate {collection}: {len(stages)} stages")
        try:
            cursor = coll.aggregate(stages)
            return await cursor.to_list(length=None)
        except Exception as e:
            logger.error(f"Aggregation on '{collection}' failed: {e}")
            raise

    async def find(
        self,
        collection: str,
        query: Any = None,
        projection: Optional[Union[Dict[str, Any], List[str]]] = None,
        sort: Optional[SortSpec] = None,
        limit: int = 0,
        database: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Execute a predicate query

        Args:
            collection: Collection name
            query: Predicate node or raw filter document; None matches everything
            projection: Fields to include
            sort: Sequence of (field, direction) pairs
            limit: Maximum documents, 0 for no limit

        Returns:
            List of matching documents
        """
        coll = self._collection(collection, database)
        try:
            cursor = coll.find(_as_filter(query), projection)
            if sort:
                cursor = cursor.sort(list(sort))
            if limit:
                cursor = cursor.limit(limit)
            return await cursor.to_list(length=None)
        except Exception as e:
            logger.error(f"Find on '{collection}' failed: {e}")
            raise

    async def find_one(
        self,
        collection: str,
        query: Any = None,
        sort: Optional[SortSpec] = None,
        database: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        results = await self.find(collection, query, sort=sort, limit=1, database=database)
        return results[0] if results else None

    async def insert_one(self, collection: str, document: Dict[str, Any], database: Optional[str] = None) -> Any:
        coll = self._collection(collection, database)
        result = await coll.insert_one(document)
        return result.inserted_id

    async def replace_one(
        self,
        collection: str,
        query: Any,
        document: Dict[str, Any],
        upsert: bool = False,
        database: Optional[str] = None,
    ) -> int:
        coll = self._collection(collection, database)
        result = await coll.replace_one(_as_filter(query), document, upsert=upsert)
        return result.modified_count

    async def execute(self, collection: str, query_or_pipeline: Any) -> List[Dict[str, Any]]:
        """Run a predicate (find) or a Pipeline (aggregate) against a collection."""
        from mongo.pipeline import Pipeline

        if isinstance(query_or_pipeline, Pipeline):
            return await self.aggregate(collection, query_or_pipeline)
        return await self.find(collection, query_or_pipeline)


# Global instance shared by repositories
direct_mongo_client = DirectMongoClient()
