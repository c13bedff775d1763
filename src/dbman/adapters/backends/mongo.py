"""MongoDB adapter backed by ``motor``."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from ...domain.connection import Kind, MongoConnection
from .base import BaseAdapter


class MongoAdapter(BaseAdapter[MongoConnection]):
    """Document-capable adapter for MongoDB.

    Collections are created implicitly by the first insert, mirroring the
    server's own behaviour.
    """

    kind = Kind.MONGO

    async def insert_one(self, collection: str, document: Mapping[str, Any]) -> Any:
        """Insert *document* and return its ``_id``."""

        result = await self._database()[collection].insert_one(dict(document))
        return result.inserted_id

    async def find(
        self,
        collection: str,
        filter: Mapping[str, Any] | None = None,
        projection: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        cursor = self._database()[collection].find(dict(filter or {}), dict(projection) if projection else None)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=None)

    async def update_many(self, collection: str, filter: Mapping[str, Any], patch: Mapping[str, Any]) -> int:
        """Apply *patch* with ``$set`` to every match and return the modified count."""

        result = await self._database()[collection].update_many(dict(filter), {"$set": dict(patch)})
        return result.modified_count

    async def delete_many(self, collection: str, filter: Mapping[str, Any]) -> int:
        result = await self._database()[collection].delete_many(dict(filter))
        return result.deleted_count

    async def drop_collection(self, collection: str) -> None:
        await self._database().drop_collection(collection)

    async def list_collections(self) -> list[str]:
        return sorted(await self._database().list_collection_names())

    def _database(self) -> Any:
        return self._require_handle()[self.definition.db_name]

    async def _open(self) -> Any:
        options: dict[str, Any] = {}
        if self.connect_timeout is not None:
            options["serverSelectionTimeoutMS"] = int(self.connect_timeout * 1000)
        return AsyncIOMotorClient(self.definition.uri, **options)

    async def _ping(self) -> None:
        await self._handle[self.definition.db_name].command("ping")

    async def _release(self, handle: Any) -> None:
        handle.close()

    def _driver_errors(self) -> tuple[type[BaseException], ...]:
        return (OSError, asyncio.TimeoutError, PyMongoError)
