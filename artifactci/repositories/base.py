"""
Base Repository Pattern

Provides a generic, type-safe base class for all repositories.
"""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """
    Generic base repository providing common read and insert operations.

    Type Parameters:
        T: The Pydantic model class this repository manages

    Usage:
        class RepoRepository(BaseRepository[Repo]):
            collection_name = "repos"
            model_class = Repo
    """

    collection_name: str
    model_class: Type[T]

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection: AsyncIOMotorCollection = db[self.collection_name]

    def _to_model(self, data: Optional[Dict[str, Any]]) -> Optional[T]:
        if data is None:
            return None
        return self.model_class(**data)

    def _to_model_list(self, docs: List[Dict[str, Any]]) -> List[T]:
        return [self.model_class(**doc) for doc in docs]

    async def get_by_id(self, id: str) -> Optional[T]:
        data = await self.collection.find_one({"_id": id})
        return self._to_model(data)

    async def find_one(
        self,
        query: Dict[str, Any],
        sort: Optional[List[tuple]] = None,
    ) -> Optional[T]:
        """Find one document matching query, honouring ``sort`` when given."""
        data = await self.collection.find_one(query, sort=sort)
        return self._to_model(data)

    async def find_many(
        self,
        query: Dict[str, Any],
        limit: int = 1000,
        sort_by: Optional[str] = None,
        sort_order: int = 1,
    ) -> List[T]:
        cursor = self.collection.find(query)
        if sort_by:
            cursor = cursor.sort(sort_by, sort_order)
        docs = await cursor.limit(limit).to_list(limit)
        return self._to_model_list(docs)

    async def count(self, query: Optional[Dict[str, Any]] = None) -> int:
        return await self.collection.count_documents(query or {})

    async def create_many(self, models: List[T]) -> int:
        if not models:
            return 0
        docs = [m.model_dump(by_alias=True) for m in models]
        result = await self.collection.insert_many(docs)
        return len(result.inserted_ids)
