"""
Repos Repository

Repositories are created the first time an upload or webhook references them
and touched (``updated_at``) on every reuse.
"""

import logging
import uuid
from typing import NamedTuple, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from artifactci.core import utc_now
from artifactci.models.repo import Repo
from artifactci.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class RepoRef(NamedTuple):
    owner: str
    name: str
    html_url: str


class RepoConflictError(Exception):
    """A unique index rejected the repo upsert and no existing row matched."""


class RepoRepository(BaseRepository[Repo]):
    collection_name = "repos"
    model_class = Repo

    def __init__(self, db: AsyncIOMotorDatabase):
        super().__init__(db)

    async def upsert(self, ref: RepoRef) -> Repo:
        """
        Insert the repo if it is new, otherwise bump ``updated_at``.

        Both ``html_url`` and ``(owner, name)`` are unique. A duplicate key
        on either one (a concurrent insert, or the same repo seen under
        another origin) re-reads the row that holds it.

        Raises:
            RepoConflictError: the duplicate key came from a row that can
                no longer be found.
        """
        now = utc_now()
        update = {
            "$set": {"updated_at": now},
            "$setOnInsert": {
                "_id": str(uuid.uuid4()),
                "owner": ref.owner,
                "name": ref.name,
                "created_at": now,
            },
        }
        try:
            doc = await self.collection.find_one_and_update(
                {"html_url": ref.html_url},
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            logger.debug(f"Duplicate key upserting repo {ref.html_url}, re-reading")
            doc = await self.collection.find_one_and_update(
                {"$or": [{"html_url": ref.html_url}, {"owner": ref.owner, "name": ref.name}]},
                {"$set": {"updated_at": now}},
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                raise RepoConflictError(f"Repo {ref.owner}/{ref.name} ({ref.html_url}) conflicts with a missing row")
        return self._to_model(doc)

    async def get_by_owner_and_name(self, owner: str, name: str) -> Optional[Repo]:
        return await self.find_one({"owner": owner, "name": name})
