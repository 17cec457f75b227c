"""
Artifacts Repository

Artifacts, the identifiers (run id, sha, branch) that point at them, and the
extracted entries inside them. Lookups always prefer the newest row.
"""

import logging
import uuid
from typing import Iterable, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from artifactci.core import utc_now
from artifactci.models.artifact import Artifact, ArtifactEntry, ArtifactIdentifier
from artifactci.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ArtifactRepository(BaseRepository[Artifact]):
    collection_name = "artifacts"
    model_class = Artifact

    def __init__(self, db: AsyncIOMotorDatabase):
        super().__init__(db)
        self.identifiers = db.artifact_identifiers

    async def find_latest(
        self,
        repo_id: str,
        name: str,
        alias_type: str,
        identifier: str,
    ) -> Optional[Artifact]:
        """Newest artifact in a repo with this name that the alias points at."""
        artifact_ids = await self.identifiers.distinct(
            "artifact_id", {"type": alias_type, "value": identifier}
        )
        if not artifact_ids:
            return None
        return await self.find_one(
            {"_id": {"$in": artifact_ids}, "repo_id": repo_id, "name": name},
            sort=[("created_at", -1)],
        )

    async def upsert_artifact(
        self,
        repo_id: str,
        github_id: int,
        name: str,
        installation_id: Optional[int],
        download_url: Optional[str],
        visibility: str = "private",
    ) -> Artifact:
        now = utc_now()
        query = {"repo_id": repo_id, "github_id": github_id}
        update = {
            "$set": {
                "name": name,
                "installation_id": installation_id,
                "download_url": download_url,
                "visibility": visibility,
                "updated_at": now,
            },
            "$setOnInsert": {"_id": str(uuid.uuid4()), "created_at": now},
        }
        try:
            doc = await self.collection.find_one_and_update(
                query, update, upsert=True, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            update.pop("$setOnInsert")
            doc = await self.collection.find_one_and_update(
                query, update, return_document=ReturnDocument.AFTER
            )
        return self._to_model(doc)

    async def add_identifiers(self, artifact_id: str, identifiers: Iterable[Tuple[str, str]]) -> None:
        for alias_type, value in identifiers:
            row = ArtifactIdentifier(artifact_id=artifact_id, type=alias_type, value=value)
            await self.identifiers.update_one(
                {"artifact_id": row.artifact_id, "type": row.type, "value": row.value},
                {"$setOnInsert": {"_id": row.id}},
                upsert=True,
            )


class ArtifactEntryRepository(BaseRepository[ArtifactEntry]):
    collection_name = "artifact_entries"
    model_class = ArtifactEntry

    def __init__(self, db: AsyncIOMotorDatabase):
        super().__init__(db)

    async def count_for_artifact(self, artifact_id: str) -> int:
        return await self.count({"artifact_id": artifact_id})

    async def list_for_artifact(self, artifact_id: str) -> List[ArtifactEntry]:
        return await self.find_many({"artifact_id": artifact_id}, sort_by="created_at", sort_order=-1)

    async def find_latest_by_alias(self, artifact_id: str, alias: str) -> Optional[ArtifactEntry]:
        return await self.find_one(
            {"artifact_id": artifact_id, "aliases": alias},
            sort=[("created_at", -1)],
        )

    async def upsert_entries(self, artifact_id: str, entries: List[ArtifactEntry]) -> List[ArtifactEntry]:
        """
        Record extracted entries. Re-recording an entry name refreshes its
        aliases and storage key; ``created_at`` of the first record is kept.
        """
        recorded = []
        for entry in entries:
            doc = await self.collection.find_one_and_update(
                {"artifact_id": artifact_id, "entry_name": entry.entry_name},
                {
                    "$set": {
                        "aliases": entry.aliases,
                        "storage_object_id": entry.storage_object_id,
                    },
                    "$setOnInsert": {"_id": entry.id, "created_at": entry.created_at},
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
            recorded.append(self._to_model(doc))
        logger.info(f"Recorded {len(recorded)} entries for artifact {artifact_id}")
        return recorded
