from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from artifactci.core import utc_now
from artifactci.models.upload import Upload
from artifactci.repositories.base import BaseRepository


class UploadRepository(BaseRepository[Upload]):
    """Completed uploads, one row per alias. Rows are never updated."""

    collection_name = "uploads"
    model_class = Upload

    def __init__(self, db: AsyncIOMotorDatabase):
        super().__init__(db)

    async def insert_uploads(self, uploads: List[Upload]) -> int:
        return await self.create_many(uploads)

    async def get_latest_by_pathname(self, pathname: str, now: Optional[datetime] = None) -> Optional[Upload]:
        """Newest non-expired upload for an alias pathname."""
        now = now or utc_now()
        return await self.find_one(
            {"pathname": pathname, "expires_at": {"$gt": now}},
            sort=[("created_at", -1)],
        )
