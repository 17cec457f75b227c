import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

logger = logging.getLogger(__name__)


class Database:
    """Owns the Motor client. Created once in the app lifespan and kept on app.state."""

    def __init__(self, url: str, name: str):
        self.url = url
        self.name = name
        self.client: Optional[AsyncIOMotorClient] = None

    async def connect(self) -> AsyncIOMotorDatabase:
        if self.client is None:
            self.client = AsyncIOMotorClient(self.url, tz_aware=True)
            logger.info("Connected to MongoDB")
        return self.client[self.name]

    def get(self) -> AsyncIOMotorDatabase:
        if self.client is None:
            raise RuntimeError("MongoDB client not connected")
        return self.client[self.name]

    async def ping(self) -> bool:
        if self.client is None:
            return False
        await self.client.admin.command("ping")
        return True

    async def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.info("Closed MongoDB connection")
