from pydantic import BaseModel, Field
from datetime import datetime, timezone
import uuid


class Repo(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    owner: str
    name: str
    html_url: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    class Config:
        populate_by_name = True
