from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime, timezone
import uuid

AliasType = Literal["run", "sha", "branch"]


class Artifact(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    name: str
    repo_id: str
    installation_id: Optional[int] = None  # GitHub App installation
    github_id: Optional[int] = None
    download_url: Optional[str] = None
    visibility: Literal["private", "public"] = "private"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        populate_by_name = True


class ArtifactIdentifier(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    artifact_id: str
    type: AliasType
    value: str

    class Config:
        populate_by_name = True


class ArtifactEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    artifact_id: str
    entry_name: str
    storage_object_id: Optional[str] = None  # blob store key
    aliases: List[str] = []
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        populate_by_name = True
