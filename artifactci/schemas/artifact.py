from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from artifactci.models.artifact import AliasType, Artifact, ArtifactEntry

ResolutionCode = Literal[
    "artifact_not_found",
    "not_authorized",
    "not_uploaded_yet",
    "upload_not_found",
    "2xx",
]


class ResolveParams(BaseModel):
    owner: str
    repo: str
    alias_type: AliasType
    identifier: str
    artifact_name: str
    filepath: List[str] = Field(default_factory=list)

    @property
    def path(self) -> str:
        return "/".join(self.filepath)

    @property
    def artifact_path(self) -> str:
        return f"/artifact/view/{self.owner}/{self.repo}/{self.alias_type}/{self.identifier}/{self.artifact_name}"


@dataclass
class ResolutionOutcome:
    """Result of resolving a view path. Only ``2xx`` carries a storage key."""

    code: ResolutionCode
    message: Optional[str] = None
    artifact: Optional[Artifact] = None
    entry: Optional[ArtifactEntry] = None
    # Requested path inside the artifact, echoed back for not_uploaded_yet
    entry_path: Optional[str] = None
    storage_pathname: Optional[str] = None
    # Set when the caller asked for the artifact root and should be redirected
    redirect_to: Optional[str] = None
    entrypoints: List[str] = field(default_factory=list)

    @property
    def artifact_id(self) -> Optional[str]:
        return self.artifact.id if self.artifact else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "artifactId": self.artifact_id,
            "entry": self.entry_path,
            "entrypoints": self.entrypoints,
        }


class EntryUpload(BaseModel):
    entry: str = Field(..., description="Path of the file inside the artifact")
    storage_pathname: str = Field(
        ..., alias="storagePathname", description="Key of the extracted file in the blob store"
    )

    class Config:
        populate_by_name = True


class RecordEntriesRequest(BaseModel):
    uploads: List[EntryUpload] = Field(..., min_length=1)


class RecordedEntry(BaseModel):
    entry_name: str = Field(..., alias="entryName")
    aliases: List[str]
    storage_object_id: Optional[str] = Field(None, alias="storageObjectId")

    class Config:
        populate_by_name = True


class RecordEntriesResponse(BaseModel):
    artifact_id: str = Field(..., alias="artifactId")
    entries: List[RecordedEntry]

    class Config:
        populate_by_name = True
