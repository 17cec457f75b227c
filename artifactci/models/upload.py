from pydantic import BaseModel, Field
from datetime import datetime, timezone
import uuid


class UploadRequest(BaseModel):
    """Ledger row: one per (repo, run, attempt, job) that asked to upload."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    repo_id: str
    ref: str
    sha: str
    actions_run_id: int
    actions_run_attempt: int
    job_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        populate_by_name = True


class Upload(BaseModel):
    """A completed file, stored once per alias. All aliases share ``blob_url``."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    pathname: str
    mime_type: str
    blob_url: str
    upload_request_id: str
    expires_at: datetime
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        populate_by_name = True
