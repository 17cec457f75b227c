"""
GitHub webhook and REST payloads.

Only the fields the service reads are modelled; GitHub sends many more and
they are ignored.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class GitHubAccount(BaseModel):
    login: str
    id: Optional[int] = None


class GitHubRepository(BaseModel):
    id: Optional[int] = None
    name: str
    full_name: str
    html_url: str
    private: bool = True
    owner: GitHubAccount


class GitHubInstallation(BaseModel):
    id: int


class WorkflowJob(BaseModel):
    id: int
    run_id: int
    run_attempt: int = 1
    name: str
    head_sha: str
    head_branch: Optional[str] = None
    status: str
    conclusion: Optional[str] = None
    html_url: Optional[str] = None


class WorkflowJobEvent(BaseModel):
    action: str
    workflow_job: WorkflowJob
    repository: GitHubRepository
    installation: Optional[GitHubInstallation] = None


class WorkflowRunRef(BaseModel):
    id: Optional[int] = None
    head_sha: Optional[str] = None
    head_branch: Optional[str] = None


class GitHubArtifact(BaseModel):
    id: int
    name: str
    archive_download_url: str
    expired: bool = False
    size_in_bytes: Optional[int] = None
    workflow_run: Optional[WorkflowRunRef] = None


class ArtifactList(BaseModel):
    total_count: int = 0
    artifacts: List[GitHubArtifact] = Field(default_factory=list)


class GitHubJob(BaseModel):
    """A job as returned by the "list jobs for a workflow run attempt" endpoint."""

    id: int
    name: str
    status: str
    conclusion: Optional[str] = None
    html_url: Optional[str] = None
