"""
Artifact ingestion.

GitHub tells us when a workflow job completes; the run's artifacts are then
recorded with run, sha and branch identifiers so they can be browsed by alias.
Their contents arrive later: a browser extracts the zip, uploads the files and
records them here as entries.
"""

import logging
import posixpath
from typing import Any, Dict, List, Optional

from artifactci.core.logging import log_context
from artifactci.models.artifact import ArtifactEntry
from artifactci.repositories.artifacts import ArtifactEntryRepository, ArtifactRepository
from artifactci.repositories.repos import RepoRef, RepoRepository
from artifactci.schemas.artifact import RecordEntriesRequest, RecordEntriesResponse, RecordedEntry
from artifactci.schemas.github_events import GitHubArtifact, WorkflowJobEvent
from artifactci.services.access import AccessChecker
from artifactci.services.entrypoints import resolve_entrypoints
from artifactci.services.github import GitHubClient

logger = logging.getLogger(__name__)


class EntryRecordingError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def dedupe_by_name(artifacts: List[GitHubArtifact]) -> List[GitHubArtifact]:
    """Re-runs can list the same name twice; the last one listed wins."""
    by_name: Dict[str, GitHubArtifact] = {}
    for artifact in artifacts:
        by_name.pop(artifact.name, None)
        by_name[artifact.name] = artifact
    return list(by_name.values())


class ArtifactIngestService:
    def __init__(
        self,
        repos: RepoRepository,
        artifacts: ArtifactRepository,
        entries: ArtifactEntryRepository,
        github: GitHubClient,
        access: AccessChecker,
        public_origin: str = "",
    ):
        self.repos = repos
        self.artifacts = artifacts
        self.entries = entries
        self.github = github
        self.access = access
        self.public_origin = public_origin.rstrip("/")

    async def handle_workflow_job(self, event: WorkflowJobEvent) -> Dict[str, Any]:
        if event.action != "completed":
            return {"ok": True, "ignored": f"workflow_job.{event.action}"}
        if event.installation is None:
            return {"ok": False, "error": "workflow_job event has no installation"}

        job = event.workflow_job
        owner = event.repository.owner.login
        name = event.repository.name

        async with log_context("workflow_job"):
            listing = await self.github.list_run_artifacts(event.installation.id, owner, name, job.run_id)
            artifacts = dedupe_by_name(listing.artifacts)
            logger.info(f"Run {job.run_id} of {owner}/{name} has {len(artifacts)} artifacts")

            repo = await self.repos.upsert(RepoRef(owner=owner, name=name, html_url=event.repository.html_url))
            visibility = "private" if event.repository.private else "public"

            identifiers = [("run", str(job.run_id)), ("sha", job.head_sha)]
            if job.head_branch:
                identifiers.append(("branch", job.head_branch))

            recorded = []
            for gh_artifact in artifacts:
                artifact = await self.artifacts.upsert_artifact(
                    repo_id=repo.id,
                    github_id=gh_artifact.id,
                    name=gh_artifact.name,
                    installation_id=event.installation.id,
                    download_url=gh_artifact.archive_download_url,
                    visibility=visibility,
                )
                await self.artifacts.add_identifiers(artifact.id, identifiers)
                recorded.append(
                    {
                        "name": artifact.name,
                        "artifactId": artifact.id,
                        "viewUrl": (
                            f"{self.public_origin}/artifact/view/{owner}/{name}/run/{job.run_id}/{artifact.name}"
                        ),
                    }
                )

        return {"ok": True, "total": listing.total_count, "artifacts": recorded}

    async def record_entries(
        self,
        artifact_id: str,
        login: Optional[str],
        request: RecordEntriesRequest,
    ) -> RecordEntriesResponse:
        """
        Record extracted files of an artifact so they resolve by alias.

        Raises:
            EntryRecordingError: 401 without a login, 404 for an unknown
                artifact, 403 without read access, 400 for a storage key
                outside the repo's own prefix.
        """
        if not login:
            raise EntryRecordingError(401, "Not authenticated")

        artifact = await self.artifacts.get_by_id(artifact_id)
        repo = await self.repos.get_by_id(artifact.repo_id) if artifact else None
        if artifact is None or repo is None:
            raise EntryRecordingError(404, f"Artifact {artifact_id} not found")

        access = await self.access.check(login, repo.owner, repo.name, artifact.installation_id)
        if not access.can_access:
            raise EntryRecordingError(403, f"User {login} is not authorized to access artifact {artifact_id}")

        prefix = f"{repo.owner}/{repo.name}/"
        for upload in request.uploads:
            key = upload.storage_pathname
            if not key.startswith(prefix) or posixpath.normpath(key) != key:
                logger.warning(f"Rejected entry {upload.entry!r} for artifact {artifact_id}: storage key {key!r}")
                raise EntryRecordingError(400, f"Storage pathname {key!r} must be under {prefix}")

        entries = [
            ArtifactEntry(
                artifact_id=artifact.id,
                entry_name=upload.entry,
                storage_object_id=upload.storage_pathname,
                aliases=resolve_entrypoints([upload.entry]).flat_aliases,
            )
            for upload in request.uploads
        ]
        recorded = await self.entries.upsert_entries(artifact.id, entries)
        return RecordEntriesResponse(
            artifact_id=artifact.id,
            entries=[
                RecordedEntry(
                    entry_name=e.entry_name,
                    aliases=e.aliases,
                    storage_object_id=e.storage_object_id,
                )
                for e in recorded
            ],
        )
