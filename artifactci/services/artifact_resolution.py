"""
Artifact resolution.

Maps ``/artifact/view/{owner}/{repo}/{aliasType}/{identifier}/{name}/{path}``
to a stored object. Every lookup goes newest-first, so re-runs and
re-extractions shadow older rows instead of replacing them.
"""

import logging
import posixpath
from typing import Dict, Mapping, Optional
from urllib.parse import quote

from artifactci.core.constants import (
    CACHE_CONTROL_BRANCH,
    CACHE_CONTROL_DEFAULT,
    CACHE_CONTROL_IMMUTABLE,
    INLINE_EXTENSIONS,
    INLINE_MIME_PREFIXES,
    PASSTHROUGH_HEADERS,
)
from artifactci.core.logging import log_context
from artifactci.core.metrics import artifact_resolutions_total
from artifactci.repositories.artifacts import ArtifactEntryRepository, ArtifactRepository
from artifactci.repositories.repos import RepoRepository
from artifactci.schemas.artifact import ResolutionOutcome, ResolveParams
from artifactci.services.access import AccessChecker
from artifactci.services.content_types import get_mime_type
from artifactci.services.entrypoints import resolve_entrypoints

logger = logging.getLogger(__name__)


class ArtifactResolver:
    def __init__(
        self,
        repos: RepoRepository,
        artifacts: ArtifactRepository,
        entries: ArtifactEntryRepository,
        access: AccessChecker,
    ):
        self.repos = repos
        self.artifacts = artifacts
        self.entries = entries
        self.access = access

    async def resolve(self, login: Optional[str], params: ResolveParams) -> ResolutionOutcome:
        async with log_context("resolve"):
            outcome = await self._resolve(login, params)
        artifact_resolutions_total.labels(code=outcome.code).inc()
        return outcome

    async def _resolve(self, login: Optional[str], params: ResolveParams) -> ResolutionOutcome:
        repo = await self.repos.get_by_owner_and_name(params.owner, params.repo)
        artifact = None
        if repo is not None:
            artifact = await self.artifacts.find_latest(
                repo.id, params.artifact_name, params.alias_type, params.identifier
            )
        if artifact is None:
            return ResolutionOutcome(code="artifact_not_found", message=f"Artifact {params.artifact_name} not found")

        access = await self.access.check(
            login, params.owner, params.repo, artifact.installation_id, artifact.visibility
        )
        if not access.can_access:
            logger.info(f"{login or 'anonymous'} denied on {params.artifact_path} ({access.reason})")
            return ResolutionOutcome(
                code="not_authorized",
                message=f"Not authorized to access artifact {params.artifact_name}",
                artifact=artifact,
            )

        entry_path = params.path or None

        if await self.entries.count_for_artifact(artifact.id) == 0:
            return ResolutionOutcome(code="not_uploaded_yet", artifact=artifact, entry_path=entry_path)

        if not params.filepath:
            entries = await self.entries.list_for_artifact(artifact.id)
            result = resolve_entrypoints(sorted(e.entry_name for e in entries))
            best = result.best
            return ResolutionOutcome(
                code="2xx",
                artifact=artifact,
                redirect_to=f"{params.artifact_path}/{best.shortened}",
                entrypoints=[e.shortened for e in result.entrypoints],
            )

        entry = await self.entries.find_latest_by_alias(artifact.id, params.path)
        if entry is None or not entry.storage_object_id:
            return ResolutionOutcome(
                code="upload_not_found",
                message="Upload not found",
                artifact=artifact,
                entry_path=entry_path,
            )

        return ResolutionOutcome(
            code="2xx",
            artifact=artifact,
            entry=entry,
            entry_path=entry_path,
            storage_pathname=entry.storage_object_id,
        )


def cache_control_for(alias_type: str, upstream: Optional[str] = None) -> str:
    """
    Branches move, so they only get a short revalidating cache. Content at a
    run id or commit sha never changes and is cached for a year.
    """
    if alias_type == "branch":
        return CACHE_CONTROL_BRANCH
    if alias_type in ("run", "sha"):
        return CACHE_CONTROL_IMMUTABLE
    return upstream or CACHE_CONTROL_DEFAULT


def is_inline(storage_pathname: str, content_type: str) -> bool:
    ext = posixpath.splitext(storage_pathname)[1].lower()
    return ext in INLINE_EXTENSIONS or content_type.startswith(INLINE_MIME_PREFIXES)


def build_file_headers(
    storage_pathname: str,
    alias_type: str,
    artifact_name: str,
    identifier: str,
    path: str,
    upstream: Mapping[str, str],
    content_type: Optional[str] = None,
) -> Dict[str, str]:
    content_type = content_type or get_mime_type(storage_pathname)
    headers = {
        "content-type": content_type,
        "artifactci-path": path,
        "artifactci-name": artifact_name,
        "artifactci-identifier": identifier,
        "artifactci-alias-type": alias_type,
    }

    for name in PASSTHROUGH_HEADERS:
        value = upstream.get(name)
        if value:
            headers[name] = value

    if is_inline(storage_pathname, content_type):
        filename = quote(posixpath.basename(storage_pathname))
        headers["content-disposition"] = f'inline; filename="{filename}"'
    elif upstream.get("content-disposition"):
        headers["content-disposition"] = upstream["content-disposition"]

    headers["cache-control"] = cache_control_for(alias_type, upstream.get("cache-control"))
    return headers
