import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError

from artifactci.api import deps
from artifactci.api.v1.helpers.responses import RESP_400, RESP_AUTH_404, RESP_VIEW
from artifactci.api.v1.helpers.storage import stream_blob
from artifactci.repositories.uploads import UploadRepository
from artifactci.schemas.artifact import RecordEntriesRequest, RecordEntriesResponse, ResolveParams
from artifactci.services.access import AccessChecker
from artifactci.services.artifact_ingest import ArtifactIngestService, EntryRecordingError
from artifactci.services.artifact_resolution import ArtifactResolver, build_file_headers
from artifactci.services.blob_storage import BlobStorageService

logger = logging.getLogger(__name__)

router = APIRouter()


async def _view(
    owner: str,
    repo: str,
    alias_type: str,
    identifier: str,
    artifact_name: str,
    filepath: str,
    login: Optional[str],
    resolver: ArtifactResolver,
    blob_storage: BlobStorageService,
):
    try:
        params = ResolveParams(
            owner=owner,
            repo=repo,
            alias_type=alias_type,
            identifier=identifier,
            artifact_name=artifact_name,
            filepath=[p for p in filepath.split("/") if p],
        )
    except ValidationError:
        raise HTTPException(status_code=400, detail=f"Invalid alias type {alias_type!r}, expected run, sha or branch")

    try:
        outcome = await resolver.resolve(login, params)
    except Exception:
        logger.exception(f"Error resolving {params.artifact_path}/{params.path}")
        raise HTTPException(status_code=500, detail="Internal server error")

    if outcome.code == "artifact_not_found":
        raise HTTPException(status_code=404, detail=outcome.message)

    if outcome.code == "not_authorized":
        if login is None:
            raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})
        raise HTTPException(status_code=403, detail=outcome.message)

    if outcome.code == "not_uploaded_yet":
        return JSONResponse(status_code=202, content=outcome.to_dict())

    if outcome.code == "upload_not_found":
        raise HTTPException(status_code=404, detail=outcome.message)

    if outcome.redirect_to:
        return RedirectResponse(outcome.redirect_to, status_code=307)

    return await stream_blob(
        blob_storage,
        blob_storage.object_url(outcome.storage_pathname),
        lambda upstream: build_file_headers(
            outcome.storage_pathname,
            alias_type=params.alias_type,
            artifact_name=params.artifact_name,
            identifier=params.identifier,
            path=params.path,
            upstream=upstream,
        ),
    )


@router.get(
    "/view/{owner}/{repo}/{alias_type}/{identifier}/{artifact_name}",
    summary="Artifact Root",
    responses={**RESP_VIEW},
)
async def view_artifact_root(
    owner: str,
    repo: str,
    alias_type: str,
    identifier: str,
    artifact_name: str,
    login: Optional[str] = Depends(deps.get_current_login),
    resolver: ArtifactResolver = Depends(deps.get_artifact_resolver),
    blob_storage: BlobStorageService = Depends(deps.get_blob_storage),
):
    """Redirects to the artifact's best entrypoint."""
    return await _view(owner, repo, alias_type, identifier, artifact_name, "", login, resolver, blob_storage)


@router.get(
    "/view/{owner}/{repo}/{alias_type}/{identifier}/{artifact_name}/{filepath:path}",
    summary="View Artifact File",
    responses={**RESP_VIEW},
)
async def view_artifact_file(
    owner: str,
    repo: str,
    alias_type: str,
    identifier: str,
    artifact_name: str,
    filepath: str,
    login: Optional[str] = Depends(deps.get_current_login),
    resolver: ArtifactResolver = Depends(deps.get_artifact_resolver),
    blob_storage: BlobStorageService = Depends(deps.get_blob_storage),
):
    """
    Serve one file of an artifact by alias.

    ``run`` and ``sha`` aliases are served with immutable cache headers,
    ``branch`` aliases revalidate after five minutes.
    """
    return await _view(owner, repo, alias_type, identifier, artifact_name, filepath, login, resolver, blob_storage)


@router.get("/blob/{pathname:path}", summary="Serve Uploaded File", responses={**RESP_AUTH_404})
async def serve_upload(
    pathname: str,
    login: Optional[str] = Depends(deps.get_current_login),
    db=Depends(deps.get_database),
    access: AccessChecker = Depends(deps.get_access_checker),
    blob_storage: BlobStorageService = Depends(deps.get_blob_storage),
):
    """
    Serve a file uploaded through the bulk protocol.

    Pathnames look like ``owner/repo/<runId>/<runAttempt>/<job>/<path>``.
    """
    parts = pathname.split("/")
    if len(parts) < 3:
        raise HTTPException(status_code=404, detail="Upload not found")
    owner, repo = parts[0], parts[1]

    try:
        upload = await UploadRepository(db).get_latest_by_pathname(pathname)
        if upload is None:
            raise HTTPException(status_code=404, detail="Upload not found")

        result = await access.check_repo(login, owner, repo)
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Error loading upload {pathname}")
        raise HTTPException(status_code=500, detail="Internal server error")

    if not result.can_access:
        if login is None:
            raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})
        raise HTTPException(status_code=403, detail=f"Not authorized to access {owner}/{repo}")

    run_id = parts[2]
    job = parts[4] if len(parts) > 4 else ""
    local_path = "/".join(parts[5:])
    return await stream_blob(
        blob_storage,
        upload.blob_url,
        lambda upstream: build_file_headers(
            pathname,
            alias_type="run",
            artifact_name=job,
            identifier=run_id,
            path=local_path,
            upstream=upstream,
            content_type=upload.mime_type,
        ),
    )


@router.post(
    "/entries/{artifact_id}",
    summary="Record Extracted Entries",
    response_model=RecordEntriesResponse,
    responses={**RESP_400, **RESP_AUTH_404},
)
async def record_entries(
    artifact_id: str,
    data: RecordEntriesRequest,
    login: str = Depends(deps.require_login),
    ingest: ArtifactIngestService = Depends(deps.get_ingest_service),
):
    """
    Record files extracted from an artifact and uploaded to the blob store,
    so that views of a not-yet-uploaded artifact start resolving.
    """
    try:
        return await ingest.record_entries(artifact_id, login, data)
    except EntryRecordingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
