"""
Bulk upload protocol.

A CI job posts the list of files it wants to upload. After checking that the
job is really running and recording one ledger row for it, every file gets a
client token for a direct upload to the blob store. The store calls back when
each upload completes and the file is recorded under all of its aliases.
"""

import asyncio
import logging
import posixpath
from datetime import timedelta
from typing import List, Optional

from artifactci.core import utc_now
from artifactci.core.config import Settings, settings
from artifactci.core.logging import log_context
from artifactci.core.metrics import uploads_recorded_total
from artifactci.models.upload import Upload, UploadRequest
from artifactci.repositories.repos import RepoRef
from artifactci.repositories.upload_requests import UploadRequestRepository
from artifactci.repositories.uploads import UploadRepository
from artifactci.schemas.upload import (
    BlobResult,
    BulkRequest,
    BulkRequestFile,
    BulkResponse,
    BulkResponseItem,
    ClientTokenResponse,
    GenerateClientTokenEvent,
    GithubActionsContext,
    parse_client_payload,
)
from artifactci.services.blob_storage import BlobStorageService
from artifactci.services.content_types import get_mime_type
from artifactci.services.entrypoints import resolve_entrypoints
from artifactci.services.github import GitHubClient
from artifactci.services.job_statuses import (
    AmbiguousJobMatchError,
    find_matching_job,
    get_jobs_with_statuses,
)
from artifactci.services.token_codec import (
    InvalidTokenPayload,
    TokenPayloadCodec,
    UploadResponseError,
    on_before_generate_token,
)

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90


def storage_pathname(context: GithubActionsContext, local_path: str) -> str:
    """``owner/repo/<runId>/<runAttempt>/<job>/<localPath>``"""
    if local_path.startswith("./"):
        local_path = local_path[2:]
    return posixpath.join(
        context.repository,
        str(context.run_id),
        str(context.run_attempt),
        context.job,
        local_path,
    )


class BulkUploadHandler:
    def __init__(
        self,
        upload_requests: UploadRequestRepository,
        uploads: UploadRepository,
        github: GitHubClient,
        blob_storage: BlobStorageService,
        config: Settings = settings,
    ):
        self.upload_requests = upload_requests
        self.uploads = uploads
        self.github = github
        self.blob_storage = blob_storage
        self.config = config

    def view_url(self, pathname: str) -> str:
        return f"{self.config.PUBLIC_ORIGIN.rstrip('/')}/artifact/blob/{pathname}"

    async def handle_bulk(self, body: BulkRequest) -> BulkResponse:
        """
        Run the bulk flow under the configured wall-clock budget.

        Raises:
            UploadResponseError: for every rejected request, 504 on timeout.
        """
        try:
            return await asyncio.wait_for(self._handle_bulk(body), timeout=self.config.BULK_UPLOAD_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            context = body.client_payload.context
            logger.error(
                f"Bulk upload for {context.repository} run {context.run_id} timed out after "
                f"{self.config.BULK_UPLOAD_TIMEOUT_SECONDS}s"
            )
            raise UploadResponseError(504, {"message": "Timed out handling bulk upload request"})

    async def _handle_bulk(self, body: BulkRequest) -> BulkResponse:
        context = body.client_payload.context

        async with log_context("bulk"):
            allowed = self.config.allowed_github_owners
            if allowed and context.owner not in allowed:
                message = (
                    f"Unauthorized - not allowed to upload to {context.repository}. "
                    "Update ALLOWED_GITHUB_OWNERS to allow this repo."
                )
                raise UploadResponseError(401, {"message": message})

            self._check_github_urls(context)

            jobs_result = await get_jobs_with_statuses(self.github, context, body.client_payload.github_token)
            if not jobs_result.ok:
                status_code = jobs_result.status_code if jobs_result.mode == "web" else 400
                raise UploadResponseError(status_code or 500, {"message": jobs_result.detail})

            try:
                job = find_matching_job(jobs_result.jobs, context.job)
            except AmbiguousJobMatchError as e:
                raise UploadResponseError(400, {"message": str(e)})

            if job is None or job.status != "running":
                raise UploadResponseError(
                    404,
                    {
                        "message": f"Job {context.job!r} not found or was not running",
                        "jobs": [j.to_dict() for j in jobs_result.jobs],
                    },
                )

            upload_request = await self.upload_requests.record_upload_request(
                RepoRef(owner=context.owner, name=context.repo, html_url=context.html_url),
                ref=context.ref,
                sha=context.sha,
                run_id=context.run_id,
                run_attempt=context.run_attempt,
                job_id=context.job,
            )
            if upload_request is None:
                message = (
                    f"Upload request not created, this may be due to rate limiting on repo "
                    f"{context.html_url} / {context.run_id}."
                )
                raise UploadResponseError(429, {"message": message})

            logger.info(f"Issuing {len(body.files)} upload tokens for upload request {upload_request.id}")
            results = await self._issue_tokens(body, upload_request)

        requested = None
        if body.entrypoints:
            requested = [self.view_url(storage_pathname(context, p)) for p in body.entrypoints]
        entrypoints = resolve_entrypoints([r.view_url for r in results], requested)
        return BulkResponse(results=results, entrypoints=entrypoints.paths)

    def _check_github_urls(self, context: GithubActionsContext) -> None:
        """Job statuses are only trusted from the configured GitHub host."""
        expected = {
            "githubOrigin": (context.github_origin, self.config.GITHUB_ORIGIN),
            "githubApiUrl": (context.github_api_url, self.config.GITHUB_API_URL),
        }
        for name, (given, configured) in expected.items():
            if given.rstrip("/").lower() != configured.rstrip("/").lower():
                logger.warning(f"Rejected bulk upload for {context.repository}: {name} {given!r}")
                raise UploadResponseError(400, {"message": f"Unsupported {name} {given!r}, expected {configured}"})

    async def _issue_tokens(self, body: BulkRequest, upload_request: UploadRequest) -> List[BulkResponseItem]:
        semaphore = asyncio.Semaphore(self.config.TOKEN_ISSUANCE_CONCURRENCY)
        client_payload = body.client_payload.model_dump(by_alias=True)
        retention_days = body.client_payload.context.github_retention_days

        async def issue(file: BulkRequestFile) -> BulkResponseItem:
            async with semaphore:
                pathname = storage_pathname(body.client_payload.context, file.local_path)
                options = on_before_generate_token(
                    pathname,
                    client_payload,
                    upload_request.id,
                    retention_days,
                    strict_content_types=self.config.STRICT_CONTENT_TYPES,
                    add_random_suffix=self.config.BLOB_ADD_RANDOM_SUFFIX,
                )
                client_token = self.blob_storage.generate_client_token(
                    pathname=pathname,
                    callback_url=body.callback_url,
                    token_payload=options.token_payload,
                    allowed_content_types=options.allowed_content_types,
                    add_random_suffix=options.add_random_suffix,
                )
                return BulkResponseItem(
                    local_path=file.local_path,
                    view_url=self.view_url(pathname),
                    pathname=pathname,
                    client_token=client_token,
                    content_type=options.allowed_content_types[0],
                )

        return list(await asyncio.gather(*(issue(f) for f in body.files)))

    async def handle_client_token_event(
        self,
        event: GenerateClientTokenEvent,
        upload_request_id: Optional[str] = None,
    ) -> ClientTokenResponse:
        """Single-file token request. Only valid with a ledger row in scope."""
        parsed = parse_client_payload(event.payload.client_payload or "{}")
        retention_days = parsed.value.context.github_retention_days if parsed.ok else DEFAULT_RETENTION_DAYS

        options = on_before_generate_token(
            event.payload.pathname,
            event.payload.client_payload,
            upload_request_id,
            retention_days,
            strict_content_types=self.config.STRICT_CONTENT_TYPES,
            add_random_suffix=self.config.BLOB_ADD_RANDOM_SUFFIX,
        )
        client_token = self.blob_storage.generate_client_token(
            pathname=event.payload.pathname,
            callback_url=event.payload.callback_url,
            token_payload=options.token_payload,
            allowed_content_types=options.allowed_content_types,
            add_random_suffix=options.add_random_suffix,
        )
        return ClientTokenResponse(client_token=client_token)

    async def on_upload_completed(self, blob: BlobResult, token_payload: Optional[str]) -> List[Upload]:
        """
        Record a finished upload once per alias of its pathname.

        Raises:
            UploadResponseError: 401 if the token payload is missing or invalid.
        """
        try:
            payload = TokenPayloadCodec.parse(token_payload)
        except InvalidTokenPayload as e:
            logger.warning(f"Rejected upload-completed callback for {blob.pathname}: {e}")
            raise UploadResponseError(401, {"message": "Unauthorized - no upload request in token payload"})

        requested_pathname = payload.pathname or blob.pathname
        aliases = resolve_entrypoints([requested_pathname]).flat_aliases
        now = utc_now()
        expires_at = now + timedelta(days=payload.retention_days)
        mime_type = get_mime_type(requested_pathname)

        uploads = [
            Upload(
                pathname=alias,
                mime_type=mime_type,
                blob_url=blob.url,
                upload_request_id=payload.upload_request_id,
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
            )
            for alias in aliases
        ]
        await self.uploads.insert_uploads(uploads)
        uploads_recorded_total.inc(len(uploads))
        logger.info(f"Recorded {len(uploads)} upload rows for {requested_pathname}")
        return uploads
