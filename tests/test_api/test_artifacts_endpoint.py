"""Tests for artifact views, upload serving and entry recording endpoints."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException

from artifactci.api.v1.endpoints.artifacts import record_entries, serve_upload, view_artifact_file, view_artifact_root
from artifactci.models.upload import Upload
from artifactci.schemas.artifact import RecordEntriesRequest, ResolutionOutcome
from artifactci.services.access import AccessResult
from artifactci.services.artifact_ingest import EntryRecordingError
from artifactci.services.blob_storage import BlobStorageService
from tests.mocks.github import make_artifact, make_entry

MODULE = "artifactci.api.v1.endpoints.artifacts"


def _resolver(outcome):
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=outcome)
    return resolver


def _blob_storage():
    return BlobStorageService(MagicMock(), "vercel_blob_rw_teststore_secretvalue")


def _view(outcome, login="octocat", alias_type="run", filepath="docs/index.html"):
    return asyncio.run(
        view_artifact_file(
            "mmkal",
            "artifact.ci",
            alias_type,
            "42",
            "report",
            filepath,
            login=login,
            resolver=_resolver(outcome),
            blob_storage=_blob_storage(),
        )
    )


class TestViewArtifact:
    def test_invalid_alias_type_is_400(self):
        with pytest.raises(HTTPException) as exc_info:
            _view(ResolutionOutcome(code="2xx"), alias_type="tag")
        assert exc_info.value.status_code == 400

    def test_artifact_not_found_is_404(self):
        with pytest.raises(HTTPException) as exc_info:
            _view(ResolutionOutcome(code="artifact_not_found", message="Artifact report not found"))
        assert exc_info.value.status_code == 404

    def test_not_authorized_anonymous_is_401(self):
        with pytest.raises(HTTPException) as exc_info:
            _view(ResolutionOutcome(code="not_authorized"), login=None)
        assert exc_info.value.status_code == 401

    def test_not_authorized_logged_in_is_403(self):
        with pytest.raises(HTTPException) as exc_info:
            _view(ResolutionOutcome(code="not_authorized"))
        assert exc_info.value.status_code == 403

    def test_not_uploaded_yet_is_202(self):
        outcome = ResolutionOutcome(code="not_uploaded_yet", artifact=make_artifact(), entry_path="docs/index.html")
        response = _view(outcome)
        assert response.status_code == 202
        assert json.loads(response.body)["artifactId"] == "artifact-1"

    def test_upload_not_found_is_404(self):
        with pytest.raises(HTTPException) as exc_info:
            _view(ResolutionOutcome(code="upload_not_found", message="Upload not found"))
        assert exc_info.value.status_code == 404

    def test_resolver_error_is_500(self):
        resolver = MagicMock()
        resolver.resolve = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(
                view_artifact_file(
                    "mmkal", "artifact.ci", "run", "42", "report", "a.html",
                    login=None, resolver=resolver, blob_storage=_blob_storage(),
                )
            )
        assert exc_info.value.status_code == 500

    def test_root_redirects(self):
        outcome = ResolutionOutcome(
            code="2xx",
            artifact=make_artifact(),
            redirect_to="/artifact/view/mmkal/artifact.ci/run/42/report/docs",
        )
        response = asyncio.run(
            view_artifact_root(
                "mmkal", "artifact.ci", "run", "42", "report",
                login=None, resolver=_resolver(outcome), blob_storage=_blob_storage(),
            )
        )
        assert response.status_code == 307
        assert response.headers["location"] == "/artifact/view/mmkal/artifact.ci/run/42/report/docs"

    def test_streams_resolved_object(self):
        entry = make_entry("docs/index.html", storage_object_id="extracted/docs/index.html")
        outcome = ResolutionOutcome(
            code="2xx", artifact=make_artifact(), entry=entry, storage_pathname="extracted/docs/index.html"
        )
        with patch(f"{MODULE}.stream_blob", new_callable=AsyncMock) as mock_stream:
            mock_stream.return_value = "streamed"
            result = _view(outcome, alias_type="branch", filepath="docs")

        assert result == "streamed"
        _, url, build_headers = mock_stream.call_args.args
        assert url == "https://teststore.public.blob.vercel-storage.com/extracted/docs/index.html"
        headers = build_headers({})
        assert headers["artifactci-alias-type"] == "branch"
        assert headers["artifactci-path"] == "docs"
        assert headers["content-type"] == "text/html"


class TestServeUpload:
    PATHNAME = "mmkal/artifact.ci/42/1/build/docs"

    def _upload(self):
        now = datetime.now(timezone.utc)
        return Upload(
            pathname=self.PATHNAME,
            mime_type="text/html",
            blob_url="https://teststore.public.blob.vercel-storage.com/mmkal/artifact.ci/42/1/build/docs/index-x1.html",
            upload_request_id="req-1",
            expires_at=now + timedelta(days=30),
        )

    def _call(self, upload, can_access=True, login="octocat"):
        access = MagicMock()
        access.check_repo = AsyncMock(return_value=AccessResult(can_access=can_access, permission="read"))
        with patch(f"{MODULE}.UploadRepository") as mock_repo_cls, patch(
            f"{MODULE}.stream_blob", new_callable=AsyncMock
        ) as mock_stream:
            mock_repo_cls.return_value.get_latest_by_pathname = AsyncMock(return_value=upload)
            mock_stream.return_value = "streamed"
            result = asyncio.run(
                serve_upload(self.PATHNAME, login=login, db=MagicMock(), access=access, blob_storage=_blob_storage())
            )
        return result, access, mock_stream

    def test_missing_upload_is_404(self):
        with pytest.raises(HTTPException) as exc_info:
            self._call(None)
        assert exc_info.value.status_code == 404

    def test_anonymous_private_is_401(self):
        with pytest.raises(HTTPException) as exc_info:
            self._call(self._upload(), can_access=False, login=None)
        assert exc_info.value.status_code == 401

    def test_streams_blob_with_stored_mime_type(self):
        upload = self._upload()
        result, access, mock_stream = self._call(upload)

        assert result == "streamed"
        access.check_repo.assert_called_once_with("octocat", "mmkal", "artifact.ci")
        _, url, build_headers = mock_stream.call_args.args
        assert url == upload.blob_url
        headers = build_headers({})
        assert headers["content-type"] == "text/html"
        assert headers["artifactci-identifier"] == "42"
        assert headers["artifactci-name"] == "build"
        assert headers["artifactci-path"] == "docs"


class TestRecordEntries:
    def test_maps_errors_to_http(self):
        ingest = MagicMock()
        ingest.record_entries = AsyncMock(side_effect=EntryRecordingError(403, "forbidden"))
        data = RecordEntriesRequest.model_validate({"uploads": [{"entry": "a.html", "storagePathname": "x/a.html"}]})

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(record_entries("artifact-1", data, login="octocat", ingest=ingest))
        assert exc_info.value.status_code == 403
