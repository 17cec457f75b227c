"""Tests for the upload protocol endpoint: parsing, dispatch and status mapping."""

import asyncio
import hashlib
import hmac
import json
from unittest.mock import AsyncMock, MagicMock

from artifactci.api.v1.endpoints.upload import handle_upload
from artifactci.schemas.upload import BulkResponse, BulkResponseItem
from artifactci.services.blob_storage import BlobStorageService
from artifactci.services.token_codec import UploadResponseError
from tests.mocks.github import make_bulk_request

RW_TOKEN = "vercel_blob_rw_teststore_secretvalue"


def _request(body, headers=None):
    raw = body if isinstance(body, bytes) else json.dumps(body).encode()
    request = MagicMock()
    request.body = AsyncMock(return_value=raw)
    request.headers = headers or {}
    return request, raw


def _call(body, handler=None, headers=None):
    request, _ = _request(body, headers)
    handler = handler or MagicMock()
    blob_storage = BlobStorageService(MagicMock(), RW_TOKEN)
    response = asyncio.run(handle_upload(request, handler=handler, blob_storage=blob_storage))
    return response.status_code, json.loads(response.body)


def _bulk_body():
    return make_bulk_request(["index.html"]).model_dump(by_alias=True)


def _completed_body():
    return {
        "type": "blob.upload-completed",
        "blob": {"url": "https://teststore.public.blob.vercel-storage.com/a.html", "pathname": "a.html"},
        "tokenPayload": '{"uploadRequestId":"req-1","retentionDays":30}',
    }


class TestParsing:
    def test_non_json_body(self):
        status, body = _call(b"not json")
        assert status == 400

    def test_unknown_type(self):
        status, body = _call({"type": "something-else"})
        assert status == 400
        assert body["error"].startswith("Invalid request")

    def test_invalid_bulk_request(self):
        payload = _bulk_body()
        del payload["files"]
        status, body = _call(payload)
        assert status == 400
        assert body["error"].startswith("Invalid bulk request")

    def test_absolute_local_path_rejected(self):
        payload = _bulk_body()
        payload["files"] = [{"localPath": "/etc/passwd"}]
        status, _ = _call(payload)
        assert status == 400


class TestBulk:
    def test_success(self):
        handler = MagicMock()
        handler.handle_bulk = AsyncMock(
            return_value=BulkResponse(
                results=[
                    BulkResponseItem(
                        local_path="index.html",
                        view_url="https://www.artifact.ci/artifact/blob/x/index.html",
                        pathname="x/index.html",
                        client_token="vercel_blob_client_teststore_abc",
                        content_type="text/html",
                    )
                ],
                entrypoints=["https://www.artifact.ci/artifact/blob/x/index.html"],
            )
        )

        status, body = _call(_bulk_body(), handler=handler)

        assert status == 200
        assert body["results"][0]["clientToken"] == "vercel_blob_client_teststore_abc"
        assert body["entrypoints"] == ["https://www.artifact.ci/artifact/blob/x/index.html"]

    def test_response_error_status_is_kept(self):
        handler = MagicMock()
        handler.handle_bulk = AsyncMock(side_effect=UploadResponseError(429, {"message": "rate limiting"}))

        status, body = _call(_bulk_body(), handler=handler)

        assert status == 429
        assert body == {"message": "rate limiting"}

    def test_unexpected_error_is_500(self):
        handler = MagicMock()
        handler.handle_bulk = AsyncMock(side_effect=RuntimeError("mongo down"))

        status, body = _call(_bulk_body(), handler=handler)

        assert status == 500
        assert body["error"] == "Error handling upload: mongo down"


class TestBlobEvents:
    def test_generate_client_token_without_ledger_row(self):
        handler = MagicMock()
        handler.handle_client_token_event = AsyncMock(
            side_effect=UploadResponseError(401, {"message": "Unauthorized - no upload request"})
        )
        status, _ = _call(
            {"type": "blob.generate-client-token", "payload": {"pathname": "a.html"}},
            handler=handler,
        )
        assert status == 401

    def test_upload_completed_requires_signature(self):
        handler = MagicMock()
        handler.on_upload_completed = AsyncMock()

        status, _ = _call(_completed_body(), handler=handler, headers={"x-vercel-signature": "bogus"})

        assert status == 401
        handler.on_upload_completed.assert_not_called()

    def test_upload_completed_flat_shape(self):
        body = _completed_body()
        raw = json.dumps(body).encode()
        signature = hmac.new(RW_TOKEN.encode(), raw, hashlib.sha256).hexdigest()
        handler = MagicMock()
        handler.on_upload_completed = AsyncMock(return_value=[])

        status, response = _call(raw, handler=handler, headers={"x-vercel-signature": signature})

        assert status == 200
        assert response == {"type": "blob.upload-completed", "response": "ok"}
        blob, token_payload = handler.on_upload_completed.call_args.args
        assert blob.pathname == "a.html"
        assert token_payload == '{"uploadRequestId":"req-1","retentionDays":30}'
