"""Tests for streaming blob store objects to the client."""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi import HTTPException

from artifactci.api.v1.helpers.storage import stream_blob


def _blob_storage(response=None, error=None):
    closed = []

    @asynccontextmanager
    async def open_object(url):
        if error is not None:
            raise error
        try:
            yield response
        finally:
            closed.append(url)

    blob_storage = MagicMock()
    blob_storage.open_object = open_object
    return blob_storage, closed


class TestStreamBlob:
    def test_streams_with_built_headers(self):
        upstream = httpx.Response(200, headers={"etag": '"e1"'}, content=b"<html></html>")
        blob_storage, closed = _blob_storage(upstream)

        async def run():
            response = await stream_blob(
                blob_storage, "https://blob/a.html", lambda h: {"content-type": "text/html", "etag": h["etag"]}
            )
            # Closed only after the body is sent
            still_open = list(closed)
            await response.background()
            return response, still_open

        response, still_open = asyncio.run(run())

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/html"
        assert response.headers["etag"] == '"e1"'
        assert still_open == []
        assert closed == ["https://blob/a.html"]

    def test_upstream_404(self):
        blob_storage, closed = _blob_storage(httpx.Response(404))
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(stream_blob(blob_storage, "https://blob/missing", lambda h: {}))
        assert exc_info.value.status_code == 404
        assert closed == ["https://blob/missing"]

    def test_upstream_error_is_502(self):
        blob_storage, _ = _blob_storage(httpx.Response(500))
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(stream_blob(blob_storage, "https://blob/a", lambda h: {}))
        assert exc_info.value.status_code == 502

    def test_connection_error_is_502(self):
        blob_storage, _ = _blob_storage(error=httpx.ConnectError("refused"))
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(stream_blob(blob_storage, "https://blob/a", lambda h: {}))
        assert exc_info.value.status_code == 502

    def test_drops_length_of_encoded_body(self):
        upstream = httpx.Response(200, headers={"content-encoding": "gzip"}, content=b"")
        blob_storage, _ = _blob_storage(upstream)

        response = asyncio.run(
            stream_blob(blob_storage, "https://blob/a", lambda h: {"content-type": "text/plain", "content-length": "99"})
        )

        assert response.headers.get("content-length") != "99"
