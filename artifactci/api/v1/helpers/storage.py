import logging
from contextlib import AsyncExitStack
from typing import Callable, Dict, Mapping

import httpx
from fastapi import HTTPException
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from artifactci.services.blob_storage import BlobStorageService

logger = logging.getLogger(__name__)


async def stream_blob(
    blob_storage: BlobStorageService,
    url: str,
    build_headers: Callable[[Mapping[str, str]], Dict[str, str]],
) -> StreamingResponse:
    """
    Stream an object from the blob store to the client.

    The upstream response stays open until the body has been sent and is
    closed by a background task.
    """
    stack = AsyncExitStack()
    try:
        upstream = await stack.enter_async_context(blob_storage.open_object(url))
    except httpx.HTTPError as e:
        await stack.aclose()
        logger.error(f"Could not open blob {url}: {e}")
        raise HTTPException(status_code=502, detail="Storage backend unavailable")

    if upstream.status_code == 404:
        await stack.aclose()
        raise HTTPException(status_code=404, detail="Upload not found")
    if upstream.status_code >= 400:
        await stack.aclose()
        raise HTTPException(status_code=502, detail="Storage backend error")

    headers = build_headers(upstream.headers)
    # aiter_bytes decodes content-encoding, so the upstream length no longer applies
    if upstream.headers.get("content-encoding"):
        headers.pop("content-length", None)

    return StreamingResponse(
        upstream.aiter_bytes(),
        status_code=upstream.status_code,
        headers=headers,
        background=BackgroundTask(stack.aclose),
    )
