"""
Blob store client.

Clients upload straight to the blob store with a short-lived client token
minted here from the store's read-write token. When an upload finishes the
store POSTs the completion event back, signed with the same secret. Reads go
through ``open_object``, which streams without buffering the body.
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional
from urllib.parse import quote

import httpx

from artifactci.core.http_utils import InstrumentedAsyncClient
from artifactci.core.metrics import upload_tokens_issued_total

logger = logging.getLogger(__name__)

CLIENT_TOKEN_PREFIX = "vercel_blob_client_"
SIGNATURE_HEADER = "x-vercel-signature"


class BlobStorageError(Exception):
    pass


def _sign(secret: str, data: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), data, hashlib.sha256).hexdigest()


class BlobStorageService:
    def __init__(
        self,
        http: InstrumentedAsyncClient,
        read_write_token: str,
        base_url: str = "",
        client_token_ttl_seconds: int = 3600,
    ):
        self.http = http
        self.read_write_token = read_write_token
        self.client_token_ttl_seconds = client_token_ttl_seconds
        self.store_id = self._store_id(read_write_token)
        if base_url:
            self.base_url = base_url.rstrip("/")
        elif self.store_id:
            self.base_url = f"https://{self.store_id}.public.blob.vercel-storage.com"
        else:
            self.base_url = ""

    @staticmethod
    def _store_id(read_write_token: str) -> str:
        # vercel_blob_rw_<storeId>_<secret>
        parts = read_write_token.split("_")
        return parts[3] if len(parts) > 4 else ""

    def _require_token(self) -> str:
        if not self.read_write_token:
            raise BlobStorageError("BLOB_READ_WRITE_TOKEN is not configured")
        return self.read_write_token

    def generate_client_token(
        self,
        pathname: str,
        callback_url: Optional[str],
        token_payload: str,
        allowed_content_types: List[str],
        add_random_suffix: bool = True,
        valid_until_ms: Optional[int] = None,
    ) -> str:
        """
        Mint a client token that lets the holder upload exactly ``pathname``.

        The token is ``vercel_blob_client_<storeId>_`` followed by the base64
        of ``<hmac hex>.<base64 payload>``.
        """
        secret = self._require_token()
        if valid_until_ms is None:
            valid_until_ms = int((time.time() + self.client_token_ttl_seconds) * 1000)

        payload = {
            "pathname": pathname,
            "onUploadCompleted": {"callbackUrl": callback_url, "tokenPayload": token_payload},
            "validUntil": valid_until_ms,
            "allowedContentTypes": allowed_content_types,
            "addRandomSuffix": add_random_suffix,
        }
        encoded_payload = base64.b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
        signature = _sign(secret, encoded_payload)
        body = base64.b64encode(f"{signature}.".encode("utf-8") + encoded_payload).decode("ascii")

        upload_tokens_issued_total.inc()
        return f"{CLIENT_TOKEN_PREFIX}{self.store_id}_{body}"

    def verify_callback_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not signature or not self.read_write_token:
            return False
        expected = _sign(self.read_write_token, body)
        return hmac.compare_digest(expected, signature)

    def object_url(self, pathname: str) -> str:
        if not self.base_url:
            raise BlobStorageError("Blob store base url is not configured")
        return f"{self.base_url}/{quote(pathname.lstrip('/'))}"

    @asynccontextmanager
    async def open_object(self, url: str) -> AsyncIterator[httpx.Response]:
        """Stream an object by absolute url. Non-2xx responses are yielded, not raised."""
        async with self.http.stream("GET", url) as response:
            if response.status_code >= 400:
                logger.warning(f"Blob store returned {response.status_code} for {url}")
            yield response
