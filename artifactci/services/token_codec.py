"""
Per-file upload authorization.

The token payload rides inside the blob store's signed client token as opaque
data and comes back verbatim with the upload-completed callback. It is plain
JSON; the blob store's signature is what protects it.
"""

import json
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from artifactci.schemas.upload import TokenOptions, parse_client_payload
from artifactci.services.content_types import get_mime_type, is_allowed_content_type

logger = logging.getLogger(__name__)


class UploadResponseError(Exception):
    """Aborts upload handling with a specific HTTP status and JSON body."""

    def __init__(self, status_code: int, body: Dict[str, Any]):
        super().__init__(body.get("message") or body.get("error") or str(status_code))
        self.status_code = status_code
        self.body = body


class InvalidTokenPayload(Exception):
    pass


class TokenPayload(BaseModel):
    upload_request_id: str = Field(..., alias="uploadRequestId", min_length=1)
    retention_days: int = Field(..., alias="retentionDays", ge=1, le=400)
    # Requested pathname before the blob store adds a random suffix
    pathname: Optional[str] = None

    class Config:
        populate_by_name = True


class TokenPayloadCodec:
    @staticmethod
    def stringify(payload: TokenPayload) -> str:
        return payload.model_dump_json(by_alias=True, exclude_none=True)

    @staticmethod
    def parse(text: Optional[str]) -> TokenPayload:
        if not text:
            raise InvalidTokenPayload("Token payload is missing")
        try:
            return TokenPayload.model_validate(json.loads(text))
        except (ValueError, ValidationError) as e:
            raise InvalidTokenPayload(f"Invalid token payload: {e}") from e


def on_before_generate_token(
    pathname: str,
    client_payload: Any,
    upload_request_id: Optional[str],
    retention_days: int,
    strict_content_types: bool = False,
    add_random_suffix: bool = True,
) -> TokenOptions:
    """
    Decide the options of one client token.

    Raises:
        UploadResponseError: 401 without a ledger row, 400 for a blocked
            content type or an invalid client payload.
    """
    if not upload_request_id:
        raise UploadResponseError(
            401, {"message": "Unauthorized - no upload request specified in client payload"}
        )

    mime_type = get_mime_type(pathname)
    if not is_allowed_content_type(mime_type, strict=strict_content_types):
        raise UploadResponseError(400, {"message": f"Unsupported content type for {pathname} - {mime_type}"})

    parsed = parse_client_payload(client_payload)
    if not parsed.ok:
        raise UploadResponseError(400, {"message": "Invalid client payload", "error": parsed.error})

    token_payload = TokenPayload(
        upload_request_id=upload_request_id,
        retention_days=retention_days,
        pathname=pathname,
    )
    return TokenOptions(
        allowed_content_types=[mime_type],
        add_random_suffix=add_random_suffix,
        token_payload=TokenPayloadCodec.stringify(token_payload),
    )
