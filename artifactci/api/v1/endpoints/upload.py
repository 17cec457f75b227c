import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from artifactci.api import deps
from artifactci.api.v1.helpers.responses import RESP_UPLOAD
from artifactci.core.metrics import bulk_upload_requests_total
from artifactci.schemas.upload import (
    BulkRequest,
    GenerateClientTokenEvent,
    UploadCompletedResponse,
    parse_upload_body,
)
from artifactci.services.blob_storage import SIGNATURE_HEADER, BlobStorageService
from artifactci.services.token_codec import UploadResponseError
from artifactci.services.upload_handler import BulkUploadHandler

logger = logging.getLogger(__name__)

router = APIRouter()


def _json(status_code: int, body: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body)


@router.post("/signed-url", summary="Upload Protocol Endpoint", responses={**RESP_UPLOAD})
async def handle_upload(
    request: Request,
    handler: BulkUploadHandler = Depends(deps.get_upload_handler),
    blob_storage: BlobStorageService = Depends(deps.get_blob_storage),
):
    """
    Single endpoint for the three upload messages:

    * ``bulk``: a CI job asks for client tokens for a list of files.
    * ``blob.generate-client-token``: a single-file token request. Rejected,
      tokens are only issued as part of a bulk request.
    * ``blob.upload-completed``: the blob store reports a finished upload.
    """
    raw = await request.body()
    try:
        data = json.loads(raw)
    except ValueError:
        return _json(400, {"error": "Invalid request: body is not JSON"})

    parsed = parse_upload_body(data)
    if not parsed.ok:
        if isinstance(data, dict) and data.get("type") == "bulk":
            bulk_upload_requests_total.labels(status="400").inc()
            return _json(400, {"error": f"Invalid bulk request: {parsed.error}"})
        return _json(400, {"error": f"Invalid request: {parsed.error}"})

    body = parsed.value

    if isinstance(body, BulkRequest):
        try:
            response = await handler.handle_bulk(body)
        except UploadResponseError as e:
            logger.info(f"{e.status_code} handling bulk upload: {e}")
            bulk_upload_requests_total.labels(status=str(e.status_code)).inc()
            return _json(e.status_code, e.body)
        except Exception as e:
            logger.exception("Error handling bulk upload")
            bulk_upload_requests_total.labels(status="500").inc()
            return _json(500, {"error": f"Error handling upload: {e}"})

        bulk_upload_requests_total.labels(status="200").inc()
        return _json(200, response.model_dump(by_alias=True))

    try:
        if isinstance(body, GenerateClientTokenEvent):
            token_response = await handler.handle_client_token_event(body)
            return _json(200, token_response.model_dump(by_alias=True))

        if not blob_storage.verify_callback_signature(raw, request.headers.get(SIGNATURE_HEADER)):
            logger.warning(f"Invalid signature on upload-completed callback for {body.payload.blob.pathname}")
            return _json(401, {"error": "Invalid callback signature"})

        await handler.on_upload_completed(body.payload.blob, body.payload.token_payload)
        return _json(200, UploadCompletedResponse().model_dump(by_alias=True))
    except UploadResponseError as e:
        logger.info(f"{e.status_code} handling {body.type}: {e}")
        return _json(e.status_code, e.body)
    except Exception as e:
        logger.exception(f"Error handling {body.type}")
        return _json(500, {"error": f"Error handling upload: {e}"})
