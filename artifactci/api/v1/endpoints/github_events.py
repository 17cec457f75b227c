import hashlib
import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError

from artifactci.api import deps
from artifactci.core.config import settings
from artifactci.schemas.github_events import WorkflowJobEvent
from artifactci.services.artifact_ingest import ArtifactIngestService

logger = logging.getLogger(__name__)

router = APIRouter()


def verify_webhook_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Check a GitHub ``X-Hub-Signature-256`` header against the raw body."""
    if not secret or not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature[len("sha256="):], expected)


@router.post("/events", summary="GitHub App Webhook")
async def github_events(
    request: Request,
    x_github_event: Optional[str] = Header(None),
    x_hub_signature_256: Optional[str] = Header(None),
    ingest: ArtifactIngestService = Depends(deps.get_ingest_service),
):
    """
    Receives GitHub App webhooks.

    Only ``workflow_job`` events are acted on. Failures are reported in the
    body with a 200 status so GitHub does not retry deliveries that would
    fail the same way again.
    """
    if not settings.GITHUB_WEBHOOK_SECRET:
        logger.error(f"Rejected {x_github_event} delivery: GITHUB_WEBHOOK_SECRET is not configured")
        return {"ok": False, "error": "Webhook secret is not configured"}

    body = await request.body()
    if not verify_webhook_signature(settings.GITHUB_WEBHOOK_SECRET, body, x_hub_signature_256):
        logger.warning(f"Rejected {x_github_event} delivery with invalid signature")
        return {"ok": False, "error": "Invalid signature"}

    if x_github_event != "workflow_job":
        return {"ok": True, "ignored": x_github_event}

    try:
        event = WorkflowJobEvent.model_validate(json.loads(body))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Invalid workflow_job payload: {e}")
        return {"ok": False, "error": f"Invalid workflow_job payload: {e}"}

    try:
        return await ingest.handle_workflow_job(event)
    except Exception as e:
        logger.exception(f"Error handling workflow_job for {event.repository.full_name}")
        return {"ok": False, "error": str(e)}
