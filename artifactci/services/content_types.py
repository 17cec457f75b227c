import logging
import mimetypes

from artifactci.core.constants import ALLOWED_CONTENT_TYPES, DEFAULT_MIME_TYPE

logger = logging.getLogger(__name__)

mimetypes.add_type("text/markdown", ".md")
mimetypes.add_type("font/woff2", ".woff2")


def get_mime_type(pathname: str) -> str:
    """MIME type by file extension, ``text/plain`` when unknown."""
    mime_type, _ = mimetypes.guess_type(pathname, strict=False)
    return mime_type or DEFAULT_MIME_TYPE


def is_allowed_content_type(mime_type: str, strict: bool = False) -> bool:
    if mime_type in ALLOWED_CONTENT_TYPES:
        return True
    if strict:
        logger.warning(f"Rejecting content type {mime_type}")
        return False
    logger.warning(f"New content type - {mime_type} - not in the allow-list. Allowing anyway.")
    return True
