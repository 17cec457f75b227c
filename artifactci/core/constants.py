"""
Shared Constants

Centralized constants used across the upload and resolution paths.
"""

from typing import FrozenSet, Tuple

DEFAULT_MIME_TYPE = "text/plain"

# Content types the upload handler expects. Anything else is logged, and only
# rejected when STRICT_CONTENT_TYPES is enabled.
ALLOWED_CONTENT_TYPES: FrozenSet[str] = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/svg+xml",
        "text/plain",
        "text/html",
        "text/css",
        "text/csv",
        "text/markdown",
        "text/javascript",
        "application/javascript",
        "application/json",
        "application/xml",
        "application/pdf",
        "application/zip",
        "font/woff",
        "font/woff2",
    }
)

# Served with "content-disposition: inline" so browsers render rather than download
INLINE_EXTENSIONS: Tuple[str, ...] = (".html", ".htm", ".json", ".pdf", ".txt")
INLINE_MIME_PREFIXES: Tuple[str, ...] = ("text/", "image/", "video/", "audio/")

CACHE_CONTROL_BRANCH = "public, max-age=300, must-revalidate"
CACHE_CONTROL_IMMUTABLE = "public, max-age=31536000, immutable"
CACHE_CONTROL_DEFAULT = "no-cache"

# Headers copied from the blob store response onto served files
PASSTHROUGH_HEADERS: Tuple[str, ...] = ("content-length", "etag", "last-modified")

# Collaboration levels that grant read access to a repository's artifacts
READ_PERMISSIONS: FrozenSet[str] = frozenset({"read", "triage", "write", "maintain", "admin"})

# Blob store callback event types
EVENT_GENERATE_CLIENT_TOKEN = "blob.generate-client-token"
EVENT_UPLOAD_COMPLETED = "blob.upload-completed"
