"""
Shared OpenAPI response definitions for FastAPI route decorators.

Usage:
    from artifactci.api.v1.helpers.responses import RESP_AUTH_404

    @router.get("/items/{item_id}", responses={**RESP_AUTH_404})
    async def get_item(...): ...
"""

RESP_202 = {202: {"description": "Artifact found but its files are not uploaded yet"}}
RESP_307 = {307: {"description": "Redirect to the artifact's best entrypoint"}}
RESP_400 = {400: {"description": "Bad request"}}
RESP_401 = {401: {"description": "Not authenticated"}}
RESP_403 = {403: {"description": "Not enough permissions"}}
RESP_404 = {404: {"description": "Resource not found"}}
RESP_429 = {429: {"description": "Duplicate upload request for this job"}}
RESP_500 = {500: {"description": "Internal server error"}}
RESP_504 = {504: {"description": "Upload request timed out"}}

RESP_AUTH = {**RESP_401, **RESP_403}
RESP_AUTH_404 = {**RESP_AUTH, **RESP_404}
RESP_UPLOAD = {**RESP_400, **RESP_401, **RESP_404, **RESP_429, **RESP_500, **RESP_504}
RESP_VIEW = {**RESP_202, **RESP_307, **RESP_400, **RESP_AUTH_404, **RESP_500}
