import re
from dataclasses import dataclass
from typing import Annotated, Any, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator

from artifactci.core.constants import EVENT_GENERATE_CLIENT_TOKEN, EVENT_UPLOAD_COMPLETED

T = TypeVar("T")

_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:")


class CamelModel(BaseModel):
    """Wire models use camelCase keys; Python code uses snake_case attributes."""

    class Config:
        populate_by_name = True


class GithubActionsContext(CamelModel):
    ref: str = Field(..., description="Git ref the workflow ran for")
    sha: str = Field(..., description="Commit sha")
    run_id: int = Field(..., alias="runId", description="GitHub Actions run id")
    run_attempt: int = Field(..., alias="runAttempt", description="Run attempt, starting at 1")
    job: str = Field(..., description="Job key from the workflow file, not the display name")
    repository: str = Field(..., description="owner/repo")
    github_origin: str = Field("https://github.com", alias="githubOrigin")
    github_api_url: str = Field("https://api.github.com", alias="githubApiUrl")
    github_retention_days: int = Field(90, alias="githubRetentionDays", ge=1, le=400)

    @field_validator("repository")
    def validate_repository(cls, v):
        parts = v.split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError("Repository should be in the format of owner/repo")
        return v

    @property
    def owner(self) -> str:
        return self.repository.split("/")[0]

    @property
    def repo(self) -> str:
        return self.repository.split("/")[1]

    @property
    def html_url(self) -> str:
        return f"{self.github_origin.rstrip('/')}/{self.repository}"


class ClientPayload(CamelModel):
    github_token: Optional[str] = Field(None, alias="githubToken")
    context: GithubActionsContext


class BulkRequestFile(CamelModel):
    local_path: str = Field(..., alias="localPath", min_length=1)
    multipart: bool = False

    @field_validator("local_path")
    def validate_local_path(cls, v):
        if v.startswith("/") or _WINDOWS_DRIVE.match(v):
            raise ValueError("Local path should not be absolute")
        return v


class BulkRequest(CamelModel):
    type: Literal["bulk"]
    callback_url: str = Field(..., alias="callbackUrl")
    client_payload: ClientPayload = Field(..., alias="clientPayload")
    files: List[BulkRequestFile]
    entrypoints: Optional[List[str]] = Field(
        None, description="Entrypoints the caller would like highlighted, matched against view urls"
    )


class BulkResponseItem(CamelModel):
    local_path: str = Field(..., alias="localPath")
    view_url: str = Field(..., alias="viewUrl")
    pathname: str
    client_token: str = Field(..., alias="clientToken")
    content_type: str = Field(..., alias="contentType")


class BulkResponse(CamelModel):
    results: List[BulkResponseItem]
    entrypoints: List[str]


class GenerateClientTokenPayload(CamelModel):
    callback_url: Optional[str] = Field(None, alias="callbackUrl")
    client_payload: Optional[str] = Field(None, alias="clientPayload")
    pathname: str
    multipart: bool = False


class GenerateClientTokenEvent(CamelModel):
    type: Literal["blob.generate-client-token"]
    payload: GenerateClientTokenPayload


class BlobResult(CamelModel):
    url: str
    download_url: Optional[str] = Field(None, alias="downloadUrl")
    pathname: str
    content_type: Optional[str] = Field(None, alias="contentType")
    content_disposition: Optional[str] = Field(None, alias="contentDisposition")


class UploadCompletedPayload(CamelModel):
    blob: BlobResult
    token_payload: Optional[str] = Field(None, alias="tokenPayload")


class UploadCompletedEvent(CamelModel):
    type: Literal["blob.upload-completed"]
    payload: UploadCompletedPayload

    @model_validator(mode="before")
    @classmethod
    def lift_flat_payload(cls, data: Any) -> Any:
        # Accept {type, blob, tokenPayload} as well as {type, payload: {...}}
        if isinstance(data, dict) and "payload" not in data and "blob" in data:
            data = {
                "type": data.get("type"),
                "payload": {"blob": data["blob"], "tokenPayload": data.get("tokenPayload")},
            }
        return data


class TokenOptions(CamelModel):
    """What ``on_before_generate_token`` hands to the blob store token signer."""

    allowed_content_types: List[str] = Field(..., alias="allowedContentTypes")
    add_random_suffix: bool = Field(True, alias="addRandomSuffix")
    token_payload: str = Field(..., alias="tokenPayload")


class ClientTokenResponse(CamelModel):
    type: Literal["blob.generate-client-token"] = EVENT_GENERATE_CLIENT_TOKEN
    client_token: str = Field(..., alias="clientToken")


class UploadCompletedResponse(CamelModel):
    type: Literal["blob.upload-completed"] = EVENT_UPLOAD_COMPLETED
    response: Literal["ok"] = "ok"


UploadBody = Annotated[
    Union[BulkRequest, GenerateClientTokenEvent, UploadCompletedEvent],
    Field(discriminator="type"),
]

_upload_body_adapter: TypeAdapter = TypeAdapter(UploadBody)


@dataclass
class Parsed(Generic[T]):
    """Tagged result of validating an untrusted body."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return "; ".join(parts)


def parse_upload_body(raw: Any) -> Parsed[Union[BulkRequest, GenerateClientTokenEvent, UploadCompletedEvent]]:
    try:
        return Parsed(ok=True, value=_upload_body_adapter.validate_python(raw))
    except ValidationError as e:
        return Parsed(ok=False, error=_format_errors(e))


def parse_client_payload(raw: Any) -> Parsed[ClientPayload]:
    try:
        if isinstance(raw, (str, bytes)):
            return Parsed(ok=True, value=ClientPayload.model_validate_json(raw))
        return Parsed(ok=True, value=ClientPayload.model_validate(raw))
    except ValidationError as e:
        return Parsed(ok=False, error=_format_errors(e))
