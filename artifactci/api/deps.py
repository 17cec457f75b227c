from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from motor.motor_asyncio import AsyncIOMotorDatabase

from artifactci.core.config import settings
from artifactci.repositories.artifacts import ArtifactEntryRepository, ArtifactRepository
from artifactci.repositories.repos import RepoRepository
from artifactci.repositories.upload_requests import UploadRequestRepository
from artifactci.repositories.uploads import UploadRepository
from artifactci.services.access import AccessChecker
from artifactci.services.artifact_ingest import ArtifactIngestService
from artifactci.services.artifact_resolution import ArtifactResolver
from artifactci.services.blob_storage import BlobStorageService
from artifactci.services.github import GitHubClient
from artifactci.services.upload_handler import BulkUploadHandler

bearer_scheme = HTTPBearer(auto_error=False)


def get_database(request: Request) -> AsyncIOMotorDatabase:
    return request.app.state.mongo.get()


def get_github(request: Request) -> GitHubClient:
    return request.app.state.github


def get_blob_storage(request: Request) -> BlobStorageService:
    return request.app.state.blob_storage


async def get_current_login(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """
    GitHub login of the caller, or None for anonymous requests.

    Session tokens are minted by the auth frontend; a token that is present
    but invalid is rejected rather than treated as anonymous.
    """
    if credentials is None:
        return None
    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    login = payload.get("sub")
    if not login:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")
    return login


async def require_login(login: Optional[str] = Depends(get_current_login)) -> str:
    if login is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return login


def get_access_checker(github: GitHubClient = Depends(get_github)) -> AccessChecker:
    return AccessChecker(github)


def get_upload_handler(
    db: AsyncIOMotorDatabase = Depends(get_database),
    github: GitHubClient = Depends(get_github),
    blob_storage: BlobStorageService = Depends(get_blob_storage),
) -> BulkUploadHandler:
    return BulkUploadHandler(
        upload_requests=UploadRequestRepository(db),
        uploads=UploadRepository(db),
        github=github,
        blob_storage=blob_storage,
    )


def get_artifact_resolver(
    db: AsyncIOMotorDatabase = Depends(get_database),
    access: AccessChecker = Depends(get_access_checker),
) -> ArtifactResolver:
    return ArtifactResolver(
        repos=RepoRepository(db),
        artifacts=ArtifactRepository(db),
        entries=ArtifactEntryRepository(db),
        access=access,
    )


def get_ingest_service(
    db: AsyncIOMotorDatabase = Depends(get_database),
    github: GitHubClient = Depends(get_github),
    access: AccessChecker = Depends(get_access_checker),
) -> ArtifactIngestService:
    return ArtifactIngestService(
        repos=RepoRepository(db),
        artifacts=ArtifactRepository(db),
        entries=ArtifactEntryRepository(db),
        github=github,
        access=access,
        public_origin=settings.PUBLIC_ORIGIN,
    )
