import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from artifactci import __version__
from artifactci.api import health
from artifactci.api.v1.endpoints import artifacts, github_events, upload
from artifactci.core.cache import CacheService
from artifactci.core.config import settings
from artifactci.core.http_utils import InstrumentedAsyncClient
from artifactci.core.init_db import create_indexes
from artifactci.core.logging import configure_logging
from artifactci.core.metrics import PrometheusMiddleware, metrics_endpoint
from artifactci.db.mongodb import Database
from artifactci.services.blob_storage import BlobStorageService
from artifactci.services.github import GitHubClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    if not settings.GITHUB_WEBHOOK_SECRET:
        logger.error("GITHUB_WEBHOOK_SECRET is not set, GitHub webhook deliveries will be rejected")

    mongo = Database(settings.MONGODB_URL, settings.DATABASE_NAME)
    await create_indexes(await mongo.connect())

    cache = CacheService(
        settings.REDIS_URL,
        prefix=settings.CACHE_PREFIX,
        default_ttl_seconds=settings.CACHE_DEFAULT_TTL_HOURS * 3600,
    )
    github_http = InstrumentedAsyncClient("GitHub API", timeout=30.0)
    blob_http = InstrumentedAsyncClient("Blob Store", timeout=60.0)
    await github_http.start()
    await blob_http.start()

    app.state.mongo = mongo
    app.state.cache = cache
    app.state.github = GitHubClient(
        github_http,
        cache,
        api_url=settings.GITHUB_API_URL,
        app_id=settings.GITHUB_APP_ID,
        private_key=settings.GITHUB_APP_PRIVATE_KEY,
    )
    app.state.blob_storage = BlobStorageService(
        blob_http,
        settings.BLOB_READ_WRITE_TOKEN,
        base_url=settings.BLOB_STORE_BASE_URL,
        client_token_ttl_seconds=settings.BLOB_CLIENT_TOKEN_TTL_SECONDS,
    )
    logger.info(f"{settings.PROJECT_NAME} {__version__} started")

    try:
        yield
    finally:
        await blob_http.close()
        await github_http.close()
        await cache.close()
        await mongo.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    Browse GitHub Actions artifacts in the browser.

    ## Features
    * **Bulk Uploads**: CI jobs request client tokens for many files at once and upload straight to blob storage.
    * **Artifact Views**: Files are served by run, commit sha or branch alias, with entrypoint detection for HTML reports.
    * **Access Control**: Private repositories are checked against the caller's GitHub permissions.
    """,
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(PrometheusMiddleware)
app.add_route("/metrics", metrics_endpoint, include_in_schema=False)

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(upload.router, prefix="/artifact/upload", tags=["upload"])
app.include_router(artifacts.router, prefix="/artifact", tags=["artifacts"])
app.include_router(github_events.router, prefix="/github", tags=["github"])


@app.get("/")
async def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME}"}
