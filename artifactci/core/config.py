from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "artifact.ci"
    PUBLIC_ORIGIN: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"

    MONGODB_URL: str
    DATABASE_NAME: str = "artifactci"

    # Redis Cache Settings
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_PREFIX: str = "aci:"
    CACHE_DEFAULT_TTL_HOURS: int = 24

    # Session tokens are issued by the auth frontend; we only verify them
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # Blob storage
    BLOB_READ_WRITE_TOKEN: str = ""
    BLOB_STORE_BASE_URL: str = ""
    BLOB_CLIENT_TOKEN_TTL_SECONDS: int = 3600
    BLOB_ADD_RANDOM_SUFFIX: bool = True
    STRICT_CONTENT_TYPES: bool = False

    # Bulk upload
    ALLOWED_GITHUB_OWNERS: str = ""
    BULK_UPLOAD_TIMEOUT_SECONDS: float = 59.0
    TOKEN_ISSUANCE_CONCURRENCY: int = 10

    # GitHub
    GITHUB_ORIGIN: str = "https://github.com"
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_APP_ID: str = ""
    GITHUB_APP_PRIVATE_KEY: str = ""
    GITHUB_WEBHOOK_SECRET: str = ""

    @property
    def allowed_github_owners(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_GITHUB_OWNERS.split(",") if o.strip()]

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
