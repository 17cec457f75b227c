"""
Shared test fixtures and configuration.

Environment variables are set BEFORE any artifactci imports to prevent
accidental connections to real databases or blob stores.
"""

import os
import sys

# Ensure the package and the tests namespace are importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Override settings before any code imports the settings singleton
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests"
os.environ["ALGORITHM"] = "HS256"
os.environ["MONGODB_URL"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "test_artifactci"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["PUBLIC_ORIGIN"] = "https://www.artifact.ci"
os.environ["BLOB_READ_WRITE_TOKEN"] = "vercel_blob_rw_teststore_secretvalue"
os.environ["ALLOWED_GITHUB_OWNERS"] = ""

import pytest  # noqa: E402

from tests.mocks.github import make_context  # noqa: E402


@pytest.fixture
def context():
    """Standard GitHub Actions context for the mmkal/artifact.ci repo."""
    return make_context()


@pytest.fixture
def fixtures_dir():
    return os.path.join(os.path.dirname(__file__), "fixtures")
