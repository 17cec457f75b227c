"""Tests for the upload request ledger.

One row per (repo, run id, run attempt, job); a second request for the same
job execution must not create another row.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import DuplicateKeyError

from artifactci.repositories.repos import RepoConflictError, RepoRef, RepoRepository
from artifactci.repositories.upload_requests import UploadRequestRepository
from tests.mocks.mongodb import create_mock_collection, create_mock_db

REPO_REF = RepoRef(owner="mmkal", name="artifact.ci", html_url="https://github.com/mmkal/artifact.ci")
REPO_DOC = {"_id": "repo-1", "owner": "mmkal", "name": "artifact.ci", "html_url": "https://github.com/mmkal/artifact.ci"}


def _make_repo(upserted_id="new-id"):
    repos = create_mock_collection(find_one_and_update=REPO_DOC)
    requests = create_mock_collection(upserted_id=upserted_id)
    db = create_mock_db({"repos": repos, "upload_requests": requests})
    return UploadRequestRepository(db), requests


def _record(repo):
    return asyncio.run(
        repo.record_upload_request(REPO_REF, ref="refs/heads/main", sha="abc123", run_id=42, run_attempt=1, job_id="build")
    )


class TestRecordUploadRequest:
    def test_first_request_creates_row(self):
        repo, collection = _make_repo()

        row = _record(repo)

        assert row is not None
        assert row.repo_id == "repo-1"
        assert row.actions_run_id == 42
        key, update = collection.update_one.call_args.args
        assert key == {"repo_id": "repo-1", "actions_run_id": 42, "actions_run_attempt": 1, "job_id": "build"}
        assert update["$setOnInsert"]["_id"] == row.id
        assert "repo_id" not in update["$setOnInsert"]
        assert collection.update_one.call_args.kwargs["upsert"] is True

    def test_existing_row_returns_none(self):
        repo, _ = _make_repo(upserted_id=None)
        assert _record(repo) is None

    def test_lost_race_returns_none(self):
        repo, collection = _make_repo()
        collection.update_one = AsyncMock(side_effect=DuplicateKeyError("E11000 duplicate key"))
        assert _record(repo) is None

    def test_upserts_repo(self):
        repo, _ = _make_repo()
        repo.repos.collection.find_one_and_update = AsyncMock(return_value=REPO_DOC)

        _record(repo)

        query = repo.repos.collection.find_one_and_update.call_args.args[0]
        assert query == {"html_url": "https://github.com/mmkal/artifact.ci"}


class TestRepoUpsert:
    def test_duplicate_key_rereads(self):
        repos = MagicMock()
        repos.find_one_and_update = AsyncMock(side_effect=[DuplicateKeyError("E11000"), REPO_DOC])
        db = create_mock_db({"repos": repos})

        result = asyncio.run(RepoRepository(db).upsert(REPO_REF))

        assert result.id == "repo-1"
        assert repos.find_one_and_update.call_count == 2

    def test_same_repo_under_another_origin_reuses_row(self):
        repos = MagicMock()
        repos.find_one_and_update = AsyncMock(side_effect=[DuplicateKeyError("E11000 owner_1_name_1"), REPO_DOC])
        db = create_mock_db({"repos": repos})
        ghes_ref = RepoRef(owner="mmkal", name="artifact.ci", html_url="https://ghe.example.com/mmkal/artifact.ci")

        result = asyncio.run(RepoRepository(db).upsert(ghes_ref))

        assert result.id == "repo-1"
        query = repos.find_one_and_update.call_args.args[0]
        assert {"owner": "mmkal", "name": "artifact.ci"} in query["$or"]

    def test_duplicate_key_without_matching_row_raises(self):
        repos = MagicMock()
        repos.find_one_and_update = AsyncMock(side_effect=[DuplicateKeyError("E11000"), None])
        db = create_mock_db({"repos": repos})

        with pytest.raises(RepoConflictError):
            asyncio.run(RepoRepository(db).upsert(REPO_REF))
