"""
Upload Requests Repository

The ledger of bulk upload attempts. There is at most one row per
(repo, run id, run attempt, job); the unique index created in
``init_db.create_indexes`` is what makes concurrent duplicates lose.
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from artifactci.core import utc_now
from artifactci.models.upload import UploadRequest
from artifactci.repositories.base import BaseRepository
from artifactci.repositories.repos import RepoRef, RepoRepository

logger = logging.getLogger(__name__)


class UploadRequestRepository(BaseRepository[UploadRequest]):
    collection_name = "upload_requests"
    model_class = UploadRequest

    def __init__(self, db: AsyncIOMotorDatabase):
        super().__init__(db)
        self.repos = RepoRepository(db)

    async def record_upload_request(
        self,
        repo_ref: RepoRef,
        ref: str,
        sha: str,
        run_id: int,
        run_attempt: int,
        job_id: str,
    ) -> Optional[UploadRequest]:
        """
        Record one upload attempt for a job execution.

        Args:
            repo_ref: Repository the job belongs to (upserted)
            ref: Git ref of the run
            sha: Commit sha of the run
            run_id: GitHub Actions run id
            run_attempt: Run attempt number
            job_id: Job key from the workflow file

        Returns:
            The new ledger row, or None if one already existed for this job
            execution. None is a normal outcome, not a failure.
        """
        repo = await self.repos.upsert(repo_ref)

        key = {
            "repo_id": repo.id,
            "actions_run_id": run_id,
            "actions_run_attempt": run_attempt,
            "job_id": job_id,
        }
        now = utc_now()
        row = UploadRequest(ref=ref, sha=sha, created_at=now, updated_at=now, **key)
        on_insert = {k: v for k, v in row.model_dump(by_alias=True).items() if k not in key}

        try:
            result = await self.collection.update_one(key, {"$setOnInsert": on_insert}, upsert=True)
        except DuplicateKeyError:
            logger.info(
                f"Upload request for {repo_ref.html_url} run {run_id}/{run_attempt} job {job_id} "
                "lost a concurrent insert"
            )
            return None

        if result.upserted_id is None:
            logger.info(
                f"Upload request for {repo_ref.html_url} run {run_id}/{run_attempt} job {job_id} already exists"
            )
            return None

        return row
