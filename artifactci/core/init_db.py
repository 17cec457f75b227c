import logging

import pymongo

logger = logging.getLogger(__name__)


async def create_indexes(db):
    """Creates indexes for all collections, including the uniqueness constraints
    the ledger and the upserts depend on."""
    logger.info("Creating database indexes...")

    # Repos
    await db["repos"].create_index("html_url", unique=True)
    await db["repos"].create_index(
        [("owner", pymongo.ASCENDING), ("name", pymongo.ASCENDING)], unique=True
    )

    # Upload requests: one ledger row per job execution
    await db["upload_requests"].create_index(
        [
            ("repo_id", pymongo.ASCENDING),
            ("actions_run_id", pymongo.ASCENDING),
            ("actions_run_attempt", pymongo.ASCENDING),
            ("job_id", pymongo.ASCENDING),
        ],
        unique=True,
        name="upload_request_job_unique",
    )

    # Uploads
    await db["uploads"].create_index(
        [("pathname", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)]
    )
    await db["uploads"].create_index("upload_request_id")
    await db["uploads"].create_index("expires_at", expireAfterSeconds=0)

    # Artifacts
    await db["artifacts"].create_index(
        [("repo_id", pymongo.ASCENDING), ("github_id", pymongo.ASCENDING)], unique=True
    )
    await db["artifacts"].create_index(
        [("repo_id", pymongo.ASCENDING), ("name", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)]
    )

    # Artifact identifiers
    await db["artifact_identifiers"].create_index(
        [("artifact_id", pymongo.ASCENDING), ("type", pymongo.ASCENDING), ("value", pymongo.ASCENDING)],
        unique=True,
    )
    await db["artifact_identifiers"].create_index(
        [("type", pymongo.ASCENDING), ("value", pymongo.ASCENDING)]
    )

    # Artifact entries
    await db["artifact_entries"].create_index(
        [("artifact_id", pymongo.ASCENDING), ("entry_name", pymongo.ASCENDING)], unique=True
    )
    await db["artifact_entries"].create_index(
        [("artifact_id", pymongo.ASCENDING), ("aliases", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)]
    )

    logger.info("Database indexes created successfully.")
