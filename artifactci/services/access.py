import logging
from dataclasses import dataclass
from typing import Optional

from artifactci.core.constants import READ_PERMISSIONS
from artifactci.core.http_utils import HTTPRequestError
from artifactci.services.github import GitHubClient

logger = logging.getLogger(__name__)


@dataclass
class AccessResult:
    can_access: bool
    permission: str
    reason: Optional[str] = None


class AccessChecker:
    """Read access to a repository's artifacts, decided by GitHub collaboration level."""

    def __init__(self, github: GitHubClient):
        self.github = github

    async def check(
        self,
        login: Optional[str],
        owner: str,
        repo: str,
        installation_id: Optional[int],
        visibility: str = "private",
    ) -> AccessResult:
        if visibility == "public":
            return AccessResult(can_access=True, permission="read", reason="public")

        if not login:
            return AccessResult(can_access=False, permission="none", reason="not_logged_in")

        # Owners are admins of their own repositories; no need to ask GitHub
        if login.lower() == owner.lower():
            return AccessResult(can_access=True, permission="admin", reason="owner")

        if installation_id is None:
            return AccessResult(can_access=False, permission="none", reason="no_installation")

        try:
            permission = await self.github.get_collaborator_permission(installation_id, owner, repo, login)
        except HTTPRequestError as e:
            logger.warning(f"Permission lookup for {login} on {owner}/{repo} failed: {e}")
            return AccessResult(can_access=False, permission="none", reason="lookup_failed")

        if permission in READ_PERMISSIONS:
            return AccessResult(can_access=True, permission=permission)

        logger.info(f"User {login} has permission {permission} for repo {owner}/{repo}")
        return AccessResult(can_access=False, permission=permission, reason="insufficient_permission")

    async def check_repo(self, login: Optional[str], owner: str, repo: str) -> AccessResult:
        """Like ``check`` for callers that only know the repository, not an artifact."""
        installation_id = None
        if login and login.lower() != owner.lower():
            try:
                installation_id = await self.github.get_repo_installation_id(owner, repo)
            except HTTPRequestError as e:
                logger.warning(f"Installation lookup for {owner}/{repo} failed: {e}")
        return await self.check(login, owner, repo, installation_id)
