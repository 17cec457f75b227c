import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from jose import jwt

from artifactci.core.cache import CacheKeys, CacheService, CacheTTL
from artifactci.core.http_utils import HTTPRequestError, InstrumentedAsyncClient
from artifactci.schemas.github_events import ArtifactList, GitHubArtifact, GitHubJob

logger = logging.getLogger(__name__)

_PER_PAGE = 100
_MAX_PAGES = 10


def _auth_headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }


class GitHubClient:
    """
    GitHub REST client.

    Two kinds of credentials are used: a caller supplied token (job status
    checks from CI) and GitHub App installation tokens (permission checks,
    artifact listing). Installation tokens and permission lookups are cached
    in Redis so every pod shares them.
    """

    def __init__(
        self,
        http: InstrumentedAsyncClient,
        cache: CacheService,
        api_url: str = "https://api.github.com",
        app_id: str = "",
        private_key: str = "",
    ):
        self.http = http
        self.cache = cache
        self.api_url = api_url.rstrip("/")
        self.app_id = app_id
        self.private_key = private_key

    # ------------------------------------------------------------------
    # Low level
    # ------------------------------------------------------------------

    async def _get_paginated(
        self,
        url: str,
        token: str,
        items_key: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Paginated GET using GitHub's Link header pagination.

        Raises HTTPRequestError on the first non-200 page.
        """
        all_items: List[Dict[str, Any]] = []
        page = 1

        while page <= _MAX_PAGES:
            request_params = {**(params or {}), "page": page, "per_page": _PER_PAGE}
            response = await self.http.get(url, headers=_auth_headers(token), params=request_params)

            if response.status_code != 200:
                raise HTTPRequestError(
                    f"GitHub API GET {url} page {page} failed: {response.status_code} {response.text[:200]}",
                    status_code=response.status_code,
                )

            body = response.json()
            items = body.get(items_key, []) if items_key else body
            if not items:
                break
            all_items.extend(items)

            if 'rel="next"' not in response.headers.get("link", ""):
                break
            page += 1

        return all_items

    # ------------------------------------------------------------------
    # Caller token
    # ------------------------------------------------------------------

    async def list_jobs_for_run_attempt(
        self,
        token: str,
        owner: str,
        repo: str,
        run_id: int,
        run_attempt: int,
        api_url: Optional[str] = None,
    ) -> List[GitHubJob]:
        base = (api_url or self.api_url).rstrip("/")
        url = f"{base}/repos/{owner}/{repo}/actions/runs/{run_id}/attempts/{run_attempt}/jobs"
        jobs = await self._get_paginated(url, token, items_key="jobs")
        return [GitHubJob(**job) for job in jobs]

    # ------------------------------------------------------------------
    # GitHub App
    # ------------------------------------------------------------------

    def _app_jwt(self) -> str:
        if not self.app_id or not self.private_key:
            raise HTTPRequestError("GitHub App credentials are not configured")
        now = int(time.time())
        # iat is backdated to absorb clock drift between us and GitHub
        claims = {"iat": now - 60, "exp": now + 9 * 60, "iss": self.app_id}
        return jwt.encode(claims, self.private_key, algorithm="RS256")

    async def get_installation_token(self, installation_id: int) -> str:
        async def fetch() -> str:
            response = await self.http.post(
                f"{self.api_url}/app/installations/{installation_id}/access_tokens",
                headers=_auth_headers(self._app_jwt()),
            )
            if response.status_code != 201:
                raise HTTPRequestError(
                    f"Could not create installation token for {installation_id}: {response.status_code}",
                    status_code=response.status_code,
                )
            logger.debug(f"Created installation token for installation {installation_id}")
            return response.json()["token"]

        return await self.cache.get_or_fetch(
            CacheKeys.installation_token(installation_id), fetch, ttl_seconds=CacheTTL.INSTALLATION_TOKEN
        )

    async def get_repo_installation_id(self, owner: str, repo: str) -> Optional[int]:
        async def fetch() -> Optional[int]:
            response = await self.http.get(
                f"{self.api_url}/repos/{owner}/{repo}/installation",
                headers=_auth_headers(self._app_jwt()),
            )
            if response.status_code == 404:
                return None
            if response.status_code != 200:
                raise HTTPRequestError(
                    f"Could not look up installation for {owner}/{repo}: {response.status_code}",
                    status_code=response.status_code,
                )
            return response.json()["id"]

        return await self.cache.get_or_fetch(
            CacheKeys.repo_installation(owner, repo), fetch, ttl_seconds=CacheTTL.REPO_INSTALLATION
        )

    async def get_collaborator_permission(self, installation_id: int, owner: str, repo: str, login: str) -> str:
        """
        Permission of ``login`` on ``owner/repo``: admin, maintain, write,
        triage, read or none. A 404 (not a collaborator) maps to none.
        """

        async def fetch() -> str:
            token = await self.get_installation_token(installation_id)
            response = await self.http.get(
                f"{self.api_url}/repos/{owner}/{repo}/collaborators/{login}/permission",
                headers=_auth_headers(token),
            )
            if response.status_code == 404:
                return "none"
            if response.status_code != 200:
                raise HTTPRequestError(
                    f"Permission lookup for {login} on {owner}/{repo} failed: {response.status_code}",
                    status_code=response.status_code,
                )
            body = response.json()
            return body.get("role_name") or body.get("permission") or "none"

        return await self.cache.get_or_fetch(
            CacheKeys.collaborator_permission(owner, repo, login),
            fetch,
            ttl_seconds=CacheTTL.COLLABORATOR_PERMISSION,
        )

    async def list_run_artifacts(self, installation_id: int, owner: str, repo: str, run_id: int) -> ArtifactList:
        token = await self.get_installation_token(installation_id)
        items = await self._get_paginated(
            f"{self.api_url}/repos/{owner}/{repo}/actions/runs/{run_id}/artifacts",
            token,
            items_key="artifacts",
        )
        artifacts = [GitHubArtifact(**item) for item in items]
        return ArtifactList(total_count=len(artifacts), artifacts=artifacts)

    async def fetch_page(self, url: str) -> httpx.Response:
        """Unauthenticated GET of a github.com web page."""
        return await self.http.get(url, follow_redirects=True, headers={"Accept": "text/html"})
