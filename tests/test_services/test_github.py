"""Tests for the GitHub REST client: pagination, caching and permission lookups."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from artifactci.core.http_utils import HTTPRequestError
from artifactci.services.github import GitHubClient


def _response(status_code, json_body, link=None):
    headers = {"link": link} if link else {}
    return httpx.Response(status_code, json=json_body, headers=headers)


def _passthrough_cache():
    """A cache that always misses, so every call reaches the fetch function."""
    cache = MagicMock()

    async def get_or_fetch(key, fetch_fn, ttl_seconds=None):
        return await fetch_fn()

    cache.get_or_fetch = AsyncMock(side_effect=get_or_fetch)
    return cache


def _client(responses):
    http = MagicMock()
    http.get = AsyncMock(side_effect=responses)
    http.post = AsyncMock(return_value=_response(201, {"token": "ghs_installation"}))
    return GitHubClient(http, _passthrough_cache(), app_id="123", private_key="key")


class TestListJobs:
    def test_follows_link_header(self):
        page1 = _response(
            200,
            {"total_count": 2, "jobs": [{"id": 1, "name": "build", "status": "in_progress"}]},
            link='<https://api.github.com/next>; rel="next"',
        )
        page2 = _response(200, {"total_count": 2, "jobs": [{"id": 2, "name": "lint", "status": "queued"}]})
        client = _client([page1, page2])

        jobs = asyncio.run(client.list_jobs_for_run_attempt("ghp_token", "mmkal", "artifact.ci", 42, 1))

        assert [j.name for j in jobs] == ["build", "lint"]
        url = client.http.get.call_args_list[0].args[0]
        assert url == "https://api.github.com/repos/mmkal/artifact.ci/actions/runs/42/attempts/1/jobs"
        assert client.http.get.call_args_list[1].kwargs["params"]["page"] == 2
        assert client.http.get.call_args_list[0].kwargs["headers"]["Authorization"] == "Bearer ghp_token"

    def test_non_200_raises(self):
        client = _client([_response(401, {"message": "Bad credentials"})])
        with pytest.raises(HTTPRequestError) as exc_info:
            asyncio.run(client.list_jobs_for_run_attempt("bad", "mmkal", "artifact.ci", 42, 1))
        assert exc_info.value.status_code == 401

    def test_custom_api_url(self):
        client = _client([_response(200, {"jobs": []})])
        asyncio.run(
            client.list_jobs_for_run_attempt("t", "o", "r", 1, 1, api_url="https://ghe.example.com/api/v3/")
        )
        assert client.http.get.call_args.args[0].startswith("https://ghe.example.com/api/v3/repos/o/r/")


class TestCollaboratorPermission:
    def test_role_name_preferred(self):
        client = _client([_response(200, {"permission": "write", "role_name": "maintain"})])
        with patch.object(client, "_app_jwt", return_value="app.jwt"):
            assert asyncio.run(client.get_collaborator_permission(99, "mmkal", "artifact.ci", "octocat")) == "maintain"

    def test_not_a_collaborator(self):
        client = _client([_response(404, {"message": "Not Found"})])
        with patch.object(client, "_app_jwt", return_value="app.jwt"):
            assert asyncio.run(client.get_collaborator_permission(99, "mmkal", "artifact.ci", "octocat")) == "none"

    def test_uses_installation_token(self):
        client = _client([_response(200, {"permission": "read"})])
        with patch.object(client, "_app_jwt", return_value="app.jwt"):
            asyncio.run(client.get_collaborator_permission(99, "mmkal", "artifact.ci", "octocat"))

        post_url = client.http.post.call_args.args[0]
        assert post_url == "https://api.github.com/app/installations/99/access_tokens"
        assert client.http.get.call_args.kwargs["headers"]["Authorization"] == "Bearer ghs_installation"


class TestRepoInstallation:
    def test_not_installed(self):
        client = _client([_response(404, {"message": "Not Found"})])
        with patch.object(client, "_app_jwt", return_value="app.jwt"):
            assert asyncio.run(client.get_repo_installation_id("mmkal", "artifact.ci")) is None

    def test_missing_app_credentials(self):
        client = GitHubClient(MagicMock(), _passthrough_cache())
        with pytest.raises(HTTPRequestError):
            client._app_jwt()
