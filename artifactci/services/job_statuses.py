"""
Job status lookup for a GitHub Actions run.

Uploads are only authorized for a job that is currently running. The status
comes from the REST API when the caller passed a token, otherwise from the
public run page. The page scraper depends on GitHub's markup; the fixture in
tests/fixtures pins the structure it expects.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

import httpx
from bs4 import BeautifulSoup

from artifactci.core.http_utils import HTTPRequestError
from artifactci.core.metrics import job_status_checks_total
from artifactci.schemas.github_events import GitHubJob
from artifactci.schemas.upload import GithubActionsContext
from artifactci.services.github import GitHubClient

logger = logging.getLogger(__name__)

JobStatus = Literal["running", "success", "failed", "unexpected"]
Mode = Literal["api", "web"]

# aria-label fragments on the status icon of each job in the run graph
_STATUS_LABELS: Dict[str, str] = {
    "running": "currently running",
    "failed": "failed",
    "success": "completed successfully",
}


class JobStatusParseError(Exception):
    """The run page did not show exactly one status icon for a job."""


class AmbiguousJobMatchError(Exception):
    def __init__(self, job_key: str, matches: List["JobInfo"]):
        names = ", ".join(repr(j.job_name) for j in matches)
        super().__init__(
            f"Job {job_key!r} matches more than one job ({names}). "
            "Pass the job id from the workflow file to disambiguate."
        )
        self.job_key = job_key
        self.matches = matches


@dataclass
class JobInfo:
    job_name: str
    status: JobStatus
    job_id: Optional[str] = None
    href: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"jobName": self.job_name, "status": self.status, "jobId": self.job_id, "href": self.href}


@dataclass
class JobStatusResult:
    outcome: Literal["success", "failure"]
    mode: Mode
    jobs: List[JobInfo] = field(default_factory=list)
    # Failure details: upstream status for web mode, 400 for api mode
    status_code: Optional[int] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == "success"


def map_api_status(status: str, conclusion: Optional[str]) -> JobStatus:
    if status == "in_progress":
        return "running"
    if status == "completed" and conclusion == "success":
        return "success"
    if status == "completed" and conclusion == "failure":
        return "failed"
    return "unexpected"


def parse_job_statuses(html: str) -> List[JobInfo]:
    """
    Parse job statuses from a run page.

    Raises:
        JobStatusParseError: a job shows zero or several status icons.
    """
    soup = BeautifulSoup(html, "html.parser")
    jobs = []

    for el in soup.select("streaming-graph-job[data-job-id]"):
        checks = {
            status: el.select_one(f'svg[aria-label*="{label}"]') is not None
            for status, label in _STATUS_LABELS.items()
        }
        set_flags = [status for status, present in checks.items() if present]
        if len(set_flags) != 1:
            raise JobStatusParseError(f"Job status is ambiguous: {checks}")

        name_el = el.select_one('[data-target="streaming-graph-job.name"]')
        link = el.find("a")
        jobs.append(
            JobInfo(
                job_name=name_el.get_text(strip=True) if name_el else "",
                status=set_flags[0],
                job_id=el.get("data-job-id"),
                href=link.get("href") if link else None,
            )
        )

    return jobs


class JobStatusProvider:
    """Lists the jobs of a run attempt with their statuses."""

    mode: Mode

    def __init__(self, github: GitHubClient):
        self.github = github

    async def get_jobs(self, context: GithubActionsContext) -> JobStatusResult:
        raise NotImplementedError


class ApiJobStatusProvider(JobStatusProvider):
    mode: Mode = "api"

    def __init__(self, github: GitHubClient, token: str):
        super().__init__(github)
        self.token = token

    async def get_jobs(self, context: GithubActionsContext) -> JobStatusResult:
        try:
            jobs: List[GitHubJob] = await self.github.list_jobs_for_run_attempt(
                self.token,
                context.owner,
                context.repo,
                context.run_id,
                context.run_attempt,
                api_url=context.github_api_url,
            )
        except (HTTPRequestError, httpx.HTTPError) as e:
            logger.warning(f"Failed to list jobs for run {context.run_id}: {e}")
            return JobStatusResult(
                outcome="failure",
                mode=self.mode,
                status_code=400,
                detail=f"Failed to list jobs for run {context.run_id}. Check the githubToken has actions:read. {e}",
            )

        return JobStatusResult(
            outcome="success",
            mode=self.mode,
            jobs=[
                JobInfo(
                    job_name=job.name,
                    status=map_api_status(job.status, job.conclusion),
                    job_id=str(job.id),
                    href=job.html_url,
                )
                for job in jobs
            ],
        )


class WebJobStatusProvider(JobStatusProvider):
    """Scrapes the public run page. Only works for public repositories."""

    mode: Mode = "web"

    async def get_jobs(self, context: GithubActionsContext) -> JobStatusResult:
        run_page_url = (
            f"{context.github_origin.rstrip('/')}/{context.owner}/{context.repo}/actions/runs/{context.run_id}"
        )
        try:
            response = await self.github.fetch_page(run_page_url)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to load {run_page_url}: {e!r}")
            return JobStatusResult(
                outcome="failure",
                mode=self.mode,
                status_code=502,
                detail=(
                    f"Failed to load {run_page_url}: {e!r}. "
                    'If the repository is private, pass a "githubToken" in the client payload.'
                ),
            )
        if response.status_code != 200:
            return JobStatusResult(
                outcome="failure",
                mode=self.mode,
                status_code=response.status_code,
                detail=(
                    f"Failed to load {run_page_url} ({response.status_code}): {response.text[:500]}. "
                    'If the repository is private, pass a "githubToken" in the client payload.'
                ),
            )
        return JobStatusResult(outcome="success", mode=self.mode, jobs=parse_job_statuses(response.text))


def get_provider(github: GitHubClient, github_token: Optional[str]) -> JobStatusProvider:
    if github_token:
        return ApiJobStatusProvider(github, github_token)
    return WebJobStatusProvider(github)


async def get_jobs_with_statuses(
    github: GitHubClient,
    context: GithubActionsContext,
    github_token: Optional[str],
) -> JobStatusResult:
    provider = get_provider(github, github_token)
    result = await provider.get_jobs(context)
    job_status_checks_total.labels(mode=result.mode, outcome=result.outcome).inc()
    return result


def find_matching_job(jobs: List[JobInfo], job_key: str) -> Optional[JobInfo]:
    """
    Find the job for ``job_key`` (the key in the workflow file).

    An exact name match wins. Otherwise job display names containing the key
    (case-insensitive) are considered; more than one is an error rather than
    a guess.
    """
    exact = [job for job in jobs if job.job_name == job_key]
    if len(exact) == 1:
        return exact[0]
    if len(exact) > 1:
        raise AmbiguousJobMatchError(job_key, exact)

    needle = job_key.lower()
    matches = [job for job in jobs if needle in job.job_name.lower()]
    if len(matches) > 1:
        raise AmbiguousJobMatchError(job_key, matches)
    return matches[0] if matches else None
