from __future__ import annotations

from typing import Any, AsyncIterator

import httpx

from cancelruns.core.jobs import JobRecord

PAGE_SIZE = 100


class GitHubApiError(RuntimeError):
    """Raised when a GitHub REST call fails (HTTP error or transport failure)."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        self.message = message
        prefix = f"[{status_code}] " if status_code is not None else ""
        super().__init__(f"{prefix}{message}")


def _error_message(response: httpx.Response) -> str:
    """Return the `message` field of a GitHub error body, or the raw text."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text or response.reason_phrase


class GitHubActionsAdapter:
    """Adapter around the GitHub REST APIs for Actions runs, jobs and pull requests."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Send one request and convert failures into GitHubApiError."""
        try:
            response = await self.client.request(method, url, params=params, json=json)
        except httpx.TransportError as exc:
            raise GitHubApiError(f"{method} {url} failed: {exc}") from exc
        if response.is_error:
            raise GitHubApiError(_error_message(response), status_code=response.status_code)
        return response

    async def _paginate(
        self, url: str, params: dict[str, Any] | None = None
    ) -> AsyncIterator[Any]:
        """Yield the decoded body of every page, following `Link: rel="next"`."""
        query: dict[str, Any] | None = {**(params or {}), "per_page": PAGE_SIZE}
        next_url: str | None = url
        while next_url:
            response = await self._request("GET", next_url, params=query)
            yield response.json()
            next_url = response.links.get("next", {}).get("url")
            # the next link already carries the query string
            query = None

    def list_runs(
        self,
        owner: str,
        repo: str,
        *,
        workflow: int | str,
        status: str,
        branch: str | None = None,
        event: str | None = None,
    ) -> AsyncIterator[Any]:
        """Yield raw listing pages of the runs of one workflow."""
        params: dict[str, Any] = {"status": status}
        if branch:
            params["branch"] = branch
        if event:
            params["event"] = event
        return self._paginate(
            f"/repos/{owner}/{repo}/actions/workflows/{workflow}/runs", params
        )

    async def iter_jobs(self, owner: str, repo: str, run_id: int) -> AsyncIterator[JobRecord]:
        """Yield the jobs of a run, fetching further pages only when needed."""
        async for page in self._paginate(f"/repos/{owner}/{repo}/actions/runs/{run_id}/jobs"):
            for job in page.get("jobs", []):
                yield JobRecord(name=str(job.get("name") or ""), conclusion=job.get("conclusion"))

    async def get_run(self, owner: str, repo: str, run_id: int) -> dict[str, Any]:
        """Return the run object for a run id."""
        response = await self._request("GET", f"/repos/{owner}/{repo}/actions/runs/{run_id}")
        return response.json()

    async def cancel_run(self, owner: str, repo: str, run_id: int) -> int:
        """Request cancellation of a run and return the HTTP status code."""
        response = await self._request(
            "POST", f"/repos/{owner}/{repo}/actions/runs/{run_id}/cancel"
        )
        return response.status_code

    async def list_pull_requests(
        self, owner: str, repo: str, head: str
    ) -> list[dict[str, Any]]:
        """Return open pull requests whose head is `owner:branch`."""
        response = await self._request(
            "GET", f"/repos/{owner}/{repo}/pulls", params={"head": head, "state": "open"}
        )
        return list(response.json())

    async def create_comment(
        self, owner: str, repo: str, issue_number: int, body: str
    ) -> None:
        """Post a comment on an issue or pull request."""
        await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json={"body": body},
        )
