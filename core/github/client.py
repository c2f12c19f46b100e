import base64
import json
import os
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from config.models import GitHubConfig
from utils.errors import GitHubAPIError
from utils.logger import logger


def _q(value: str) -> str:
    return quote(value, safe="/")


class GitHubClient:
    """
    Async client for the GitHub REST API endpoints the pipeline needs.

    Every failed call raises GitHubAPIError carrying the status code, method,
    and path. Nothing here retries.
    """

    def __init__(self, config: Optional[GitHubConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or GitHubConfig()
        token = self.config.token or os.getenv("GITHUB_TOKEN")
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "pr-devagent",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=self.config.api_url,
            headers=headers,
            timeout=self.config.timeout_sec,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise GitHubAPIError(f"GitHub API {method} {path} timed out: {e}", method=method, path=path) from e
        except httpx.HTTPStatusError as e:
            try:
                error_message = e.response.json().get("message", e.response.text)
            except (json.JSONDecodeError, AttributeError):
                error_message = e.response.text
            status = e.response.status_code
            raise GitHubAPIError(
                f"GitHub API {method} {path} => {status}: {error_message[:800]}",
                status_code=status,
                method=method,
                path=path,
            ) from e
        except httpx.RequestError as e:
            raise GitHubAPIError(f"GitHub API {method} {path} failed: {e}", method=method, path=path) from e

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        return await self._request("GET", f"/repos/{owner}/{repo}/pulls/{number}")

    async def get_pull_request_files_page(
        self, owner: str, repo: str, number: int, page: int, per_page: int
    ) -> List[Dict[str, Any]]:
        return await self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls/{number}/files",
            params={"page": page, "per_page": per_page},
        )

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> Optional[str]:
        """Returns the decoded text of a file, or None if it does not exist or is not a file."""
        try:
            data = await self._request("GET", f"/repos/{owner}/{repo}/contents/{_q(path)}", params={"ref": ref})
        except GitHubAPIError as e:
            if e.is_not_found:
                return None
            raise
        if not isinstance(data, dict) or data.get("type") != "file" or "content" not in data:
            return None
        return base64.b64decode(data["content"]).decode("utf-8", errors="replace")

    async def get_default_branch(self, owner: str, repo: str) -> str:
        data = await self._request("GET", f"/repos/{owner}/{repo}")
        return data.get("default_branch") or "main"

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        data = await self._request("GET", f"/repos/{owner}/{repo}/git/ref/heads/{_q(branch)}")
        return data["object"]["sha"]

    async def create_branch(self, owner: str, repo: str, name: str, from_sha: str) -> None:
        await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json={"ref": f"refs/heads/{name}", "sha": from_sha},
        )
        logger.debug(f"Created branch {name} at {from_sha[:7]} in {owner}/{repo}")

    async def create_or_update_file(
        self, owner: str, repo: str, path: str, content: str, message: str, branch: str
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        # Updating an existing file requires its current blob SHA.
        try:
            existing = await self._request("GET", f"/repos/{owner}/{repo}/contents/{_q(path)}", params={"ref": branch})
            if isinstance(existing, dict) and existing.get("sha"):
                body["sha"] = existing["sha"]
        except GitHubAPIError as e:
            if not e.is_not_found:
                raise
        return await self._request("PUT", f"/repos/{owner}/{repo}/contents/{_q(path)}", json=body)

    async def create_pull_request(
        self, owner: str, repo: str, title: str, head: str, base: str, body: str
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json={"title": title, "head": head, "base": base, "body": body},
        )

    async def add_labels(self, owner: str, repo: str, number: int, labels: List[str]) -> None:
        await self._request("POST", f"/repos/{owner}/{repo}/issues/{number}/labels", json={"labels": labels})

    async def delete_branch(self, owner: str, repo: str, name: str) -> None:
        await self._request("DELETE", f"/repos/{owner}/{repo}/git/refs/heads/{_q(name)}")

    async def create_issue_comment(self, owner: str, repo: str, number: int, body: str) -> Dict[str, Any]:
        return await self._request("POST", f"/repos/{owner}/{repo}/issues/{number}/comments", json={"body": body})

    async def get_collaborator_permission(self, owner: str, repo: str, username: str) -> str:
        """Returns `admin`, `write`, `read`, or `none`; non-collaborators get `none`."""
        try:
            data = await self._request("GET", f"/repos/{owner}/{repo}/collaborators/{_q(username)}/permission")
        except GitHubAPIError as e:
            if e.is_not_found:
                return "none"
            raise
        return data.get("permission") or "none"
