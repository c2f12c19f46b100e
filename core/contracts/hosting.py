from typing import Any, Dict, List, Optional, Protocol


class GitHostingClient(Protocol):
    """
    The subset of a git hosting platform the pipeline talks to.

    Responses are the platform's JSON payloads as plain dicts. Implementations
    raise GitHubAPIError on any failed call.
    """

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Dict[str, Any]: ...

    async def get_pull_request_files_page(
        self, owner: str, repo: str, number: int, page: int, per_page: int
    ) -> List[Dict[str, Any]]: ...

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> Optional[str]: ...

    async def get_default_branch(self, owner: str, repo: str) -> str: ...

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str: ...

    async def create_branch(self, owner: str, repo: str, name: str, from_sha: str) -> None: ...

    async def create_or_update_file(
        self, owner: str, repo: str, path: str, content: str, message: str, branch: str
    ) -> Dict[str, Any]: ...

    async def create_pull_request(
        self, owner: str, repo: str, title: str, head: str, base: str, body: str
    ) -> Dict[str, Any]: ...

    async def add_labels(self, owner: str, repo: str, number: int, labels: List[str]) -> None: ...

    async def delete_branch(self, owner: str, repo: str, name: str) -> None: ...

    async def create_issue_comment(self, owner: str, repo: str, number: int, body: str) -> Dict[str, Any]: ...

    async def get_collaborator_permission(self, owner: str, repo: str, username: str) -> str: ...
