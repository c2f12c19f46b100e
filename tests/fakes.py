"""In-memory collaborators and builders shared by the test suites."""
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.contracts.plan import ChangePlan, FileChange, RiskAssessment
from utils.errors import GitHubAPIError

DEFAULT_PR = {
    "number": 42,
    "title": "Add feature",
    "body": "Adds the feature",
    "user": {"login": "alice"},
    "head": {"sha": "abc1234def5678", "ref": "feature"},
    "base": {"ref": "main"},
}


def make_pr_file(filename: str, lines: int = 3, patch: Optional[str] = "", status: str = "modified") -> Dict[str, Any]:
    """A changed-file payload; `patch=None` models a binary file."""
    if patch == "":
        patch = "@@ -1,1 +1,%d @@\n" % lines + "\n".join(f"+line {i}" for i in range(lines))
    payload = {"filename": filename, "status": status, "additions": lines, "deletions": 0, "changes": lines}
    if patch is not None:
        payload["patch"] = patch
    return payload


class FakeHostingClient:
    """
    Records every call and keeps branches, commits, and comments in memory.

    `fail_paths` makes file commits fail for those paths; `fail_on` maps a
    method name to the exception that method raises. Users missing from
    `permissions` are repository admins.
    """

    def __init__(
        self,
        pr_files: Sequence[Dict[str, Any]] = (),
        repo_files: Optional[Dict[str, str]] = None,
        pr: Optional[Dict[str, Any]] = None,
        default_branch: str = "main",
    ):
        self.pr = dict(pr or DEFAULT_PR)
        self.pr_files = list(pr_files)
        self.repo_files = dict(repo_files or {})
        self.default_branch = default_branch
        self.branches: Dict[str, str] = {default_branch: "base-sha"}
        self.fail_paths = set()
        self.fail_on: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self.commits: List[Dict[str, Any]] = []
        self.pulls: List[Dict[str, Any]] = []
        self.labels: Dict[int, List[str]] = {}
        self.comments: List[Dict[str, Any]] = []
        self.deleted_branches: List[str] = []
        self.permissions: Dict[str, str] = {}

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.fail_on:
            raise self.fail_on[name]

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    async def get_pull_request(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        self._record("get_pull_request", owner, repo, number)
        return self.pr

    async def get_pull_request_files_page(
        self, owner: str, repo: str, number: int, page: int, per_page: int
    ) -> List[Dict[str, Any]]:
        self._record("get_pull_request_files_page", owner, repo, number, page, per_page)
        start = (page - 1) * per_page
        return self.pr_files[start:start + per_page]

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> Optional[str]:
        self._record("get_file_content", owner, repo, path, ref)
        return self.repo_files.get(path)

    async def get_default_branch(self, owner: str, repo: str) -> str:
        self._record("get_default_branch", owner, repo)
        return self.default_branch

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        self._record("get_branch_sha", owner, repo, branch)
        if branch not in self.branches:
            raise GitHubAPIError.not_found(f"branch {branch}")
        return self.branches[branch]

    async def create_branch(self, owner: str, repo: str, name: str, from_sha: str) -> None:
        self._record("create_branch", owner, repo, name, from_sha)
        self.branches[name] = from_sha

    async def create_or_update_file(
        self, owner: str, repo: str, path: str, content: str, message: str, branch: str
    ) -> Dict[str, Any]:
        self._record("create_or_update_file", owner, repo, path, content, message, branch)
        if path in self.fail_paths:
            raise GitHubAPIError(f"GitHub API PUT contents/{path} => 409: conflict", status_code=409)
        self.commits.append({"path": path, "content": content, "message": message, "branch": branch})
        return {"content": {"path": path}}

    async def create_pull_request(
        self, owner: str, repo: str, title: str, head: str, base: str, body: str
    ) -> Dict[str, Any]:
        self._record("create_pull_request", owner, repo, title, head, base, body)
        number = 100 + len(self.pulls)
        pull = {
            "number": number,
            "title": title,
            "head": head,
            "base": base,
            "body": body,
            "html_url": f"https://github.com/{owner}/{repo}/pull/{number}",
        }
        self.pulls.append(pull)
        return pull

    async def add_labels(self, owner: str, repo: str, number: int, labels: List[str]) -> None:
        self._record("add_labels", owner, repo, number, labels)
        self.labels[number] = list(labels)

    async def delete_branch(self, owner: str, repo: str, name: str) -> None:
        self._record("delete_branch", owner, repo, name)
        self.branches.pop(name, None)
        self.deleted_branches.append(name)

    async def create_issue_comment(self, owner: str, repo: str, number: int, body: str) -> Dict[str, Any]:
        self._record("create_issue_comment", owner, repo, number, body)
        comment = {"id": 5000 + len(self.comments), "number": number, "body": body}
        self.comments.append(comment)
        return comment

    async def get_collaborator_permission(self, owner: str, repo: str, username: str) -> str:
        self._record("get_collaborator_permission", owner, repo, username)
        return self.permissions.get(username, "admin")


def make_change(path: str, content: str = "x = 1\n", risk: str = "low", action: str = "modify") -> FileChange:
    return FileChange(
        file_path=path,
        action=action,
        description=f"Fix lint issues in {path}",
        proposed_content=content,
        issues_addressed=["no-unused-vars"],
        risk_level=risk,
    )


def make_plan(
    files: Sequence[FileChange] = (),
    plan_id: str = "plan-octo-app-42-1700000000000-abc123",
    lines: int = 10,
    total_files: Optional[int] = None,
) -> ChangePlan:
    files = list(files) or [make_change("src/app.py")]
    return ChangePlan(
        id=plan_id,
        title="Fix lint issues",
        summary="Removes unused variables.",
        rationale="Unused code hides real problems.",
        files=files,
        total_files=len(files) if total_files is None else total_files,
        estimated_lines_changed=lines,
        risk_assessment=RiskAssessment(overall="low", factors=["Small change"], mitigations=["Review"]),
        testing_recommendations=["Run the unit tests"],
        rollback_plan="Revert the PR.",
    )


def plan_response_json(files: Sequence[Dict[str, Any]], plan_id: str = "ai-chosen-id", **overrides: Any) -> str:
    """A planner response in the camelCase wire format."""
    plan = {
        "id": plan_id,
        "title": "Fix lint issues",
        "summary": "Removes unused variables.",
        "rationale": "Unused code hides real problems.",
        "files": list(files),
        "totalFiles": 99,
        "estimatedLinesChanged": 2,
        "riskAssessment": {"overall": "low", "factors": [], "mitigations": []},
        "testingRecommendations": ["Run the unit tests"],
        "rollbackPlan": "Revert the PR.",
    }
    plan.update(overrides)
    return json.dumps({"canProceed": True, "plan": plan})


def wire_change(path: str, content: str, risk: str = "low") -> Dict[str, Any]:
    return {
        "filePath": path,
        "action": "modify",
        "description": f"Fix lint issues in {path}",
        "proposedContent": content,
        "issuesAddressed": ["no-unused-vars"],
        "riskLevel": risk,
    }
