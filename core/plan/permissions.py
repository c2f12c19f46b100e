from typing import Literal, Optional

from pydantic import BaseModel

from core.contracts.hosting import GitHostingClient
from utils.errors import GitHubAPIError
from utils.logger import logger

PermissionLevel = Literal["admin", "write", "read", "none"]

PERMISSION_RANK = {"none": 1, "read": 2, "write": 3, "admin": 4}

# GitHub reports custom roles alongside the classic levels.
_ROLE_LEVELS = {
    "admin": "admin",
    "maintain": "write",
    "write": "write",
    "triage": "read",
    "read": "read",
}


class PermissionCheck(BaseModel):
    allowed: bool
    user_permission: PermissionLevel
    required_permission: PermissionLevel
    reason: Optional[str] = None


def normalize_permission(raw: Optional[str]) -> PermissionLevel:
    return _ROLE_LEVELS.get((raw or "").lower(), "none")


def has_permission(user_permission: PermissionLevel, required: PermissionLevel) -> bool:
    return PERMISSION_RANK[user_permission] >= PERMISSION_RANK[required]


async def check_permission(
    client: GitHostingClient,
    owner: str,
    repo: str,
    username: str,
    required: PermissionLevel = "write",
    action: str = "manage change plans",
) -> PermissionCheck:
    """
    Checks that a user holds at least `required` on the repository.

    A `required` of "none" allows everyone without calling the hosting API.
    When the permission cannot be read, the user is denied.
    """
    if required == "none":
        return PermissionCheck(allowed=True, user_permission="none", required_permission=required)

    try:
        level = normalize_permission(await client.get_collaborator_permission(owner, repo, username))
    except GitHubAPIError as e:
        logger.warning(f"Failed to check permission of {username} on {owner}/{repo}: {e}")
        return PermissionCheck(
            allowed=False,
            user_permission="none",
            required_permission=required,
            reason="Unable to verify your permissions. Please ensure you are a collaborator on this repository.",
        )

    allowed = has_permission(level, required)
    logger.debug(f"Permission check for {username} on {owner}/{repo}: {level} (required {required}) allowed={allowed}")
    if allowed:
        return PermissionCheck(allowed=True, user_permission=level, required_permission=required)
    return PermissionCheck(
        allowed=False,
        user_permission=level,
        required_permission=required,
        reason=f"You need {required} permission to {action}. Your permission level: {level}",
    )
