import re
import subprocess
from typing import Optional, Tuple

from utils.errors import DevAgentException

_GITHUB_REMOTE = re.compile(r"github\.com[:/](?P<owner>[^/\s]+)/(?P<repo>[^/\s]+?)(?:\.git)?/?$")


def is_git_repository() -> bool:
    """Checks if the current directory is a Git repository."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--is-inside-work-tree"],
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout.strip() == "true"
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False


def parse_github_remote(url: str) -> Optional[Tuple[str, str]]:
    """
    Extracts (owner, repo) from a GitHub remote URL.

    Handles `https://github.com/o/r(.git)` and `git@github.com:o/r(.git)`.
    Returns None for anything else.
    """
    match = _GITHUB_REMOTE.search(url.strip())
    if not match:
        return None
    return match.group("owner"), match.group("repo")


def get_origin_slug(remote: str = "origin") -> Tuple[str, str]:
    """
    Gets the (owner, repo) of the current repository's GitHub remote.

    Raises:
        DevAgentException: If git is missing, this is not a repository, or the
            remote does not point at GitHub.
    """
    if not is_git_repository():
        raise DevAgentException("Not a Git repository. Pass OWNER/REPO explicitly.")

    try:
        result = subprocess.run(
            ["git", "remote", "get-url", remote],
            capture_output=True,
            text=True,
            check=True,
            encoding="utf-8",
        )
    except FileNotFoundError:
        raise DevAgentException("Git is not installed or not in PATH.")
    except subprocess.CalledProcessError as e:
        raise DevAgentException(f"Failed to read remote '{remote}': {e.stderr.strip()}")

    slug = parse_github_remote(result.stdout)
    if slug is None:
        raise DevAgentException(f"Remote '{remote}' is not a GitHub repository: {result.stdout.strip()}")
    return slug
