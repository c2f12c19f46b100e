import hashlib
import json
import threading
import time
from pathlib import Path
from typing import Dict, Optional, Tuple

from core.contracts.models import PRContext
from utils.logger import logger

DEFAULT_TTL_SEC = 24 * 60 * 60


def _pr_prefix(owner: str, repo: str, pull_number: int) -> str:
    return f"{owner}/{repo}#{pull_number}"


class FileContextCache:
    """
    A simple file-based cache for assembled PR contexts.

    One JSON file per (owner, repo, pull number, commit SHA). The file name is
    a hash of the PR prefix followed by a hash of the commit, so every entry of
    a pull request can be found without reading the files.
    """

    def __init__(self, cache_dir: str, ttl_sec: int = DEFAULT_TTL_SEC):
        """
        Initializes the cache.

        Args:
            cache_dir: The directory to store cache files.
            ttl_sec: Default time-to-live for entries in seconds. If <= 0, cache is disabled.
        """
        self.cache_dir = Path(cache_dir).expanduser()
        self.ttl_sec = ttl_sec
        if self.is_enabled():
            try:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
            except (IOError, OSError) as e:
                logger.warning(f"Could not create cache directory at {self.cache_dir}: {e}. Caching will be disabled.")
                self.ttl_sec = 0 # Disable cache if dir creation fails

    def is_enabled(self) -> bool:
        """Checks if the cache is enabled."""
        return self.ttl_sec > 0

    def _pr_key(self, owner: str, repo: str, pull_number: int) -> str:
        return hashlib.sha256(_pr_prefix(owner, repo, pull_number).encode("utf-8")).hexdigest()[:24]

    def _path(self, owner: str, repo: str, pull_number: int, commit_sha: str) -> Path:
        sha_key = hashlib.sha256(commit_sha.encode("utf-8")).hexdigest()[:24]
        return self.cache_dir / f"{self._pr_key(owner, repo, pull_number)}-{sha_key}.json"

    def get(self, owner: str, repo: str, pull_number: int, commit_sha: str) -> Optional[PRContext]:
        """
        Retrieves a context from the cache if it exists and is not expired.

        Returns:
            The cached context, or None if not found or expired.
        """
        if not self.is_enabled():
            return None

        cache_file = self._path(owner, repo, pull_number, commit_sha)
        if not cache_file.exists():
            logger.debug(f"Context cache miss (not found): {_pr_prefix(owner, repo, pull_number)}@{commit_sha[:7]}")
            return None

        try:
            with open(cache_file, "r", encoding="utf-8") as f:
                data = json.load(f)

            if time.time() >= data.get("expires_at", 0):
                logger.debug(f"Context cache miss (expired): {_pr_prefix(owner, repo, pull_number)}@{commit_sha[:7]}")
                cache_file.unlink()  # Delete expired cache file
                return None

            logger.debug(f"Context cache hit: {_pr_prefix(owner, repo, pull_number)}@{commit_sha[:7]}")
            return PRContext.model_validate(data["context"])
        except (IOError, OSError, KeyError, ValueError) as e:
            logger.warning(f"Could not read or decode cache file {cache_file}: {e}")
            return None

    def put(self, context: PRContext, ttl_sec: Optional[int] = None) -> None:
        """
        Saves a context to the cache.

        Args:
            context: The assembled context.
            ttl_sec: Overrides the default time-to-live for this entry.
        """
        if not self.is_enabled():
            return

        ttl = self.ttl_sec if ttl_sec is None else ttl_sec
        cache_file = self._path(context.owner, context.repo, context.pull_number, context.commit_sha)
        now = time.time()
        data = {
            "created_at": now,
            "expires_at": now + ttl,
            "context": context.model_dump(mode="json"),
        }
        try:
            with open(cache_file, "w", encoding="utf-8") as f:
                json.dump(data, f)
            logger.debug(f"Cached context for {_pr_prefix(context.owner, context.repo, context.pull_number)}")
        except (IOError, OSError) as e:
            logger.warning(f"Could not write to cache file {cache_file}: {e}")

    def invalidate(self, owner: str, repo: str, pull_number: int) -> int:
        """Removes every cached context of a pull request. Returns the number removed."""
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for cache_file in self.cache_dir.glob(f"{self._pr_key(owner, repo, pull_number)}-*.json"):
            try:
                cache_file.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Could not remove cache file {cache_file}: {e}")
        return removed

    def cleanup_expired(self) -> int:
        """Deletes expired entries. Returns the number removed."""
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        now = time.time()
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                with open(cache_file, "r", encoding="utf-8") as f:
                    expires_at = json.load(f).get("expires_at", 0)
                if now >= expires_at:
                    cache_file.unlink()
                    removed += 1
            except (IOError, OSError, ValueError) as e:
                logger.warning(f"Removing unreadable cache file {cache_file}: {e}")
                cache_file.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.info(f"Removed {removed} expired context cache entries")
        return removed


class InMemoryContextCache:
    """Process-local context cache, used by tests and single-shot CLI runs."""

    def __init__(self, ttl_sec: int = DEFAULT_TTL_SEC, clock=time.time):
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._entries: Dict[Tuple[str, str, int, str], Tuple[float, str]] = {}
        self._lock = threading.Lock()

    def get(self, owner: str, repo: str, pull_number: int, commit_sha: str) -> Optional[PRContext]:
        key = (owner, repo, pull_number, commit_sha)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, payload = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
        return PRContext.model_validate_json(payload)

    def put(self, context: PRContext, ttl_sec: Optional[int] = None) -> None:
        ttl = self.ttl_sec if ttl_sec is None else ttl_sec
        key = (context.owner, context.repo, context.pull_number, context.commit_sha)
        with self._lock:
            self._entries[key] = (self._clock() + ttl, context.model_dump_json())

    def invalidate(self, owner: str, repo: str, pull_number: int) -> int:
        with self._lock:
            keys = [k for k in self._entries if k[:3] == (owner, repo, pull_number)]
            for k in keys:
                del self._entries[k]
        return len(keys)

    def cleanup_expired(self) -> int:
        now = self._clock()
        with self._lock:
            keys = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
            for k in keys:
                del self._entries[k]
        return len(keys)
