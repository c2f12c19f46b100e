"""
Glob matching for ignore patterns.

`**` matches any run of characters including `/`, `**/` also matches no
directory at all, `*` matches within one path segment, `?` matches one
non-separator character. Everything else is literal.
"""
import posixpath
import re
from functools import lru_cache
from typing import Iterable, Pattern

DEFAULT_IGNORE_PATTERNS = [
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "*.min.js",
    "*.min.css",
    "*.map",
    "dist/*",
    "build/*",
    "node_modules/*",
    ".next/*",
    "coverage/*",
    "*.generated.*",
]


def _normalize(path: str) -> str:
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def glob_to_regex(pattern: str) -> str:
    """Translate a glob into an unanchored regular expression body."""
    out = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if i + 1 < n and pattern[i + 1] == "*":
                if i + 2 < n and pattern[i + 2] == "/":
                    out.append("(?:.*/)?")
                    i += 3
                else:
                    out.append(".*")
                    i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


@lru_cache(maxsize=512)
def _compile(pattern: str) -> Pattern[str]:
    # The pattern may start at any segment boundary and may stop at one,
    # so `dist/*` also covers `dist/a/b.js` and `*.lock` covers `a/b.lock`.
    return re.compile(f"(?:^|/){glob_to_regex(pattern)}(?:/|$)")


def matches_ignore_pattern(path: str, pattern: str) -> bool:
    normalized = _normalize(path)
    basename = posixpath.basename(normalized)

    if not any(ch in pattern for ch in "*?"):
        return normalized == pattern or basename == pattern or normalized.endswith(f"/{pattern}")

    regex = _compile(pattern)
    return bool(regex.search(normalized) or regex.search(basename))


def should_ignore(path: str, patterns: Iterable[str]) -> bool:
    return any(matches_ignore_pattern(path, p) for p in patterns)
