import difflib
from dataclasses import dataclass


@dataclass(frozen=True)
class LineDelta:
    added: int
    removed: int

    @property
    def total(self) -> int:
        return self.added + self.removed


def create_unified_diff(file_path: str, original: str, modified: str, context: int = 3) -> str:
    """Unified diff between two versions of one file, with a/ and b/ headers."""
    lines = difflib.unified_diff(
        original.split("\n"),
        modified.split("\n"),
        fromfile=f"a/{file_path}",
        tofile=f"b/{file_path}",
        n=context,
        lineterm="",
    )
    return "\n".join(lines)


def count_changed_lines(original: str, modified: str) -> LineDelta:
    added = removed = 0
    matcher = difflib.SequenceMatcher(a=original.split("\n"), b=modified.split("\n"), autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ("replace", "delete"):
            removed += i2 - i1
        if tag in ("replace", "insert"):
            added += j2 - j1
    return LineDelta(added=added, removed=removed)
