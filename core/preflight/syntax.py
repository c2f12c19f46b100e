"""
Syntax preflight: parse proposed file contents before anything is committed.

Only syntax is checked. A passing report says nothing about imports, types,
or behaviour. File types without a registered checker pass through.
"""
import ast
import json
import posixpath
import re
import tomllib
from typing import List, Sequence, Tuple

import yaml
from pydantic import BaseModel

from core.registry import preflight_registry
from utils.logger import logger

SUMMARY_ERRORS_PER_FILE = 5


class SyntaxIssue(BaseModel):
    line: int
    column: int
    message: str


class FileSyntaxResult(BaseModel):
    path: str
    is_valid: bool
    errors: List[SyntaxIssue] = []


class PreflightReport(BaseModel):
    is_valid: bool
    files: List[FileSyntaxResult] = []
    total_errors: int = 0
    error_summary: str = ""

    @property
    def invalid_files(self) -> List[FileSyntaxResult]:
        return [f for f in self.files if not f.is_valid]


@preflight_registry.register(".py", ".pyi")
class PythonSyntaxChecker:
    def check(self, path: str, content: str) -> List[SyntaxIssue]:
        try:
            ast.parse(content, filename=path)
        except SyntaxError as e:
            return [SyntaxIssue(line=e.lineno or 1, column=e.offset or 1, message=e.msg)]
        return []


@preflight_registry.register(".json")
class JsonSyntaxChecker:
    def check(self, path: str, content: str) -> List[SyntaxIssue]:
        try:
            json.loads(content)
        except json.JSONDecodeError as e:
            return [SyntaxIssue(line=e.lineno, column=e.colno, message=e.msg)]
        return []


@preflight_registry.register(".yaml", ".yml")
class YamlSyntaxChecker:
    def check(self, path: str, content: str) -> List[SyntaxIssue]:
        try:
            for _ in yaml.safe_load_all(content):
                pass
        except yaml.MarkedYAMLError as e:
            mark = e.problem_mark or e.context_mark
            line, column = (mark.line + 1, mark.column + 1) if mark else (1, 1)
            message = " ".join(part for part in (e.context, e.problem) if part) or str(e)
            return [SyntaxIssue(line=line, column=column, message=message)]
        except yaml.YAMLError as e:
            return [SyntaxIssue(line=1, column=1, message=str(e))]
        return []


_TOML_POSITION = re.compile(r"\(at line (\d+), column (\d+)\)")


@preflight_registry.register(".toml")
class TomlSyntaxChecker:
    def check(self, path: str, content: str) -> List[SyntaxIssue]:
        try:
            tomllib.loads(content)
        except tomllib.TOMLDecodeError as e:
            text = str(e)
            match = _TOML_POSITION.search(text)
            line, column = (int(match.group(1)), int(match.group(2))) if match else (1, 1)
            return [SyntaxIssue(line=line, column=column, message=_TOML_POSITION.sub("", text).strip())]
        return []


def _checker_for(path: str):
    extension = posixpath.splitext(path.replace("\\", "/"))[1].lower()
    checker_cls = preflight_registry.find(extension)
    return checker_cls() if checker_cls else None


def validate_file(path: str, content: str) -> FileSyntaxResult:
    """Checks one file. Unknown file types are valid."""
    checker = _checker_for(path)
    if checker is None:
        return FileSyntaxResult(path=path, is_valid=True)

    try:
        errors = checker.check(path, content)
    except (ValueError, RecursionError, MemoryError) as e:
        # ast raises ValueError on NUL bytes; deep nesting exhausts the stack.
        logger.error(f"Error during syntax validation of {path}: {e}")
        errors = [SyntaxIssue(line=1, column=1, message=f"Failed to parse file: {e}")]
    return FileSyntaxResult(path=path, is_valid=not errors, errors=errors)


def _summarize(results: List[FileSyntaxResult], total_errors: int) -> str:
    invalid = [r for r in results if not r.is_valid]
    if not invalid:
        return ""
    parts = [f"Found {total_errors} syntax error(s) in {len(invalid)} file(s):"]
    for result in invalid:
        parts.append(f"\n**{result.path}:**")
        for error in result.errors[:SUMMARY_ERRORS_PER_FILE]:
            parts.append(f"- Line {error.line}: {error.message}")
        hidden = len(result.errors) - SUMMARY_ERRORS_PER_FILE
        if hidden > 0:
            parts.append(f"  ... and {hidden} more errors")
    return "\n".join(parts)


def validate_files(files: Sequence[Tuple[str, str]]) -> PreflightReport:
    """
    Checks (path, content) pairs and aggregates the outcome.

    Args:
        files: The proposed file contents.

    Returns:
        A report that is valid only when no file has an error.
    """
    results = [validate_file(path, content) for path, content in files]
    total_errors = sum(len(r.errors) for r in results)
    logger.info(f"Syntax validation complete: files={len(results)} errors={total_errors}")
    return PreflightReport(
        is_valid=total_errors == 0,
        files=results,
        total_errors=total_errors,
        error_summary=_summarize(results, total_errors),
    )


def supported_extensions() -> List[str]:
    return sorted(preflight_registry.keys())


def is_checked(path: str) -> bool:
    """True when a checker exists for the path's file type."""
    return _checker_for(path) is not None
