import pytest

from core.preflight.syntax import (
    FileSyntaxResult,
    SyntaxIssue,
    _summarize,
    is_checked,
    supported_extensions,
    validate_file,
    validate_files,
)


@pytest.mark.parametrize(
    "path, content",
    [
        ("app.py", "def f(x):\n    return x + 1\n"),
        ("types.pyi", "def f(x: int) -> int: ...\n"),
        ("data.json", '{"a": [1, 2, {"b": null}]}'),
        ("config.yaml", "a: 1\nb:\n  - x\n  - y\n"),
        ("multi.yml", "a: 1\n---\nb: 2\n"),
        ("pyproject.toml", '[project]\nname = "demo"\n'),
        ("README.md", "# Not checked {{{"),
    ],
)
def test_valid_files(path, content):
    result = validate_file(path, content)
    assert result.is_valid
    assert result.errors == []


def test_python_syntax_error_position():
    result = validate_file("src/app.py", "x = 1\ndef f(:\n    pass\n")
    assert not result.is_valid
    assert result.errors[0].line == 2
    assert result.errors[0].column >= 1


def test_python_null_bytes_are_reported():
    result = validate_file("app.py", "x = 1\x00\n")
    assert not result.is_valid


def test_json_error_position():
    result = validate_file("data.json", '{\n  "a": 1,\n}')
    assert not result.is_valid
    assert result.errors[0].line == 3
    assert result.errors[0].column == 1


def test_yaml_error_is_one_based():
    result = validate_file("ci.yml", "jobs:\n  build: [1, 2\n")
    assert not result.is_valid
    assert result.errors[0].line >= 2
    assert result.errors[0].column >= 1


def test_yaml_error_in_second_document():
    result = validate_file("multi.yaml", "a: 1\n---\nb: [\n")
    assert not result.is_valid


def test_toml_error_position():
    result = validate_file("settings.toml", 'a = 1\nb = \n')
    assert not result.is_valid
    issue = result.errors[0]
    assert issue.line == 2
    assert "(at line" not in issue.message


def test_validate_files_aggregates():
    report = validate_files(
        [
            ("ok.py", "x = 1\n"),
            ("bad.py", "def (:\n"),
            ("bad.json", "{"),
            ("notes.txt", "anything"),
        ]
    )
    assert not report.is_valid
    assert report.total_errors == 2
    assert [f.path for f in report.invalid_files] == ["bad.py", "bad.json"]
    assert report.error_summary.startswith("Found 2 syntax error(s) in 2 file(s):")
    assert "**bad.py:**" in report.error_summary


def test_validate_files_empty_is_valid():
    report = validate_files([])
    assert report.is_valid
    assert report.error_summary == ""


def test_summary_lists_at_most_five_errors_per_file():
    errors = [SyntaxIssue(line=i, column=1, message=f"problem {i}") for i in range(1, 8)]
    summary = _summarize([FileSyntaxResult(path="a.py", is_valid=False, errors=errors)], 7)

    assert "- Line 5: problem 5" in summary
    assert "- Line 6: problem 6" not in summary
    assert "... and 2 more errors" in summary


def test_supported_extensions():
    assert {".py", ".pyi", ".json", ".yaml", ".yml", ".toml"} <= set(supported_extensions())
    assert is_checked("SRC/APP.PY")
    assert not is_checked("README.md")
    assert not is_checked("Makefile")


@pytest.mark.parametrize("path", ["src/app.js", "src/app.ts", "ui/View.tsx", "lib/main.rs"])
def test_unchecked_languages_pass_through(path):
    assert not is_checked(path)
    result = validate_file(path, "function broken( {")
    assert result.is_valid
    assert result.errors == []
