import unittest

from core.execution.impact import ImpactAnalysis
from core.formatter.jinja_formatter import Jinja2Formatter, head_lines, md_cell
from core.preflight.syntax import FileSyntaxResult, PreflightReport, SyntaxIssue
from core.diff.unified import create_unified_diff
from tests.fakes import make_change, make_plan
from utils.errors import FormatterError


def plan_with_diffs(count: int, diff_lines: int = 3):
    changes = []
    for i in range(count):
        original = "\n".join(f"old {n}" for n in range(diff_lines))
        proposed = "\n".join(f"new {n}" for n in range(diff_lines))
        change = make_change(f"src/m{i}.py", content=proposed)
        changes.append(change.model_copy(update={"original_content": original, "diff": create_unified_diff(change.file_path, original, proposed)}))
    return make_plan(changes)


class TestJinja2Formatter(unittest.TestCase):
    def setUp(self):
        self.formatter = Jinja2Formatter()

    def test_helpers(self):
        self.assertEqual(md_cell("a|b\nc"), "a\\|b c")
        self.assertEqual(head_lines("a\nb", 5), "a\nb")
        self.assertEqual(head_lines("a\nb\nc", 2), "a\nb\n... (truncated)")

    def test_plan_comment_has_approval_instructions(self):
        plan = plan_with_diffs(1)
        comment = self.formatter.plan_comment(plan)

        self.assertTrue(comment.startswith("## 🤖 AI Change Plan\n"))
        self.assertIn("### Fix lint issues", comment)
        self.assertIn("| `src/m0.py` | 📝 modify | 🟢 | no-unused-vars |", comment)
        self.assertIn(f"devagent approve {plan.id}", comment)
        self.assertIn(f"devagent reject {plan.id}", comment)
        self.assertIn("Plan will expire in 24 hours", comment)
        self.assertIn("~10", comment)

    def test_dry_run_hides_approval_instructions(self):
        comment = self.formatter.plan_comment(plan_with_diffs(1), dry_run=True)

        self.assertIn("(Dry Run)", comment)
        self.assertNotIn("devagent approve", comment)
        self.assertNotIn("expire", comment)

    def test_plan_comment_shows_first_five_diffs_truncated(self):
        comment = self.formatter.plan_comment(plan_with_diffs(7, diff_lines=60))

        self.assertIn("#### `src/m4.py`", comment)
        self.assertNotIn("#### `src/m5.py`", comment)
        self.assertIn("*... and 2 more files*", comment)
        self.assertIn("... (truncated)", comment)

    def test_pr_body_without_impact_uses_plan_risk(self):
        plan = make_plan([make_change("a.py"), make_change("b.py")])
        body = self.formatter.pr_body(plan, "bob", 42, ["a.py"], "octo", "app")

        self.assertIn("@bob", body)
        self.assertIn("- `a.py`: Fix lint issues in a.py", body)
        self.assertIn("### ⚠️ Files Not Updated", body)
        self.assertIn("### ⚠️ Risk Assessment", body)
        self.assertIn("Revert the PR.", body)
        self.assertIn(f"| **Plan ID** | `{plan.id}` |", body)
        self.assertIn("| **Files Modified** | 1 |", body)
        self.assertNotIn("View original command", body)

    def test_validation_report_caps_rows_per_file(self):
        errors = [SyntaxIssue(line=i, column=2, message="bad | token") for i in range(1, 13)]
        report = PreflightReport(
            is_valid=False,
            files=[FileSyntaxResult(path="a.py", is_valid=False, errors=errors), FileSyntaxResult(path="b.py", is_valid=True)],
            total_errors=12,
        )
        text = self.formatter.validation_report(report)

        self.assertIn("## ❌ Syntax Validation Failed", text)
        self.assertIn("**12 error(s)**", text)
        self.assertIn("| 10 | 2 | bad \\| token |", text)
        self.assertNotIn("| 11 | 2 |", text)
        self.assertIn("*... and 2 more errors*", text)
        self.assertNotIn("`b.py`", text)

    def test_validation_report_for_valid_report(self):
        text = self.formatter.validation_report(PreflightReport(is_valid=True))
        self.assertEqual(text, "✅ All files passed syntax validation.\n")

    def test_execution_outcomes(self):
        success = self.formatter.execution_success(101, "https://github.com/octo/app/pull/101", ["a.py", "b.py"])
        self.assertIn("PR #101 has been created", success)
        self.assertIn("**Files committed:** 2", success)

        rolled_back = self.formatter.execution_failure("boom", True, "ai-fix/x-1")
        self.assertIn("**Error:** boom", rolled_back)
        self.assertIn("Rollback was performed successfully", rolled_back)

        stranded = self.formatter.execution_failure("boom", False, "ai-fix/x-1")
        self.assertIn("Manual cleanup may be required", stranded)
        self.assertIn("`ai-fix/x-1`", stranded)

        never_created = self.formatter.execution_failure("boom", False)
        self.assertIn("No branch was created", never_created)
        self.assertNotIn("Manual cleanup", never_created)

    def test_impact_section_orders_recommendations(self):
        analysis = ImpactAnalysis.model_validate(
            {
                "summary": "Small change.",
                "breakingChanges": [{"description": "Renamed helper", "severity": "medium", "mitigation": "Alias it"}],
                "testingRecommendations": [
                    {"area": "Docs", "priority": "low", "reason": "Typos"},
                    {"area": "Core", "priority": "high", "reason": "Hot path"},
                ],
                "rollbackStrategy": "Revert.",
            }
        )
        text = self.formatter.impact_section(analysis)

        self.assertIn("🟡 **MEDIUM:** Renamed helper → *Mitigation: Alias it*", text)
        self.assertLess(text.index("[HIGH]"), text.index("[LOW]"))
        self.assertNotIn("Affected Modules", text)
        self.assertNotIn("Dependencies", text)

    def test_unknown_template_raises_formatter_error(self):
        with self.assertRaises(FormatterError):
            self.formatter.render("missing.md.j2")


if __name__ == "__main__":
    unittest.main()
