from typing import List

from core.contracts.plan import ChangePlan, PlanValidation, SafetyLimits


def validate_plan(plan: ChangePlan, limits: SafetyLimits) -> PlanValidation:
    """
    Checks a change plan against safety limits.

    Each breached rule produces its own violation; high-risk files are listed
    in a separate violation. The plan is valid only with zero violations.

    Args:
        plan: The plan to check.
        limits: Per-repository safety limits.

    Returns:
        The validation result.
    """
    violations: List[str] = []

    file_count = max(plan.total_files, len(plan.files))
    if file_count > limits.max_files:
        violations.append(f"Plan affects {file_count} files (max: {limits.max_files})")

    if plan.estimated_lines_changed > limits.max_lines_changed:
        violations.append(
            f"Plan changes ~{plan.estimated_lines_changed} lines (max: {limits.max_lines_changed})"
        )

    high_risk = [f.file_path for f in plan.files if f.risk_level == "high"]
    if high_risk:
        violations.append(f"{len(high_risk)} high-risk file(s) detected: {', '.join(high_risk)}")

    return PlanValidation(valid=not violations, violations=violations)
