from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.contracts.models import utc_now

RiskLevel = Literal["low", "medium", "high"]
FileAction = Literal["modify", "create", "delete"]
PlanStatus = Literal["pending", "executing", "completed", "failed", "rejected"]

TERMINAL_STATUSES = ("completed", "failed", "rejected")


class _CamelModel(BaseModel):
    # AI output and stored JSON use camelCase keys; Python code uses snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileChange(_CamelModel):
    file_path: str
    action: FileAction
    description: str
    original_content: Optional[str] = None
    proposed_content: Optional[str] = None
    diff: Optional[str] = None
    issues_addressed: List[str] = []
    risk_level: RiskLevel


class RiskAssessment(_CamelModel):
    overall: RiskLevel
    factors: List[str] = []
    mitigations: List[str] = []


class ChangePlan(_CamelModel):
    id: str
    title: str
    summary: str
    rationale: str
    files: List[FileChange]
    total_files: int
    estimated_lines_changed: int
    risk_assessment: RiskAssessment
    testing_recommendations: List[str] = []
    rollback_plan: str

    def modify_changes(self) -> List[FileChange]:
        """File changes that carry content the execution engine can commit."""
        return [f for f in self.files if f.action == "modify" and f.proposed_content]


class ChangePlanResponse(_CamelModel):
    can_proceed: bool
    reason: Optional[str] = None
    plan: Optional[ChangePlan] = None


class SafetyLimits(BaseModel):
    max_files: int = 10
    max_lines_changed: int = 200


class PlanValidation(BaseModel):
    valid: bool
    violations: List[str] = []


class StoredChangePlan(BaseModel):
    id: str
    owner: str
    repo: str
    pull_number: int
    comment_id: int
    triggered_by: str
    command: str
    status: PlanStatus = "pending"
    plan: ChangePlan
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    result_pr_number: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class PlanParseOk(BaseModel):
    ok: Literal[True] = True
    response: ChangePlanResponse


class PlanParseErr(BaseModel):
    ok: Literal[False] = False
    reason: str


PlanParseResult = Union[PlanParseOk, PlanParseErr]


class LintIssue(_CamelModel):
    """A lint or static-analysis finding a change plan is asked to address."""
    path: str
    line: int
    message: str
    rule_id: Optional[str] = None
    severity: Literal["error", "warning"] = "error"
    fixable: bool = False
