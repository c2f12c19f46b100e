"""
Strict parsing of AI change-plan responses.

The response text may wrap its JSON in a fenced code block. Anything that is
not valid JSON, or does not match the ChangePlanResponse schema, produces a
PlanParseErr. No partially validated plan ever leaves this module.
"""
import json
import re
from typing import Optional

from pydantic import ValidationError

from core.contracts.plan import ChangePlanResponse, PlanParseErr, PlanParseOk, PlanParseResult
from utils.errors import PlanParseError
from utils.logger import logger

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def extract_json_text(content: str) -> str:
    match = _FENCED_BLOCK.search(content)
    if match:
        return match.group(1).strip()
    return content.strip()


def _load_response(content: str) -> ChangePlanResponse:
    try:
        data = json.loads(extract_json_text(content))
    except json.JSONDecodeError as e:
        raise PlanParseError(f"Response is not valid JSON: {e}") from e

    try:
        response = ChangePlanResponse.model_validate(data)
    except ValidationError as e:
        raise PlanParseError(f"Response does not match the change plan schema: {e.error_count()} error(s)") from e

    if response.can_proceed and response.plan is None:
        raise PlanParseError("Response can proceed but carries no plan")
    return response


def parse_plan_response(content: str, plan_id: Optional[str] = None) -> PlanParseResult:
    """
    Parses raw AI output into a tagged result.

    Args:
        content: The model's response text.
        plan_id: When given, replaces whatever id the model put in the plan.

    Returns:
        PlanParseOk with the validated response, or PlanParseErr with a reason.
    """
    try:
        response = _load_response(content)
    except PlanParseError as e:
        logger.error(f"Failed to parse AI response: {e}. Preview: {content[:500]!r}")
        return PlanParseErr(reason=f"Failed to parse AI response as valid change plan: {e}")

    if response.plan is not None:
        update = {"total_files": len(response.plan.files)}
        if plan_id:
            update["id"] = plan_id
        response = response.model_copy(update={"plan": response.plan.model_copy(update=update)})

    return PlanParseOk(response=response)
