"""Plan model.

A plan is the subset of a FHIR PlanDefinition the workflow engine reads: the
ordered action list, each action's code, its related actions (with optional
timing offsets) and its declared outputs. Unknown PlanDefinition fields are
ignored so stored PlanDefinition JSON can be validated directly.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

PLAN_ACTION_CODE_SYSTEM = "http://hl7.org/fhir/us/medmorph/CodeSystem/us-ph-plandefinition-actions"

BEFORE_START = "before-start"


class _FhirModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Coding(_FhirModel):
    system: str | None = None
    code: str | None = None
    display: str | None = None


class CodeableConcept(_FhirModel):
    coding: list[Coding] = Field(default_factory=list)
    text: str | None = None


class Duration(_FhirModel):
    """A FHIR Duration. ``code`` carries the UCUM symbol, ``unit`` the display form."""

    value: float
    unit: str | None = None
    code: str | None = None
    system: str | None = None

    @property
    def unit_symbol(self) -> str:
        return (self.code or self.unit or "").strip()


class RelatedAction(_FhirModel):
    action_id: str = Field(alias="actionId")
    relationship: str = BEFORE_START
    offset_duration: Duration | None = Field(default=None, alias="offsetDuration")


class ActionOutput(_FhirModel):
    type: str | None = None
    profile: list[str] = Field(default_factory=list)


class PlanAction(_FhirModel):
    id: str
    title: str | None = None
    description: str | None = None
    code: list[CodeableConcept] = Field(default_factory=list)
    related_action: list[RelatedAction] = Field(default_factory=list, alias="relatedAction")
    output: list[ActionOutput] = Field(default_factory=list)
    input: list[dict[str, Any]] = Field(default_factory=list)
    condition: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def action_code(self) -> str | None:
        """The symbolic code used to look up this action's implementation."""

        for concept in self.code:
            for coding in concept.coding:
                if coding.code:
                    return coding.code
        return None


class Plan(_FhirModel):
    id: str | None = None
    url: str | None = None
    name: str | None = None
    action: list[PlanAction] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _assign_positional_ids(cls, data: Any) -> Any:
        # PlanDefinition.action.id is optional; the engine needs one per action.
        if not isinstance(data, dict):
            return data
        actions = data.get("action")
        if not isinstance(actions, list):
            return data
        patched: list[Any] = []
        for index, item in enumerate(actions):
            if isinstance(item, dict) and not item.get("id"):
                item = {**item, "id": f"action-{index}"}
            patched.append(item)
        return {**data, "action": patched}

    def get_action(self, action_id: str) -> PlanAction | None:
        for action in self.action:
            if action.id == action_id:
                return action
        return None

    @property
    def action_ids(self) -> list[str]:
        return [a.id for a in self.action]


def action_for_code(action_id: str, code: str, **extra: Any) -> dict[str, Any]:
    """Build PlanDefinition action JSON for ``code`` (used by fixtures and examples)."""

    return {
        "id": action_id,
        "code": [{"coding": [{"system": PLAN_ACTION_CODE_SYSTEM, "code": code}]}],
        **extra,
    }
