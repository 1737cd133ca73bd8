"""Pydantic models for the intent the LLM extracts from a user prompt."""

import json
from typing import Any

from pydantic import BaseModel, field_validator


def _condition_text(item: object) -> str:
    """Conditions are kept as text; structured ones are serialized as JSON."""
    if isinstance(item, str):
        return item
    return json.dumps(item, default=str)


class TriggerSpec(BaseModel):
    """What starts the workflow."""

    app: str = ""
    event: str = ""
    conditions: list[str] = []

    @field_validator("app", "event", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("conditions", mode="before")
    @classmethod
    def _coerce_conditions(cls, v: object) -> object:
        """The model sometimes returns a single string, a structured object or null."""
        if v is None:
            return []
        if isinstance(v, (str, dict)):
            v = [v]
        if not isinstance(v, list):
            return [str(v)]
        return [_condition_text(item) for item in v if item not in (None, "")]


class ActionSpec(BaseModel):
    """A single step the workflow performs."""

    app: str = ""
    operation: str = ""
    target: str = ""

    @field_validator("app", "operation", "target", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return "" if v is None else v


class DataMapping(BaseModel):
    source: str = ""
    target: str = ""

    @field_validator("source", "target", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return "" if v is None else v


class IntentAnalysis(BaseModel):
    """Structured reading of a workflow request (full adapter mode)."""

    trigger: TriggerSpec = TriggerSpec()
    actions: list[ActionSpec] = []
    data_mappings: list[DataMapping] = []
    extracted_values: dict[str, Any] = {}
    complexity_score: float = 0.0  # 0.0 - 1.0

    @field_validator("actions", "data_mappings", mode="before")
    @classmethod
    def _none_to_list(cls, v: object) -> object:
        return [] if v is None else v

    @field_validator("extracted_values", mode="before")
    @classmethod
    def _none_to_dict(cls, v: object) -> object:
        return {} if v is None else v

    @field_validator("complexity_score", mode="before")
    @classmethod
    def _clamp_complexity(cls, v: object) -> object:
        if v is None:
            return 0.0
        try:
            return min(1.0, max(0.0, float(v)))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0

    @property
    def description(self) -> str:
        """Free-text description the model extracted, if any."""
        value = self.extracted_values.get("description")
        return value if isinstance(value, str) else ""


class StrictIntent(BaseModel):
    """Conservative reading used by the strict matcher: core components only."""

    trigger_app: str = ""
    action_app: str = ""
    operation: str = ""
    requirements: list[str] = []

    @field_validator("trigger_app", "action_app", "operation", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("requirements", mode="before")
    @classmethod
    def _coerce_requirements(cls, v: object) -> object:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v else []
        return [str(item) for item in v]  # type: ignore[union-attr]
