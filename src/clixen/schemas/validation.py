"""Pydantic models for the extended workflow validator."""

from typing import Literal

from pydantic import BaseModel


class ValidationIssue(BaseModel):
    """A single finding against a workflow document."""

    type: str  # e.g. "MISSING_NODES", "BLOCKED_NODE"
    message: str
    node: str | None = None
    parameter: str | None = None
    severity: Literal["error", "warning"] = "error"


class ValidationReport(BaseModel):
    valid: bool
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    score: int = 100  # 0-100 reliability score
    suggestions: list[str] = []
