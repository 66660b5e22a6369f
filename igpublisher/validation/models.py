"""Pydantic models for validation outcomes and the aggregate report."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

Severity = Literal["fatal", "error", "warning", "information"]


class ValidationIssue(BaseModel):
    severity: Severity
    message: str
    location: str = ""


class ValidationOutcome(BaseModel):
    """All issues found for one artifact."""

    artifact: str
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity in ("fatal", "error")]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def valid(self) -> bool:
        return not self.errors


class ValidationReport(BaseModel):
    """Outcomes for every artifact in a run, pass or fail."""

    title: str = ""
    outcomes: list[ValidationOutcome] = Field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(len(o.errors) for o in self.outcomes)

    @property
    def warning_count(self) -> int:
        return sum(len(o.warnings) for o in self.outcomes)

    @property
    def valid(self) -> bool:
        return self.error_count == 0
