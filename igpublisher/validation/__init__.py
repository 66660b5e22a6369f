"""Validation of artifacts and the aggregate report."""

from igpublisher.validation.adapter import ValidatorAdapter
from igpublisher.validation.models import (
    ValidationIssue,
    ValidationOutcome,
    ValidationReport,
)
from igpublisher.validation.report import render_report
from igpublisher.validation.validator import StructuralValidator, Validator

__all__ = [
    "StructuralValidator",
    "ValidationIssue",
    "ValidationOutcome",
    "ValidationReport",
    "Validator",
    "ValidatorAdapter",
    "render_report",
]
