"""Runs the validator over artifacts and collects outcomes into a report."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from igpublisher.errors import ContentTypeError
from igpublisher.validation.models import ValidationIssue, ValidationOutcome, ValidationReport
from igpublisher.validation.validator import StructuralValidator, Validator

if TYPE_CHECKING:
    from igpublisher.fetch.models import FetchedArtifact

logger = logging.getLogger(__name__)


class ValidatorAdapter:
    """Couples validation with parsing: the element tree comes from validating.

    Content-level problems never raise; they land in the artifact's
    outcome. A content type that is neither JSON nor XML raises
    ContentTypeError since no validator can be chosen.
    """

    def __init__(self, validator: Validator | None = None) -> None:
        self._validator = validator or StructuralValidator()

    def validate(self, artifact: FetchedArtifact) -> ValidationOutcome:
        fmt = artifact.format
        if fmt is None:
            raise ContentTypeError(artifact.name, artifact.content_type)

        element, issues = self._validator.validate(artifact.source, fmt)
        outcome = ValidationOutcome(artifact=artifact.name, issues=list(issues))
        artifact.outcome = outcome
        artifact.element = element
        if element is not None:
            rid = element.child_value("id")
            artifact.id = str(rid) if rid is not None else None
        logger.debug(
            "validated %s: %d error(s), %d warning(s)",
            artifact.name, len(outcome.errors), len(outcome.warnings),
        )
        return outcome

    def validate_all(self, artifacts: Iterable[FetchedArtifact], title: str = "") -> ValidationReport:
        """Validate every artifact not yet validated, then report on all of them.

        Artifacts that dropped out earlier in the run (classification,
        loading) appear in the report with their failure as a fatal issue.
        """
        report = ValidationReport(title=title)
        for artifact in artifacts:
            if artifact.outcome is None and not artifact.failed:
                self.validate(artifact)
            report.outcomes.append(_outcome_with_failure(artifact))
        logger.info(
            "Validation: %d artifact(s), %d error(s), %d warning(s)",
            len(report.outcomes), report.error_count, report.warning_count,
        )
        return report


def _outcome_with_failure(artifact: FetchedArtifact) -> ValidationOutcome:
    outcome = artifact.outcome or ValidationOutcome(artifact=artifact.name)
    if artifact.failure is None:
        return outcome
    failure_issue = ValidationIssue(
        severity="fatal",
        message=f"{artifact.failure.stage}: {artifact.failure.message}",
    )
    return outcome.model_copy(update={"issues": [*outcome.issues, failure_issue]})
