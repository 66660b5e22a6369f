"""Default structural validator for FHIR JSON and XML content."""

from __future__ import annotations

import logging
import re
from typing import Protocol, runtime_checkable

from igpublisher.resources.element import Element, ElementParseError, parse_element
from igpublisher.resources.types import CONFORMANCE_TYPES, XHTML_NS, is_resource_type
from igpublisher.validation.models import ValidationIssue

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-\.]{1,64}$")


@runtime_checkable
class Validator(Protocol):
    """Parses content and reports issues; the element tree is a byproduct."""

    def validate(self, source: bytes, fmt: str) -> tuple[Element | None, list[ValidationIssue]]: ...


class StructuralValidator:
    """Checks the structural rules every resource must meet.

    Content problems come back as issues, never as exceptions. When the
    content cannot be parsed at all the element tree is None and a fatal
    issue explains why.
    """

    def validate(self, source: bytes, fmt: str) -> tuple[Element | None, list[ValidationIssue]]:
        try:
            element = parse_element(source, fmt)
        except ElementParseError as exc:
            return None, [ValidationIssue(severity="fatal", message=str(exc))]

        issues: list[ValidationIssue] = []
        rt = element.fhir_type
        if not is_resource_type(rt):
            issues.append(ValidationIssue(
                severity="error", message=f"Unknown resource type {rt!r}", location=rt,
            ))

        self._check_id(element, issues)
        if rt in CONFORMANCE_TYPES or rt == "ImplementationGuide":
            self._check_conformance(element, issues)
        self._check_narrative(element, issues)
        self._check_content(element, rt, issues)
        return element, issues

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    @staticmethod
    def _check_id(element: Element, issues: list[ValidationIssue]) -> None:
        rt = element.fhir_type
        rid = element.child_value("id")
        if rid is None:
            issues.append(ValidationIssue(
                severity="warning", message="Resource has no id", location=rt,
            ))
        elif not isinstance(rid, str) or not _ID_PATTERN.match(rid):
            issues.append(ValidationIssue(
                severity="error", message=f"Invalid id {rid!r}", location=f"{rt}.id",
            ))

    @staticmethod
    def _check_conformance(element: Element, issues: list[ValidationIssue]) -> None:
        rt = element.fhir_type
        if rt == "NamingSystem":
            if not element.named_children("uniqueId"):
                issues.append(ValidationIssue(
                    severity="error", message="NamingSystem must have at least one uniqueId",
                    location=rt,
                ))
        elif element.child_value("url") is None:
            issues.append(ValidationIssue(
                severity="error", message=f"{rt} must have a canonical url", location=f"{rt}.url",
            ))
        if element.child_value("status") is None:
            issues.append(ValidationIssue(
                severity="error", message=f"{rt} must have a status", location=f"{rt}.status",
            ))
        if element.child_value("name") is None:
            issues.append(ValidationIssue(
                severity="warning", message=f"{rt} should have a name", location=f"{rt}.name",
            ))

    @staticmethod
    def _check_narrative(element: Element, issues: list[ValidationIssue]) -> None:
        rt = element.fhir_type
        text = element.named_child("text")
        if text is None:
            return
        div = text.named_child("div")
        if div is None or div.xhtml is None:
            issues.append(ValidationIssue(
                severity="error", message="Narrative must contain a div", location=f"{rt}.text",
            ))
        elif XHTML_NS not in div.xhtml:
            issues.append(ValidationIssue(
                severity="warning", message="Narrative div is not in the xhtml namespace",
                location=f"{rt}.text.div",
            ))

    def _check_content(self, element: Element, path: str, issues: list[ValidationIssue]) -> None:
        counts: dict[str, int] = {}
        for child in element.children:
            index = counts.get(child.name, 0)
            counts[child.name] = index + 1
            repeated = child.is_list or len(element.named_children(child.name)) > 1
            child_path = f"{path}.{child.name}" + (f"[{index}]" if repeated else "")
            if child.xhtml is not None:
                continue
            if child.value is None and not child.children:
                issues.append(ValidationIssue(
                    severity="error", message="Element must have some content", location=child_path,
                ))
                continue
            if isinstance(child.value, str) and not child.value.strip():
                issues.append(ValidationIssue(
                    severity="error", message="Primitive value must not be blank", location=child_path,
                ))
            self._check_content(child, child_path, issues)
