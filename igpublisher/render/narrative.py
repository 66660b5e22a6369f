"""Narrative extraction and generation."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from igpublisher.resources.element import Element
from igpublisher.resources.models import ExpansionContains, Narrative, Resource, ValueSet
from igpublisher.templating import render_template


def extract_narrative(element: Element | None) -> str:
    """The xhtml of ``text.div``, or an empty string when there is none."""
    if element is None:
        return ""
    text = element.named_child("text")
    if text is None:
        return ""
    div = text.named_child("div")
    if div is None or div.xhtml is None:
        return ""
    return div.xhtml


@runtime_checkable
class NarrativeGenerator(Protocol):
    """Fills in ``resource.text`` from the resource content."""

    def generate(self, resource: Resource) -> None: ...


def _flatten(contains: list[ExpansionContains], depth: int = 0) -> list[dict]:
    rows = []
    for c in contains:
        rows.append({"system": c.system, "code": c.code, "display": c.display, "depth": depth})
        rows.extend(_flatten(c.contains, depth + 1))
    return rows


class ExpansionNarrativeGenerator:
    """Writes a code table for expanded value sets; other resources are left alone."""

    def generate(self, resource: Resource) -> None:
        if not isinstance(resource, ValueSet) or resource.expansion is None:
            return
        rows = _flatten(resource.expansion.contains)
        total = resource.expansion.total if resource.expansion.total is not None else len(rows)
        div = render_template("expansion.html.j2", contains=rows, total=total).strip()
        resource.text = Narrative(status="generated", div=div)
