"""Resource-kind specific outputs, beyond the common serializations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from pydantic import BaseModel

from igpublisher.render.html import LinkResolver
from igpublisher.render.narrative import NarrativeGenerator
from igpublisher.resources.models import ElementDefinition, Resource, StructureDefinition, ValueSet
from igpublisher.templating import render_template
from igpublisher.terminology.service import Expander

logger = logging.getLogger(__name__)


class Fragment(BaseModel):
    name: str
    content: str


@dataclass
class DerivedContext:
    """Capabilities the derived outputs may call on."""

    expander: Expander
    narrative: NarrativeGenerator
    resolver: LinkResolver | None = None


def error_fragment(message: str) -> str:
    return render_template("error_fragment.html.j2", message=message)


class DerivedOutputs(Protocol):
    def produce(self, output_id: str, resource: Resource, ctx: DerivedContext) -> list[Fragment]: ...


class NoDerivedOutputs:
    """Kinds without extra outputs."""

    def produce(self, output_id: str, resource: Resource, ctx: DerivedContext) -> list[Fragment]:
        return []


class ValueSetOutputs:
    """``<id>-expansion``: the expansion as narrative, or the expansion error."""

    def produce(self, output_id: str, resource: Resource, ctx: DerivedContext) -> list[Fragment]:
        if not isinstance(resource, ValueSet):
            raise TypeError(f"{output_id}: expected a ValueSet, got {type(resource).__name__}")
        name = f"{output_id}-expansion"
        outcome = ctx.expander.expand(resource)
        if outcome.value_set is not None:
            ctx.narrative.generate(outcome.value_set)
            div = outcome.value_set.text.div if outcome.value_set.text else ""
            return [Fragment(name=name, content=div)]
        logger.warning("Expansion of %s failed: %s", output_id, outcome.error)
        return [Fragment(name=name, content=error_fragment(outcome.error or "Unknown expansion error"))]


def _cardinality(ed: ElementDefinition) -> str:
    if ed.min is None and ed.max is None:
        return ""
    low = "" if ed.min is None else ed.min
    return f"{low}..{ed.max or ''}"


class StructureDefinitionOutputs:
    """``<id>-summary``: one row per element definition.

    Uses the differential when present, else the snapshot.
    """

    def produce(self, output_id: str, resource: Resource, ctx: DerivedContext) -> list[Fragment]:
        if not isinstance(resource, StructureDefinition):
            raise TypeError(f"{output_id}: expected a StructureDefinition, got {type(resource).__name__}")
        source = resource.differential or resource.snapshot
        rows = []
        for ed in source.element if source else []:
            rows.append({
                "path": ed.path,
                "card": _cardinality(ed),
                "types": ", ".join(t.code for t in ed.type if t.code),
                "short": ed.short or "",
            })
        base = resource.baseDefinition
        content = render_template(
            "structure_summary.html.j2",
            kind=resource.kind or "structure",
            name=resource.name or output_id,
            base=base,
            base_href=ctx.resolver.resolve(base) if base and ctx.resolver else None,
            rows=rows,
        ).strip()
        return [Fragment(name=f"{output_id}-summary", content=content)]


NO_DERIVED_OUTPUTS = NoDerivedOutputs()

DERIVED_OUTPUTS: dict[str, DerivedOutputs] = {
    "ValueSet": ValueSetOutputs(),
    "StructureDefinition": StructureDefinitionOutputs(),
}


def derived_outputs_for(resource: Resource | None) -> DerivedOutputs:
    if resource is None:
        return NO_DERIVED_OUTPUTS
    return DERIVED_OUTPUTS.get(resource.resourceType, NO_DERIVED_OUTPUTS)
