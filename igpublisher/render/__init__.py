"""Output generation for loaded artifacts."""

from igpublisher.render.derived import (
    DERIVED_OUTPUTS,
    DerivedContext,
    Fragment,
    NoDerivedOutputs,
    StructureDefinitionOutputs,
    ValueSetOutputs,
    derived_outputs_for,
)
from igpublisher.render.html import GuideLinkResolver, LinkResolver
from igpublisher.render.narrative import ExpansionNarrativeGenerator, NarrativeGenerator, extract_narrative
from igpublisher.render.pipeline import RenderPipeline, RenderReport
from igpublisher.render.serializers import FORMATS, compose
from igpublisher.render.writer import OutputWriter, sanitize_name

__all__ = [
    "DERIVED_OUTPUTS",
    "DerivedContext",
    "ExpansionNarrativeGenerator",
    "FORMATS",
    "Fragment",
    "GuideLinkResolver",
    "LinkResolver",
    "NarrativeGenerator",
    "NoDerivedOutputs",
    "OutputWriter",
    "RenderPipeline",
    "RenderReport",
    "StructureDefinitionOutputs",
    "ValueSetOutputs",
    "compose",
    "derived_outputs_for",
    "extract_narrative",
    "sanitize_name",
]
