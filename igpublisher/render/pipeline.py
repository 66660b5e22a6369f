"""Per-artifact rendering: serializations, HTML views, narrative, derived outputs."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import BaseModel, Field

from igpublisher.fetch.models import FetchedArtifact
from igpublisher.render.derived import DerivedContext, Fragment, derived_outputs_for
from igpublisher.render.html import HTML_RENDERERS, GuideLinkResolver, LinkResolver
from igpublisher.render.narrative import NarrativeGenerator, extract_narrative
from igpublisher.render.serializers import FORMATS, compose
from igpublisher.render.writer import OutputWriter
from igpublisher.terminology.service import Expander

logger = logging.getLogger(__name__)


class RenderReport(BaseModel):
    """Outcome of a render pass."""

    rendered: list[str] = Field(default_factory=list)
    failed: list[tuple[str, str]] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


class RenderPipeline:
    """Writes every output of one artifact.

    Errors while producing an artifact's outputs are confined to that
    artifact. ``OSError`` from the writer is not: a broken output
    directory fails the run.
    """

    def __init__(
        self,
        writer: OutputWriter,
        expander: Expander,
        narrative: NarrativeGenerator,
        resolver: LinkResolver | None = None,
    ) -> None:
        self.writer = writer
        self.resolver = resolver
        self.context = DerivedContext(expander=expander, narrative=narrative, resolver=resolver)

    def fragments(self, artifact: FetchedArtifact) -> list[Fragment]:
        """All fragments of an artifact, in write order."""
        element = artifact.element
        if element is None:
            raise ValueError(f"{artifact.name} has not been parsed")
        oid = artifact.output_id
        out = [
            Fragment(name=f"{oid}-{fmt}-html", content=HTML_RENDERERS[fmt](element, self.resolver))
            for fmt in FORMATS
        ]
        out.append(Fragment(name=f"{oid}-html", content=extract_narrative(element)))
        if artifact.resource is not None:
            out.extend(derived_outputs_for(artifact.resource).produce(oid, artifact.resource, self.context))
        return out

    def render(self, artifact: FetchedArtifact) -> None:
        element = artifact.element
        if element is None:
            raise ValueError(f"{artifact.name} has not been parsed")
        for fmt in FORMATS:
            self.writer.write_serialized(element.fhir_type, artifact.output_id, fmt, compose(element, fmt))
        for fragment in self.fragments(artifact):
            self.writer.write_fragment(fragment.name, fragment.content)
        artifact.rendered = True

    def render_all(self, artifacts: Iterable[FetchedArtifact]) -> RenderReport:
        artifacts = list(artifacts)
        if isinstance(self.resolver, GuideLinkResolver):
            self.resolver.update(artifacts)

        report = RenderReport()
        for artifact in artifacts:
            if artifact.rendered:
                continue
            if artifact.failed or artifact.element is None:
                report.skipped.append(artifact.name)
                continue
            try:
                self.render(artifact)
            except OSError:
                raise
            except Exception as exc:
                logger.exception("Rendering %s failed", artifact.name)
                report.failed.append((artifact.name, str(exc)))
                continue
            report.rendered.append(artifact.name)
        logger.info(
            "Rendered %d artifact(s), %d failed, %d skipped",
            len(report.rendered), len(report.failed), len(report.skipped),
        )
        return report
