"""Run controller: initialize, then load, validate, render, and optionally watch."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import Counter
from enum import Enum
from pathlib import Path
from urllib.parse import urlparse

from pydantic import BaseModel, ValidationError

from igpublisher.classify.classifier import ClassificationStatus, TypeClassifier, determine_type
from igpublisher.config.models import PublisherConfig
from igpublisher.errors import ClassificationError, FetchError, PublishError
from igpublisher.fetch.fetcher import Fetcher, SimpleFetcher
from igpublisher.fetch.models import FetchedArtifact, ManifestEntry
from igpublisher.freshness.tracker import GUIDE_KEY, ChangeTracker
from igpublisher.freshness.watcher import SourceWatcher
from igpublisher.loader.loader import OrderedLoader
from igpublisher.render.html import GuideLinkResolver, LinkResolver
from igpublisher.render.narrative import ExpansionNarrativeGenerator, NarrativeGenerator
from igpublisher.render.pipeline import RenderPipeline, RenderReport
from igpublisher.render.writer import OutputWriter
from igpublisher.resources.models import ImplementationGuide, parse_resource
from igpublisher.resources.registry import ResourceRegistry
from igpublisher.terminology.service import Expander, TerminologyService
from igpublisher.validation.adapter import ValidatorAdapter
from igpublisher.validation.models import ValidationReport
from igpublisher.validation.report import render_report
from igpublisher.validation.validator import Validator

logger = logging.getLogger(__name__)

CLASSIFY_STAGE = "classify"

# Longest single sleep in the watch loop, so cancellation is noticed promptly.
_WAIT_SLICE = 0.1


class RunState(str, Enum):
    initializing = "initializing"
    loaded = "loaded"
    validated = "validated"
    rendered = "rendered"
    idle = "idle"
    watching = "watching"
    done = "done"


class CancellationToken:
    """Cooperative stop signal for the watch loop. Safe to set from any thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True if cancelled meanwhile."""
        return self._event.wait(seconds)


class RunResult(BaseModel):
    """What one pass did."""

    changed: bool
    validation: ValidationReport | None = None
    rendering: RenderReport | None = None


def _declared_type(extensions: list[dict]) -> str | None:
    for ext in extensions:
        if str(ext.get("url", "")).endswith("resource-type") and ext.get("valueCode"):
            return str(ext["valueCode"])
    return None


def manifest_entries(guide: ImplementationGuide) -> list[ManifestEntry]:
    """The resources a guide declares, in declaration order."""
    entries: list[ManifestEntry] = []
    seen: Counter[tuple[str, str | None]] = Counter()
    for package in guide.package:
        for res in package.resource:
            source = res.sourceUri
            if source is None and res.sourceReference is not None:
                source = res.sourceReference.reference
            if not source:
                logger.warning(
                    "Resource %r in package %r has no source and is ignored",
                    res.name, package.name,
                )
                continue
            entries.append(ManifestEntry(
                source=source,
                package=package.name,
                declared_type=_declared_type(res.extension),
                occurrence=seen[source, package.name],
            ))
            seen[source, package.name] += 1
    return entries


class Publisher:
    """Publishes one implementation guide.

    Owns the change tracker and the resource registry for its lifetime;
    nothing is shared between instances. Collaborators (fetcher,
    validator, terminology, narrative, link resolution) can be swapped
    for other implementations.
    """

    def __init__(
        self,
        config: PublisherConfig,
        *,
        fetcher: Fetcher | None = None,
        validator: Validator | None = None,
        expander: Expander | None = None,
        narrative: NarrativeGenerator | None = None,
        resolver: LinkResolver | None = None,
        classifier: TypeClassifier | None = None,
        registry: ResourceRegistry | None = None,
    ) -> None:
        self.config = config
        self.registry = registry if registry is not None else ResourceRegistry()
        self.tracker = ChangeTracker()
        self.fetcher = fetcher or SimpleFetcher(timeout=config.terminology.timeout)
        self.adapter = ValidatorAdapter(validator)
        self.classifier = classifier or TypeClassifier()
        self.loader = OrderedLoader(self.registry, self.adapter)
        if expander is None:
            server = config.terminology.server if config.terminology.enabled else None
            expander = TerminologyService(self.registry, server=server, timeout=config.terminology.timeout)
        self.expander = expander
        self.writer = OutputWriter(config.output)
        self.pipeline = RenderPipeline(
            self.writer,
            expander=expander,
            narrative=narrative or ExpansionNarrativeGenerator(),
            resolver=resolver if resolver is not None else GuideLinkResolver(config.spec),
        )

        self.state = RunState.initializing
        self.ig_locator: str | None = None
        self.guide: ImplementationGuide | None = None
        self.artifacts: list[FetchedArtifact] = []

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Read the control file and prepare the output directory."""
        self.state = RunState.initializing
        if not self.config.ig:
            raise PublishError("No implementation guide control file given")
        logger.info("Load Configuration")
        control = Path(self.config.ig)
        try:
            data = json.loads(control.read_text(encoding="utf-8"))
        except OSError as exc:
            raise FetchError(str(control), exc) from exc
        except json.JSONDecodeError as exc:
            raise PublishError(f"Control file {control} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("source"), str):
            raise PublishError(f"Control file {control} must name the guide in a 'source' property")

        source = data["source"]
        if urlparse(source).scheme in ("http", "https"):
            self.ig_locator = source
        else:
            self.ig_locator = str(control.parent / source)
        logger.info("Publish %s", self.ig_locator)

        logger.info("Check destination")
        self.writer.prepare()

    def load(self) -> bool:
        """Fetch the guide and its resources; reload the registry if anything changed.

        Returns whether any source changed since the previous call.
        """
        if self.ig_locator is None:
            raise PublishError("Publisher has not been initialized")
        logger.info("Load Implementation Guide")
        self.tracker.begin_run()

        guide_artifact = self.fetcher.fetch(self.ig_locator)
        need_to_build = self.tracker.note_file(GUIDE_KEY, guide_artifact)
        if need_to_build:
            self._parse_guide(guide_artifact)
        else:
            guide_artifact = self.tracker.get(GUIDE_KEY)
        if guide_artifact is None or not isinstance(guide_artifact.resource, ImplementationGuide):
            raise PublishError(f"Implementation guide {self.ig_locator} could not be read")
        self.guide = guide_artifact.resource

        for entry in manifest_entries(self.guide):
            fetched = self.fetcher.fetch(entry.source, guide_artifact)
            need_to_build = self.tracker.note_file(entry, fetched) or need_to_build
            artifact = self.tracker.artifacts[-1]
            if artifact.resource_type is None and entry.declared_type:
                artifact.resource_type = entry.declared_type
            self._classify(artifact)

        removed = self.tracker.finish_run()
        need_to_build = need_to_build or removed > 0
        self.artifacts = list(self.tracker.artifacts)

        if need_to_build:
            logger.info("Processing Conformance Resources")
            self.registry.clear()
            self.loader.load(self.artifacts)
        else:
            logger.info("No changes")
        self.state = RunState.loaded
        return need_to_build

    def validate(self) -> ValidationReport:
        logger.info("Validating Resources")
        title = (self.guide.name or self.guide.title or self.guide.id) if self.guide else None
        report = self.adapter.validate_all(self.artifacts, title=title or "Implementation Guide")
        path = self.writer.write_report(render_report(report, stylesheet=self.writer.report_stylesheet))
        logger.info("  ... Validation output in %s", path)
        self.state = RunState.validated
        return report

    def render(self) -> RenderReport:
        logger.info("Generating Outputs in %s", self.writer.base_dir)
        report = self.pipeline.render_all(self.artifacts)
        self.state = RunState.rendered
        return report

    def run_once(self) -> RunResult:
        """One load pass; validate and render only when something changed."""
        changed = self.load()
        if not changed:
            self.state = RunState.idle
            return RunResult(changed=False)
        validation = self.validate()
        rendering = self.render()
        return RunResult(changed=True, validation=validation, rendering=rendering)

    def execute(self, token: CancellationToken | None = None) -> RunResult:
        """Publish once, then keep publishing changes while watching.

        The watch loop runs until ``token`` is cancelled. Errors in any
        pass end the loop and propagate.
        """
        self.initialize()
        changed = self.load()
        first = RunResult(changed=changed, validation=self.validate(), rendering=self.render())
        if not self.config.watch.enabled:
            self.state = RunState.done
            logger.info("Done")
            return first

        token = token or CancellationToken()
        watcher = self._make_watcher()
        if watcher is not None:
            watcher.start()
        try:
            while not token.cancelled:
                self.state = RunState.watching
                logger.info("Watching for changes on a %gs cycle", self.config.watch.interval)
                if self._wait(token, watcher):
                    break
                self.run_once()
        finally:
            if watcher is not None:
                watcher.stop()
        self.state = RunState.done
        logger.info("Done")
        return first

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_guide(self, artifact: FetchedArtifact) -> None:
        self.adapter.validate(artifact)
        element = artifact.element
        if element is None:
            raise PublishError(f"Unable to parse implementation guide {artifact.name}")
        if element.fhir_type != "ImplementationGuide":
            raise PublishError(f"{artifact.name} is a {element.fhir_type}, not an ImplementationGuide")
        artifact.resource_type = "ImplementationGuide"
        try:
            artifact.resource = parse_resource(element)
        except ValidationError as exc:
            raise PublishError(f"Unable to read implementation guide {artifact.name}: {exc}") from exc

    def _classify(self, artifact: FetchedArtifact) -> None:
        # an unchanged slot keeps the outcome of its first classification
        if artifact.classified:
            return
        artifact.classified = True
        try:
            outcome = determine_type(artifact, self.classifier)
        except ClassificationError as exc:
            if self.config.pipeline.on_classification_error == "abort":
                raise
            artifact.fail(CLASSIFY_STAGE, str(exc))
            logger.warning("%s", exc)
            return
        if outcome.status is ClassificationStatus.unknown:
            artifact.fail(CLASSIFY_STAGE, f"Unable to determine resource type: {outcome.message}")

    def _make_watcher(self) -> SourceWatcher | None:
        if not self.config.watch.use_filesystem_events or self.ig_locator is None:
            return None
        if urlparse(self.ig_locator).scheme in ("http", "https"):
            return None
        return SourceWatcher(
            Path(self.ig_locator).parent,
            debounce_seconds=self.config.watch.debounce_seconds,
            ignore=[self.writer.base_dir],
        )

    def _wait(self, token: CancellationToken, watcher: SourceWatcher | None) -> bool:
        """Sleep one watch interval. True when cancelled."""
        deadline = time.monotonic() + self.config.watch.interval
        while True:
            if token.cancelled:
                return True
            if watcher is not None and watcher.changed:
                watcher.clear()
                return False
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            if token.wait(min(_WAIT_SLICE, remaining)):
                return True
