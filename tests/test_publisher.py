"""End-to-end tests for the run controller."""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path

import pytest
from rdflib import Graph, Literal

from igpublisher.classify import TypeClassifier
from igpublisher.config.models import PipelineConfig, WatchConfig
from igpublisher.errors import ClassificationError, FetchError, PublishError
from igpublisher.fetch import SimpleFetcher
from igpublisher.publisher import CancellationToken, Publisher, RunState, manifest_entries
from igpublisher.render.serializers import FHIR, compose_xml
from igpublisher.resources.models import ImplementationGuide
from igpublisher.terminology.models import ExpansionOutcome
from igpublisher.terminology.service import TerminologyService
from igpublisher.validation import StructuralValidator

from .conftest import CS_URL, NS_URL, VS_URL, code_system, value_set, write_guide


# ── Helpers ──────────────────────────────────────────────────────────


class CountingValidator:
    def __init__(self) -> None:
        self.inner = StructuralValidator()
        self.calls: list[str | None] = []

    def validate(self, source, fmt):
        element, issues = self.inner.validate(source, fmt)
        self.calls.append(element.child_value("id") if element is not None else None)
        return element, issues


class CountingExpander:
    def __init__(self) -> None:
        self.inner: TerminologyService | None = None
        self.calls: list[str | None] = []

    def expand(self, value_set) -> ExpansionOutcome:
        self.calls.append(value_set.id)
        assert self.inner is not None
        return self.inner.expand(value_set)


class CountingFetcher(SimpleFetcher):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def fetch(self, locator, relative_to=None):
        self.calls += 1
        return super().fetch(locator, relative_to)


def _touch(path: Path) -> None:
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 5_000_000_000))


def _counting_publisher(config):
    validator = CountingValidator()
    expander = CountingExpander()
    publisher = Publisher(config, validator=validator, expander=expander)
    expander.inner = TerminologyService(publisher.registry)
    return publisher, validator, expander


def _by_name(publisher: Publisher, name: str):
    return next(a for a in publisher.artifacts if a.name == name)


# ── Manifest ─────────────────────────────────────────────────────────


class TestManifestEntries:
    def test_reads_source_uri_and_reference(self):
        guide = ImplementationGuide.model_validate({
            "resourceType": "ImplementationGuide",
            "package": [{
                "name": "p",
                "resource": [
                    {"sourceUri": "a.json"},
                    {"sourceReference": {"reference": "b.xml"}},
                    {"name": "no source"},
                ],
            }],
        })
        entries = manifest_entries(guide)
        assert [e.source for e in entries] == ["a.json", "b.xml"]
        assert all(e.package == "p" for e in entries)

    def test_declared_type_from_extension(self):
        guide = ImplementationGuide.model_validate({
            "resourceType": "ImplementationGuide",
            "package": {"resource": {
                "sourceUri": "a.json",
                "extension": {"url": "http://x/resource-type", "valueCode": "ValueSet"},
            }},
        })
        assert manifest_entries(guide)[0].declared_type == "ValueSet"

    def test_repeated_source_gets_distinct_entries(self):
        guide = ImplementationGuide.model_validate({
            "resourceType": "ImplementationGuide",
            "package": [
                {"name": "p", "resource": [{"sourceUri": "a.json"}, {"sourceUri": "a.json"}]},
                {"name": "q", "resource": [{"sourceUri": "a.json"}]},
            ],
        })
        entries = manifest_entries(guide)
        assert [e.occurrence for e in entries] == [0, 1, 0]
        assert len(set(entries)) == 3


# ── Initialization ───────────────────────────────────────────────────


class TestInitialize:
    def test_prepares_output_layout(self, sample_guide, make_config, tmp_path):
        publisher = Publisher(make_config(sample_guide))
        publisher.initialize()
        out = tmp_path / "out"
        assert (out / "publish" / "fhir.css").is_file()
        assert (out / "fragments").is_dir()
        assert (out / "pages").is_dir()
        assert publisher.ig_locator == str(sample_guide.parent / "ImplementationGuide-colors-ig.json")

    def test_missing_control_file(self, make_config, tmp_path):
        publisher = Publisher(make_config(tmp_path / "nope.json"))
        with pytest.raises(FetchError):
            publisher.initialize()

    def test_control_file_without_source(self, make_config, tmp_path):
        control = tmp_path / "publish.json"
        control.write_text('{"other": 1}')
        with pytest.raises(PublishError, match="source"):
            Publisher(make_config(control)).initialize()

    def test_output_must_be_directory(self, sample_guide, make_config, tmp_path):
        (tmp_path / "out").write_text("not a dir")
        with pytest.raises(PublishError, match="not a directory"):
            Publisher(make_config(sample_guide)).initialize()

    def test_load_before_initialize(self, sample_guide, make_config):
        with pytest.raises(PublishError, match="initialized"):
            Publisher(make_config(sample_guide)).load()


# ── Loading ──────────────────────────────────────────────────────────


class TestLoad:
    def test_registry_populated_in_dependency_order(self, sample_guide, make_config):
        publisher = Publisher(make_config(sample_guide))
        publisher.initialize()
        assert publisher.load() is True
        assert publisher.registry.urls() == [NS_URL, CS_URL, VS_URL]
        assert publisher.state is RunState.loaded

    def test_artifacts_follow_declaration_order(self, sample_guide, make_config):
        publisher = Publisher(make_config(sample_guide))
        publisher.initialize()
        publisher.load()
        assert [a.name for a in publisher.artifacts] == [
            str(sample_guide.parent / "ImplementationGuide-colors-ig.json"),
            "ValueSet-primary-colors.json",
            "CodeSystem-colors.json",
            "NamingSystem-colors-ns.json",
        ]

    def test_reload_without_changes_is_idempotent(self, sample_guide, make_config):
        publisher = Publisher(make_config(sample_guide))
        publisher.initialize()
        publisher.load()
        artifacts = list(publisher.artifacts)
        registered = list(publisher.registry)

        assert publisher.load() is False
        assert publisher.artifacts == artifacts
        assert all(a is b for a, b in zip(publisher.artifacts, artifacts))
        assert list(publisher.registry) == registered

    def test_removed_entry_triggers_rebuild(self, sample_guide, make_config, sample_resources):
        publisher = Publisher(make_config(sample_guide))
        publisher.initialize()
        publisher.load()

        del sample_resources["ValueSet-primary-colors.json"]
        write_guide(sample_guide.parent, sample_resources)
        _touch(sample_guide.parent / "ImplementationGuide-colors-ig.json")
        assert publisher.load() is True
        assert VS_URL not in publisher.registry
        assert len(publisher.tracker) == 3

    def test_duplicate_canonical_url_fails_one_artifact(self, tmp_path, make_config):
        dup = code_system()
        dup["id"] = "colors-again"
        control = write_guide(tmp_path / "ig", {
            "CodeSystem-colors.json": code_system(),
            "CodeSystem-colors-again.json": dup,
        })
        publisher = Publisher(make_config(control))
        publisher.initialize()
        publisher.load()

        assert publisher.registry.urls() == [CS_URL]
        failed = _by_name(publisher, "CodeSystem-colors-again.json")
        assert failed.failure.stage == "load"
        assert CS_URL in failed.failure.message

    def test_declared_type_skips_classification(self, tmp_path, make_config):
        control = write_guide(
            tmp_path / "ig",
            {"CodeSystem-colors.json": code_system()},
            declared={"CodeSystem-colors.json": "CodeSystem"},
        )
        classifier = TypeClassifier()
        calls = []
        original = classifier.classify

        def spy(source, content_type):
            calls.append(content_type)
            return original(source, content_type)

        classifier.classify = spy
        publisher = Publisher(make_config(control), classifier=classifier)
        publisher.initialize()
        publisher.load()
        assert calls == []
        assert publisher.registry.urls() == [CS_URL]

    def test_repeated_entry_keeps_its_own_slot(self, tmp_path, make_config):
        control = write_guide(tmp_path / "ig", {"CodeSystem-colors.json": code_system()})
        guide_path = tmp_path / "ig" / "ImplementationGuide-colors-ig.json"
        guide = json.loads(guide_path.read_text())
        guide["package"][0]["resource"].append({"name": "again", "sourceUri": "CodeSystem-colors.json"})
        guide_path.write_text(json.dumps(guide))

        publisher = Publisher(make_config(control))
        publisher.initialize()
        publisher.load()
        first, again = publisher.artifacts[1:]
        assert first is not again
        assert len(publisher.tracker) == 3
        assert not first.failed
        assert again.failure.stage == "load"

        assert publisher.load() is False
        assert len(publisher.artifacts) == 3

    def test_unreadable_guide_fails_every_load(self, tmp_path, make_config):
        control = write_guide(tmp_path / "ig", {})
        (tmp_path / "ig" / "ImplementationGuide-colors-ig.json").write_text("{not json")
        publisher = Publisher(make_config(control))
        publisher.initialize()
        with pytest.raises(PublishError, match="Unable to parse implementation guide"):
            publisher.load()
        with pytest.raises(PublishError, match="could not be read"):
            publisher.load()


# ── Classification policy ────────────────────────────────────────────


class TestClassificationPolicy:
    def test_unknown_namespace_does_not_crash(self, tmp_path, make_config, sample_resources):
        sample_resources["Other.xml"] = '<Thing xmlns="http://example.org/not-fhir"><a value="1"/></Thing>'
        control = write_guide(tmp_path / "ig", sample_resources)
        publisher = Publisher(make_config(control))
        result = publisher.execute()

        other = _by_name(publisher, "Other.xml")
        assert other.resource_type is None
        assert other.failure.stage == "classify"
        assert len(publisher.registry) == 3
        outcome = next(o for o in result.validation.outcomes if o.artifact == "Other.xml")
        assert outcome.errors

    def test_bundle_skipped_by_default(self, tmp_path, make_config, sample_resources):
        sample_resources["Bundle-b.json"] = {"resourceType": "Bundle", "id": "b", "type": "collection"}
        control = write_guide(tmp_path / "ig", sample_resources)
        publisher = Publisher(make_config(control))
        publisher.execute()

        bundle = _by_name(publisher, "Bundle-b.json")
        assert "Bundle-b.json" in bundle.failure.message
        assert "Bundles are not supported" in bundle.failure.message
        assert not (tmp_path / "out" / "publish" / "Bundle-b.xml").exists()

    def test_bundle_aborts_in_strict_mode(self, tmp_path, make_config, sample_resources):
        sample_resources["Bundle-b.json"] = {"resourceType": "Bundle", "id": "b", "type": "collection"}
        control = write_guide(tmp_path / "ig", sample_resources)
        config = make_config(control, pipeline=PipelineConfig(on_classification_error="abort"))
        publisher = Publisher(config)
        publisher.initialize()
        with pytest.raises(ClassificationError, match="Error processing Bundle-b.json"):
            publisher.load()

    def test_unparseable_content_is_skipped(self, tmp_path, make_config, sample_resources):
        sample_resources["Broken.json"] = "{not json"
        control = write_guide(tmp_path / "ig", sample_resources)
        publisher = Publisher(make_config(control))
        publisher.initialize()
        publisher.load()
        broken = _by_name(publisher, "Broken.json")
        assert "Unable to parse" in broken.failure.message
        assert len(publisher.registry) == 3

    def test_unchanged_failures_are_not_classified_again(self, tmp_path, make_config, sample_resources):
        sample_resources["Other.xml"] = '<Thing xmlns="http://example.org/not-fhir"/>'
        sample_resources["Bundle-b.json"] = {"resourceType": "Bundle", "id": "b", "type": "collection"}
        control = write_guide(tmp_path / "ig", sample_resources)
        classifier = TypeClassifier()
        calls = []
        original = classifier.classify

        def spy(source, content_type):
            calls.append(content_type)
            return original(source, content_type)

        classifier.classify = spy
        publisher = Publisher(make_config(control), classifier=classifier)
        publisher.initialize()
        publisher.load()
        sniffed = len(calls)
        assert sniffed == 5

        assert publisher.load() is False
        assert len(calls) == sniffed
        assert _by_name(publisher, "Other.xml").failure.stage == "classify"
        assert _by_name(publisher, "Bundle-b.json").failure.stage == "classify"


# ── Change tracking across runs ──────────────────────────────────────


class TestIncrementalRuns:
    def test_unchanged_run_does_no_work(self, sample_guide, make_config):
        publisher, validator, expander = _counting_publisher(make_config(sample_guide))
        publisher.execute()
        validated, expanded = len(validator.calls), len(expander.calls)

        result = publisher.run_once()
        assert result.changed is False
        assert publisher.state is RunState.idle
        assert len(validator.calls) == validated
        assert len(expander.calls) == expanded

    def test_single_change_redoes_only_that_artifact(self, sample_guide, make_config):
        publisher, validator, expander = _counting_publisher(make_config(sample_guide))
        publisher.execute()
        assert sorted(validator.calls) == ["colors", "colors-ig", "colors-ns", "primary-colors"]
        assert expander.calls == ["primary-colors"]

        _touch(sample_guide.parent / "ValueSet-primary-colors.json")
        validator.calls.clear()
        expander.calls.clear()

        result = publisher.run_once()
        assert result.changed is True
        assert validator.calls == ["primary-colors"]
        assert expander.calls == ["primary-colors"]
        assert result.rendering.rendered == ["ValueSet-primary-colors.json"]
        assert publisher.registry.urls() == [NS_URL, CS_URL, VS_URL]

    def test_changed_code_system_does_not_rerender_others(self, sample_guide, make_config):
        publisher, validator, expander = _counting_publisher(make_config(sample_guide))
        publisher.execute()
        _touch(sample_guide.parent / "CodeSystem-colors.json")
        validator.calls.clear()
        expander.calls.clear()

        result = publisher.run_once()
        assert validator.calls == ["colors"]
        assert expander.calls == []
        assert result.rendering.rendered == ["CodeSystem-colors.json"]

    def test_registry_rebuilt_with_new_content(self, sample_guide, make_config):
        publisher = Publisher(make_config(sample_guide))
        publisher.execute()
        cs = code_system()
        cs["name"] = "Colours"
        path = sample_guide.parent / "CodeSystem-colors.json"
        path.write_text(json.dumps(cs))
        _touch(path)

        publisher.run_once()
        assert publisher.registry.get(CS_URL).name == "Colours"


# ── Round trip ───────────────────────────────────────────────────────


VS_XML = (
    '<ValueSet xmlns="http://hl7.org/fhir">'
    '<id value="primary-colors"/>'
    f'<url value="{VS_URL}"/>'
    '<name value="PrimaryColors"/><status value="draft"/><experimental value="false"/>'
    f'<compose><include><system value="{CS_URL}"/>'
    '<concept><code value="red"/></concept></include></compose>'
    '</ValueSet>'
)


class TestRoundTrip:
    def test_xml_output_classifies_as_original_type(self, sample_guide, make_config):
        publisher = Publisher(make_config(sample_guide))
        publisher.initialize()
        publisher.load()
        publisher.validate()
        classifier = TypeClassifier()
        for artifact in publisher.artifacts:
            xml = compose_xml(artifact.element).encode("utf-8")
            outcome = classifier.classify(xml, "application/fhir+xml")
            assert outcome.resource_type == artifact.resource_type

    def test_xml_sources_publish_like_json(self, tmp_path, make_config):
        control = write_guide(tmp_path / "ig", {
            "CodeSystem-colors.json": code_system(),
            "ValueSet-primary-colors.xml": VS_XML,
        })
        publisher = Publisher(make_config(control))
        result = publisher.execute()

        assert publisher.registry.urls() == [CS_URL, VS_URL]
        expansion = tmp_path / "out" / "fragments" / "primary-colors-expansion.xhtml"
        assert "red" in expansion.read_text()
        assert result.validation.error_count == 0

    def test_xml_source_serializations(self, tmp_path, make_config):
        control = write_guide(tmp_path / "ig", {
            "CodeSystem-colors.json": code_system(),
            "ValueSet-primary-colors.xml": VS_XML,
        })
        Publisher(make_config(control)).execute()
        publish = tmp_path / "out" / "publish"

        assert json.loads((publish / "ValueSet-primary-colors.json").read_text()) == {
            "resourceType": "ValueSet",
            "id": "primary-colors",
            "url": VS_URL,
            "name": "PrimaryColors",
            "status": "draft",
            "experimental": False,
            "compose": {"include": [{"system": CS_URL, "concept": [{"code": "red"}]}]},
        }
        graph = Graph().parse(data=(publish / "ValueSet-primary-colors.ttl").read_text(), format="turtle")
        assert sorted(int(o) for o in graph.objects(None, FHIR["index"])) == [0, 0]
        assert Literal(False) in set(graph.objects(None, FHIR["value"]))


# ── End to end ───────────────────────────────────────────────────────


class TestEndToEnd:
    def test_outputs_for_minimal_guide(self, sample_guide, make_config, tmp_path):
        publisher = Publisher(make_config(sample_guide))
        result = publisher.execute()
        out = tmp_path / "out"

        assert publisher.state is RunState.done
        assert result.validation.error_count == 0
        assert result.rendering.failed == []

        for rtype, rid in [("NamingSystem", "colors-ns"), ("CodeSystem", "colors"), ("ValueSet", "primary-colors")]:
            for fmt in ("xml", "json", "ttl"):
                assert (out / "publish" / f"{rtype}-{rid}.{fmt}").is_file()
            for suffix in ("xml-html", "json-html", "ttl-html", "html"):
                assert (out / "fragments" / f"{rid}-{suffix}.xhtml").is_file()
                assert (out / "pages" / f"{rid}-{suffix}.html").is_file()

        fragments = {p.name for p in (out / "fragments").iterdir()}
        assert "primary-colors-expansion.xhtml" in fragments
        assert "colors-expansion.xhtml" not in fragments
        # 4 per artifact (guide included) plus one expansion
        assert len(fragments) == 4 * 4 + 1

        report = out / "validation.html"
        assert report.is_file()
        assert "Colors Guide" in report.read_text()

    def test_narrative_and_expansion_content(self, sample_guide, make_config, tmp_path):
        Publisher(make_config(sample_guide)).execute()
        out = tmp_path / "out"
        assert "<p>Colors</p>" in (out / "fragments" / "colors-html.xhtml").read_text()
        assert (out / "fragments" / "colors-ns-html.xhtml").read_text() == ""

        expansion = (out / "fragments" / "primary-colors-expansion.xhtml").read_text()
        assert "red" in expansion and "blue" in expansion and "green" not in expansion

        page = (out / "pages" / "primary-colors-expansion.html").read_text()
        assert "<title>primary-colors-expansion</title>" in page
        assert 'href="../publish/fhir.css"' in page

    def test_failed_expansion_renders_error_fragment(self, tmp_path, make_config):
        vs = value_set()
        vs["compose"]["include"][0]["system"] = "http://example.org/unknown"
        vs["compose"]["include"][0].pop("concept")
        control = write_guide(tmp_path / "ig", {"ValueSet-primary-colors.json": vs})
        result = Publisher(make_config(control)).execute()

        fragment = (tmp_path / "out" / "fragments" / "primary-colors-expansion.xhtml").read_text()
        assert "color: maroon" in fragment
        assert "http://example.org/unknown" in fragment
        assert result.rendering.failed == []

    def test_links_between_resources(self, sample_guide, make_config, tmp_path):
        Publisher(make_config(sample_guide)).execute()
        xml_view = (tmp_path / "out" / "fragments" / "primary-colors-xml-html.xhtml").read_text()
        assert 'href="colors-html.html"' in xml_view


# ── Watch mode ───────────────────────────────────────────────────────


class TestWatch:
    def test_cancelled_token_stops_after_first_pass(self, sample_guide, make_config):
        config = make_config(sample_guide, watch=WatchConfig(enabled=True, interval=10, use_filesystem_events=False))
        token = CancellationToken()
        token.cancel()
        publisher = Publisher(config)
        result = publisher.execute(token)
        assert result.changed is True
        assert publisher.state is RunState.done

    def test_loop_polls_until_cancelled(self, sample_guide, make_config):
        config = make_config(sample_guide, watch=WatchConfig(enabled=True, interval=0.05, use_filesystem_events=False))
        fetcher = CountingFetcher()
        publisher = Publisher(config, fetcher=fetcher)
        token = CancellationToken()

        worker = threading.Thread(target=publisher.execute, args=(token,))
        worker.start()
        timer = threading.Timer(0.5, token.cancel)
        timer.start()
        worker.join(timeout=10)
        timer.cancel()

        assert not worker.is_alive()
        assert publisher.state is RunState.done
        # first pass fetches guide + 3 resources; each poll fetches them again
        assert fetcher.calls > 4
