"""Shared test fixtures for igpublisher."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from igpublisher.config.models import OutputConfig, PublisherConfig, TerminologyConfig, WatchConfig

NS_URL = "http://example.org/fhir/ns/colors"
CS_URL = "http://example.org/fhir/CodeSystem/colors"
VS_URL = "http://example.org/fhir/ValueSet/primary-colors"

XHTML_DIV = '<div xmlns="http://www.w3.org/1999/xhtml"><p>{}</p></div>'


def naming_system() -> dict:
    return {
        "resourceType": "NamingSystem",
        "id": "colors-ns",
        "name": "ColorsNamingSystem",
        "status": "active",
        "kind": "codesystem",
        "date": "2017-01-01",
        "uniqueId": [
            {"type": "uri", "value": NS_URL, "preferred": True},
            {"type": "oid", "value": "2.16.840.1.113883.3.9999.1"},
        ],
    }


def code_system() -> dict:
    return {
        "resourceType": "CodeSystem",
        "id": "colors",
        "text": {"status": "generated", "div": XHTML_DIV.format("Colors")},
        "url": CS_URL,
        "identifier": {"system": NS_URL, "value": "colors"},
        "name": "Colors",
        "status": "active",
        "content": "complete",
        "concept": [
            {"code": "red", "display": "Red"},
            {"code": "green", "display": "Green"},
            {"code": "blue", "display": "Blue"},
        ],
    }


def value_set() -> dict:
    return {
        "resourceType": "ValueSet",
        "id": "primary-colors",
        "url": VS_URL,
        "name": "PrimaryColors",
        "status": "draft",
        "compose": {
            "include": [
                {"system": CS_URL, "concept": [{"code": "red"}, {"code": "blue"}]},
            ],
        },
    }


def write_guide(root: Path, resources: dict[str, dict | str], *, declared: dict[str, str] | None = None) -> Path:
    """Write resources, a guide listing them in the given order, and a control file.

    ``resources`` maps file names to resource dicts (written as JSON) or
    raw text. Returns the control file path.
    """
    root.mkdir(parents=True, exist_ok=True)
    entries = []
    for name, content in resources.items():
        path = root / name
        if isinstance(content, str):
            path.write_text(content, encoding="utf-8")
        else:
            path.write_text(json.dumps(content, indent=2), encoding="utf-8")
        entry: dict = {"name": name, "sourceUri": name}
        if declared and name in declared:
            entry["extension"] = [{
                "url": "http://example.org/fhir/StructureDefinition/resource-type",
                "valueCode": declared[name],
            }]
        entries.append(entry)

    guide = {
        "resourceType": "ImplementationGuide",
        "id": "colors-ig",
        "url": "http://example.org/fhir/ImplementationGuide/colors-ig",
        "name": "Colors Guide",
        "status": "draft",
        "package": [{"name": "terminology", "resource": entries}],
    }
    (root / "ImplementationGuide-colors-ig.json").write_text(json.dumps(guide, indent=2), encoding="utf-8")
    control = root / "publish.json"
    control.write_text(json.dumps({"source": "ImplementationGuide-colors-ig.json"}), encoding="utf-8")
    return control


@pytest.fixture
def sample_resources() -> dict[str, dict]:
    """Declared out of load order on purpose."""
    return {
        "ValueSet-primary-colors.json": value_set(),
        "CodeSystem-colors.json": code_system(),
        "NamingSystem-colors-ns.json": naming_system(),
    }


@pytest.fixture
def sample_guide(tmp_path: Path, sample_resources) -> Path:
    return write_guide(tmp_path / "ig", sample_resources)


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(control: Path, **overrides) -> PublisherConfig:
        cfg = PublisherConfig(
            ig=str(control),
            spec="http://hl7.org/fhir/STU3",
            output=OutputConfig(base_dir=str(tmp_path / "out")),
            terminology=TerminologyConfig(enabled=False),
            watch=WatchConfig(enabled=False, interval=0.05, use_filesystem_events=False),
        )
        return cfg.model_copy(update=overrides)

    return _make
