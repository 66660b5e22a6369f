"""Canonical element tree, typed conformance models, and the resource registry."""

from igpublisher.resources.element import (
    Element,
    ElementParseError,
    parse_element,
    parse_json,
    parse_xml,
    to_json_object,
)
from igpublisher.resources.models import (
    CodeSystem,
    ImplementationGuide,
    NamingSystem,
    Resource,
    StructureDefinition,
    ValueSet,
    canonical_url,
    parse_resource,
)
from igpublisher.resources.registry import ResourceRegistry
from igpublisher.resources.types import CONFORMANCE_TYPES, FHIR_NS, LOAD_ORDER

__all__ = [
    "CONFORMANCE_TYPES",
    "CodeSystem",
    "Element",
    "ElementParseError",
    "FHIR_NS",
    "ImplementationGuide",
    "LOAD_ORDER",
    "NamingSystem",
    "Resource",
    "ResourceRegistry",
    "StructureDefinition",
    "ValueSet",
    "canonical_url",
    "parse_element",
    "parse_json",
    "parse_resource",
    "parse_xml",
    "to_json_object",
]
