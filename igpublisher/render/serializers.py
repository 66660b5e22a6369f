"""Pretty, deterministic XML / JSON / Turtle serializations of an element tree."""

from __future__ import annotations

import json

from markupsafe import escape
from rdflib import BNode, Graph, Literal, Namespace, URIRef
from rdflib.namespace import RDF, XSD

from igpublisher.resources.element import Element, to_json_object
from igpublisher.resources.types import FHIR_NS

FHIR = Namespace(f"{FHIR_NS}/")

_EXTENSION_NAMES = {"extension", "modifierExtension"}

FORMATS: tuple[str, ...] = ("xml", "json", "ttl")


def is_xml_attribute(parent: Element, child: Element, parent_is_resource: bool) -> bool:
    """Whether ``child`` is written as an XML attribute of ``parent``."""
    if child.value is None or child.children:
        return False
    if child.is_attribute:
        return True
    if child.name == "url" and parent.name in _EXTENSION_NAMES:
        return True
    return child.name == "id" and not parent_is_resource


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------


def xml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def compose_xml(element: Element) -> str:
    lines = ['<?xml version="1.0" encoding="UTF-8"?>']
    _xml_lines(element, lines, 0, root=True)
    return "\n".join(lines) + "\n"


def _xml_lines(element: Element, lines: list[str], depth: int, root: bool = False) -> None:
    pad = "  " * depth
    if element.xhtml is not None:
        lines.append(pad + element.xhtml)
        return

    if element.is_resource and not root:
        # resource-valued element wraps the resource itself
        lines.append(f"{pad}<{element.name}>")
        inner = Element(name=element.resource_type, children=element.children, resource_type=element.resource_type)
        _xml_lines(inner, lines, depth + 1, root=True)
        lines.append(f"{pad}</{element.name}>")
        return

    attrs = []
    if root:
        attrs.append(f'xmlns="{FHIR_NS}"')
    if element.value is not None:
        attrs.append(f'value="{escape(xml_value(element.value))}"')
    body = []
    for child in element.children:
        if is_xml_attribute(element, child, root):
            attrs.append(f'{child.name}="{escape(xml_value(child.value))}"')
        else:
            body.append(child)

    open_tag = f"<{element.name}{(' ' + ' '.join(attrs)) if attrs else ''}"
    if not body:
        lines.append(f"{pad}{open_tag}/>")
        return
    lines.append(f"{pad}{open_tag}>")
    for child in body:
        _xml_lines(child, lines, depth + 1)
    lines.append(f"{pad}</{element.name}>")


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def compose_json(element: Element) -> str:
    return json.dumps(to_json_object(element), indent=2, ensure_ascii=False) + "\n"


# ---------------------------------------------------------------------------
# Turtle
# ---------------------------------------------------------------------------


def resource_iri(element: Element, base: str = FHIR_NS) -> URIRef:
    rid = element.child_value("id") or "unknown"
    return URIRef(f"{base.rstrip('/')}/{element.fhir_type}/{rid}")


def build_graph(element: Element, base: str = FHIR_NS) -> Graph:
    """FHIR RDF (STU3 style) triples for one resource.

    Blank node labels are assigned in document order so that the same
    tree always produces the same graph.
    """
    graph = Graph()
    graph.bind("fhir", FHIR)
    graph.bind("xsd", XSD)
    subject = resource_iri(element, base)
    graph.add((subject, RDF.type, FHIR[element.fhir_type]))
    graph.add((subject, FHIR["nodeRole"], FHIR["treeRoot"]))
    counter = [0]
    _add_children(graph, subject, element, element.fhir_type, counter)
    return graph


def _add_children(graph: Graph, subject: URIRef | BNode, element: Element, type_name: str, counter: list[int]) -> None:
    counts: dict[str, int] = {}
    for child in element.children:
        index = counts.get(child.name, 0)
        counts[child.name] = index + 1
        counter[0] += 1
        node = BNode(f"n{counter[0]}")
        graph.add((subject, FHIR[f"{type_name}.{child.name}"], node))
        if child.is_list or len(element.named_children(child.name)) > 1:
            graph.add((node, FHIR["index"], Literal(index)))
        if child.xhtml is not None:
            graph.add((node, FHIR["value"], Literal(child.xhtml)))
            continue
        if child.value is not None:
            graph.add((node, FHIR["value"], Literal(child.value)))
        if child.is_resource:
            graph.add((node, RDF.type, FHIR[child.fhir_type]))
            _add_children(graph, node, child, child.fhir_type, counter)
        else:
            _add_children(graph, node, child, f"{type_name}.{child.name}", counter)


def compose_turtle(element: Element, base: str = FHIR_NS) -> str:
    text = build_graph(element, base).serialize(format="turtle")
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    return text


def compose(element: Element, fmt: str) -> str:
    if fmt == "xml":
        return compose_xml(element)
    if fmt == "json":
        return compose_json(element)
    if fmt == "ttl":
        return compose_turtle(element)
    raise ValueError(f"Unknown format {fmt!r}")
