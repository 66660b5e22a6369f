"""Canonical element tree shared by validation, loading, and rendering.

Both FHIR JSON and FHIR XML parse into the same ``Element`` shape: a named
node with an optional primitive value, ordered children, and an xhtml string
for narrative ``div`` content. Repetition is recorded per child (``is_list``),
so JSON arrays survive a round trip and a repeating XML element that occurs
once still serializes as an array.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from defusedxml import ElementTree as SafeET
from defusedxml.common import DefusedXmlException
from markupsafe import escape

from igpublisher.resources.structure import coerce, field_shape, resource_model
from igpublisher.resources.types import FHIR_NS, XHTML_NS, is_resource_type

Primitive = str | int | float | bool

_XML_ATTRIBUTE_NAMES = {"id", "url"}


class ElementParseError(ValueError):
    """Content could not be read into an element tree."""


@dataclass
class Element:
    name: str
    value: Primitive | None = None
    children: list[Element] = field(default_factory=list)
    xhtml: str | None = None
    resource_type: str | None = None
    is_list: bool = False
    is_attribute: bool = False

    @property
    def fhir_type(self) -> str:
        return self.resource_type or self.name

    @property
    def is_resource(self) -> bool:
        return self.resource_type is not None

    @property
    def is_primitive(self) -> bool:
        return self.value is not None and not self.children

    def named_child(self, name: str) -> Element | None:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def named_children(self, name: str) -> list[Element]:
        return [c for c in self.children if c.name == name]

    def child_value(self, name: str) -> Primitive | None:
        child = self.named_child(name)
        return child.value if child is not None else None

    def walk(self) -> Iterator[Element]:
        yield self
        for child in self.children:
            yield from child.walk()


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def parse_json(source: bytes | str) -> Element:
    """Parse FHIR JSON into an element tree."""
    try:
        obj = json.loads(source)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ElementParseError(f"Invalid JSON: {exc}") from exc
    if not isinstance(obj, dict):
        raise ElementParseError(f"JSON root must be an object, got {type(obj).__name__}")
    rt = obj.get("resourceType")
    if not isinstance(rt, str):
        raise ElementParseError("JSON root has no resourceType")
    return _element_from_json(rt, obj, is_resource=True)


def _element_from_json(name: str, obj: dict[str, Any], *, is_resource: bool = False) -> Element:
    element = Element(name=name)
    if is_resource:
        element.resource_type = obj["resourceType"]
    for key, value in obj.items():
        if key == "resourceType" or key.startswith("_") or key == "fhir_comments":
            continue
        extras = obj.get(f"_{key}")
        if isinstance(value, list):
            for i, item in enumerate(value):
                extra = extras[i] if isinstance(extras, list) and i < len(extras) else None
                child = _json_child(key, item, extra)
                child.is_list = True
                element.children.append(child)
        else:
            element.children.append(_json_child(key, value, extras if isinstance(extras, dict) else None))
    return element


def _json_child(key: str, value: Any, extra: dict[str, Any] | None) -> Element:
    if isinstance(value, dict):
        if isinstance(value.get("resourceType"), str):
            child = _element_from_json(key, value, is_resource=True)
        else:
            child = _element_from_json(key, value)
        return child
    if key == "div" and isinstance(value, str):
        return Element(name="div", xhtml=value)
    child = Element(name=key, value=value)
    if extra:
        child.children = _element_from_json(key, extra).children
    return child


def to_json_object(element: Element) -> dict[str, Any]:
    """Convert an element tree back into FHIR JSON structure."""
    obj: dict[str, Any] = {}
    if element.is_resource:
        obj["resourceType"] = element.resource_type
    groups: dict[str, list[Element]] = {}
    for child in element.children:
        groups.setdefault(child.name, []).append(child)

    for name, members in groups.items():
        repeated = len(members) > 1 or any(m.is_list for m in members)
        values = [_json_value(m) for m in members]
        obj[name] = values if repeated else values[0]
        extras = [_primitive_extras(m) for m in members]
        if any(e is not None for e in extras):
            obj[f"_{name}"] = extras if repeated else extras[0]
    return obj


def _json_value(element: Element) -> Any:
    if element.xhtml is not None:
        return element.xhtml
    if element.value is not None:
        return element.value
    return to_json_object(element)


def _primitive_extras(element: Element) -> dict[str, Any] | None:
    if element.value is None or not element.children:
        return None
    return to_json_object(Element(name=element.name, children=element.children))


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------


def split_tag(tag: str) -> tuple[str | None, str]:
    """Split an ElementTree ``{ns}local`` tag."""
    if tag.startswith("{"):
        ns, _, local = tag[1:].partition("}")
        return ns, local
    return None, tag


def parse_xml_root(source: bytes | str) -> Any:
    """Parse XML with DTDs, entity expansion, and external references disabled."""
    try:
        return SafeET.fromstring(
            source, forbid_dtd=True, forbid_entities=True, forbid_external=True
        )
    except DefusedXmlException as exc:
        raise ElementParseError(f"Unsafe XML rejected: {exc}") from exc
    except SafeET.ParseError as exc:
        raise ElementParseError(f"Invalid XML: {exc}") from exc


def parse_xml(source: bytes | str) -> Element:
    """Parse FHIR XML into an element tree.

    Repetition and primitive JSON types are not visible in XML, so they
    are taken from the resource's typed model and the known FHIR element
    names (see ``structure``). The tree then serializes to the same JSON
    as the equivalent JSON source.
    """
    root = parse_xml_root(source)
    ns, local = split_tag(root.tag)
    if ns != FHIR_NS:
        raise ElementParseError(f"Root element {local!r} is not in the FHIR namespace")
    element = _element_from_xml(root, local, resource_model(local))
    element.resource_type = local
    return element


def _element_from_xml(node: Any, name: str, model: Any = None, kind: str | None = None) -> Element:
    element = Element(name=name)
    for attr, attr_value in node.attrib.items():
        _ns, attr_name = split_tag(attr)
        if attr_name == "value":
            element.value = coerce(attr_value, kind)
        elif attr_name in _XML_ATTRIBUTE_NAMES:
            element.children.append(Element(name=attr_name, value=attr_value, is_attribute=True))

    for child in node:
        if not isinstance(child.tag, str):
            continue  # comments / processing instructions
        ns, local = split_tag(child.tag)
        if ns == XHTML_NS:
            element.children.append(Element(name=local, xhtml=xhtml_to_string(child)))
            continue
        shape = field_shape(model, local)
        inner = [c for c in child if isinstance(c.tag, str)]
        if (
            len(inner) == 1
            and not child.attrib
            and split_tag(inner[0].tag)[0] == FHIR_NS
            and is_resource_type(split_tag(inner[0].tag)[1])
        ):
            # resource-valued element, e.g. <contained><ValueSet>...</ValueSet></contained>
            rt = split_tag(inner[0].tag)[1]
            built = _element_from_xml(inner[0], local, resource_model(rt))
            built.resource_type = rt
        else:
            built = _element_from_xml(child, local, shape.model, shape.kind)
        built.is_list = shape.repeating
        element.children.append(built)
    return element


def xhtml_to_string(node: Any, *, root: bool = True) -> str:
    """Serialize an xhtml subtree with the xhtml namespace as the default."""
    _ns, local = split_tag(node.tag)
    attrs = []
    if root:
        attrs.append(f'xmlns="{XHTML_NS}"')
    for key, value in node.attrib.items():
        attrs.append(f'{split_tag(key)[1]}="{escape(value)}"')
    open_tag = f"<{local}{(' ' + ' '.join(attrs)) if attrs else ''}"

    parts = [escape(node.text)] if node.text else []
    for child in node:
        if isinstance(child.tag, str):
            parts.append(xhtml_to_string(child, root=False))
        if child.tail:
            parts.append(escape(child.tail))
    body = "".join(str(p) for p in parts)
    if not body:
        return f"{open_tag}/>"
    return f"{open_tag}>{body}</{local}>"


def parse_element(source: bytes, fmt: str) -> Element:
    """Dispatch on format name (``json`` or ``xml``)."""
    if fmt == "json":
        return parse_json(source)
    if fmt == "xml":
        return parse_xml(source)
    raise ElementParseError(f"Unknown format {fmt!r}")
