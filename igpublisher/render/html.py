"""HTML views of the three serializations, with links between resources."""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from markupsafe import escape

from igpublisher.fetch.models import FetchedArtifact
from igpublisher.resources.element import Element, to_json_object
from igpublisher.resources.models import canonical_url
from igpublisher.resources.types import FHIR_NS
from igpublisher.render.serializers import compose_turtle, is_xml_attribute, xml_value

# Element names whose values point at other resources.
LINK_NAMES = frozenset({
    "reference", "url", "system", "valueSet", "profile", "targetProfile",
    "baseDefinition", "codeSystem", "sourceUri", "sourceReference",
    "targetUri", "defaultValueSet", "valueUri",
})

_CORE_PREFIX = f"{FHIR_NS}/"


@runtime_checkable
class LinkResolver(Protocol):
    """Turns a reference or canonical URL into an href, or None to leave it as text."""

    def resolve(self, value: str) -> str | None: ...


class GuideLinkResolver:
    """Links to pages generated for this guide, and to the core specification.

    Canonical URLs and ``Type/id`` references of artifacts in the current
    run link to that artifact's narrative page. URLs under
    ``http://hl7.org/fhir/`` link into the specification at ``spec_base``.
    """

    def __init__(self, spec_base: str | None = None) -> None:
        self._spec_base = spec_base.rstrip("/") if spec_base else None
        self._pages: dict[str, str] = {}

    def update(self, artifacts: Iterable[FetchedArtifact]) -> None:
        pages: dict[str, str] = {}
        for artifact in artifacts:
            if artifact.failed or artifact.resource_type is None:
                continue
            page = f"{artifact.output_id}-html.html"
            pages[f"{artifact.resource_type}/{artifact.output_id}"] = page
            if artifact.resource is not None:
                url = canonical_url(artifact.resource)
                if url:
                    pages[url] = page
        self._pages = pages

    def resolve(self, value: str) -> str | None:
        key = value.split("|", 1)[0]
        if key in self._pages:
            return self._pages[key]
        if self._spec_base and key.startswith(_CORE_PREFIX):
            return f"{self._spec_base}/{_core_page(key[len(_CORE_PREFIX):])}"
        return None


def _core_page(tail: str) -> str:
    """Page name for a core specification canonical, e.g. ValueSet/x -> valueset-x.html."""
    parts = tail.strip("/").split("/")
    if len(parts) == 2:
        rtype, rid = parts
        if rtype == "StructureDefinition":
            return f"{rid.lower()}.html"
        return f"{rtype.lower()}-{rid}.html"
    return f"{tail.strip('/')}.html" if tail else "index.html"


def _linked(text: str, name: str, resolver: LinkResolver | None) -> str:
    escaped = str(escape(text))
    if resolver is None or name not in LINK_NAMES:
        return escaped
    href = resolver.resolve(text)
    if href is None:
        return escaped
    return f'<a href="{escape(href)}">{escaped}</a>'


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------


def render_xml_html(element: Element, resolver: LinkResolver | None = None) -> str:
    lines: list[str] = []
    _xml_html(element, lines, 0, True, resolver)
    return '<pre class="xml">\n' + "\n".join(lines) + "\n</pre>\n"


def _tag(name: str) -> str:
    return f'<span class="tag">{escape(name)}</span>'


def _attr(name: str, value: str) -> str:
    return f'<span class="attr">{escape(name)}</span>="{value}"'


def _xml_html(element: Element, lines: list[str], depth: int, root: bool, resolver: LinkResolver | None) -> None:
    pad = "  " * depth
    if element.xhtml is not None:
        lines.append(pad + str(escape(element.xhtml)))
        return
    if element.is_resource and not root:
        lines.append(f"{pad}&lt;{_tag(element.name)}&gt;")
        inner = Element(name=element.fhir_type, children=element.children, resource_type=element.resource_type)
        _xml_html(inner, lines, depth + 1, True, resolver)
        lines.append(f"{pad}&lt;/{_tag(element.name)}&gt;")
        return

    attrs = []
    if root:
        attrs.append(_attr("xmlns", str(escape(FHIR_NS))))
    if element.value is not None:
        attrs.append(_attr("value", _linked(xml_value(element.value), element.name, resolver)))
    body = []
    for child in element.children:
        if is_xml_attribute(element, child, root):
            attrs.append(_attr(child.name, _linked(xml_value(child.value), child.name, resolver)))
        else:
            body.append(child)

    open_tag = f"&lt;{_tag(element.name)}{(' ' + ' '.join(attrs)) if attrs else ''}"
    if not body:
        lines.append(f"{pad}{open_tag}/&gt;")
        return
    lines.append(f"{pad}{open_tag}&gt;")
    for child in body:
        _xml_html(child, lines, depth + 1, False, resolver)
    lines.append(f"{pad}&lt;/{_tag(element.name)}&gt;")


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def render_json_html(element: Element, resolver: LinkResolver | None = None) -> str:
    body = _json_html(to_json_object(element), "", 0, resolver)
    return f'<pre class="json">\n{body}\n</pre>\n'


def _json_html(value: Any, key: str, depth: int, resolver: LinkResolver | None) -> str:
    pad = "  " * (depth + 1)
    end_pad = "  " * depth
    if isinstance(value, dict):
        if not value:
            return "{}"
        items = [
            f'{pad}<span class="key">{escape(json.dumps(k))}</span>: {_json_html(v, k, depth + 1, resolver)}'
            for k, v in value.items()
        ]
        return "{\n" + ",\n".join(items) + f"\n{end_pad}}}"
    if isinstance(value, list):
        if not value:
            return "[]"
        items = [f"{pad}{_json_html(v, key, depth + 1, resolver)}" for v in value]
        return "[\n" + ",\n".join(items) + f"\n{end_pad}]"
    if isinstance(value, str):
        quoted = json.dumps(value, ensure_ascii=False)
        inner = _linked(value, key.lstrip("_"), resolver)
        if inner == str(escape(value)):
            return f'<span class="str">{escape(quoted)}</span>'
        return f'<span class="str">"{inner}"</span>'
    return str(escape(json.dumps(value)))


# ---------------------------------------------------------------------------
# Turtle
# ---------------------------------------------------------------------------

_IRI = re.compile(r"(&lt;|&#34;)(https?://[^&\s]+)(&gt;|&#34;)")


def render_turtle_html(element: Element, resolver: LinkResolver | None = None) -> str:
    escaped = str(escape(compose_turtle(element)))
    if resolver is not None:
        def _link(match: re.Match[str]) -> str:
            open_, iri, close = match.groups()
            href = resolver.resolve(iri)
            if href is None:
                return match.group(0)
            return f'{open_}<a href="{escape(href)}">{iri}</a>{close}'

        escaped = _IRI.sub(_link, escaped)
    return f'<pre class="rdf">\n{escaped}</pre>\n'


HTML_RENDERERS = {
    "xml": render_xml_html,
    "json": render_json_html,
    "ttl": render_turtle_html,
}
