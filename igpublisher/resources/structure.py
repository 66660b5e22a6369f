"""Cardinality and primitive types of FHIR elements.

XML does not say whether an element repeats, and every XML primitive is a
string. Both facts come from the typed models where a path is modelled,
and from the name tables below (STU3 definitions) where it is not.
"""

from __future__ import annotations

import re
import types
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel

# Elements that repeat unless a typed model declares them otherwise.
REPEATING_NAMES: frozenset[str] = frozenset({
    "extension", "modifierExtension", "contained", "identifier", "contact",
    "telecom", "useContext", "jurisdiction", "coding", "given", "prefix",
    "suffix", "line", "designation", "property", "filter", "concept",
    "include", "exclude", "contains", "parameter", "mapping", "keyword",
    "contextInvariant", "constraint", "condition", "alias",
    "discriminator", "aggregation", "representation", "dependsOn", "product",
    "group", "rule", "input", "dependent", "structure", "import", "element",
    "uniqueId", "package", "dependency", "global", "binary", "target",
    "variable", "example",
})

BOOLEAN_NAMES: frozenset[str] = frozenset({
    "experimental", "immutable", "abstract", "preferred", "mustSupport",
    "isModifier", "isSummary", "caseSensitive", "compositional",
    "versionNeeded", "inactive", "lockedDate", "ordered", "extensible",
})

INTEGER_NAMES: frozenset[str] = frozenset({"min", "total", "offset", "count", "maxLength"})

_INTEGER_SUFFIXES = ("Integer", "UnsignedInt", "PositiveInt")
_INTEGER_TEXT = re.compile(r"-?\d+")
_DECIMAL_TEXT = re.compile(r"-?\d+(\.\d+)?([eE][+-]?\d+)?")


@dataclass(frozen=True)
class FieldShape:
    repeating: bool = False
    kind: str | None = None  # boolean | integer | decimal
    model: type[BaseModel] | None = None


def _kind_for_name(name: str) -> str | None:
    if name in BOOLEAN_NAMES or name.endswith("Boolean"):
        return "boolean"
    if name in INTEGER_NAMES or name.endswith(_INTEGER_SUFFIXES):
        return "integer"
    if name.endswith("Decimal"):
        return "decimal"
    return None


def _members(annotation: Any) -> list[Any]:
    if get_origin(annotation) in (Union, types.UnionType):
        return [a for a in get_args(annotation) if a is not type(None)]
    return [annotation]


@lru_cache(maxsize=None)
def _model_shape(model: type[BaseModel], name: str) -> FieldShape | None:
    info = model.model_fields.get(name)
    if info is None:
        return None
    annotation = info.annotation
    repeating = get_origin(annotation) is list
    if repeating:
        annotation = get_args(annotation)[0]
    members = _members(annotation)

    nested = next(
        (m for m in members if isinstance(m, type) and get_origin(m) is None and issubclass(m, BaseModel)),
        None,
    )
    kind = None
    if members == [bool]:
        kind = "boolean"
    elif members == [int]:
        kind = "integer"
    elif members == [float]:
        kind = "decimal"
    elif bool in members or int in members:
        # lenient fields such as ``bool | str`` still carry the element's primitive type
        kind = _kind_for_name(name)
    return FieldShape(repeating=repeating, kind=kind, model=nested)


def field_shape(model: type[BaseModel] | None, name: str) -> FieldShape:
    """Shape of child ``name`` of an element described by ``model`` (None if unmodelled)."""
    if model is not None:
        shape = _model_shape(model, name)
        if shape is not None:
            return shape
    return FieldShape(repeating=name in REPEATING_NAMES, kind=_kind_for_name(name))


def resource_model(resource_type: str | None) -> type[BaseModel] | None:
    # deferred: the typed models import the element tree
    from igpublisher.resources.models import RESOURCE_MODELS

    return RESOURCE_MODELS.get(resource_type) if resource_type else None


def coerce(value: str, kind: str | None) -> str | int | float | bool:
    """The JSON value of an XML primitive; text that does not fit ``kind`` stays a string."""
    if kind == "boolean" and value in ("true", "false"):
        return value == "true"
    if kind == "integer" and _INTEGER_TEXT.fullmatch(value):
        return int(value)
    if kind == "decimal" and _DECIMAL_TEXT.fullmatch(value):
        return float(value)
    return value
