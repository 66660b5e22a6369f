"""Resource type detection for fetched artifacts."""

from __future__ import annotations

import json
import logging
from enum import Enum

from pydantic import BaseModel

from igpublisher.errors import ClassificationError
from igpublisher.fetch.models import FetchedArtifact
from igpublisher.resources.element import ElementParseError, parse_xml_root, split_tag
from igpublisher.resources.types import FHIR_NS, UNSUPPORTED_TYPES, is_resource_type

logger = logging.getLogger(__name__)


class ClassificationStatus(str, Enum):
    """How classification of one artifact ended."""

    classified = "classified"
    unknown = "unknown"
    unsupported = "unsupported"
    malformed = "malformed"


class Classification(BaseModel):
    status: ClassificationStatus
    resource_type: str | None = None
    message: str = ""

    @property
    def fatal(self) -> bool:
        return self.status in (ClassificationStatus.unsupported, ClassificationStatus.malformed)


def _classified(resource_type: str) -> Classification:
    if resource_type in UNSUPPORTED_TYPES:
        return Classification(
            status=ClassificationStatus.unsupported,
            resource_type=resource_type,
            message=f"{resource_type}s are not supported",
        )
    return Classification(status=ClassificationStatus.classified, resource_type=resource_type)


def _unknown(message: str) -> Classification:
    return Classification(status=ClassificationStatus.unknown, message=message)


def _malformed(message: str) -> Classification:
    return Classification(status=ClassificationStatus.malformed, message=message)


class TypeClassifier:
    """Reads just enough of an artifact to name its resource type.

    Never raises for content problems: the outcome says whether the type
    was found, is unknown, is unsupported, or the content was unreadable.
    """

    def classify(self, source: bytes, content_type: str) -> Classification:
        if "json" in content_type:
            return self.classify_json(source)
        if "xml" in content_type:
            return self.classify_xml(source)
        return _malformed(f"unable to determine file type from content type {content_type!r}")

    def classify_json(self, source: bytes) -> Classification:
        try:
            obj = json.loads(source)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return _malformed(f"invalid JSON: {exc}")
        if not isinstance(obj, dict):
            return _malformed("JSON content is not an object")
        rt = obj.get("resourceType")
        if rt is None:
            return _unknown("no resourceType property")
        if not isinstance(rt, str) or not is_resource_type(rt):
            return _unknown(f"unrecognized resourceType {rt!r}")
        return _classified(rt)

    def classify_xml(self, source: bytes) -> Classification:
        try:
            root = parse_xml_root(source)
        except ElementParseError as exc:
            return _malformed(str(exc))
        ns, local = split_tag(root.tag)
        if ns != FHIR_NS:
            return _unknown(f"root element {local!r} is in namespace {ns!r}, not {FHIR_NS}")
        if not is_resource_type(local):
            return _unknown(f"unrecognized root element {local!r}")
        return _classified(local)


def determine_type(artifact: FetchedArtifact, classifier: TypeClassifier) -> Classification:
    """Resolve ``artifact.resource_type`` in place.

    An already-known type (declared in the guide) is kept but still checked
    against unsupported types.
    Raises ClassificationError, naming the artifact, for unsupported or
    unreadable content; returns an ``unknown`` outcome otherwise.
    """
    if artifact.resource_type is not None:
        outcome = _classified(artifact.resource_type)
    else:
        outcome = classifier.classify(artifact.source, artifact.content_type)
        if outcome.status is ClassificationStatus.classified:
            artifact.resource_type = outcome.resource_type

    if outcome.status is ClassificationStatus.malformed:
        raise ClassificationError(artifact.name, f"Unable to parse: {outcome.message}")
    if outcome.status is ClassificationStatus.unsupported:
        raise ClassificationError(artifact.name, outcome.message)
    if outcome.status is ClassificationStatus.unknown:
        logger.warning("Unable to determine resource type for %s: %s", artifact.name, outcome.message)
    else:
        logger.debug("%s is a %s", artifact.name, artifact.resource_type)
    return outcome
