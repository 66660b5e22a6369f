"""Manifest entries and the artifacts that flow through a publishing run."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from igpublisher.resources.element import Element
from igpublisher.resources.models import Resource
from igpublisher.validation.models import ValidationOutcome


class ManifestEntry(BaseModel):
    """One resource declared in the guide; used as the change-tracking key.

    ``occurrence`` numbers repeated declarations of the same source within a
    package, so each declaration keeps a slot of its own.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    package: str | None = None
    declared_type: str | None = None
    occurrence: int = 0


class ArtifactFailure(BaseModel):
    """Why an artifact dropped out of the run, and at which stage."""

    stage: str
    message: str


class FetchedArtifact(BaseModel):
    """Raw content of one source plus everything derived from it during a run.

    The raw fields are fixed at fetch time; when the source changes the
    publisher replaces the whole artifact rather than updating it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    source: bytes = Field(repr=False)
    content_type: str
    locator: str
    timestamp: int

    resource_type: str | None = None
    element: Element | None = Field(default=None, repr=False)
    resource: Resource | None = Field(default=None, repr=False)
    id: str | None = None
    outcome: ValidationOutcome | None = Field(default=None, repr=False)
    failure: ArtifactFailure | None = None
    classified: bool = False
    rendered: bool = False

    @property
    def format(self) -> str | None:
        """``json`` or ``xml`` from the content type, else None."""
        if "json" in self.content_type:
            return "json"
        if "xml" in self.content_type:
            return "xml"
        return None

    @property
    def output_id(self) -> str:
        """Identifier used in output file names."""
        if self.id:
            return self.id
        stem = PurePosixPath(self.name.replace("\\", "/")).name
        return stem.split(".", 1)[0] or "_unnamed"

    @property
    def failed(self) -> bool:
        return self.failure is not None

    def fail(self, stage: str, message: str) -> None:
        self.failure = ArtifactFailure(stage=stage, message=message)

    def summary(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.resource_type,
            "id": self.id,
            "failure": self.failure.model_dump() if self.failure else None,
        }
