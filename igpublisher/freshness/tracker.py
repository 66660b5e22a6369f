"""Per-slot change tracking between publishing runs."""

from __future__ import annotations

import logging
from collections.abc import Hashable

from pydantic import BaseModel, Field

from igpublisher.fetch.models import FetchedArtifact

logger = logging.getLogger(__name__)

# Slot for the guide itself; resources use their ManifestEntry.
GUIDE_KEY = None


class ChangeSummary(BaseModel):
    """What the last run saw, slot by slot."""

    changed: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    removed: int = 0

    @property
    def any_changed(self) -> bool:
        return bool(self.changed) or self.removed > 0


class ChangeTracker:
    """Remembers the last artifact seen for each manifest slot.

    ``note_file`` always appends exactly one artifact to the current run's
    list: the new fetch when the slot changed, else the stored artifact with
    all of its derived state (type, element tree, typed resource, outcome).
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, FetchedArtifact] = {}
        self._seen: set[Hashable] = set()
        self.artifacts: list[FetchedArtifact] = []
        self.summary = ChangeSummary()

    def begin_run(self) -> None:
        self.artifacts = []
        self._seen = set()
        self.summary = ChangeSummary()

    def note_file(self, key: Hashable, artifact: FetchedArtifact) -> bool:
        """Record ``artifact`` for ``key``; return True when it differs from the last one."""
        self._seen.add(key)
        existing = self._entries.get(key)
        if (
            existing is None
            or existing.timestamp != artifact.timestamp
            or existing.locator != artifact.locator
        ):
            self._entries[key] = artifact
            self.artifacts.append(artifact)
            self.summary.changed.append(artifact.name)
            logger.debug("changed: %s", artifact.name)
            return True

        self.artifacts.append(existing)
        self.summary.unchanged.append(existing.name)
        return False

    def get(self, key: Hashable) -> FetchedArtifact | None:
        return self._entries.get(key)

    def finish_run(self) -> int:
        """Forget slots that were not noted this run. Returns how many were dropped."""
        gone = [k for k in self._entries if k not in self._seen]
        for key in gone:
            logger.debug("no longer in guide: %s", self._entries[key].name)
            del self._entries[key]
        self.summary.removed = len(gone)
        return len(gone)

    def __len__(self) -> int:
        return len(self._entries)
