"""Pydantic models for the terminology subsystem."""

from __future__ import annotations

from pydantic import BaseModel

from igpublisher.resources.models import ValueSet


class ExpansionOutcome(BaseModel):
    """Either an expanded value set or the reason expansion failed."""

    value_set: ValueSet | None = None
    error: str | None = None
    source: str = "local"  # local | server

    @property
    def ok(self) -> bool:
        return self.value_set is not None


class ExpansionError(Exception):
    """Expansion cannot proceed."""


class NeedsServer(ExpansionError):
    """Local content is not enough; a terminology server could do it."""
