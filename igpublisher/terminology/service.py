"""Value set expansion from loaded code systems, with a server fallback."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from igpublisher.resources.models import (
    CodeSystem,
    ConceptSet,
    ExpansionContains,
    ValueSet,
    ValueSetExpansion,
)
from igpublisher.resources.registry import ResourceRegistry
from igpublisher.terminology.models import ExpansionError, ExpansionOutcome, NeedsServer

logger = logging.getLogger(__name__)

_FHIR_JSON = "application/fhir+json"


@runtime_checkable
class Expander(Protocol):
    """Anything that can expand a value set without raising."""

    def expand(self, value_set: ValueSet) -> ExpansionOutcome: ...


class TerminologyService:
    """Expands value sets against the run's registry.

    Explicit concept lists, whole code systems, and nested value sets are
    expanded locally. Filters and systems the registry does not hold go to
    the configured server; with no server they come back as errors.
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        server: str | None = None,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._registry = registry
        self._server = server.rstrip("/") if server else None
        self._timeout = timeout
        self._client = client

    @property
    def server(self) -> str | None:
        return self._server

    def expand(self, value_set: ValueSet) -> ExpansionOutcome:
        try:
            contains = self._expand_local(value_set, seen=set())
        except NeedsServer as exc:
            if self._server is None:
                return ExpansionOutcome(error=f"Unable to expand {_label(value_set)}: {exc}")
            logger.debug("expanding %s on %s (%s)", _label(value_set), self._server, exc)
            return self._expand_remote(value_set)
        except ExpansionError as exc:
            return ExpansionOutcome(error=f"Unable to expand {_label(value_set)}: {exc}")

        expanded = value_set.model_copy(deep=True)
        expanded.expansion = ValueSetExpansion(
            identifier=f"urn:uuid:{uuid.uuid4()}",
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            total=len(contains),
            contains=contains,
        )
        return ExpansionOutcome(value_set=expanded)

    # ------------------------------------------------------------------
    # Local expansion
    # ------------------------------------------------------------------

    def _expand_local(self, value_set: ValueSet, seen: set[str]) -> list[ExpansionContains]:
        key = value_set.url or str(id(value_set))
        if key in seen:
            raise ExpansionError(f"circular value set reference via {value_set.url}")
        seen = seen | {key}

        if value_set.compose is None:
            if value_set.expansion is not None:
                return list(value_set.expansion.contains)
            raise ExpansionError("value set has no compose or expansion")

        included: dict[tuple[str | None, str | None], ExpansionContains] = {}
        for cset in value_set.compose.include:
            for c in self._concept_set(cset, seen):
                included.setdefault((c.system, c.code), c)
        for cset in value_set.compose.exclude:
            for c in self._concept_set(cset, seen):
                included.pop((c.system, c.code), None)
        return list(included.values())

    def _concept_set(self, cset: ConceptSet, seen: set[str]) -> list[ExpansionContains]:
        if cset.filter:
            raise NeedsServer(f"filters on {cset.system or 'include'} need a terminology server")

        from_value_sets: list[ExpansionContains] | None = None
        for url in cset.valueSet:
            nested = self._registry.get(url)
            if not isinstance(nested, ValueSet):
                raise NeedsServer(f"value set {url} is not loaded")
            codes = self._expand_local(nested, seen)
            if from_value_sets is None:
                from_value_sets = codes
            else:
                keys = {(c.system, c.code) for c in codes}
                from_value_sets = [c for c in from_value_sets if (c.system, c.code) in keys]

        if cset.system is None:
            if from_value_sets is None:
                raise ExpansionError("include has neither system nor valueSet")
            return from_value_sets

        from_system = self._system_codes(cset)
        if from_value_sets is None:
            return from_system
        keys = {(c.system, c.code) for c in from_value_sets}
        return [c for c in from_system if (c.system, c.code) in keys]

    def _system_codes(self, cset: ConceptSet) -> list[ExpansionContains]:
        code_system = self._registry.get(cset.system)
        if code_system is not None and not isinstance(code_system, CodeSystem):
            raise ExpansionError(f"{cset.system} is a {code_system.resourceType}, not a CodeSystem")

        if cset.concept:
            displays: dict[str, str | None] = {}
            if code_system is not None:
                displays = {c.code: c.display for c in code_system.all_concepts()}
                unknown = [c.code for c in cset.concept if c.code not in displays]
                if unknown:
                    raise ExpansionError(f"unknown code(s) in {cset.system}: {', '.join(unknown)}")
            return [
                ExpansionContains(
                    system=cset.system,
                    version=cset.version,
                    code=c.code,
                    display=c.display or displays.get(c.code),
                )
                for c in cset.concept
            ]

        if code_system is None:
            raise NeedsServer(f"code system {cset.system} is not loaded")
        if code_system.content not in (None, "complete"):
            raise NeedsServer(f"code system {cset.system} content is {code_system.content!r}")
        return [
            ExpansionContains(system=cset.system, version=code_system.version, code=c.code, display=c.display)
            for c in code_system.all_concepts()
        ]

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    def _expand_remote(self, value_set: ValueSet) -> ExpansionOutcome:
        payload = {
            "resourceType": "Parameters",
            "parameter": [
                {"name": "valueSet", "resource": value_set.model_dump(exclude_none=True)},
            ],
        }
        headers = {"Accept": _FHIR_JSON, "Content-Type": _FHIR_JSON}
        url = f"{self._server}/ValueSet/$expand"
        try:
            if self._client is not None:
                resp = self._client.post(url, content=json.dumps(payload), headers=headers, timeout=self._timeout)
            else:
                with httpx.Client() as client:
                    resp = client.post(url, content=json.dumps(payload), headers=headers, timeout=self._timeout)
            data = resp.json()
        except httpx.HTTPError as exc:
            return ExpansionOutcome(error=f"Terminology server error: {exc}", source="server")
        except ValueError:
            return ExpansionOutcome(
                error=f"Terminology server returned non-JSON content (HTTP {resp.status_code})",
                source="server",
            )

        if isinstance(data, dict) and data.get("resourceType") == "ValueSet":
            try:
                return ExpansionOutcome(value_set=ValueSet.model_validate(data), source="server")
            except ValidationError as exc:
                return ExpansionOutcome(error=f"Terminology server returned an unreadable ValueSet: {exc}", source="server")
        return ExpansionOutcome(error=_outcome_message(data, resp.status_code), source="server")


def _label(value_set: ValueSet) -> str:
    return value_set.url or value_set.id or "value set"


def _outcome_message(data: object, status: int) -> str:
    """Flatten an OperationOutcome into one line."""
    if isinstance(data, dict) and data.get("resourceType") == "OperationOutcome":
        messages = []
        for issue in data.get("issue", []):
            text = issue.get("diagnostics") or (issue.get("details") or {}).get("text")
            if text:
                messages.append(text)
        if messages:
            return "; ".join(messages)
    return f"Terminology server returned HTTP {status}"
