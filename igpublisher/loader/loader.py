"""Loads conformance resources into the registry in dependency order."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from pydantic import ValidationError

from igpublisher.errors import RegistryError
from igpublisher.fetch.models import FetchedArtifact
from igpublisher.resources.models import canonical_url, parse_resource
from igpublisher.resources.registry import ResourceRegistry
from igpublisher.resources.types import LOAD_ORDER
from igpublisher.validation.adapter import ValidatorAdapter

logger = logging.getLogger(__name__)

LOAD_STAGE = "load"


class OrderedLoader:
    """Parses and registers artifacts one resource category at a time.

    A category is finished before the next one starts, so a resource only
    ever sees registry entries from the categories ahead of it in
    ``LOAD_ORDER``. Problems with a single artifact are recorded on it
    as a failure and the rest of the category carries on.
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        adapter: ValidatorAdapter,
        order: Sequence[str] = LOAD_ORDER,
    ) -> None:
        self.registry = registry
        self.adapter = adapter
        self.order = tuple(order)

    def load(self, artifacts: Sequence[FetchedArtifact]) -> dict[str, int]:
        """Load every category in order. Returns registered counts per type."""
        for artifact in artifacts:
            if artifact.failure is not None and artifact.failure.stage == LOAD_STAGE:
                artifact.failure = None

        counts: dict[str, int] = {}
        for resource_type in self.order:
            counts[resource_type] = self.load_category(resource_type, artifacts)
        logger.info("Registered %d conformance resource(s)", len(self.registry))
        return counts

    def load_category(self, resource_type: str, artifacts: Sequence[FetchedArtifact]) -> int:
        loaded = 0
        for artifact in artifacts:
            if artifact.resource_type != resource_type or artifact.failed:
                continue
            if self._load_one(artifact):
                loaded += 1
        if loaded:
            logger.debug("loaded %d %s resource(s)", loaded, resource_type)
        return loaded

    def _load_one(self, artifact: FetchedArtifact) -> bool:
        if artifact.element is None:
            self.adapter.validate(artifact)
        if artifact.element is None:
            artifact.fail(LOAD_STAGE, "content could not be parsed")
            logger.warning("Unable to load %s: content could not be parsed", artifact.name)
            return False

        if artifact.resource is None:
            try:
                artifact.resource = parse_resource(artifact.element)
            except (KeyError, ValidationError) as exc:
                artifact.fail(LOAD_STAGE, f"Unable to parse {artifact.resource_type}: {exc}")
                logger.warning("Unable to load %s: %s", artifact.name, exc)
                return False

        url = canonical_url(artifact.resource)
        if not url:
            logger.warning("%s has no canonical URL and is not registered", artifact.name)
            return False
        try:
            self.registry.see(url, artifact.resource)
        except RegistryError as exc:
            artifact.fail(LOAD_STAGE, str(exc))
            logger.warning("Unable to load %s: %s", artifact.name, exc)
            return False
        return True
