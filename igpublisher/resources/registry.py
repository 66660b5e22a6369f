"""Per-run table of loaded conformance resources keyed by canonical URL."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from igpublisher.errors import RegistryError
from igpublisher.resources.models import Resource

logger = logging.getLogger(__name__)


class ResourceRegistry:
    """Maps canonical URLs to typed resources.

    Owned by one publisher instance and cleared before each reload, so a
    run never sees cross-references left over from an earlier one.
    """

    def __init__(self) -> None:
        self._resources: dict[str, Resource] = {}

    def see(self, url: str, resource: Resource) -> None:
        """Register a resource; a second entry for the same URL is rejected."""
        if url in self._resources:
            raise RegistryError(url)
        self._resources[url] = resource
        logger.debug("registered %s %s", resource.resourceType, url)

    def drop(self, url: str) -> None:
        self._resources.pop(url, None)

    def clear(self) -> None:
        self._resources.clear()

    def get(self, url: str) -> Resource | None:
        # canonical references may carry a |version suffix
        return self._resources.get(url) or self._resources.get(url.split("|", 1)[0])

    def of_type(self, resource_type: str) -> list[Resource]:
        return [r for r in self._resources.values() if r.resourceType == resource_type]

    def urls(self) -> list[str]:
        return list(self._resources)

    def __contains__(self, url: object) -> bool:
        return url in self._resources

    def __len__(self) -> int:
        return len(self._resources)

    def __iter__(self) -> Iterator[tuple[str, Resource]]:
        return iter(list(self._resources.items()))
