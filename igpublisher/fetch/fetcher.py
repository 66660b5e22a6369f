"""Source fetchers: local files and http(s) locations."""

from __future__ import annotations

import hashlib
import logging
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import urljoin, urlparse

import httpx

from igpublisher.errors import FetchError
from igpublisher.fetch.models import FetchedArtifact

logger = logging.getLogger(__name__)

_CONTENT_TYPES: dict[str, str] = {
    ".json": "application/fhir+json",
    ".xml": "application/fhir+xml",
}


@runtime_checkable
class Fetcher(Protocol):
    """Anything that can read a named source, optionally relative to another."""

    def fetch(self, locator: str, relative_to: FetchedArtifact | None = None) -> FetchedArtifact: ...


def _is_url(locator: str) -> bool:
    return urlparse(locator).scheme in ("http", "https")


def content_type_for(path: str) -> str:
    return _CONTENT_TYPES.get(Path(path).suffix.lower(), "application/octet-stream")


class SimpleFetcher:
    """Reads local files directly and http(s) URLs through httpx."""

    def __init__(self, timeout: float = 30.0, client: httpx.Client | None = None) -> None:
        self._timeout = timeout
        self._client = client

    def fetch(self, locator: str, relative_to: FetchedArtifact | None = None) -> FetchedArtifact:
        resolved = self.resolve(locator, relative_to)
        if _is_url(resolved):
            return self._fetch_url(locator, resolved)
        return self._fetch_file(locator, Path(resolved))

    @staticmethod
    def resolve(locator: str, relative_to: FetchedArtifact | None = None) -> str:
        """Resolve a locator against the directory of ``relative_to``."""
        if relative_to is None or _is_url(locator):
            return locator
        if _is_url(relative_to.locator):
            return urljoin(relative_to.locator, locator)
        if Path(locator).is_absolute():
            return locator
        return str(Path(relative_to.locator).parent / locator)

    def _fetch_file(self, name: str, path: Path) -> FetchedArtifact:
        try:
            stat = path.stat()
            data = path.read_bytes()
        except OSError as exc:
            raise FetchError(str(path), exc) from exc
        logger.debug("fetched %s (%d bytes)", path, len(data))
        return FetchedArtifact(
            name=name,
            source=data,
            content_type=content_type_for(path.name),
            locator=str(path.resolve()),
            timestamp=stat.st_mtime_ns,
        )

    def _fetch_url(self, name: str, url: str) -> FetchedArtifact:
        headers = {"Accept": "application/fhir+json, application/fhir+xml;q=0.9"}
        try:
            if self._client is not None:
                resp = self._client.get(url, headers=headers, timeout=self._timeout)
            else:
                with httpx.Client(follow_redirects=True) as client:
                    resp = client.get(url, headers=headers, timeout=self._timeout)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise FetchError(url, exc) from exc

        content_type = resp.headers.get("content-type") or content_type_for(urlparse(url).path)
        logger.debug("fetched %s (%d bytes, %s)", url, len(resp.content), content_type)
        return FetchedArtifact(
            name=name,
            source=resp.content,
            content_type=content_type,
            locator=url,
            timestamp=_last_modified(resp.headers.get("last-modified")) or _content_stamp(resp.content),
        )


def _content_stamp(data: bytes) -> int:
    """Stand-in timestamp for servers that send no Last-Modified."""
    return int(hashlib.sha256(data).hexdigest()[:15], 16)


def _last_modified(header: str | None) -> int:
    """Last-Modified as epoch nanoseconds; 0 when absent or unparseable."""
    if not header:
        return 0
    try:
        return int(parsedate_to_datetime(header).timestamp() * 1_000_000_000)
    except (TypeError, ValueError):
        return 0
