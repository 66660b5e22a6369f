"""Fetching sources and the artifact records built from them."""

from igpublisher.fetch.fetcher import Fetcher, SimpleFetcher, content_type_for
from igpublisher.fetch.models import ArtifactFailure, FetchedArtifact, ManifestEntry

__all__ = [
    "ArtifactFailure",
    "FetchedArtifact",
    "Fetcher",
    "ManifestEntry",
    "SimpleFetcher",
    "content_type_for",
]
