"""Exceptions raised by the publishing pipeline."""

from __future__ import annotations


class PublishError(Exception):
    """An unrecoverable, batch-level failure."""


class FetchError(PublishError):
    """A source could not be read."""

    def __init__(self, locator: str, cause: Exception | str) -> None:
        self.locator = locator
        super().__init__(f"Unable to fetch {locator}: {cause}")
        if isinstance(cause, Exception):
            self.__cause__ = cause


class ContentTypeError(PublishError):
    """Content is neither JSON nor XML."""

    def __init__(self, name: str, content_type: str) -> None:
        self.name = name
        self.content_type = content_type
        super().__init__(f"Unable to determine file type for {name} (content type {content_type!r})")


class ClassificationError(PublishError):
    """The resource type of an artifact could not be accepted."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f"Error processing {name}: {message}")


class RegistryError(PublishError):
    """A canonical URL was registered twice in one run."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Duplicate canonical URL in registry: {url}")
