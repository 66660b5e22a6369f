"""Jinja2 environment for pages, narratives, and reports."""

from __future__ import annotations

from functools import lru_cache
from importlib import resources

from jinja2 import Environment, PackageLoader


@lru_cache(maxsize=1)
def get_environment() -> Environment:
    return Environment(
        loader=PackageLoader("igpublisher", "templates"),
        autoescape=True,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_template(template_name: str, /, **context: object) -> str:
    return get_environment().get_template(template_name).render(**context)


def default_stylesheet() -> bytes:
    """The stylesheet shipped with the package."""
    return (resources.files("igpublisher") / "templates" / "fhir.css").read_bytes()
