"""Dependency-ordered loading of conformance resources."""

from igpublisher.loader.loader import LOAD_STAGE, OrderedLoader

__all__ = ["LOAD_STAGE", "OrderedLoader"]
