"""Change tracking between runs and filesystem watching for watch mode."""

from igpublisher.freshness.tracker import GUIDE_KEY, ChangeSummary, ChangeTracker
from igpublisher.freshness.watcher import SourceWatcher

__all__ = [
    "ChangeSummary",
    "ChangeTracker",
    "GUIDE_KEY",
    "SourceWatcher",
]
