"""The run controller."""

from igpublisher.publisher.controller import (
    CancellationToken,
    Publisher,
    RunResult,
    RunState,
    manifest_entries,
)

__all__ = ["CancellationToken", "Publisher", "RunResult", "RunState", "manifest_entries"]
