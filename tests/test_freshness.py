"""Tests for the freshness subsystem: change tracking and watching."""

from __future__ import annotations

import time
from pathlib import Path

from igpublisher.fetch.models import FetchedArtifact, ManifestEntry
from igpublisher.freshness import GUIDE_KEY, ChangeTracker, SourceWatcher


# ── Helpers ──────────────────────────────────────────────────────────


def _artifact(name: str = "a.json", timestamp: int = 1, locator: str | None = None) -> FetchedArtifact:
    return FetchedArtifact(
        name=name,
        source=b"{}",
        content_type="application/fhir+json",
        locator=locator or f"/src/{name}",
        timestamp=timestamp,
    )


# ── ChangeTracker ────────────────────────────────────────────────────


class TestChangeTracker:
    def test_first_sighting_is_a_change(self):
        tracker = ChangeTracker()
        tracker.begin_run()
        artifact = _artifact()
        assert tracker.note_file(GUIDE_KEY, artifact) is True
        assert tracker.artifacts == [artifact]
        assert tracker.get(GUIDE_KEY) is artifact

    def test_same_timestamp_and_locator_reuses_stored_artifact(self):
        tracker = ChangeTracker()
        tracker.begin_run()
        first = _artifact()
        first.resource_type = "ValueSet"
        tracker.note_file("k", first)

        tracker.begin_run()
        again = _artifact()
        assert tracker.note_file("k", again) is False
        assert tracker.artifacts[0] is first
        assert tracker.artifacts[0].resource_type == "ValueSet"

    def test_new_timestamp_replaces(self):
        tracker = ChangeTracker()
        tracker.begin_run()
        tracker.note_file("k", _artifact(timestamp=1))
        tracker.begin_run()
        newer = _artifact(timestamp=2)
        assert tracker.note_file("k", newer) is True
        assert tracker.get("k") is newer

    def test_new_locator_replaces(self):
        tracker = ChangeTracker()
        tracker.begin_run()
        tracker.note_file("k", _artifact(locator="/a/x.json"))
        tracker.begin_run()
        assert tracker.note_file("k", _artifact(locator="/b/x.json")) is True

    def test_exactly_one_artifact_per_note_in_order(self):
        tracker = ChangeTracker()
        keys = [GUIDE_KEY, ManifestEntry(source="b.json"), ManifestEntry(source="a.json")]
        for _ in range(2):
            tracker.begin_run()
            for key in keys:
                tracker.note_file(key, _artifact(name=str(key)))
            assert [a.name for a in tracker.artifacts] == [str(k) for k in keys]

    def test_manifest_entries_are_value_keys(self):
        tracker = ChangeTracker()
        tracker.begin_run()
        tracker.note_file(ManifestEntry(source="a.json", package="p"), _artifact())
        tracker.begin_run()
        assert tracker.note_file(ManifestEntry(source="a.json", package="p"), _artifact()) is False

    def test_finish_run_prunes_unseen_slots(self):
        tracker = ChangeTracker()
        tracker.begin_run()
        tracker.note_file("keep", _artifact("keep.json"))
        tracker.note_file("drop", _artifact("drop.json"))
        tracker.finish_run()

        tracker.begin_run()
        tracker.note_file("keep", _artifact("keep.json"))
        assert tracker.finish_run() == 1
        assert len(tracker) == 1
        assert tracker.get("drop") is None
        assert tracker.summary.removed == 1
        assert tracker.summary.any_changed

    def test_summary(self):
        tracker = ChangeTracker()
        tracker.begin_run()
        tracker.note_file("k", _artifact("k.json"))
        tracker.finish_run()
        tracker.begin_run()
        tracker.note_file("k", _artifact("k.json"))
        tracker.finish_run()
        assert tracker.summary.unchanged == ["k.json"]
        assert not tracker.summary.any_changed


# ── SourceWatcher ────────────────────────────────────────────────────


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


class TestSourceWatcher:
    def test_flags_changes(self, tmp_path: Path):
        watcher = SourceWatcher(tmp_path, debounce_seconds=10)
        watcher.start()
        try:
            time.sleep(0.3)
            (tmp_path / "vs.json").write_text("{}")
            assert _wait_for(lambda: watcher.changed)
            watcher.clear()
            assert not watcher.changed
        finally:
            watcher.stop()

    def test_ignores_output_directory(self, tmp_path: Path):
        out = tmp_path / "out"
        out.mkdir()
        seen: list[str] = []
        watcher = SourceWatcher(tmp_path, debounce_seconds=0, ignore=[out], callback=lambda kind, path: seen.append(path))
        watcher.start()
        try:
            (out / "page.html").write_text("x")
            time.sleep(0.5)
            assert not watcher.changed
            assert seen == []
        finally:
            watcher.stop()

    def test_stop_is_idempotent(self, tmp_path: Path):
        watcher = SourceWatcher(tmp_path)
        watcher.stop()
        watcher.start()
        watcher.start()
        watcher.stop()
        watcher.stop()
