"""Tests for previewer data models."""

from previewer.models import DaemonSession, PreviewMappingStore


def test_store_update_reports_changes():
    """Only real changes are reported."""
    store = PreviewMappingStore()

    assert store.update("file:///a.dart", ["previewA"]) is True
    assert store.update("file:///a.dart", ["previewA"]) is False
    assert store.update("file:///a.dart", ["previewA", "previewB"]) is True
    assert store.snapshot() == {"file:///a.dart": ["previewA", "previewB"]}


def test_store_never_keeps_empty_entries():
    """A file without previews has no entry."""
    store = PreviewMappingStore()

    assert store.update("file:///a.dart", []) is False
    assert "file:///a.dart" not in store.snapshot()

    store.update("file:///a.dart", ["previewA"])
    assert store.update("file:///a.dart", []) is True
    assert "file:///a.dart" not in store.snapshot()
    assert len(store) == 0


def test_store_keeps_key_positions():
    """Updating an existing file keeps its place; new files are appended."""
    store = PreviewMappingStore()
    store.replace({"file:///a.dart": ["a1"], "file:///b.dart": ["b1"], "file:///empty.dart": []})

    store.update("file:///a.dart", ["a2"])
    store.update("file:///c.dart", ["c1"])

    assert list(store.snapshot()) == ["file:///a.dart", "file:///b.dart", "file:///c.dart"]
    assert store.snapshot()["file:///a.dart"] == ["a2"]


def test_store_snapshot_is_a_copy():
    store = PreviewMappingStore()
    store.update("file:///a.dart", ["previewA"])

    snapshot = store.snapshot()
    snapshot["file:///a.dart"].append("mutated")

    assert store.snapshot() == {"file:///a.dart": ["previewA"]}


def test_daemon_session_sets_app_id_once():
    """The first app start wins."""
    session = DaemonSession()
    assert session.ready is False

    session.attach(1234)
    assert session.mark_started("app-1") is True
    assert session.mark_started("app-2") is False
    assert session.app_id == "app-1"
    assert session.ready is True

    session.detach()
    assert session.ready is False
