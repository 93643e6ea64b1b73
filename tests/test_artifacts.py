"""Tests for the in-memory artifact store."""

import pytest

from collada_kinematics.artifacts import ArtifactStore


def test_put_and_get():
    """Text is stored as UTF-8 bytes and names keep insertion order."""
    store = ArtifactStore()
    assert store.put("b.dae", "<COLLADA/>") == "b.dae"
    store.put("a.dae", b"data")
    assert store.get("b.dae") == b"<COLLADA/>"
    assert store.names() == ["b.dae", "a.dae"]
    assert "a.dae" in store
    assert len(store) == 2


def test_put_replaces():
    """A second put under the same name wins."""
    store = ArtifactStore()
    store.put("a.dae", b"old")
    store.put("a.dae", b"new")
    assert store.get("a.dae") == b"new"
    assert len(store) == 1


def test_missing_artifact():
    """Unknown names raise KeyError."""
    with pytest.raises(KeyError):
        ArtifactStore().get("nope")


def test_materialize(tmp_path):
    """Artifacts are written into a created directory."""
    store = ArtifactStore()
    store.put("a.dae", b"a")
    store.put("b.dae", b"b")
    written = store.materialize(tmp_path / "meshes")
    assert written == [tmp_path / "meshes" / "a.dae", tmp_path / "meshes" / "b.dae"]
    assert (tmp_path / "meshes" / "b.dae").read_bytes() == b"b"


def test_context_manager_clears():
    """Leaving the context drops every artifact."""
    with ArtifactStore() as store:
        store.put("a.dae", b"a")
        assert list(store) == ["a.dae"]
    assert len(store) == 0
