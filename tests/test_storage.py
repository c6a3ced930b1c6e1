import shutil

import pytest

from errors import StorageError, ValidationError
from storage import LocalSiteStore

FIRST = {"index.html": "<title>v1</title>", "case-study-p1.html": "<p>case one</p>"}
SECOND = {"index.html": "<title>v2</title>"}


def entries(store):
    return sorted(p.name for p in store.root.iterdir())


def test_save_writes_every_file(store):
    path = store.save("alice", FIRST)

    assert path == store.root / "alice"
    assert sorted(p.name for p in path.iterdir()) == sorted(FIRST)
    assert store.read("alice", "index.html") == "<title>v1</title>"
    assert entries(store) == ["alice"]


def test_resave_replaces_the_whole_directory(store):
    store.save("alice", FIRST)
    store.save("alice", SECOND)

    assert sorted(p.name for p in (store.root / "alice").iterdir()) == ["index.html"]
    assert store.read("alice", "index.html") == "<title>v2</title>"
    assert entries(store) == ["alice"]


def test_failed_write_keeps_previous_version(store, monkeypatch):
    store.save("alice", FIRST)

    def incomplete(directory, files):
        raise OSError("disk full")

    monkeypatch.setattr(LocalSiteStore, "_verify", staticmethod(incomplete))

    with pytest.raises(StorageError):
        store.save("alice", SECOND)

    assert store.read("alice", "index.html") == "<title>v1</title>"
    assert store.read("alice", "case-study-p1.html") == "<p>case one</p>"
    assert entries(store) == ["alice"]


def test_remove_is_best_effort(store, monkeypatch):
    store.save("alice", FIRST)

    def refuse(path, *args, **kwargs):
        raise OSError("busy")

    monkeypatch.setattr(shutil, "rmtree", refuse)

    assert store.remove("alice") is False
    assert store.exists("alice")


def test_remove_missing_directory(store):
    assert store.remove("nobody-here") is True
    assert store.remove("../etc") is False


@pytest.mark.parametrize("subdomain", ["../etc", "Alice", "-bad", "", None])
def test_site_dir_rejects_unsafe_names(store, subdomain):
    with pytest.raises(ValidationError):
        store.site_dir(subdomain)


@pytest.mark.parametrize("filename", ["../secret", ".hidden", "nested/file.html", "", "missing.html"])
def test_read_only_serves_plain_files(store, filename):
    store.save("alice", FIRST)

    assert store.read("alice", filename) is None
