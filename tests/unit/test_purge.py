#!/usr/bin/env python3
"""
Unit tests for PurgeEngine
"""

import os
import sys
import time
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from filecache.errors import DirectoryRemovalFailure, FileRemovalFailure
from filecache.purge import PurgeEngine
from filecache.store import EntryStore


@pytest.fixture
def store():
    return EntryStore(default_duration=3600)


@pytest.fixture
def engine(tmp_path, store):
    return PurgeEngine(tmp_path, store, probability=0)


def make_entry(store, path, expired=False):
    store.write(path, b"x", 60)
    if expired:
        past = time.time() - 10
        os.utime(path, (past, past))
    return path


@pytest.fixture
def tree(tmp_path, store):
    return {
        "live": make_entry(store, tmp_path / "a" / "live.cache"),
        "old": make_entry(store, tmp_path / "a" / "old.cache", expired=True),
        "deep_old": make_entry(store, tmp_path / "a" / "b" / "c" / "old.cache", expired=True),
        "root_live": make_entry(store, tmp_path / "top.cache"),
    }


class TestPurgeTree:

    def test_expired_only(self, engine, tree, tmp_path):
        removed = engine.purge_tree(tmp_path, expired_only=True)

        assert removed == 2
        assert tree["live"].exists()
        assert tree["root_live"].exists()
        assert not tree["old"].exists()
        assert not tree["deep_old"].exists()
        # directories stay in expired-only mode
        assert (tmp_path / "a" / "b" / "c").is_dir()

    def test_survivors_unchanged(self, engine, tree, tmp_path, store):
        expires = store.expires_at(tree["live"])
        engine.purge_tree(tmp_path, expired_only=True)
        assert store.read(tree["live"]) == b"x"
        assert store.expires_at(tree["live"]) == expires

    def test_everything(self, engine, tree, tmp_path):
        removed = engine.purge_tree(tmp_path, expired_only=False)

        assert removed == 4
        assert list(tmp_path.iterdir()) == []
        assert tmp_path.is_dir()

    def test_hidden_entries_skipped(self, engine, tmp_path, store):
        hidden = make_entry(store, tmp_path / ".keep", expired=True)
        hidden_dir = make_entry(store, tmp_path / ".git" / "x.cache", expired=True)

        engine.purge_tree(tmp_path, expired_only=False)

        assert hidden.exists()
        assert hidden_dir.exists()

    def test_missing_path(self, engine, tmp_path):
        assert engine.purge_tree(tmp_path / "nope", expired_only=False) == 0

    def test_directory_removal_failure(self, engine, tree, tmp_path):
        with patch("os.rmdir", side_effect=OSError(39, "Directory not empty")):
            with pytest.raises(DirectoryRemovalFailure) as excinfo:
                engine.purge_tree(tmp_path, expired_only=False)
        assert "not empty" in str(excinfo.value)

    def test_file_removal_failure(self, engine, tree, tmp_path):
        with patch("os.unlink", side_effect=PermissionError("denied")):
            with pytest.raises(FileRemovalFailure):
                engine.purge_tree(tmp_path, expired_only=True)

    def test_file_vanished_concurrently(self, engine, tree, tmp_path):
        with patch("os.unlink", side_effect=FileNotFoundError()):
            assert engine.purge_tree(tmp_path, expired_only=True) == 0


class TestMaybePurge:

    def test_sweeps_expired_on_write(self, engine, tree, tmp_path):
        engine.maybe_purge()
        assert not tree["old"].exists()
        assert tree["live"].exists()

    def test_expired_sweep_disabled(self, tmp_path, store, tree):
        engine = PurgeEngine(tmp_path, store, probability=0, expired_on_write=False)
        engine.maybe_purge()
        assert tree["old"].exists()

    def test_probabilistic_full_purge(self, tmp_path, store, tree):
        engine = PurgeEngine(tmp_path, store, probability=10000)
        with patch("filecache.purge.random.randrange", return_value=0):
            engine.maybe_purge()
        assert list(tmp_path.iterdir()) == []

    def test_probability_miss_keeps_live(self, tmp_path, store, tree):
        engine = PurgeEngine(tmp_path, store, probability=10000)
        with patch("filecache.purge.random.randrange", return_value=1):
            engine.maybe_purge()
        assert tree["live"].exists()
        assert not tree["old"].exists()

    def test_failure_is_logged_not_raised(self, tmp_path, store, tree, caplog):
        engine = PurgeEngine(tmp_path, store, probability=1)
        with patch("os.rmdir", side_effect=OSError(39, "Directory not empty")):
            assert engine.maybe_purge() == 0
        assert "purge incomplete" in caplog.text


def test_flush(engine, tree, tmp_path):
    assert engine.flush(expired_only=True) == 2
    assert engine.flush() == 2
    assert list(tmp_path.iterdir()) == []
