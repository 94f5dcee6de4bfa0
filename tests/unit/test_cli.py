#!/usr/bin/env python3
"""
Unit tests for the maintenance CLI
"""

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from filecache.cli import install_git_hook, main, parse_args, segments_to_key
from filecache.config import CacheConfig
from filecache.facade import Cache


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "cache.yml"
    path.write_text(f"cache_path: {tmp_path / 'cache'}\npurge_probability: 0\n", encoding="utf-8")
    return path


@pytest.fixture
def cache(tmp_path):
    return Cache(CacheConfig(cache_path=tmp_path / "cache", purge_probability=0))


class TestParseArgs:

    def test_flush(self):
        assert parse_args(["flush"]) == ("flush", [], False, None)

    def test_delete_with_options(self):
        command, segments, expired_only, config = parse_args(
            ["delete", "Report", "summary", "--expired-only", "--config", "c.yml"]
        )
        assert command == "delete"
        assert segments == ["Report", "summary"]
        assert expired_only is True
        assert config == "c.yml"

    @pytest.mark.parametrize("argv", [[], ["nuke"], ["delete"], ["flush", "--force"], ["flush", "--config"]])
    def test_usage_errors(self, argv):
        with pytest.raises(ValueError):
            parse_args(argv)

    def test_segments_to_key(self):
        assert segments_to_key(["one"]) == "one"
        assert segments_to_key(["a", "b"]) == ["a", "b"]


class TestMain:

    def test_flush(self, cache, config_file):
        cache.set("k", "v", 60)
        assert main(["flush", "--config", str(config_file)]) == 0
        assert cache.get("k") is None

    def test_delete_scope(self, cache, config_file):
        cache.set(["Report", "summary", "x"], "a", 60)
        cache.set(["Invoice", "x"], "b", 60)

        assert main(["delete", "Report", "--config", str(config_file)]) == 0

        assert cache.get(["Report", "summary", "x"]) is None
        assert cache.get(["Invoice", "x"]) == "b"

    def test_delete_string_key(self, cache, config_file):
        cache.set("report:2024", "a", 60)
        assert main(["delete", "report:2024", "--config", str(config_file)]) == 0
        assert cache.get("report:2024") is None

    def test_usage_error_exit_code(self, capsys):
        assert main(["bogus"]) == 2
        assert "Usage" in capsys.readouterr().err

    def test_missing_config(self, tmp_path):
        assert main(["flush", "--config", str(tmp_path / "nope.yml")]) == 1

    def test_bad_env_override(self, cache, config_file, monkeypatch):
        cache.set("k", "v", 60)
        monkeypatch.setenv("FILECACHE_PURGE_PROBABILITY", "often")

        assert main(["flush", "--config", str(config_file)]) == 1
        assert cache.get("k") == "v"

    def test_delete_unscoped_key_keeps_cache(self, cache, config_file):
        cache.set("k", "v", 60)
        assert main(["delete", "***", "--config", str(config_file)]) == 0
        assert cache.get("k") == "v"


def test_install_git_hook(tmp_path):
    hook = install_git_hook(["Report"], "cache.yml", repo=tmp_path)

    assert hook == tmp_path / ".git" / "hooks" / "post-commit"
    content = hook.read_text()
    assert content.startswith("#!/bin/sh")
    assert "-m filecache delete Report --config" in content
    assert os.access(hook, os.X_OK)


def test_install_git_hook_without_scope(tmp_path):
    hook = install_git_hook([], repo=tmp_path)
    assert "-m filecache flush" in hook.read_text()
