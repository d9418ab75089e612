"""Tests for BuildArtifactSet and key derivation."""

import hashlib

import pytest

from shared.errors import BuildFailure
from site_deploy.artifacts import BuildArtifactSet, file_md5, relative_path_for_key, remote_key


class TestBuildArtifactSet:
    def test_snapshot_lists_every_file_sorted(self, make_build):
        root = make_build({"b.html": "b", "a/index.html": "a", "_next/static/x.js": "x"})
        artifacts = BuildArtifactSet.snapshot(root)
        assert artifacts.relative_paths == ("_next/static/x.js", "a/index.html", "b.html")
        assert len(artifacts) == 3

    def test_sizes_recorded(self, make_build):
        artifacts = BuildArtifactSet.snapshot(make_build({"index.html": "12345"}))
        assert artifacts.files[0].size == 5
        assert artifacts.total_bytes == 5
        assert artifacts.files[0].mtime > 0

    def test_os_junk_excluded(self, make_build):
        artifacts = BuildArtifactSet.snapshot(make_build({"index.html": "x", ".DS_Store": "junk"}))
        assert artifacts.relative_paths == ("index.html",)

    def test_empty_directory(self, tmp_path):
        (tmp_path / "out").mkdir()
        artifacts = BuildArtifactSet.snapshot(tmp_path / "out")
        assert artifacts.is_empty

    def test_missing_directory_is_build_failure(self, tmp_path):
        with pytest.raises(BuildFailure):
            BuildArtifactSet.snapshot(tmp_path / "missing")

    def test_immutable(self, scenario_a):
        with pytest.raises(AttributeError):
            scenario_a.files = ()

    def test_local_path(self, scenario_a):
        assert scenario_a.local_path("about/index.html").read_text() == "<html>about</html>"


class TestRemoteKey:
    def test_plain(self):
        assert remote_key("about/index.html") == "about/index.html"

    def test_normalizes_separators(self):
        assert remote_key("about\\index.html") == "about/index.html"

    def test_prefix(self):
        assert remote_key("index.html", "/site/") == "site/index.html"

    def test_roundtrip_with_prefix(self):
        key = remote_key("blog/post/index.html", "site")
        assert relative_path_for_key(key, "site") == "blog/post/index.html"


def test_file_md5(tmp_path):
    path = tmp_path / "f.txt"
    path.write_bytes(b"hello")
    assert file_md5(path) == hashlib.md5(b"hello").hexdigest()
