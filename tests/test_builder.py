"""Tests for the build step."""

import shlex
import sys

import pytest

from shared.errors import BuildFailure
from site_deploy.builder import SiteBuilder


def python_command(code: str) -> str:
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"


class TestSiteBuilder:
    def test_without_command_uses_existing_output(self, make_config, make_build):
        root = make_build({"index.html": "x"})
        artifacts = SiteBuilder(make_config(BUILD_DIR=str(root))).build()
        assert artifacts.relative_paths == ("index.html",)

    def test_runs_command_in_cwd(self, make_config, tmp_path):
        code = "import pathlib; p = pathlib.Path('out/about'); p.mkdir(parents=True); (p / 'index.html').write_text('a')"
        config = make_config(BUILD_COMMAND=python_command(code), BUILD_CWD=str(tmp_path), BUILD_DIR="out")

        artifacts = SiteBuilder(config).build()

        assert artifacts.relative_paths == ("about/index.html",)
        assert artifacts.root == tmp_path / "out"

    def test_non_zero_exit(self, make_config, tmp_path):
        code = "import sys; sys.stderr.write('Type error in page.tsx'); sys.exit(3)"
        config = make_config(BUILD_COMMAND=python_command(code), BUILD_CWD=str(tmp_path))

        with pytest.raises(BuildFailure, match="code 3.*page.tsx"):
            SiteBuilder(config).build()

    def test_missing_executable(self, make_config, tmp_path):
        config = make_config(BUILD_COMMAND="definitely-not-a-real-build-tool --prod", BUILD_CWD=str(tmp_path))
        with pytest.raises(BuildFailure, match="Could not start"):
            SiteBuilder(config).build()

    def test_timeout(self, make_config, tmp_path):
        config = make_config(
            BUILD_COMMAND=python_command("import time; time.sleep(30)"), BUILD_CWD=str(tmp_path), BUILD_TIMEOUT="1"
        )
        with pytest.raises(BuildFailure, match="timed out"):
            SiteBuilder(config).build()

    def test_missing_output_dir(self, make_config, tmp_path):
        config = make_config(BUILD_COMMAND=python_command("pass"), BUILD_CWD=str(tmp_path), BUILD_DIR="out")
        with pytest.raises(BuildFailure, match="not found"):
            SiteBuilder(config).build()
