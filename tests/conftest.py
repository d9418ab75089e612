"""Shared test fixtures."""

import logging
from pathlib import Path
from typing import Callable, Dict, Optional
from unittest.mock import MagicMock

import pytest

from shared.aws_helpers import CloudFrontHelper, S3Helper
from shared.config import Config
from shared.logger import logger
from site_deploy.artifacts import BuildArtifactSet

BASE_ENV = {
    "AWS_REGION": "us-east-1",
    "AWS_S3_BUCKET": "test-site-bucket",
    "AWS_CLOUDFRONT_DISTRIBUTION_ID": "E2TESTDIST",
    "RETRY_BASE_DELAY": "0",
    "INVALIDATION_POLL_INTERVAL": "1",
}


@pytest.fixture
def make_config() -> Callable[..., Config]:
    """Factory fixture: Config from BASE_ENV plus overrides."""

    def _factory(**overrides: str) -> Config:
        env = dict(BASE_ENV)
        env.update({k: str(v) for k, v in overrides.items()})
        return Config(env)

    return _factory


@pytest.fixture
def config(make_config) -> Config:
    return make_config()


@pytest.fixture
def make_build(tmp_path: Path) -> Callable[[Dict[str, str]], Path]:
    """Factory fixture: write a build output tree and return its root."""

    def _factory(files: Dict[str, str], root: Optional[Path] = None) -> Path:
        root = root or tmp_path / "out"
        root.mkdir(parents=True, exist_ok=True)
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return root

    return _factory


@pytest.fixture
def scenario_a_files() -> Dict[str, str]:
    return {
        "index.html": "<html>home</html>",
        "about/index.html": "<html>about</html>",
        "_next/static/abc123.js": "console.log('app')",
    }


@pytest.fixture
def scenario_a(make_build, scenario_a_files) -> BuildArtifactSet:
    return BuildArtifactSet.snapshot(make_build(scenario_a_files))


@pytest.fixture
def fake_s3() -> MagicMock:
    """S3Helper stand-in: empty bucket, every put succeeds."""
    s3 = MagicMock(spec=S3Helper)
    s3.list_objects.return_value = {}
    s3.put_object.return_value = "etag"
    s3.delete_objects.side_effect = lambda bucket, keys: list(keys)
    return s3


@pytest.fixture
def fake_cloudfront() -> MagicMock:
    cloudfront = MagicMock(spec=CloudFrontHelper)
    cloudfront.create_invalidation.return_value = {"Id": "I2TESTINVALIDATION", "Status": "InProgress"}
    cloudfront.get_invalidation_status.return_value = "Completed"
    return cloudfront


@pytest.fixture
def no_sleep() -> MagicMock:
    return MagicMock(name="sleep")


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers the CLI attaches so later tests do not write to a closed capture stream."""
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.INFO)
