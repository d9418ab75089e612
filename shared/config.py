"""Configuration management."""

import os
from typing import List, Mapping, Optional

from shared.errors import ConfigurationError


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


class Config:
    """Deployment configuration from environment variables.

    Built once per run and passed explicitly into the orchestrator and its
    components. Use ``Config.from_env()`` for the process environment or pass
    a mapping for tests.
    """

    # Variables each stage cannot run without
    REQUIRED = {
        "build": [],
        "upload": ["AWS_S3_BUCKET"],
        "invalidate": ["AWS_CLOUDFRONT_DISTRIBUTION_ID"],
        "verify": [],
        "deploy": ["AWS_S3_BUCKET", "AWS_CLOUDFRONT_DISTRIBUTION_ID"],
    }

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        env = os.environ if environ is None else environ

        # AWS Configuration
        self.AWS_REGION = env.get("AWS_REGION", "us-east-1")
        self.AWS_S3_BUCKET = env.get("AWS_S3_BUCKET")
        self.AWS_S3_PREFIX = (env.get("AWS_S3_PREFIX") or "").strip("/")
        self.AWS_CLOUDFRONT_DISTRIBUTION_ID = env.get("AWS_CLOUDFRONT_DISTRIBUTION_ID")
        self.AWS_CONNECT_TIMEOUT = _float(env, "AWS_CONNECT_TIMEOUT", 10.0)
        self.AWS_READ_TIMEOUT = _float(env, "AWS_READ_TIMEOUT", 60.0)

        # Build
        self.BUILD_COMMAND = env.get("BUILD_COMMAND", "")
        self.BUILD_CWD = env.get("BUILD_CWD", ".")
        self.BUILD_DIR = env.get("BUILD_DIR", "out")
        self.BUILD_TIMEOUT = _int(env, "BUILD_TIMEOUT", 900)  # seconds

        # Cache policy
        self.IMMUTABLE_ASSET_DIR = (env.get("IMMUTABLE_ASSET_DIR") or "_next/static").strip("/")
        self.ASSETS_HASHED = _flag(env.get("ASSETS_HASHED"))

        # Upload
        self.UPLOAD_CONCURRENCY = _int(env, "UPLOAD_CONCURRENCY", 8)
        self.UPLOAD_MAX_ATTEMPTS = _int(env, "UPLOAD_MAX_ATTEMPTS", 3)
        self.RETRY_BASE_DELAY = _float(env, "RETRY_BASE_DELAY", 0.5)  # seconds
        self.PRUNE = _flag(env.get("PRUNE"))
        self.DRY_RUN = _flag(env.get("DRY_RUN"))

        # Invalidation
        self.INVALIDATE_ALL = _flag(env.get("INVALIDATE_ALL"))
        self.INVALIDATION_BATCH_LIMIT = _int(env, "INVALIDATION_BATCH_LIMIT", 1000)
        self.INVALIDATION_WILDCARD_LIMIT = _int(env, "INVALIDATION_WILDCARD_LIMIT", 15)
        self.INVALIDATION_WAIT = _flag(env.get("INVALIDATION_WAIT"))
        self.INVALIDATION_TIMEOUT = _float(env, "INVALIDATION_TIMEOUT", 300.0)
        self.INVALIDATION_POLL_INTERVAL = _float(env, "INVALIDATION_POLL_INTERVAL", 10.0)
        self.INVALIDATION_REFERENCE_PREFIX = env.get("INVALIDATION_REFERENCE_PREFIX", "site-deploy")

        # Verification
        self.SITE_URL = (env.get("SITE_URL") or "").rstrip("/")
        self.VERIFY_TARGETS = self._split_targets(env.get("VERIFY_TARGETS", ""))
        self.VERIFY_TIMEOUT = _float(env, "VERIFY_TIMEOUT", 15.0)
        self.VERIFY_BLOCKING = _flag(env.get("VERIFY_BLOCKING"))

        # Reporting
        self.REPORT_PATH = env.get("REPORT_PATH")
        self.LOG_LEVEL = env.get("LOG_LEVEL", "INFO")

    @classmethod
    def from_env(cls) -> "Config":
        return cls(os.environ)

    @staticmethod
    def _split_targets(raw: str) -> List[str]:
        return [item.strip() for item in raw.split(",") if item.strip()]

    def validate(self, stage: str = "deploy") -> bool:
        """Validate required configuration is set for the given stage."""
        if stage not in self.REQUIRED:
            raise ConfigurationError(f"Unknown stage: {stage}")

        missing = [var for var in self.REQUIRED[stage] if not getattr(self, var, None)]
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

        if self.UPLOAD_CONCURRENCY < 1:
            raise ConfigurationError("UPLOAD_CONCURRENCY must be at least 1")
        if self.UPLOAD_MAX_ATTEMPTS < 1:
            raise ConfigurationError("UPLOAD_MAX_ATTEMPTS must be at least 1")
        if self.INVALIDATION_BATCH_LIMIT < 1:
            raise ConfigurationError("INVALIDATION_BATCH_LIMIT must be at least 1")
        if self.INVALIDATION_WILDCARD_LIMIT < 1:
            raise ConfigurationError("INVALIDATION_WILDCARD_LIMIT must be at least 1")

        relative_targets = [t for t in self.VERIFY_TARGETS if not t.startswith(("http://", "https://"))]
        if relative_targets and not self.SITE_URL and stage in ("verify", "deploy"):
            raise ConfigurationError("SITE_URL is required to resolve relative VERIFY_TARGETS")

        return True
