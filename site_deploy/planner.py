"""Invalidation planning - which CDN paths a set of changed files touches."""

import posixpath
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import FrozenSet, Iterable, List, Union
from urllib.parse import quote

from shared.logger import StructuredLogger

FULL_REFRESH = "/*"
INDEX_DOCUMENT = "index.html"


class _AllPaths:
    """Sentinel: invalidate everything."""

    def __repr__(self) -> str:
        return "ALL"


ALL = _AllPaths()


def edge_rewrite(uri: str) -> str:
    """
    Object path the edge function serves for a request URI.

    ``/about`` -> ``/about/index.html``, ``/blog/`` -> ``/blog/index.html``,
    anything with a dot in its last segment passes through.
    """
    if uri.endswith("/"):
        return uri + INDEX_DOCUMENT
    if "." not in uri.rsplit("/", 1)[-1]:
        return uri + "/" + INDEX_DOCUMENT
    return uri


@dataclass(frozen=True)
class InvalidationBatch:
    paths: FrozenSet[str]
    caller_reference: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_full_refresh: bool = False

    @property
    def items(self) -> List[str]:
        return sorted(self.paths)

    @property
    def is_empty(self) -> bool:
        return not self.paths


class InvalidationPlanner:
    """Turn changed relative paths into a de-duplicated CloudFront path batch."""

    def __init__(
        self,
        immutable_dir: str = "_next/static",
        batch_limit: int = 1000,
        reference_prefix: str = "site-deploy",
        wildcard_limit: int = 15,
    ):
        self.immutable_prefix = immutable_dir.strip("/") + "/"
        self.batch_limit = batch_limit
        self.wildcard_limit = wildcard_limit
        self.reference_prefix = reference_prefix

    def caller_reference(self) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        return f"{self.reference_prefix}-{stamp}-{secrets.token_hex(4)}"

    def patterns_for(self, relative_path: str) -> List[str]:
        """CDN URL patterns that serve ``relative_path``. Hashed assets need none."""
        path = str(relative_path).replace("\\", "/").lstrip("/")
        if path.startswith(self.immutable_prefix):
            return []

        if path == INDEX_DOCUMENT:
            return ["/", "/" + INDEX_DOCUMENT]

        if posixpath.basename(path) == INDEX_DOCUMENT:
            # Covers /dir, /dir/ and /dir/index.html
            directory = posixpath.dirname(path)
            return [_quote("/" + directory) + "*"]

        return [_quote("/" + path)]

    def plan(self, changed: Union[Iterable[str], _AllPaths]) -> InvalidationBatch:
        """
        Build the batch for a deploy.

        Args:
            changed: Changed relative paths, or ``ALL`` for a full refresh

        Returns:
            Batch with one pattern per affected URL, or the single wildcard when
            asked for everything or when the candidates exceed the batch or
            wildcard limit
        """
        reference = self.caller_reference()

        if changed is ALL:
            StructuredLogger.info("Planning full invalidation", reason="full refresh requested")
            return InvalidationBatch(frozenset([FULL_REFRESH]), reference, is_full_refresh=True)

        candidates = set()
        for path in changed:
            candidates.update(self.patterns_for(path))

        if len(candidates) > self.batch_limit:
            StructuredLogger.info(
                "Planning full invalidation",
                reason="batch limit exceeded",
                candidates=len(candidates),
                batch_limit=self.batch_limit,
            )
            return InvalidationBatch(frozenset([FULL_REFRESH]), reference, is_full_refresh=True)

        # CloudFront rejects batches with more wildcard paths than its in-progress quota
        wildcards = sum(1 for candidate in candidates if candidate.endswith("*"))
        if wildcards > self.wildcard_limit:
            StructuredLogger.info(
                "Planning full invalidation",
                reason="wildcard limit exceeded",
                wildcards=wildcards,
                wildcard_limit=self.wildcard_limit,
            )
            return InvalidationBatch(frozenset([FULL_REFRESH]), reference, is_full_refresh=True)

        StructuredLogger.info("Planned targeted invalidation", paths_count=len(candidates))
        return InvalidationBatch(frozenset(candidates), reference, is_full_refresh=FULL_REFRESH in candidates)


def _quote(path: str) -> str:
    return quote(path, safe="/*~-._")
