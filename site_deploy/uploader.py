"""Uploader - publish a build output tree to S3."""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from shared.aws_helpers import S3Helper, client_config
from shared.config import Config
from shared.errors import S3Error, UploadFailure
from shared.logger import StructuredLogger
from site_deploy import content_types
from site_deploy.artifacts import ArtifactFile, BuildArtifactSet, file_md5, relative_path_for_key, remote_key
from site_deploy.cache_policy import CachePolicySelector


@dataclass(frozen=True)
class UploadDescriptor:
    """Everything needed for one put. Lives only for the duration of the call."""

    key: str
    relative_path: str
    content_type: str
    cache_control: str
    size: int


@dataclass
class UploadResult:
    uploaded: Dict[str, int] = field(default_factory=dict)  # key -> bytes
    failed: Dict[str, str] = field(default_factory=dict)  # key -> error
    attempts: Dict[str, int] = field(default_factory=dict)
    planned: Dict[str, int] = field(default_factory=dict)  # dry run: key -> bytes that would be sent
    skipped: List[str] = field(default_factory=list)  # not sent because of cancellation
    pruned: List[str] = field(default_factory=list)
    changed_paths: List[str] = field(default_factory=list)
    had_prior_state: bool = False
    cancelled: bool = False
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.cancelled

    @property
    def files_uploaded(self) -> int:
        return len(self.uploaded)

    @property
    def bytes_transferred(self) -> int:
        return sum(self.uploaded.values())


@dataclass
class _FileOutcome:
    descriptor: UploadDescriptor
    attempts: int
    error: Optional[str] = None
    changed: bool = True
    skipped: bool = False


class Uploader:
    """Upload every file of a BuildArtifactSet with its content type and cache policy."""

    def __init__(
        self,
        config: Config,
        s3: Optional[S3Helper] = None,
        cache_policy: Optional[CachePolicySelector] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.config = config
        self.s3 = s3 or S3Helper(
            config.AWS_REGION, boto_config=client_config(config.AWS_CONNECT_TIMEOUT, config.AWS_READ_TIMEOUT)
        )
        self.cache_policy = cache_policy or CachePolicySelector(config.IMMUTABLE_ASSET_DIR, config.ASSETS_HASHED)
        self.sleep = sleep

    def describe(self, artifact: ArtifactFile) -> UploadDescriptor:
        return UploadDescriptor(
            key=remote_key(artifact.relative_path, self.config.AWS_S3_PREFIX),
            relative_path=artifact.relative_path,
            content_type=content_types.resolve(artifact.relative_path),
            cache_control=self.cache_policy.select(artifact.relative_path),
            size=artifact.size,
        )

    def upload(
        self,
        artifacts: BuildArtifactSet,
        bucket: Optional[str] = None,
        prune: Optional[bool] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> UploadResult:
        """
        Upload all artifacts to ``bucket``.

        Args:
            artifacts: Snapshot of the build output
            bucket: Destination bucket (config default if not provided)
            prune: Delete remote objects with no local counterpart (config default if not provided)
            cancel_event: When set, no new puts or retries are started; the result is cancelled

        Returns:
            UploadResult; ``ok`` is False if any file exhausted its retries or the run was cancelled
        """
        bucket = bucket or self.config.AWS_S3_BUCKET
        prune = self.config.PRUNE if prune is None else prune
        cancel_event = cancel_event or threading.Event()
        result = UploadResult(dry_run=self.config.DRY_RUN)

        remote = self._remote_state(bucket, prune)
        result.had_prior_state = bool(remote)

        StructuredLogger.info(
            "Starting upload",
            bucket=bucket,
            prefix=self.config.AWS_S3_PREFIX,
            file_count=len(artifacts),
            concurrency=self.config.UPLOAD_CONCURRENCY,
            prune=prune,
            dry_run=self.config.DRY_RUN,
        )

        with ThreadPoolExecutor(max_workers=self.config.UPLOAD_CONCURRENCY) as executor:
            futures = [
                executor.submit(self._upload_one, artifacts, artifact, bucket, remote, cancel_event)
                for artifact in artifacts
            ]
            for future in as_completed(futures):
                outcome = future.result()
                key = outcome.descriptor.key
                if outcome.skipped:
                    result.skipped.append(key)
                    continue
                result.attempts[key] = outcome.attempts
                if outcome.error:
                    result.failed[key] = outcome.error
                    continue
                if result.dry_run:
                    result.planned[key] = outcome.descriptor.size
                else:
                    result.uploaded[key] = outcome.descriptor.size
                if outcome.changed:
                    result.changed_paths.append(outcome.descriptor.relative_path)

        result.cancelled = cancel_event.is_set()
        result.changed_paths.sort()
        result.skipped.sort()

        if result.ok and prune:
            result.pruned = self._prune(artifacts, bucket, remote)
            result.changed_paths.extend(relative_path_for_key(k, self.config.AWS_S3_PREFIX) for k in result.pruned)

        log = StructuredLogger.info if result.ok else StructuredLogger.error
        log(
            "Upload finished",
            bucket=bucket,
            uploaded=result.files_uploaded,
            failed=len(result.failed),
            skipped=len(result.skipped),
            pruned=len(result.pruned),
            bytes_transferred=result.bytes_transferred,
            cancelled=result.cancelled,
        )
        return result

    def _remote_state(self, bucket: str, prune: bool) -> Dict[str, str]:
        prefix = f"{self.config.AWS_S3_PREFIX}/" if self.config.AWS_S3_PREFIX else ""
        try:
            return self.s3.list_objects(bucket, prefix)
        except S3Error as e:
            if prune:
                raise
            # Without a listing every file counts as changed
            StructuredLogger.warning("Could not list destination, treating as first deploy", bucket=bucket, error=str(e))
            return {}

    def _upload_one(
        self,
        artifacts: BuildArtifactSet,
        artifact: ArtifactFile,
        bucket: str,
        remote: Dict[str, str],
        cancel_event: threading.Event,
    ) -> _FileOutcome:
        descriptor = self.describe(artifact)
        local_path = artifacts.local_path(artifact.relative_path)

        if cancel_event.is_set():
            return _FileOutcome(descriptor, attempts=0, skipped=True)

        changed = True
        if descriptor.key in remote:
            try:
                changed = file_md5(local_path) != remote[descriptor.key]
            except OSError:
                changed = True

        if self.config.DRY_RUN:
            StructuredLogger.info(
                "Dry run, would upload",
                key=descriptor.key,
                content_type=descriptor.content_type,
                cache_control=descriptor.cache_control,
            )
            return _FileOutcome(descriptor, attempts=0, changed=changed)

        max_attempts = self.config.UPLOAD_MAX_ATTEMPTS
        for attempt in range(1, max_attempts + 1):
            try:
                with open(local_path, "rb") as body:
                    self.s3.put_object(
                        bucket,
                        descriptor.key,
                        body,
                        content_type=descriptor.content_type,
                        cache_control=descriptor.cache_control,
                    )
                StructuredLogger.debug("File uploaded", key=descriptor.key, attempt=attempt)
                return _FileOutcome(descriptor, attempts=attempt, changed=changed)
            except OSError as e:
                failure = UploadFailure(descriptor.key, f"cannot read local file: {str(e)}", attempt)
                StructuredLogger.error("Upload failed", key=descriptor.key, exception=failure)
                return _FileOutcome(descriptor, attempts=attempt, error=str(failure))
            except S3Error as e:
                if not e.retryable or attempt == max_attempts:
                    failure = UploadFailure(descriptor.key, str(e), attempt)
                    StructuredLogger.error("Upload failed", key=descriptor.key, attempts=attempt, exception=failure)
                    return _FileOutcome(descriptor, attempts=attempt, error=str(failure))

                delay = self.config.RETRY_BASE_DELAY * (2 ** (attempt - 1))
                StructuredLogger.warning(
                    "Upload attempt failed, retrying",
                    key=descriptor.key,
                    attempt=attempt,
                    delay=delay,
                    error=str(e),
                )
                if self._pause(delay, cancel_event):
                    StructuredLogger.warning("Retry abandoned, upload cancelled", key=descriptor.key, attempts=attempt)
                    return _FileOutcome(descriptor, attempts=attempt, skipped=True)

        # unreachable
        return _FileOutcome(descriptor, attempts=max_attempts, error="retry budget exhausted")

    def _pause(self, delay: float, cancel_event: threading.Event) -> bool:
        """Back off for ``delay`` seconds. True if cancelled meanwhile."""
        if self.sleep is None:
            return cancel_event.wait(delay)
        self.sleep(delay)
        return cancel_event.is_set()

    def _prune(self, artifacts: BuildArtifactSet, bucket: str, remote: Dict[str, str]) -> List[str]:
        local_keys = {remote_key(path, self.config.AWS_S3_PREFIX) for path in artifacts.relative_paths}
        stale = sorted(key for key in remote if key not in local_keys)
        if not stale:
            return []

        if self.config.DRY_RUN:
            StructuredLogger.info("Dry run, would delete stale objects", bucket=bucket, keys=stale)
            return stale

        StructuredLogger.warning("Pruning stale objects", bucket=bucket, count=len(stale))
        return self.s3.delete_objects(bucket, stale)
