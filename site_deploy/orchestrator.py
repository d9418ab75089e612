"""Deployment orchestrator - build, upload, invalidate, verify."""

import enum
import threading
from typing import List, Optional

from shared.config import Config
from shared.errors import (
    BuildFailure,
    DeploymentError,
    InvalidationSubmitFailure,
    InvalidationTimeout,
    PartialUploadFailure,
    S3Error,
    VerificationFailure,
)
from shared.logger import StructuredLogger
from site_deploy.artifacts import BuildArtifactSet
from site_deploy.builder import SiteBuilder
from site_deploy.invalidator import CacheInvalidator, InvalidationStatus
from site_deploy.planner import ALL, InvalidationPlanner
from site_deploy.report import FAILURE, SKIPPED, SUCCESS, DeploymentReport
from site_deploy.uploader import Uploader, UploadResult
from site_deploy.verifier import VerificationTarget, Verifier


class DeploymentState(str, enum.Enum):
    IDLE = "Idle"
    BUILDING = "Building"
    UPLOADING = "Uploading"
    INVALIDATING = "Invalidating"
    VERIFYING = "Verifying"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


TERMINAL_STATES = {DeploymentState.SUCCEEDED, DeploymentState.FAILED}

# Forward-only; any working state may also fail
TRANSITIONS = {
    DeploymentState.IDLE: {
        DeploymentState.BUILDING,
        DeploymentState.UPLOADING,
        DeploymentState.INVALIDATING,
        DeploymentState.VERIFYING,
    },
    DeploymentState.BUILDING: {DeploymentState.UPLOADING},
    DeploymentState.UPLOADING: {DeploymentState.INVALIDATING},
    DeploymentState.INVALIDATING: {DeploymentState.VERIFYING},
    DeploymentState.VERIFYING: set(),
}


class DeploymentOrchestrator:
    """Drive one deployment run through its stages and own its report.

    A run never retries itself; a failed deployment is re-run by the caller.
    """

    def __init__(
        self,
        config: Config,
        builder: Optional[SiteBuilder] = None,
        uploader: Optional[Uploader] = None,
        planner: Optional[InvalidationPlanner] = None,
        invalidator: Optional[CacheInvalidator] = None,
        verifier: Optional[Verifier] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.config = config
        self.builder = builder or SiteBuilder(config)
        self.uploader = uploader or Uploader(config)
        self.planner = planner or InvalidationPlanner(
            config.IMMUTABLE_ASSET_DIR,
            config.INVALIDATION_BATCH_LIMIT,
            config.INVALIDATION_REFERENCE_PREFIX,
            wildcard_limit=config.INVALIDATION_WILDCARD_LIMIT,
        )
        self.invalidator = invalidator or CacheInvalidator(config)
        self.verifier = verifier or Verifier(timeout=config.VERIFY_TIMEOUT)
        self.cancel_event = cancel_event or threading.Event()

        self.report = DeploymentReport()
        self.state = DeploymentState.IDLE
        self.history: List[DeploymentState] = [DeploymentState.IDLE]
        self.error: Optional[DeploymentError] = None

    @property
    def succeeded(self) -> bool:
        return self.state == DeploymentState.SUCCEEDED

    def cancel(self) -> None:
        """Stop issuing uploads and stop polling. In-flight calls finish."""
        StructuredLogger.warning("Cancellation requested", run_id=self.report.run_id, state=self.state.value)
        self.cancel_event.set()

    def run(self) -> DeploymentReport:
        """Full deployment: build -> upload -> invalidate -> verify."""
        StructuredLogger.info("Deployment started", run_id=self.report.run_id, bucket=self.config.AWS_S3_BUCKET)

        self._transition(DeploymentState.BUILDING)
        artifacts = self._build()
        if artifacts is None:
            return self._finish(DeploymentState.FAILED)

        self._transition(DeploymentState.UPLOADING)
        upload = self._upload(artifacts)
        if upload is None:
            return self._finish(DeploymentState.FAILED)
        if self.cancel_event.is_set():
            self._fail("invalidate", DeploymentError("Deployment cancelled before invalidation"))
            return self._finish(DeploymentState.FAILED)

        self._transition(DeploymentState.INVALIDATING)
        use_all = self.config.INVALIDATE_ALL or not upload.had_prior_state
        if not self._invalidate(ALL if use_all else upload.changed_paths):
            return self._finish(DeploymentState.FAILED)

        self._transition(DeploymentState.VERIFYING)
        if not self._verify():
            return self._finish(DeploymentState.FAILED)

        return self._finish(DeploymentState.SUCCEEDED)

    def run_stage(self, stage: str) -> DeploymentReport:
        """
        Run a single stage on its own.

        ``upload`` snapshots the existing build directory; ``invalidate`` has no
        change set to work from and purges everything.
        """
        if stage == "deploy":
            return self.run()

        if stage == "build":
            self._transition(DeploymentState.BUILDING)
            ok = self._build() is not None
        elif stage == "upload":
            self._transition(DeploymentState.UPLOADING)
            ok = self._upload(self._existing_artifacts()) is not None
        elif stage == "invalidate":
            self._transition(DeploymentState.INVALIDATING)
            ok = self._invalidate(ALL)
        elif stage == "verify":
            self._transition(DeploymentState.VERIFYING)
            ok = self._verify()
        else:
            raise ValueError(f"Unknown stage: {stage}")

        return self._finish(DeploymentState.SUCCEEDED if ok else DeploymentState.FAILED)

    def _transition(self, new_state: DeploymentState) -> None:
        if new_state not in TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Illegal deployment transition {self.state.value} -> {new_state.value}")
        StructuredLogger.info(
            "Deployment state changed",
            run_id=self.report.run_id,
            from_state=self.state.value,
            to_state=new_state.value,
        )
        self.state = new_state
        self.history.append(new_state)

    def _finish(self, final_state: DeploymentState) -> DeploymentReport:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Deployment already finished as {self.state.value}")
        self.state = final_state
        self.history.append(final_state)
        self.report.finish(final_state.value)

        if final_state == DeploymentState.SUCCEEDED:
            StructuredLogger.info("Deployment succeeded", run_id=self.report.run_id)
        else:
            StructuredLogger.error("Deployment failed", run_id=self.report.run_id, exception=self.error)
        return self.report

    def _fail(self, stage: str, error: DeploymentError, **details) -> None:
        self.error = error
        self.report.record_stage(stage, FAILURE, str(error), **details)
        StructuredLogger.error("Stage failed", stage=stage, run_id=self.report.run_id, exception=error)

    def _existing_artifacts(self) -> Optional[BuildArtifactSet]:
        try:
            return BuildArtifactSet.snapshot(self.builder.output_dir)
        except BuildFailure as e:
            self._fail("upload", e)
            return None

    def _build(self) -> Optional[BuildArtifactSet]:
        try:
            artifacts = self.builder.build()
        except BuildFailure as e:
            self._fail("build", e)
            return None

        if artifacts.is_empty:
            self._fail("build", BuildFailure(f"Build produced no files in {artifacts.root}"))
            return None

        self.report.record_stage("build", SUCCESS, f"{len(artifacts)} files", root=str(artifacts.root))
        return artifacts

    def _upload(self, artifacts: Optional[BuildArtifactSet]) -> Optional[UploadResult]:
        if artifacts is None:
            return None
        if artifacts.is_empty:
            self._fail("upload", BuildFailure(f"Nothing to upload in {artifacts.root}"))
            return None

        try:
            result = self.uploader.upload(artifacts, cancel_event=self.cancel_event)
        except S3Error as e:
            self._fail("upload", e)
            return None

        self.report.record_upload(result.files_uploaded, result.bytes_transferred, result.failed, result.pruned)

        if result.failed:
            self._fail("upload", PartialUploadFailure(result.failed, result.files_uploaded))
            return None
        if result.cancelled:
            self._fail(
                "upload",
                DeploymentError(f"Upload cancelled with {len(result.skipped)} file(s) not sent"),
                skipped=result.skipped,
            )
            return None

        message = f"{result.files_uploaded} files, {result.bytes_transferred} bytes"
        if result.dry_run:
            message = f"dry run, {len(artifacts)} files"
        self.report.record_stage(
            "upload", SUCCESS, message, changed=len(result.changed_paths), pruned=len(result.pruned)
        )
        return result

    def _invalidate(self, changed) -> bool:
        batch = self.planner.plan(changed)

        if batch.is_empty:
            self.report.record_stage("invalidate", SKIPPED, "no cached paths changed")
            return True
        if self.config.DRY_RUN:
            self.report.record_invalidation(None, batch.items, None)
            self.report.record_stage("invalidate", SKIPPED, f"dry run, {len(batch.paths)} paths")
            return True

        try:
            handle = self.invalidator.submit(batch)
        except InvalidationSubmitFailure as e:
            self.report.record_invalidation(None, batch.items, InvalidationStatus.FAILED.value)
            self._fail("invalidate", e, note="origin updated, cache not purged")
            return False

        try:
            status = InvalidationStatus(handle.status)
        except ValueError:
            status = InvalidationStatus.IN_PROGRESS
        if self.config.INVALIDATION_WAIT:
            status = self.invalidator.await_completion(handle, cancel_event=self.cancel_event)

        self.report.record_invalidation(handle.invalidation_id, batch.items, status.value)

        message = f"{handle.invalidation_id} {status.value}"
        if status == InvalidationStatus.TIMED_OUT:
            # Advisory: the origin is updated, edges catch up on their own
            advisory = InvalidationTimeout(f"Invalidation {handle.invalidation_id} still in flight")
            StructuredLogger.warning("Invalidation timeout", run_id=self.report.run_id, error=str(advisory))
            message = str(advisory)
        self.report.record_stage("invalidate", SUCCESS, message, paths=len(batch.paths))
        return True

    def _verify(self) -> bool:
        targets = [VerificationTarget.parse(t, self.config.SITE_URL) for t in self.config.VERIFY_TARGETS]
        if not targets:
            self.report.record_stage("verify", SKIPPED, "no verification targets configured")
            return True

        results = self.verifier.verify(targets)
        failures = [r for r in results if not r.passed]
        self.report.record_verification_failures([f.to_dict() for f in failures])

        if not failures:
            self.report.record_stage("verify", SUCCESS, f"{len(results)} checks passed")
            return True

        error = VerificationFailure(failures)
        if self.config.VERIFY_BLOCKING:
            self._fail("verify", error)
            return False

        StructuredLogger.warning("Verification failures are advisory", run_id=self.report.run_id, error=str(error))
        self.report.record_stage("verify", SUCCESS, f"advisory: {error}")
        return True
