"""Custom exceptions for site deployment."""

from typing import Dict, List, Optional


class DeploymentError(Exception):
    """Base exception for deployment errors."""

    pass


class ConfigurationError(DeploymentError):
    """Configuration or environment variable errors."""

    pass


class BuildFailure(DeploymentError):
    """Build step failed or produced no output directory."""

    pass


class S3Error(DeploymentError):
    """S3 operation errors."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class UploadFailure(S3Error):
    """A single file could not be uploaded within its retry budget."""

    def __init__(self, key: str, message: str, attempts: int = 1):
        super().__init__(f"Upload of {key} failed after {attempts} attempt(s): {message}")
        self.key = key
        self.attempts = attempts


class PartialUploadFailure(DeploymentError):
    """Some files uploaded, at least one did not. Blocks invalidation."""

    def __init__(self, failed: Dict[str, str], uploaded_count: int = 0):
        keys = ", ".join(sorted(failed))
        super().__init__(f"{len(failed)} file(s) failed to upload ({uploaded_count} succeeded): {keys}")
        self.failed = dict(failed)
        self.uploaded_count = uploaded_count


class CDNInvalidationError(DeploymentError):
    """CloudFront cache invalidation errors."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class InvalidationSubmitFailure(CDNInvalidationError):
    """Invalidation batch was rejected or could not be submitted."""

    pass


class InvalidationTimeout(CDNInvalidationError):
    """Invalidation did not complete before the polling timeout. Advisory only."""

    pass


class VerificationFailure(DeploymentError):
    """One or more post-deploy checks failed."""

    def __init__(self, failures: Optional[List] = None):
        failures = list(failures or [])
        targets = ", ".join(str(getattr(f, "target", f)) for f in failures)
        super().__init__(f"{len(failures)} verification check(s) failed: {targets}")
        self.failures = failures
