"""Post-deploy verification - sample well-known URLs and check what the edge serves."""

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Sequence
from urllib.parse import urljoin, urlparse

import requests

from shared.logger import StructuredLogger
from site_deploy import content_types
from site_deploy.planner import edge_rewrite

MIME_PATTERN = re.compile(r"^[\w.+-]+/[\w.+-]+$")
MAX_WORKERS = 8


@dataclass(frozen=True)
class VerificationTarget:
    url: str
    expected_status: int = 200
    expected_content_type: Optional[str] = None

    @classmethod
    def parse(cls, entry: str, site_url: str = "") -> "VerificationTarget":
        """
        Parse ``path`` or ``path=content/type``.

        Relative paths are joined onto ``site_url``. Without an explicit type the
        expected one comes from the path the edge would serve.
        """
        entry = entry.strip()
        expected = None
        head, sep, tail = entry.rpartition("=")
        if sep and MIME_PATTERN.match(tail):
            entry, expected = head, tail

        if entry.startswith(("http://", "https://")):
            url = entry
        else:
            url = urljoin(site_url.rstrip("/") + "/", entry.lstrip("/"))

        if expected is None:
            path = urlparse(url).path or "/"
            expected = content_types.resolve(edge_rewrite(path)).split(";")[0]

        return cls(url=url, expected_content_type=expected)


@dataclass
class VerificationResult:
    target: str
    expected_status: int
    actual_status: Optional[int]
    expected_content_type: Optional[str]
    actual_content_type: Optional[str]
    passed: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


class Verifier:
    """Check status code and content type of each sample target."""

    def __init__(self, timeout: float = 15.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def verify(self, targets: Sequence[VerificationTarget]) -> List[VerificationResult]:
        if not targets:
            return []

        with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(targets))) as executor:
            results = list(executor.map(self.check, targets))

        failed = [r for r in results if not r.passed]
        log = StructuredLogger.warning if failed else StructuredLogger.info
        log("Verification finished", checked=len(results), failed=len(failed))
        return results

    def check(self, target: VerificationTarget) -> VerificationResult:
        """One GET. Every outcome, including timeouts, becomes a result entry."""
        try:
            response = self.session.get(target.url, timeout=self.timeout)
        except requests.Timeout:
            return self._failure(target, f"timed out after {self.timeout}s")
        except requests.RequestException as e:
            return self._failure(target, f"request failed: {str(e)}")

        actual_type = response.headers.get("Content-Type")
        error = None
        if response.status_code != target.expected_status:
            error = f"expected status {target.expected_status}, got {response.status_code}"
        elif target.expected_content_type and not (actual_type or "").lower().startswith(
            target.expected_content_type.lower()
        ):
            error = f"expected content type {target.expected_content_type}, got {actual_type}"

        result = VerificationResult(
            target=target.url,
            expected_status=target.expected_status,
            actual_status=response.status_code,
            expected_content_type=target.expected_content_type,
            actual_content_type=actual_type,
            passed=error is None,
            error=error,
        )
        if error:
            StructuredLogger.warning("Verification check failed", target=target.url, error=error)
        else:
            StructuredLogger.debug("Verification check passed", target=target.url)
        return result

    def _failure(self, target: VerificationTarget, error: str) -> VerificationResult:
        StructuredLogger.warning("Verification check failed", target=target.url, error=error)
        return VerificationResult(
            target=target.url,
            expected_status=target.expected_status,
            actual_status=None,
            expected_content_type=target.expected_content_type,
            actual_content_type=None,
            passed=False,
            error=error,
        )
