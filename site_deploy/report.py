"""Deployment report - accumulated during a run, emitted at the end."""

import json
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

SUCCESS = "success"
FAILURE = "failure"
SKIPPED = "skipped"


@dataclass
class StageOutcome:
    stage: str
    outcome: str
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


class DeploymentReport:
    """Append-only, lock-protected record of one deployment run."""

    def __init__(self, run_id: Optional[str] = None):
        self._lock = threading.Lock()
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.started_at = datetime.now(timezone.utc)
        self.finished_at: Optional[datetime] = None
        self.final_state: Optional[str] = None
        self.stages: List[StageOutcome] = []
        self.files_uploaded = 0
        self.bytes_transferred = 0
        self.failed_keys: Dict[str, str] = {}
        self.pruned_keys: List[str] = []
        self.invalidation_id: Optional[str] = None
        self.invalidation_paths: List[str] = []
        self.invalidation_status: Optional[str] = None
        self.verification_failures: List[Dict[str, Any]] = []

    def record_stage(self, stage: str, outcome: str, message: str = "", **details) -> None:
        with self._lock:
            self.stages.append(StageOutcome(stage, outcome, message, details))

    def record_upload(self, files: int, bytes_transferred: int, failed: Dict[str, str], pruned: List[str]) -> None:
        with self._lock:
            self.files_uploaded += files
            self.bytes_transferred += bytes_transferred
            self.failed_keys.update(failed)
            self.pruned_keys.extend(pruned)

    def record_invalidation(self, invalidation_id: Optional[str], paths: List[str], status: Optional[str]) -> None:
        with self._lock:
            self.invalidation_id = invalidation_id
            self.invalidation_paths = list(paths)
            self.invalidation_status = status

    def record_verification_failures(self, failures: List[Dict[str, Any]]) -> None:
        with self._lock:
            self.verification_failures.extend(failures)

    def finish(self, final_state: str) -> None:
        with self._lock:
            self.final_state = final_state
            self.finished_at = datetime.now(timezone.utc)

    def stage(self, name: str) -> Optional[StageOutcome]:
        for outcome in self.stages:
            if outcome.stage == name:
                return outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "run_id": self.run_id,
                "started_at": self.started_at.isoformat(),
                "finished_at": self.finished_at.isoformat() if self.finished_at else None,
                "final_state": self.final_state,
                "stages": [asdict(s) for s in self.stages],
                "files_uploaded": self.files_uploaded,
                "bytes_transferred": self.bytes_transferred,
                "failed_keys": dict(self.failed_keys),
                "pruned_keys": list(self.pruned_keys),
                "invalidation": {
                    "id": self.invalidation_id,
                    "paths": list(self.invalidation_paths),
                    "status": self.invalidation_status,
                },
                "verification_failures": list(self.verification_failures),
            }

    def write_json(self, path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2, default=str))
        return path

    def render(self) -> str:
        """Human-readable summary."""
        data = self.to_dict()
        lines = [
            f"Deployment {data['run_id']}: {data['final_state'] or 'incomplete'}",
            f"  started:  {data['started_at']}",
            f"  finished: {data['finished_at'] or '-'}",
            "",
            "Stages:",
        ]
        for stage in data["stages"]:
            line = f"  [{stage['outcome'].upper():7}] {stage['stage']}"
            if stage["message"]:
                line += f" - {stage['message']}"
            lines.append(line)

        lines.append("")
        lines.append(f"Files uploaded: {data['files_uploaded']} ({data['bytes_transferred']} bytes)")
        if data["failed_keys"]:
            lines.append("Failed uploads:")
            lines.extend(f"  {key}: {error}" for key, error in sorted(data["failed_keys"].items()))
        if data["pruned_keys"]:
            lines.append(f"Pruned objects: {len(data['pruned_keys'])}")

        invalidation = data["invalidation"]
        if invalidation["id"]:
            lines.append(f"Invalidation {invalidation['id']}: {invalidation['status']}")
            lines.extend(f"  {p}" for p in invalidation["paths"])

        if data["verification_failures"]:
            lines.append("Verification failures:")
            for failure in data["verification_failures"]:
                lines.append(f"  {failure.get('target')}: {failure.get('error')}")

        return "\n".join(lines)
