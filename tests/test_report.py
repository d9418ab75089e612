"""Tests for the DeploymentReport accumulator."""

import json
import threading

from site_deploy.report import FAILURE, SUCCESS, DeploymentReport


class TestDeploymentReport:
    def test_concurrent_appends(self):
        report = DeploymentReport()

        def worker(n):
            for i in range(100):
                report.record_upload(1, 10, {}, [])
                report.record_stage(f"s{n}", SUCCESS)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert report.files_uploaded == 800
        assert report.bytes_transferred == 8000
        assert len(report.stages) == 800

    def test_render_lists_failures(self):
        report = DeploymentReport(run_id="run-1")
        report.record_stage("upload", FAILURE, "1 file(s) failed")
        report.record_upload(2, 20, {"about/index.html": "AccessDenied"}, [])
        report.record_verification_failures([{"target": "https://e.com/", "error": "timed out"}])
        report.finish("Failed")

        text = report.render()

        assert "Deployment run-1: Failed" in text
        assert "[FAILURE] upload - 1 file(s) failed" in text
        assert "about/index.html: AccessDenied" in text
        assert "https://e.com/: timed out" in text

    def test_json(self, tmp_path):
        report = DeploymentReport(run_id="run-2")
        report.record_invalidation("I1", ["/", "/about*"], "Completed")
        report.finish("Succeeded")

        path = report.write_json(tmp_path / "reports" / "deploy.json")
        data = json.loads(path.read_text())

        assert data["run_id"] == "run-2"
        assert data["final_state"] == "Succeeded"
        assert data["invalidation"] == {"id": "I1", "paths": ["/", "/about*"], "status": "Completed"}
        assert data["finished_at"] is not None
