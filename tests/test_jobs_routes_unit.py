# User value: This test validates the HTTP surface so clients see the same codes and bodies the lifecycle promises.
import json
import time
import unittest

from fastapi.testclient import TestClient

from app import app
from fakes import MORTGAGE_JSON, FakeModelClient, MemoryArtifactStore
from services.extraction_executor import ExtractionExecutor
from services.job_manager import JobManager
from utils.metrics import reset

MORTGAGE_FORM = {
    "tenant_id": "tenant-a",
    "job_type": "format_transform",
    "transform_type": "mortgage_eligibility_summary",
}
PAYSLIP = {"payslip": ("payslip.txt", b"Employer: ACME Sdn Bhd\nGross: 5200", "text/plain")}


class JobsRoutesUnitTests(unittest.TestCase):
    def setUp(self):
        reset()
        self.client_model = FakeModelClient(MORTGAGE_JSON)
        self.manager = JobManager(ExtractionExecutor(self.client_model, MemoryArtifactStore()), max_retries=2)
        app.state.job_manager = self.manager

    def tearDown(self):
        app.state.job_manager = None

    def _wait_for_terminal(self, client, job_id):
        for _ in range(300):
            body = client.get(f"/api/jobs/{job_id}/status").json()
            if body["status"] in ("completed", "failed"):
                return body
            time.sleep(0.01)
        self.fail(f"job {job_id} did not finish")

    def test_submit_then_read_status_result_and_proof(self):
        with TestClient(app) as client:
            res = client.post(
                "/api/jobs/submit",
                data=dict(MORTGAGE_FORM, metadata=json.dumps({"branch": "KL"})),
                files=PAYSLIP,
                headers={"X-Request-ID": "req-test-000001"},
            )
            self.assertEqual(res.status_code, 202)
            self.assertEqual(res.headers["X-Request-ID"], "req-test-000001")
            job_id = res.json()["job_id"]
            self.assertEqual(res.json()["status"], "queued")

            status = self._wait_for_terminal(client, job_id)
            self.assertEqual(status["status"], "completed")
            self.assertEqual(status["progress"], 100)

            result = client.get(f"/api/jobs/{job_id}/result")
            self.assertEqual(result.status_code, 200)
            self.assertEqual(result.json()["extracted_data"]["employment"]["employer"], "ACME Sdn Bhd")

            proof = client.get(f"/api/jobs/{job_id}/proof")
            self.assertEqual(proof.status_code, 200)
            self.assertTrue(proof.json()["proof"]["integrity"]["output_hash"].startswith("sha256:"))
            self.assertEqual(proof.json()["token_metrics"]["total_tokens"], 1500)
            self.assertEqual(self.manager.get_job(job_id).metadata, {"branch": "KL"})

    # User value: a chained request gets an explicit blocked response and leaves an audit entry.
    def test_chained_submission_is_blocked(self):
        with TestClient(app) as client:
            res = client.post(
                "/api/jobs/submit",
                json={"transform_type": "mortgage_eligibility_summary", "previous_job_id": "x"},
            )
            self.assertEqual(res.status_code, 403)
            body = res.json()
            self.assertTrue(body["blocked"])
            self.assertEqual(body["error_code"], "GOVERNANCE_VIOLATION")
            self.assertIn("previous_job_id", body["reason"])
            self.assertEqual(body["path"], "/api/jobs/submit")
            self.assertTrue(body["request_id"])

            audit = client.get("/governance/violations").json()
            self.assertEqual(audit["total"], 1)
            self.assertEqual(self.client_model.calls, [])

    def test_reference_flag_in_form_is_blocked(self):
        with TestClient(app) as client:
            res = client.post(
                "/api/jobs/submit", data=dict(MORTGAGE_FORM, references_previous="true"), files=PAYSLIP
            )
            self.assertEqual(res.status_code, 403)

    def test_validation_errors(self):
        with TestClient(app) as client:
            missing = client.post("/api/jobs/submit", data=MORTGAGE_FORM, files={"bank_statement": ("b.txt", b"x", "text/plain")})
            self.assertEqual(missing.status_code, 400)
            self.assertEqual(missing.json()["error_code"], "VALIDATION_ERROR")
            self.assertEqual(missing.json()["detail"][0]["message"], "Required file missing: payslip")

            bad_meta = client.post("/api/jobs/submit", data=dict(MORTGAGE_FORM, metadata="{not json"), files=PAYSLIP)
            self.assertEqual(bad_meta.status_code, 400)
            self.assertEqual(bad_meta.json()["detail"][0]["field"], "metadata")

    def test_unknown_job_is_404(self):
        with TestClient(app) as client:
            res = client.get("/api/jobs/nope/status")
            self.assertEqual(res.status_code, 404)
            self.assertEqual(res.json()["error_code"], "JOB_NOT_FOUND")

    def test_failed_job_result_and_retry(self):
        self.client_model.outcomes = [RuntimeError("overloaded"), MORTGAGE_JSON]
        with TestClient(app) as client:
            job_id = client.post("/api/jobs/submit", data=MORTGAGE_FORM, files=PAYSLIP).json()["job_id"]
            self.assertEqual(self._wait_for_terminal(client, job_id)["status"], "failed")

            result = client.get(f"/api/jobs/{job_id}/result")
            self.assertEqual(result.status_code, 409)
            self.assertEqual(result.json()["error_code"], "JOB_NOT_COMPLETED")

            blocked = client.post(f"/api/jobs/{job_id}/retry", json={"job_id": "another-job"})
            self.assertEqual(blocked.status_code, 403)
            self.assertTrue(blocked.json()["blocked"])

            grown = client.post(f"/api/jobs/{job_id}/retry", json={"new_files": ["extra.pdf"]})
            self.assertEqual(grown.status_code, 403)

            retried = client.post(f"/api/jobs/{job_id}/retry")
            self.assertEqual(retried.status_code, 202)
            self.assertEqual(retried.json()["job_id"], job_id)
            self.assertEqual(retried.json()["retry_count"], 1)

            self.assertEqual(self._wait_for_terminal(client, job_id)["status"], "completed")
            self.assertIsNone(client.get(f"/api/jobs/{job_id}/status").json()["error"])

    def test_retry_limit_is_409(self):
        with TestClient(app) as client:
            job_id = client.post("/api/jobs/submit", data=MORTGAGE_FORM, files=PAYSLIP).json()["job_id"]
            self._wait_for_terminal(client, job_id)
            for _ in range(2):
                self.assertEqual(client.post(f"/api/jobs/{job_id}/retry").status_code, 202)
                self._wait_for_terminal(client, job_id)
            res = client.post(f"/api/jobs/{job_id}/retry")
            self.assertEqual(res.status_code, 409)
            self.assertEqual(res.json()["error_code"], "RETRY_LIMIT_EXCEEDED")

    def test_contract_health_and_governance_status(self):
        with TestClient(app) as client:
            contract = client.get("/contract/job-status").json()
            self.assertIn("mortgage_eligibility_summary", contract["transform_types"])
            self.assertIn("expired", contract["job_statuses"])
            self.assertEqual(contract["file_constraints"]["solar_proposal_draft"]["max_files"], 3)

            health = client.get("/health").json()
            self.assertEqual(health["status"], "OK")
            self.assertTrue(health["manager_ready"])
            self.assertIn("counters", health["metrics"])

            guard = client.get("/governance/continuity").json()
            self.assertEqual(guard["invariant"], "no_continuity")


if __name__ == "__main__":
    unittest.main()
