# User value: This test validates continuity rules so chained or memory-style jobs are always refused and audited.
import unittest

from schemas.job_contract import TRANSFORM_MORTGAGE
from services.continuity_guard import (
    ContinuityGuard,
    FieldRule,
    FlagRule,
    PhraseRule,
    default_rules,
)


def _fields(**extra):
    fields = {
        "tenant_id": "tenant-a",
        "job_type": "format_transform",
        "transform_type": TRANSFORM_MORTGAGE,
        "idempotency_key": "idem-1",
    }
    fields.update(extra)
    return fields


class ContinuityGuardSubmissionUnitTests(unittest.TestCase):
    def setUp(self):
        self.guard = ContinuityGuard(clock=lambda: "2026-01-01T00:00:00+00:00")

    def test_clean_submission_is_allowed(self):
        decision = self.guard.evaluate_submission(_fields(prompt="Extract the payslip fields."))
        self.assertTrue(decision.allowed)
        self.assertIsNone(decision.reason)
        self.assertEqual(self.guard.get_violations(), [])

    def test_explicit_reference_flag_is_blocked(self):
        decision = self.guard.evaluate_submission(_fields(references_previous=True))
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.reason, "Continuity violation: Jobs cannot reference previous job outputs")
        self.assertEqual(decision.violation["violations"][0]["type"], "EXPLICIT_REFERENCE")

    def test_false_reference_flag_is_ignored(self):
        self.assertTrue(self.guard.evaluate_submission(_fields(references_previous=False)).allowed)

    # User value: field presence alone is enough; an empty chain id still implies chaining.
    def test_forbidden_field_blocks_regardless_of_value(self):
        decision = self.guard.evaluate_submission(_fields(previous_job_id=None))
        self.assertFalse(decision.allowed)
        self.assertIn("previous_job_id", decision.reason)
        self.assertEqual(decision.violation["violations"][0]["field"], "previous_job_id")

    def test_forbidden_field_inside_metadata_is_reported_with_path(self):
        decision = self.guard.evaluate_submission(_fields(metadata={"chain_id": "c-9", "source": "branch"}))
        self.assertFalse(decision.allowed)
        violation = decision.violation["violations"][0]
        self.assertEqual(violation["type"], "FORBIDDEN_METADATA_FIELD")
        self.assertEqual(violation["field"], "metadata.chain_id")

    def test_all_forbidden_fields_in_one_pass_are_collected(self):
        decision = self.guard.evaluate_submission(_fields(depends_on="a", workflow_id="w"))
        fields = [v["field"] for v in decision.violation["violations"]]
        self.assertEqual(fields, ["depends_on", "workflow_id"])

    def test_continuity_phrase_in_prompt_is_blocked(self):
        decision = self.guard.evaluate_submission(
            _fields(prompt="As we discussed last time, fill in the gaps.")
        )
        self.assertFalse(decision.allowed)
        self.assertEqual(
            decision.reason, "Continuity violation: Content contains language implying continuity/memory"
        )
        self.assertEqual(len(decision.violation["violations"]), 2)

    def test_phrase_matching_is_case_insensitive_and_covers_instructions(self):
        decision = self.guard.evaluate_submission(_fields(instructions="This is STEP 2 OF 5."))
        self.assertFalse(decision.allowed)

    def test_phrases_outside_free_text_fields_are_not_scanned(self):
        decision = self.guard.evaluate_submission(_fields(metadata={"note": "next step is review"}))
        self.assertTrue(decision.allowed)

    # User value: the first pass that fires decides the reason, so audit entries stay focused.
    def test_first_failing_pass_short_circuits(self):
        decision = self.guard.evaluate_submission(
            _fields(references_previous=True, previous_job_id="x", prompt="continuing from yesterday")
        )
        types = {v["type"] for v in decision.violation["violations"]}
        self.assertEqual(types, {"EXPLICIT_REFERENCE"})

    def test_violations_are_appended_and_can_be_cleared(self):
        self.guard.evaluate_submission(_fields(parent_job="p"))
        self.guard.evaluate_submission(_fields(last_result="r"))
        violations = self.guard.get_violations()
        self.assertEqual(len(violations), 2)
        self.assertEqual(violations[0]["kind"], "submission")
        self.assertEqual(violations[0]["tenant_id"], "tenant-a")
        self.assertEqual(violations[0]["timestamp"], "2026-01-01T00:00:00+00:00")

        violations.clear()
        self.assertEqual(len(self.guard.get_violations()), 2)

        self.guard.clear_violations()
        self.assertEqual(self.guard.get_violations(), [])

    def test_custom_rule_list_is_respected(self):
        guard = ContinuityGuard(rules=[FlagRule()])
        self.assertTrue(guard.evaluate_submission(_fields(previous_job_id="x")).allowed)
        self.assertFalse(guard.evaluate_submission(_fields(references_previous=True)).allowed)

    def test_default_rules_order(self):
        rules = default_rules()
        self.assertIsInstance(rules[0], FlagRule)
        self.assertIsInstance(rules[1], FieldRule)
        self.assertIsInstance(rules[2], PhraseRule)

    def test_status_reports_totals(self):
        self.guard.evaluate_submission(_fields(next_step="x"))
        status = self.guard.get_status()
        self.assertTrue(status["enabled"])
        self.assertEqual(status["invariant"], "no_continuity")
        self.assertEqual(status["total_violations"], 1)
        self.assertEqual(status["rule_count"], 3)
        self.assertEqual(status["forbidden_field_count"], 13)
        self.assertEqual(status["content_pattern_count"], 12)

    def test_find_chain_references(self):
        hits = self.guard.find_chain_references(
            {"references_previous": True, "metadata": {"sequence_id": 3}, "tenant_id": "t"}
        )
        self.assertEqual(hits, ["references_previous", "metadata.sequence_id"])


class ContinuityGuardRetryUnitTests(unittest.TestCase):
    def setUp(self):
        self.guard = ContinuityGuard()
        self.original = {"job_id": "job-1", "idempotency_key": "idem-1", "tenant_id": "tenant-a"}

    def test_same_identity_retry_is_allowed(self):
        decision = self.guard.evaluate_retry(self.original, {"job_id": "job-1", "idempotency_key": "idem-1"})
        self.assertTrue(decision.allowed)

    def test_retry_without_key_is_allowed(self):
        self.assertTrue(self.guard.evaluate_retry(self.original, {"job_id": "job-1"}).allowed)

    def test_retry_with_different_job_id_is_rejected(self):
        decision = self.guard.evaluate_retry(self.original, {"job_id": "job-2"})
        self.assertFalse(decision.allowed)
        self.assertIn("same job_id", decision.reason)

    def test_retry_with_different_key_is_rejected(self):
        decision = self.guard.evaluate_retry(self.original, {"job_id": "job-1", "idempotency_key": "other"})
        self.assertFalse(decision.allowed)
        self.assertIn("idempotency_key", decision.reason)

    def test_retry_with_new_inputs_is_rejected(self):
        for field in ("additional_inputs", "new_files", "files"):
            decision = self.guard.evaluate_retry(self.original, {"job_id": "job-1", field: ["x.pdf"]})
            self.assertFalse(decision.allowed, field)
            self.assertIn("new inputs", decision.reason)

    def test_retry_rejections_are_audited(self):
        self.guard.evaluate_retry(self.original, {"job_id": "job-2"})
        violations = self.guard.get_violations()
        self.assertEqual(len(violations), 1)
        self.assertEqual(violations[0]["kind"], "retry")
        self.assertEqual(violations[0]["idempotency_key"], "idem-1")

    # User value: the audit entry names the field that broke retry identity, not a fixed placeholder.
    def test_retry_audit_names_the_failing_field(self):
        self.guard.evaluate_retry(self.original, {"job_id": "job-2"})
        self.guard.evaluate_retry(self.original, {"job_id": "job-1", "idempotency_key": "other"})
        self.guard.evaluate_retry(self.original, {"job_id": "job-1", "new_files": ["x.pdf"]})
        fields = [v["violations"][0]["field"] for v in self.guard.get_violations()]
        self.assertEqual(fields, ["job_id", "idempotency_key", "new_files"])


class ContinuityGuardResultUnitTests(unittest.TestCase):
    def setUp(self):
        self.guard = ContinuityGuard()

    def test_clean_result(self):
        out = self.guard.evaluate_result(
            {
                "outputs": [{"name": "extracted_data.json", "content": '{"employer": "ACME"}'}],
                "extracted_data": {"employer": "ACME"},
            }
        )
        self.assertEqual(out, {"clean": True, "warnings": []})

    def test_output_text_with_continuity_phrase_warns(self):
        out = self.guard.evaluate_result(
            {"outputs": [{"name": "summary.txt", "content": "Next step: book a call."}]}
        )
        self.assertFalse(out["clean"])
        self.assertEqual(out["warnings"][0]["type"], "OUTPUT_CONTINUITY_LANGUAGE")
        self.assertEqual(out["warnings"][0]["output"], "summary.txt")

    def test_nested_forbidden_field_in_extracted_data_warns(self):
        out = self.guard.evaluate_result(
            {"outputs": [], "extracted_data": {"personal": {"name": "A"}, "items": [{"workflow_id": 7}]}}
        )
        self.assertFalse(out["clean"])
        self.assertEqual(out["warnings"][0]["type"], "OUTPUT_FORBIDDEN_FIELD")
        self.assertEqual(out["warnings"][0]["field"], "items[0].workflow_id")

    def test_structured_output_data_is_scanned(self):
        out = self.guard.evaluate_result({"outputs": [{"name": "data", "data": {"next_step": "call"}}]})
        self.assertEqual(out["warnings"][0]["field"], "next_step")

    def test_result_scan_does_not_record_violations(self):
        self.guard.evaluate_result({"outputs": [{"name": "x", "content": "as mentioned before"}]})
        self.assertEqual(self.guard.get_violations(), [])


if __name__ == "__main__":
    unittest.main()
