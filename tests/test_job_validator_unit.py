# User value: This test validates submission checks so malformed jobs are refused with field-level reasons.
import unittest

from schemas.job import InputFile
from schemas.job_contract import MB, TRANSFORM_MORTGAGE, TRANSFORM_SOLAR
from services.job_validator import (
    validate_files,
    validate_job_shape,
    validate_tenant,
)


def _file(fieldname, size=100, filename=None):
    return InputFile(
        fieldname=fieldname,
        filename=filename or f"{fieldname}.pdf",
        content_type="application/pdf",
        size_bytes=size,
        content=b"%PDF",
    )


class JobValidatorUnitTests(unittest.TestCase):
    def test_valid_shape_has_no_errors(self):
        errors = validate_job_shape({"job_type": "format_transform", "transform_type": TRANSFORM_SOLAR})
        self.assertEqual(errors, [])

    def test_missing_and_unknown_enums_are_reported(self):
        errors = validate_job_shape({"transform_type": "credit_score"})
        fields = [e["field"] for e in errors]
        self.assertEqual(fields, ["job_type", "transform_type"])
        self.assertIn("Invalid transform type", errors[1]["message"])

    def test_unknown_job_type(self):
        errors = validate_job_shape({"job_type": "decision", "transform_type": TRANSFORM_MORTGAGE})
        self.assertEqual(errors[0]["field"], "job_type")

    def test_metadata_must_be_object(self):
        errors = validate_job_shape(
            {"job_type": "format_transform", "transform_type": TRANSFORM_MORTGAGE, "metadata": ["x"]}
        )
        self.assertEqual(errors, [{"field": "metadata", "message": "Metadata must be an object"}])

    def test_tenant_is_required(self):
        self.assertEqual(validate_tenant({"tenant_id": "t"}), [])
        self.assertEqual(validate_tenant({"tenant_id": "  "})[0]["field"], "tenant_id")
        self.assertEqual(validate_tenant({})[0]["field"], "tenant_id")

    def test_mortgage_requires_payslip(self):
        errors = validate_files(TRANSFORM_MORTGAGE, [_file("bank_statement")])
        self.assertEqual(errors, [{"field": "files", "message": "Required file missing: payslip"}])

    def test_solar_requires_bill_and_photo(self):
        errors = validate_files(TRANSFORM_SOLAR, [_file("electricity_bill")])
        self.assertEqual([e["message"] for e in errors], ["Required file missing: roof_photo"])

    def test_too_many_files(self):
        files = [_file("payslip"), _file("ic_front"), _file("bank_statement"), _file("bank_statement")]
        errors = validate_files(TRANSFORM_MORTGAGE, files)
        self.assertIn("Too many files. Maximum: 3", [e["message"] for e in errors])

    def test_total_size_limit(self):
        errors = validate_files(TRANSFORM_SOLAR, [_file("electricity_bill", 10 * MB), _file("roof_photo", 6 * MB)])
        self.assertEqual(errors[0]["message"], "Total file size exceeds limit: 15MB")

    def test_valid_files(self):
        files = [_file("payslip"), _file("ic_front")]
        self.assertEqual(validate_files(TRANSFORM_MORTGAGE, files), [])


if __name__ == "__main__":
    unittest.main()
