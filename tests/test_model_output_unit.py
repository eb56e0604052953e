# User value: This test validates output parsing and file reading so no job fails just because the model or a file was messy.
import unittest

from schemas.job import InputFile
from services.file_extractor import extract_file_text, render_input_context
from services.model_output import RAW_EXTRACTION_KEY, Raw, Structured, as_extracted_data, parse_model_output


class ModelOutputUnitTests(unittest.TestCase):
    def test_fenced_json_is_structured(self):
        parsed = parse_model_output('Here you go:\n```json\n{"personal": {"name": "Aisha"}}\n```')
        self.assertIsInstance(parsed, Structured)
        self.assertEqual(parsed.mode, "structured")
        self.assertEqual(as_extracted_data(parsed), {"personal": {"name": "Aisha"}})

    def test_prose_falls_back_to_raw(self):
        parsed = parse_model_output("I could not find any fields.")
        self.assertIsInstance(parsed, Raw)
        self.assertEqual(as_extracted_data(parsed), {RAW_EXTRACTION_KEY: "I could not find any fields."})

    def test_invalid_json_falls_back_to_raw(self):
        parsed = parse_model_output("{'single': 'quotes'}")
        self.assertEqual(parsed.mode, "raw")
        self.assertEqual(parsed.text, "{'single': 'quotes'}")

    def test_empty_text(self):
        self.assertEqual(as_extracted_data(parse_model_output("")), {RAW_EXTRACTION_KEY: ""})


class FileExtractorUnitTests(unittest.TestCase):
    def _file(self, filename, content=b"", content_type="application/octet-stream"):
        return InputFile(
            fieldname="doc",
            filename=filename,
            content_type=content_type,
            size_bytes=len(content),
            content=content,
        )

    def test_text_files_are_decoded(self):
        self.assertEqual(extract_file_text(self._file("notes.TXT", b"Gross: 5000")), "Gross: 5000")
        self.assertEqual(extract_file_text(self._file("data.json", b'{"a": 1}')), '{"a": 1}')

    def test_text_mime_without_extension(self):
        out = extract_file_text(self._file("upload", b"hello", content_type="text/plain"))
        self.assertEqual(out, "hello")

    def test_pdf_and_image_placeholders(self):
        pdf = extract_file_text(self._file("payslip.pdf", b"%PDF-1.7"))
        self.assertIn("[PDF Content from: payslip.pdf]", pdf)
        self.assertIn("[Size: 8 bytes]", pdf)
        self.assertIn("[Requires OCR processing]", pdf)

        image = extract_file_text(self._file("roof.JPG", b"\xff\xd8"))
        self.assertIn("[Image Content from: roof.JPG]", image)
        self.assertIn("[Requires image OCR]", image)

    def test_unknown_type_placeholder(self):
        self.assertEqual(extract_file_text(self._file("contract.docx", b"PK")), "[Unknown file type: contract.docx]")

    def test_render_input_context_labels_each_file(self):
        files = [self._file("a.txt", b"first"), self._file("b.txt", b"second")]
        out = render_input_context(files)
        self.assertEqual(out, "--- a.txt ---\nfirst\n\n--- b.txt ---\nsecond\n")

    def test_render_input_context_uses_injected_extractor(self):
        out = render_input_context([self._file("a.pdf")], extractor=lambda f: "OCR TEXT")
        self.assertIn("OCR TEXT", out)


if __name__ == "__main__":
    unittest.main()
