# User value: This file turns uploaded documents into prompt text and never fails a job over an unreadable file.
import os

TEXT_EXTENSIONS = {".txt", ".csv", ".json", ".md"}
PDF_EXTENSIONS = {".pdf"}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".tif", ".tiff", ".bmp"}

TEXT_MIME_PREFIXES = ("text/", "application/json")


# User value: parses extension consistently so users get deterministic extraction behavior.
def _extension(filename: str | None) -> str:
    return os.path.splitext(str(filename or "").strip().lower())[1]


# User value: reads what can be read and marks the rest for OCR instead of dropping it.
def extract_file_text(file) -> str:
    ext = _extension(file.filename)
    mime = str(file.content_type or "").strip().lower()

    if ext in TEXT_EXTENSIONS or (not ext and mime.startswith(TEXT_MIME_PREFIXES)):
        return bytes(file.content or b"").decode("utf-8", errors="replace")

    if ext in PDF_EXTENSIONS:
        return (
            f"[PDF Content from: {file.filename}]\n"
            f"[Size: {file.size_bytes} bytes]\n"
            "[Requires OCR processing]"
        )

    if ext in IMAGE_EXTENSIONS:
        return (
            f"[Image Content from: {file.filename}]\n"
            f"[Size: {file.size_bytes} bytes]\n"
            "[Requires image OCR]"
        )

    return f"[Unknown file type: {file.filename}]"


# User value: joins every document into one labelled context so the model sees all inputs at once.
def render_input_context(files, extractor=extract_file_text) -> str:
    sections = []
    for file in files:
        sections.append(f"--- {file.filename} ---\n{extractor(file)}\n")
    return "\n".join(sections)
