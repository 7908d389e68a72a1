import io
from types import SimpleNamespace

import pytest
from google.genai import types
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from study_generator.services import extraction_service


def _pdf_bytes(lines):
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    y = 780
    for line in lines:
        pdf.drawString(72, y, line)
        y -= 18
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def test_plain_text_is_returned_verbatim():
    raw = "Line one\n\n   indented line two\twith tab\n"

    text = extraction_service.extract_text(raw.encode("utf-8"), "notes.txt", "text/plain")

    assert text == raw


@pytest.mark.parametrize(
    "payload",
    [
        "Café notes: mitochondria is the powerhouse!!".encode("cp1252"),
        "\ufeffCafé notes: mitochondria is the powerhouse!!".encode("utf-16-le"),
        "Café notes: mitochondria is the powerhouse!!".encode("utf-16"),
    ],
)
def test_legacy_and_utf16_text_files_decode_cleanly(payload):
    text = extraction_service.extract_text(payload, "notes.txt", "text/plain")

    assert text == "Café notes: mitochondria is the powerhouse!!"


def test_word_documents_are_rejected_with_conversion_hint():
    with pytest.raises(extraction_service.ExtractionError) as excinfo:
        extraction_service.extract_text(b"PK\x03\x04", "lecture.docx", "")

    assert excinfo.value.status_code == 400
    assert "convert your document to PDF or TXT" in excinfo.value.message


def test_unsupported_type_is_rejected():
    with pytest.raises(extraction_service.ExtractionError) as excinfo:
        extraction_service.extract_text(b"\x00\x01", "archive.zip", "application/zip")

    assert excinfo.value.message == extraction_service.ERROR_UNSUPPORTED


def test_too_short_text_is_rejected():
    with pytest.raises(extraction_service.ExtractionError) as excinfo:
        extraction_service.extract_text(b"hi", "tiny.txt", "text/plain")

    assert excinfo.value.message == extraction_service.ERROR_EMPTY


def test_pdf_text_is_extracted_and_whitespace_collapsed():
    data = _pdf_bytes(["Photosynthesis converts light energy", "into chemical energy in plants."])

    text = extraction_service.extract_text(data, "biology.pdf", "application/pdf")

    assert "Photosynthesis converts light energy" in text
    assert "\n" not in text


def test_unreadable_pdf_is_rejected():
    with pytest.raises(extraction_service.ExtractionError) as excinfo:
        extraction_service.extract_text(b"%PDF-1.4 not really a pdf", "broken.pdf", "application/pdf")

    assert excinfo.value.status_code == 400
    assert excinfo.value.message in {extraction_service.ERROR_PDF_PARSE, extraction_service.ERROR_EMPTY}


def test_mime_type_is_inferred_from_extension():
    assert extraction_service.resolve_mime_type("scan.JPG", "application/octet-stream") == "image/jpeg"
    assert extraction_service.resolve_mime_type("notes.txt", "text/plain; charset=utf-8") == "text/plain"


def test_image_text_uses_ocr_model():
    calls = []

    def _generate_content(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(text="  The Krebs cycle\n happens in the matrix.  ")

    client = SimpleNamespace(models=SimpleNamespace(generate_content=_generate_content))

    text = extraction_service.extract_text(
        b"\x89PNG fake image",
        "board.png",
        "image/png",
        client=client,
        types_module=types,
        model="ocr-model",
    )

    assert text == "The Krebs cycle happens in the matrix."
    assert calls[0]["model"] == "ocr-model"


def test_image_without_client_is_unavailable():
    with pytest.raises(extraction_service.ExtractionError) as excinfo:
        extraction_service.extract_text(b"\x89PNG", "board.png", "image/png", client=None, types_module=types)

    assert excinfo.value.status_code == 500
