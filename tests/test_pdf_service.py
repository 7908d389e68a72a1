from datetime import datetime, timezone

import pytest
from pypdf import PdfReader

from study_generator.services import pdf_service

CONTENT = {
    "summary": "Cells are the **basic unit** of life.\n\nThey divide by mitosis.",
    "flashcards": [{"question": "What is a cell?", "answer": "The basic unit of life"}],
    "mcqs": [
        {"question": "Where is DNA stored?", "options": ["Nucleus", "Ribosome", "Membrane", "Wall"], "correctAnswer": 0},
    ],
    "trueFalse": [{"statement": "Red blood cells have a nucleus", "answer": False}],
    "definitions": [{"term": "Mitosis", "definition": "Cell division producing two identical cells"}],
    "kidsExplanation": "",
}


def _page_texts(pdf_io):
    reader = PdfReader(pdf_io)
    return [page.extract_text() or "" for page in reader.pages]


def test_combined_export_orders_sections_and_puts_mcqs_on_new_page():
    pdf_io = pdf_service.build_study_pdf(
        CONTENT,
        difficulty="highschool",
        watermark_name="Ayesha Khan",
        generated_on=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )

    assert pdf_io.getvalue().startswith(b"%PDF")
    pages = _page_texts(pdf_io)
    assert len(pages) >= 2
    first = pages[0]
    assert "Complete Study Materials" in first
    assert "Difficulty Level: High School" in first
    assert "Generated on March 1, 2026" in first
    assert "Generated for: Ayesha Khan" in first
    assert first.index("Summary") < first.index("Key Definitions") < first.index("Flashcards")
    assert "Multiple Choice Questions" not in first
    assert "Multiple Choice Questions" in pages[-1]
    assert f"Page 1 of {len(pages)}" in first


def test_single_section_export():
    pdf_io = pdf_service.build_study_pdf(CONTENT, section="flashcards")

    pages = _page_texts(pdf_io)
    assert "What is a cell?" in pages[0]
    assert "Where is DNA stored?" not in "".join(pages)


def test_export_sections_validation():
    assert pdf_service.resolve_export_sections(CONTENT, "all")[-1] == "mcqs"
    assert "kidsExplanation" not in pdf_service.resolve_export_sections(CONTENT)

    with pytest.raises(pdf_service.ExportError, match="Unknown section"):
        pdf_service.resolve_export_sections(CONTENT, "quiz")
    with pytest.raises(pdf_service.ExportError, match="No kids mode explanation to export"):
        pdf_service.resolve_export_sections(CONTENT, "kidsExplanation")
    with pytest.raises(pdf_service.ExportError, match="No content to export"):
        pdf_service.resolve_export_sections({"summary": "  "})


def test_export_filenames():
    assert pdf_service.export_filename(None) == "complete-study-materials.pdf"
    assert pdf_service.export_filename("all") == "complete-study-materials.pdf"
    assert pdf_service.export_filename("trueFalse") == "trueFalse.pdf"


def test_inline_markup_is_escaped_before_bold_conversion():
    assert pdf_service.inline_to_pdf_html("<script> **bold**") == "&lt;script&gt; <b>bold</b>"


def test_unknown_difficulty_label_defaults_to_university():
    assert pdf_service.difficulty_label("expert") == "University"
