"""Prompt templates and inventory helpers for study material generation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List


PROMPT_REGISTRY_VERSION = "2026-10-01"


DIFFICULTY_GUIDANCE = {
    "kids": "Use simple words and short sentences suitable for children aged 8-12.",
    "highschool": "Use clear language appropriate for high school students.",
    "university": "Use academic language suitable for university-level students.",
    "professional": "Use sophisticated, professional terminology for advanced learners.",
}
DEFAULT_DIFFICULTY = "university"


PROMPT_STUDY_SYSTEM = """You are an expert educational content generator. Your task is to analyze the provided text and generate high-quality study materials.

Difficulty level: {difficulty_label}
{difficulty_guidance}

Generate ONLY the requested content types from this list: {requested_options}

Guidelines:
- Be accurate and comprehensive
- Extract key concepts and important information
- Make content engaging and easy to understand
- For MCQs: provide 4 options with exactly one correct answer
- For flashcards: create clear questions with concise answers
- For definitions: identify the most important terms
- Adapt language complexity to the difficulty level
- Return the result by calling the generate_study_materials function"""


PROMPT_IMAGE_OCR = """Extract all readable text from the attached image.
Instructions:
1. Preserve the reading order (top to bottom, left to right).
2. Keep headings, bullet points and paragraph breaks as plain text lines.
3. Transcribe handwriting when it is legible.
4. Do not describe the image, add commentary, or translate anything.
5. If the image contains no readable text, return an empty response."""


@dataclass(frozen=True)
class PromptRecord:
    prompt_id: str
    name: str
    template: str


PROMPT_RECORDS: List[PromptRecord] = [
    PromptRecord("study_system", "Study material generation (system)", PROMPT_STUDY_SYSTEM),
    PromptRecord("image_ocr", "Image text extraction", PROMPT_IMAGE_OCR),
]


def sanitize_difficulty(value: object) -> str:
    difficulty = str(value or "").strip().lower()
    return difficulty if difficulty in DIFFICULTY_GUIDANCE else DEFAULT_DIFFICULTY


def build_study_system_prompt(difficulty: str, options: List[str]) -> str:
    safe_difficulty = sanitize_difficulty(difficulty)
    return PROMPT_STUDY_SYSTEM.format(
        difficulty_label=safe_difficulty.upper(),
        difficulty_guidance=DIFFICULTY_GUIDANCE[safe_difficulty],
        requested_options=", ".join(options),
    )


def get_prompt_inventory() -> List[Dict[str, str]]:
    return [
        {
            "id": record.prompt_id,
            "name": record.name,
            "version": PROMPT_REGISTRY_VERSION,
            "template": record.template,
        }
        for record in PROMPT_RECORDS
    ]


def get_prompt_template(prompt_id: str) -> str:
    safe_id = str(prompt_id or "").strip()
    for record in PROMPT_RECORDS:
        if record.prompt_id == safe_id:
            return record.template
    raise KeyError(f"Unknown prompt id: {safe_id}")
