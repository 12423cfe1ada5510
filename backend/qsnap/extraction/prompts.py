"""Prompt text for single-question extraction."""

from __future__ import annotations

SYSTEM_PROMPT = (
    "You are an expert AI assistant helping students digitize their incorrect questions "
    "for review and practice. Your task is to extract question text from images of "
    "homework, exams, or worksheets with high precision."
)


def build_user_prompt(grade_level: str) -> str:
    return f"""
Carefully analyze the provided image and extract the question text according to these rules:

**EXTRACT:**
- The complete question text exactly as it appears
- Any diagrams, figures, or charts descriptions (e.g., "See Figure 1: [brief description]")
- Multiple choice options if they are part of the question (A, B, C, D)

**DO NOT EXTRACT:**
- Student's handwritten or typed answers
- Other questions on the same page (extract only ONE question)
- Page numbers, headers, footers, or instructional text
- Teacher's marks, grades, or comments

**INSTRUCTIONS:**
1. If multiple questions appear in the image, extract ONLY the FIRST complete question
2. If the question references a diagram or image, describe it briefly
3. Preserve mathematical notation, symbols, and formatting as closely as possible
4. If no clear question is found, return an error

**OUTPUT FORMAT:**
Return ONLY valid JSON (no markdown, no code blocks):
{{
  "questionText": "The extracted question text here",
  "confidence": 0.95,
  "noiseFiltered": true,
  "errorMessage": null,
  "educationLevel": "{grade_level}"
}}

- **questionText**: The complete extracted question (empty string if extraction failed)
- **confidence**: Your confidence score from 0.0 to 1.0
- **noiseFiltered**: true if you removed student answers or other noise, false otherwise
- **errorMessage**: null if successful, or a student-friendly error message if failed

**CONTEXT:**
This is a {grade_level} school level question from a student's homework or exam.
""".strip()


def build_messages(*, image_data_url: str, grade_level: str) -> list[dict]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": build_user_prompt(grade_level)},
                {"type": "image_url", "image_url": {"url": image_data_url}},
            ],
        },
    ]
