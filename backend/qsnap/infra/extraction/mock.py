from __future__ import annotations

import asyncio

from qsnap.domain.models import ExtractionResult, GradeLevel
from qsnap.infra.ports.extraction import ExtractionPort, Sleep

MOCK_QUESTION_TEXT = (
    "1. Which of the following substances is a pure substance? (  )\n"
    "A. Air\n"
    "B. Salt water\n"
    "C. Distilled water\n"
    "D. Mineral water"
)


class MockExtractor(ExtractionPort):
    """Deterministic stand-in used when no AI credential is configured."""

    provider_name = "mock"
    model_name = "mock-vision-v1"

    def __init__(self, *, delay_seconds: float = 1.5, sleep: Sleep = asyncio.sleep):
        self.delay_seconds = max(0.0, delay_seconds)
        self._sleep = sleep
        self.calls = 0

    async def extract(
        self,
        encoded_image: str,
        grade_level: GradeLevel = "middle",
        max_retries: int | None = None,
    ) -> ExtractionResult:
        self.calls += 1
        if self.delay_seconds:
            await self._sleep(self.delay_seconds)
        return ExtractionResult(
            questionText=MOCK_QUESTION_TEXT,
            confidence=0.95,
            noiseFiltered=True,
            errorMessage=None,
            educationLevel=grade_level,
        )
