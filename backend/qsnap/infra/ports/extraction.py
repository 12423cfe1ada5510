from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from qsnap.domain.models import ExtractionResult, GradeLevel

Sleep = Callable[[float], Awaitable[None]]


class ExtractionPort(ABC):
    provider_name: str = "unknown"
    model_name: str = "unknown"

    @abstractmethod
    async def extract(
        self,
        encoded_image: str,
        grade_level: GradeLevel = "middle",
        max_retries: int | None = None,
    ) -> ExtractionResult:
        """Return the single question found in ``encoded_image`` (a data URL)."""
