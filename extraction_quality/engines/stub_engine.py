"""
Stub recovery engine for testing orchestration plumbing.
Returns scripted text (or raises scripted errors) per page without real
rendering or OCR.
"""

import asyncio
from typing import Optional, Union

from extraction_quality.engines.base import RecoveryEngine

# A scripted response is either text or an exception to raise. A list of
# responses is consumed one per call, the last one repeating.
Scripted = Union[str, Exception]


class StubEngine(RecoveryEngine):
    """Fake adapter that replays scripted responses and records every call."""

    def __init__(
        self,
        pages: Optional[dict[int, Union[Scripted, list[Scripted]]]] = None,
        document: Optional[Union[list[str], Exception, list]] = None,
        default_text: str = "",
        delays: Optional[dict[int, float]] = None,
        document_delay: float = 0.0,
        health_delay: float = 0.0,
        healthy: bool = True,
        name: str = "stub",
        cost_per_page_usd: float = 0.0,
    ):
        self._pages = pages or {}
        self._document = document
        self._default_text = default_text
        self._delays = delays or {}
        self._document_delay = document_delay
        self._health_delay = health_delay
        self._healthy = healthy
        self._name = name
        self._cost_per_page_usd = cost_per_page_usd
        self.page_calls: list[int] = []
        self.document_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def engine_name(self) -> str:
        return self._name

    @property
    def engine_version(self) -> str:
        return "0.1.0"

    @property
    def cost_per_page_usd(self) -> float:
        return self._cost_per_page_usd

    def calls_for(self, page_number: int) -> int:
        return self.page_calls.count(page_number)

    async def recognize_page(self, document_ref, page_number: int) -> str:
        attempt = self.calls_for(page_number)
        self.page_calls.append(page_number)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self._delays.get(page_number, 0.0)
            # Always yield so concurrent callers interleave
            await asyncio.sleep(delay)
            return self._replay(self._pages.get(page_number, self._default_text), attempt)
        finally:
            self.in_flight -= 1

    async def recognize_document(self, document_ref) -> list[str]:
        attempt = self.document_calls
        self.document_calls += 1
        await asyncio.sleep(self._document_delay)
        if self._document is None:
            return []
        if isinstance(self._document, Exception):
            raise self._document
        # A list of lists scripts successive calls
        if self._document and isinstance(self._document[0], (list, Exception)):
            result = self._document[min(attempt, len(self._document) - 1)]
            if isinstance(result, Exception):
                raise result
            return list(result)
        return list(self._document)

    async def health_check(self) -> bool:
        if self._health_delay:
            await asyncio.sleep(self._health_delay)
        return self._healthy

    @staticmethod
    def _replay(script, attempt: int) -> str:
        if isinstance(script, list):
            script = script[min(attempt, len(script) - 1)] if script else ""
        if isinstance(script, Exception):
            raise script
        return script
