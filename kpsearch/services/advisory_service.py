"""
Short shopper-facing advice for a result set.

With results, the completion service writes at most three sentences: above
the "many" threshold it suggests narrowing by theme or price, at or below the
"few" threshold it names one or two products. Without results, or when the
completion fails, a fixed template picked by result count is used instead.
generate() never raises.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from kpsearch.core.config import settings
from kpsearch.schemas.search import SearchFilter
from kpsearch.services.completion_service import CompletionService

logger = logging.getLogger(__name__)

ZERO_RESULTS_ADVICE = "Ik kon geen producten vinden die aan je zoekopdracht voldoen. Probeer het met andere zoektermen."

ADVISOR_SYSTEM_PROMPT = """Je bent een vriendelijke en behulpzame kunstadviseur bij Kunstpakket.nl.

Geef persoonlijk advies bij zoekresultaten:

REGELS:
- Bij veel resultaten (meer dan {many}): stel voor verder te filteren op thema of prijs
- Bij weinig resultaten ({few} of minder): noem 1-2 specifieke producten bij hun exacte titel, met een korte reden waarom ze passen
- Maximaal 3 zinnen, warm maar niet overdreven enthousiast
- Spreek de klant aan met "je"
- Gebruik geen emoji's"""


@dataclass
class AdviceResult:
    advice: str
    highlighted: List[int] = field(default_factory=list)
    fallback: bool = False
    elapsed_ms: int = 0


def template_advice(total: int) -> str:
    """Deterministic advice chosen only by the result count."""
    if total <= 0:
        return ZERO_RESULTS_ADVICE
    if total == 1:
        return "Ik vond 1 product dat past bij je zoekopdracht. Bekijk het hieronder."
    if total > 100:
        return f"Ik vond {total} producten. Wil je specifieker zoeken met extra filters?"
    if total > 50:
        return f"Ik vond {total} producten. Bekijk de top resultaten of verfijn je zoekopdracht verder."
    return f"Ik vond {total} producten die passen bij je zoekopdracht. Bekijk de resultaten hieronder."


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def find_highlighted(advice: str, items: Sequence[Any]) -> List[int]:
    """Indices of items whose title appears in the advice text."""
    lowered = advice.lower()
    highlighted = []
    for index, item in enumerate(items):
        title = (_field(item, "title") or "").strip()
        if title and title.lower() in lowered:
            highlighted.append(index)
    return highlighted


class AdvisoryService:
    """Generates advice with a template fallback"""

    def __init__(
        self,
        completion_service: CompletionService,
        many_threshold: Optional[int] = None,
        few_threshold: Optional[int] = None,
        top_n: Optional[int] = None,
    ):
        self.completion_service = completion_service
        self.many_threshold = many_threshold if many_threshold is not None else settings.advice_many_threshold
        self.few_threshold = few_threshold if few_threshold is not None else settings.advice_few_threshold
        self.top_n = top_n or settings.advice_top_n
        self.system_prompt = ADVISOR_SYSTEM_PROMPT.format(many=self.many_threshold, few=self.few_threshold)

    def _build_user_prompt(self, query: str, total: int, top_items: Sequence[Any], search_filter: SearchFilter) -> str:
        summary = []
        for index, item in enumerate(top_items):
            description = _field(item, "description")
            summary.append(
                {
                    "index": index,
                    "title": _field(item, "title"),
                    "price": _field(item, "price"),
                    "description": f"{description[:80]}..." if description else None,
                }
            )

        if total > self.many_threshold:
            instruction = "Er zijn veel resultaten: stel voor te verfijnen op thema of prijs."
        elif total <= self.few_threshold:
            instruction = "Er zijn weinig resultaten: noem 1-2 producten bij hun exacte titel."
        else:
            instruction = "Vat de resultaten kort samen."

        filters = search_filter.model_dump(exclude={"confidence"}, exclude_none=True)
        return (
            f'Zoekopdracht: "{query}"\n'
            f"Aantal resultaten: {total}\n\n"
            f"Top producten:\n{json.dumps(summary, ensure_ascii=False, indent=2)}\n\n"
            f"Filters toegepast:\n{json.dumps(filters, ensure_ascii=False, indent=2)}\n\n"
            f"{instruction} Geef kort advies (max 3 zinnen)."
        )

    async def generate(
        self, query: str, total: int, top_items: Sequence[Any], search_filter: SearchFilter
    ) -> AdviceResult:
        start_time = time.time()

        if total <= 0:
            return AdviceResult(advice=ZERO_RESULTS_ADVICE, highlighted=[], fallback=False)

        top_items = list(top_items)[: self.top_n]
        try:
            advice = await self.completion_service.complete_text(
                self.system_prompt,
                self._build_user_prompt(query, total, top_items, search_filter),
                temperature=settings.advice_temperature,
                max_tokens=settings.advice_max_tokens,
            )
            if not advice:
                raise ValueError("empty advice")
        except Exception as e:
            logger.warning(f"Advice generation failed, using template: {type(e).__name__}: {e}")
            return AdviceResult(
                advice=template_advice(total),
                highlighted=[],
                fallback=True,
                elapsed_ms=int((time.time() - start_time) * 1000),
            )

        return AdviceResult(
            advice=advice,
            highlighted=find_highlighted(advice, top_items),
            elapsed_ms=int((time.time() - start_time) * 1000),
        )
