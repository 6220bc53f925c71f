"""
Unit tests for the advisory generator
"""
import pytest

from kpsearch.schemas.search import SearchFilter
from kpsearch.services.advisory_service import (
    ZERO_RESULTS_ADVICE,
    AdvisoryService,
    find_highlighted,
    template_advice,
)
from kpsearch.services.completion_service import CompletionError


@pytest.fixture
def advisory(mock_completion_service):
    return AdvisoryService(mock_completion_service, many_threshold=50, few_threshold=50, top_n=5)


@pytest.fixture
def heart_filter():
    return SearchFilter(type="Beeld", keywords=["hart", "liefde"], use_keywords=True, price_max=80, confidence=0.9)


class TestTemplates:

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "total,expected",
        [
            (0, ZERO_RESULTS_ADVICE),
            (1, "Ik vond 1 product dat past bij je zoekopdracht. Bekijk het hieronder."),
            (12, "Ik vond 12 producten die passen bij je zoekopdracht. Bekijk de resultaten hieronder."),
            (75, "Ik vond 75 producten. Bekijk de top resultaten of verfijn je zoekopdracht verder."),
            (150, "Ik vond 150 producten. Wil je specifieker zoeken met extra filters?"),
        ],
    )
    def test_count_buckets(self, total, expected):
        assert template_advice(total) == expected

    @pytest.mark.unit
    def test_highlight_matches_titles_case_insensitively(self, sample_products):
        advice = "Het beeldje 'hart van brons' is een topper."
        assert find_highlighted(advice, sample_products) == [1]


class TestGenerate:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_zero_results_skip_completion(self, advisory, mock_completion_service, heart_filter):
        result = await advisory.generate("beeldje met hart", 0, [], heart_filter)

        assert result.advice == ZERO_RESULTS_ADVICE
        assert result.highlighted == []
        mock_completion_service.complete_text.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_few_results_highlight_named_items(
        self, advisory, mock_completion_service, heart_filter, sample_products
    ):
        mock_completion_service.complete_text.return_value = (
            "Ik vond 4 beeldjes met een hart. Het beeldje 'Hart van Brons' (€72) is een topper."
        )

        result = await advisory.generate("beeldje met hart", 4, sample_products, heart_filter)

        assert result.fallback is False
        assert result.highlighted == [1]
        user_prompt = mock_completion_service.complete_text.call_args.args[1]
        assert "weinig resultaten" in user_prompt

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_many_results_ask_to_narrow(self, advisory, mock_completion_service, heart_filter, sample_products):
        mock_completion_service.complete_text.return_value = "Ik vond 400 beeldjes. Wil je filteren op thema?"

        await advisory.generate("beeldje", 400, sample_products, heart_filter)

        user_prompt = mock_completion_service.complete_text.call_args.args[1]
        assert "veel resultaten" in user_prompt

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_top_results_are_capped(self, advisory, mock_completion_service, heart_filter, product_factory):
        mock_completion_service.complete_text.return_value = "Mooie selectie."
        items = [product_factory(id=i, title=f"Beeld {i}") for i in range(8)]

        await advisory.generate("beeld", 8, items, heart_filter)

        user_prompt = mock_completion_service.complete_text.call_args.args[1]
        assert '"index": 4' in user_prompt
        assert '"index": 5' not in user_prompt

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_uses_template(self, advisory, mock_completion_service, heart_filter, sample_products):
        mock_completion_service.complete_text.side_effect = CompletionError("rate limited", error_type="rate_limit")

        result = await advisory.generate("beeldje met hart", 75, sample_products, heart_filter)

        assert result.fallback is True
        assert result.highlighted == []
        assert result.advice == template_advice(75)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_advice_uses_template(self, advisory, mock_completion_service, heart_filter, sample_products):
        mock_completion_service.complete_text.return_value = ""

        result = await advisory.generate("beeldje", 4, sample_products, heart_filter)

        assert result.fallback is True
        assert result.advice == template_advice(4)
