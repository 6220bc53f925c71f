"""
Regression suite for search scenarios that went wrong before.

Each scenario runs the full pipeline with the real parser repair, filter
compiler and ranking; only the completion service and the catalog store are
mocked. The compiled filter handed to the store is inspected directly.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from kpsearch.services.advisory_service import ZERO_RESULTS_ADVICE, AdvisoryService
from kpsearch.services.catalog_store import CatalogPage
from kpsearch.services.completion_service import CompletionError
from kpsearch.services.query_parser import QueryParser
from kpsearch.services.search_pipeline import SearchPipeline


@pytest.fixture
def mock_store():
    store = MagicMock()
    store.fetch_page = AsyncMock(return_value=CatalogPage(rows=[], total=0))
    return store


@pytest.fixture
def pipeline(mock_completion_service, catalog_metadata, mock_store):
    return SearchPipeline(
        parser=QueryParser(mock_completion_service, catalog_metadata),
        advisory=AdvisoryService(mock_completion_service),
        store=mock_store,
    )


def compiled_filter(mock_store):
    return mock_store.fetch_page.await_args.args[1]


def where_sql(compiled) -> str:
    return str(compiled.select_count().compile(dialect=postgresql.dialect()))


class TestPureTypeQuery:
    """
    "mok" returned almost nothing: the type synonyms were OR-ed as full-text
    keywords on top of the type filter, so only mugs that literally said
    "beker" in the text survived.
    """

    @pytest.mark.regression
    @pytest.mark.asyncio
    async def test_type_only_no_keyword_disjunction(self, pipeline, mock_completion_service, mock_store, mock_db_session):
        mock_completion_service.complete_json.return_value = {
            "type": "Mok",
            "keywords": ["mok", "mokken", "beker"],
            "use_keywords": True,
            "confidence": 0.95,
        }

        response = await pipeline.search(mock_db_session, "mok")

        compiled = compiled_filter(mock_store)
        assert response.query.parsed.use_keywords is False
        assert compiled.kinds == ["visibility", "equality"]
        assert compiled.params == [True, "Mok"]
        assert "@@" not in where_sql(compiled)


class TestTypeWithAttribute:
    """
    "beeldje met hart max 80 euro" must filter on type Beeld, search only the
    attribute words and cap the price. Repeating the type word among the
    keywords made every Beeld match.
    """

    @pytest.mark.regression
    @pytest.mark.asyncio
    async def test_type_attribute_and_price(self, pipeline, mock_completion_service, mock_store, mock_db_session):
        mock_completion_service.complete_json.return_value = {
            "type": "Beeld",
            "keywords": ["beeldje", "hart", "hartje", "liefde", "heart"],
            "use_keywords": True,
            "price_max": 100,
            "confidence": 0.9,
        }

        response = await pipeline.search(mock_db_session, "beeldje met hart max 80 euro")

        compiled = compiled_filter(mock_store)
        assert response.query.parsed.type == "Beeld"
        assert compiled.kinds == ["visibility", "equality", "fulltext_any", "range"]
        assert compiled.params == [True, "Beeld", "hart", "hartje", "liefde", "heart", 80.0]


class TestArtistQuery:
    """
    "klimt" returned nothing because the service also guessed type
    Schilderij, while most Klimt products are mugs, vases and prints.
    """

    @pytest.mark.regression
    @pytest.mark.asyncio
    async def test_artist_never_type_constrained(self, pipeline, mock_completion_service, mock_store, mock_db_session):
        mock_completion_service.complete_json.return_value = {
            "type": "Schilderij",
            "artist": "Klimt",
            "keywords": ["klimt", "gustav klimt"],
            "use_keywords": True,
            "confidence": 0.9,
        }

        response = await pipeline.search(mock_db_session, "klimt")

        compiled = compiled_filter(mock_store)
        assert response.query.parsed.type is None
        assert response.query.parsed.artist == "Gustav Klimt"
        assert compiled.kinds == ["visibility", "artist"]
        assert compiled.params == [True, "%Gustav Klimt%"]


class TestUnresolvedServiceArtist:
    """
    "klimt" lost its artist clause when the service spelled the name in a
    form the catalog does not know ("G. Klimt"); the query itself names a
    known alias.
    """

    @pytest.mark.regression
    @pytest.mark.asyncio
    async def test_alias_in_query_restores_artist(self, pipeline, mock_completion_service, mock_store, mock_db_session):
        mock_completion_service.complete_json.return_value = {
            "artist": "G. Klimt",
            "keywords": ["klimt", "gustav klimt"],
            "use_keywords": True,
            "confidence": 0.9,
        }

        response = await pipeline.search(mock_db_session, "klimt")

        compiled = compiled_filter(mock_store)
        assert response.query.parsed.artist == "Gustav Klimt"
        assert compiled.kinds == ["visibility", "artist"]
        assert compiled.params == [True, "%Gustav Klimt%"]


class TestPhraseKeywords:
    """
    "romeinse goden" was split into two words and matched anything Roman.
    """

    @pytest.mark.regression
    @pytest.mark.asyncio
    async def test_phrase_searched_as_phrase(self, pipeline, mock_completion_service, mock_store, mock_db_session):
        mock_completion_service.complete_json.return_value = {
            "keywords": ["romeinse goden", "mythologie"],
            "use_keywords": True,
            "confidence": 0.85,
        }

        await pipeline.search(mock_db_session, "romeinse goden")

        sql = where_sql(compiled_filter(mock_store))
        assert "phraseto_tsquery('dutch', %(p2)s)" in sql
        assert "plainto_tsquery('dutch', %(p3)s)" in sql


class TestZeroResults:
    """
    Zero matches used to call the completion service anyway and highlight
    products from a previous search.
    """

    @pytest.mark.regression
    @pytest.mark.asyncio
    async def test_zero_results_template(self, pipeline, mock_completion_service, mock_store, mock_db_session):
        mock_completion_service.complete_json.return_value = {"keywords": ["eenhoorn"], "confidence": 0.9}

        response = await pipeline.search(mock_db_session, "eenhoorn")

        assert response.results.total == 0
        assert response.results.items == []
        assert response.results.advice == ZERO_RESULTS_ADVICE
        assert response.results.highlighted == []
        mock_completion_service.complete_text.assert_not_called()


class TestCompletionOutage:
    """
    A completion outage returned HTTP 500. The search must still run on the
    raw query.
    """

    @pytest.mark.regression
    @pytest.mark.asyncio
    async def test_outage_falls_back_to_raw_query(self, pipeline, mock_completion_service, mock_store, mock_db_session):
        mock_completion_service.complete_json.side_effect = CompletionError("timeout", error_type="timeout")
        mock_completion_service.complete_text.side_effect = CompletionError("timeout", error_type="timeout")

        response = await pipeline.search(mock_db_session, "beeldje met hart")

        compiled = compiled_filter(mock_store)
        assert response.success is True
        assert compiled.kinds == ["visibility", "fulltext_any"]
        assert compiled.params == [True, "beeldje met hart"]
        assert response.meta.degraded == ["parse_degraded"]
