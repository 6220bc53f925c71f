"""
Search pipeline: parse → compile/execute → rank → advise → respond.

Stage failures are handled where they happen:

    parse     degrades to the fallback filter, search continues
    query     compile or database failure ends the request with query_error
    advice    degrades to the count template, never fatal

Every response, successful or not, carries the wall-clock time of each stage
that ran.
"""
import time
from dataclasses import dataclass, field
from typing import List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from kpsearch.core.config import settings
from kpsearch.middleware.logging_middleware import get_logger
from kpsearch.schemas.search import (
    QueryInfo,
    SearchErrorResponse,
    SearchMeta,
    SearchResponse,
    SearchResults,
)
from kpsearch.services.advisory_service import AdvisoryService
from kpsearch.services.catalog_metadata import CatalogMetadata
from kpsearch.services.catalog_store import CatalogStore, catalog_store
from kpsearch.services.completion_service import CompletionService
from kpsearch.services.filter_compiler import FilterCompiler, filter_compiler
from kpsearch.services.query_parser import UNCLEAR_QUERY_SUGGESTION, QueryParser
from kpsearch.services.ranking_service import RankingService, ranking_service

logger = get_logger(__name__)

PARSE_DEGRADED = "parse_degraded"
ADVISORY_DEGRADED = "advisory_degraded"
QUERY_ERROR = "query_error"


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


@dataclass
class StageTimings:
    """Per-stage wall-clock times in milliseconds"""

    start: float = field(default_factory=time.time)
    parse_ms: Optional[int] = None
    query_ms: Optional[int] = None
    rank_ms: Optional[int] = None
    advice_ms: Optional[int] = None
    degraded: List[str] = field(default_factory=list)

    def meta(self) -> SearchMeta:
        return SearchMeta(
            took_ms=_elapsed_ms(self.start),
            parse_ms=self.parse_ms,
            query_ms=self.query_ms,
            rank_ms=self.rank_ms,
            advice_ms=self.advice_ms,
            degraded=list(self.degraded),
        )


class SearchPipeline:
    """Runs one search request through every stage"""

    def __init__(
        self,
        parser: QueryParser,
        advisory: AdvisoryService,
        compiler: FilterCompiler = filter_compiler,
        store: CatalogStore = catalog_store,
        ranking: RankingService = ranking_service,
        confidence_threshold: Optional[float] = None,
    ):
        self.parser = parser
        self.advisory = advisory
        self.compiler = compiler
        self.store = store
        self.ranking = ranking
        self.confidence_threshold = (
            confidence_threshold if confidence_threshold is not None else settings.confidence_threshold
        )

    async def search(
        self,
        db: AsyncSession,
        query: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Union[SearchResponse, SearchErrorResponse]:
        timings = StageTimings()
        query = query.strip()

        # Parsing
        stage_start = time.time()
        parse_result = await self.parser.parse(query)
        timings.parse_ms = _elapsed_ms(stage_start)

        search_filter = parse_result.filter
        if parse_result.degraded:
            timings.degraded.append(PARSE_DEGRADED)
            logger.warning(f"Parse degraded for '{query}': {parse_result.error}")

        suggestion = None
        if search_filter.confidence < self.confidence_threshold:
            suggestion = UNCLEAR_QUERY_SUGGESTION
            logger.info(f"Unclear query '{query}' (confidence {search_filter.confidence:.2f})")

        # Compiling and executing
        page = self.ranking.page(limit, offset)
        stage_start = time.time()
        try:
            compiled = self.compiler.compile(search_filter)
            catalog_page = await self.store.fetch_page(db, compiled, page)
        except Exception as e:
            timings.query_ms = _elapsed_ms(stage_start)
            logger.error(f"Search query failed for '{query}': {e}", exc_info=True)
            return SearchErrorResponse(
                error=QUERY_ERROR,
                message=str(e) or e.__class__.__name__,
                suggestion=suggestion,
                meta=timings.meta(),
            )
        timings.query_ms = _elapsed_ms(stage_start)

        # Ranking
        stage_start = time.time()
        items = self.ranking.rank(catalog_page.rows)
        timings.rank_ms = _elapsed_ms(stage_start)

        # Advising
        stage_start = time.time()
        advice = await self.advisory.generate(query, catalog_page.total, items, search_filter)
        timings.advice_ms = _elapsed_ms(stage_start)
        if advice.fallback:
            timings.degraded.append(ADVISORY_DEGRADED)

        meta = timings.meta()
        logger.info(
            f"Search '{query}' → {catalog_page.total} results in {meta.took_ms}ms "
            f"(parse {meta.parse_ms}ms, query {meta.query_ms}ms, advice {meta.advice_ms}ms)"
            + (f" degraded={meta.degraded}" if meta.degraded else "")
        )

        return SearchResponse(
            query=QueryInfo(
                original=query,
                parsed=search_filter,
                confidence=search_filter.confidence,
                suggestion=suggestion,
            ),
            results=SearchResults(
                total=catalog_page.total,
                showing=len(items),
                limit=page.limit,
                offset=page.offset,
                items=items,
                advice=advice.advice,
                highlighted=advice.highlighted,
            ),
            meta=meta,
        )


def build_search_pipeline(
    metadata: CatalogMetadata, completion_service: Optional[CompletionService] = None
) -> SearchPipeline:
    """Wire the pipeline around one shared completion client."""
    completion_service = completion_service or CompletionService()
    return SearchPipeline(
        parser=QueryParser(completion_service, metadata),
        advisory=AdvisoryService(completion_service),
    )
