"""
Executes compiled search statements against the catalog database
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kpsearch.database.models import Product
from kpsearch.services.filter_compiler import CompiledFilter
from kpsearch.services.ranking_service import Page, RankingService, ranking_service
from kpsearch.services.type_classifier import OTHER_TYPE_LABEL

logger = logging.getLogger(__name__)


class CatalogQueryError(Exception):
    """Raised when the catalog cannot answer a search."""


@dataclass
class CatalogPage:
    """Rows for one page plus the unpaginated match count"""

    rows: List[Any]
    total: int


class CatalogStore:
    """Read-only access to the product catalog"""

    def __init__(self, ranking: RankingService = ranking_service):
        self.ranking = ranking

    async def fetch_page(self, db: AsyncSession, compiled: CompiledFilter, page: Page) -> CatalogPage:
        """Run the count and item statements built from the same conditions."""
        try:
            count_result = await db.execute(compiled.select_count())
            total = count_result.scalar() or 0

            rows: List[Any] = []
            if total > 0:
                items_result = await db.execute(self.ranking.apply(compiled.select_items(), page))
                rows = list(items_result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Catalog query failed: {e}", exc_info=True)
            raise CatalogQueryError(f"Database query failed: {e.__class__.__name__}") from e

        logger.info(f"Catalog query matched {total} products, fetched {len(rows)} (offset {page.offset})")
        return CatalogPage(rows=rows, total=total)

    async def diagnostics(self, db: AsyncSession) -> Dict[str, Any]:
        """Connection check plus product counts per type."""
        await db.execute(text("SELECT 1"))

        visible_result = await db.execute(
            select(func.count()).select_from(Product).where(Product.is_visible.is_(True))
        )
        type_result = await db.execute(
            select(Product.type, func.count()).where(Product.is_visible.is_(True)).group_by(Product.type)
        )

        types: Dict[str, int] = {}
        for product_type, count in type_result.all():
            label = product_type or OTHER_TYPE_LABEL
            types[label] = types.get(label, 0) + count

        return {
            "visible_products": visible_result.scalar() or 0,
            "types": dict(sorted(types.items(), key=lambda item: -item[1])),
        }


# Global store instance
catalog_store = CatalogStore()
