"""
Popularity ranking and pagination for search results.

Ordering:
    1. stock_sold  descending, products without sales data last
    2. price       ascending
    3. id          ascending, so pages never overlap between requests

There is no relevance blending; full-text conditions only decide which
products match, never their order.

Pagination:
    - limit defaults to 20 and is clamped to [1, max_page_size]
    - offset is clamped to >= 0
    - total always comes from the unpaginated count statement
"""
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from kpsearch.core.config import settings
from kpsearch.database.models import Product
from kpsearch.schemas.search import ProductItem
from kpsearch.services.type_classifier import OTHER_TYPE_LABEL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Page:
    """Clamped limit/offset pair"""

    limit: int
    offset: int


def _value(row: Any, name: str, default: Any = None) -> Any:
    if isinstance(row, dict):
        return row.get(name, default)
    return getattr(row, name, default)


def sale_info(price: Optional[float], old_price: Optional[float]) -> tuple:
    """Return (on_sale, discount percentage) for a price pair."""
    if price is None or old_price is None or old_price <= 0 or old_price <= price:
        return False, 0
    return True, int(round((1 - price / old_price) * 100))


class RankingService:
    """Applies ordering and paging, and formats rows for the response"""

    def __init__(self, default_limit: Optional[int] = None, max_limit: Optional[int] = None):
        self.default_limit = default_limit or settings.default_page_size
        self.max_limit = max_limit or settings.max_page_size

    def page(self, limit: Optional[int] = None, offset: Optional[int] = None) -> Page:
        if limit is None:
            limit = self.default_limit
        limit = max(1, min(int(limit), self.max_limit))
        offset = max(0, int(offset or 0))
        return Page(limit=limit, offset=offset)

    def order_clauses(self) -> list:
        return [Product.stock_sold.desc().nulls_last(), Product.price.asc(), Product.id.asc()]

    def apply(self, statement, page: Page):
        """Add ordering, limit and offset to an item statement."""
        return statement.order_by(*self.order_clauses()).limit(page.limit).offset(page.offset)

    @staticmethod
    def sort_key(row: Any):
        stock_sold = _value(row, "stock_sold")
        price = _value(row, "price")
        return (
            stock_sold is None,
            -(stock_sold or 0),
            price if price is not None else float("inf"),
            _value(row, "id", 0),
        )

    def rank(self, rows: Iterable[Any]) -> List[ProductItem]:
        """
        Format fetched rows in popularity order.

        The database already returns them ordered; sorting again with the same
        key keeps the order stable for rows that did not come from the item statement.
        """
        return [self.format_item(row) for row in sorted(rows, key=self.sort_key)]

    def format_item(self, row: Any) -> ProductItem:
        price = _value(row, "price")
        old_price = _value(row, "old_price")
        on_sale, discount = sale_info(price, old_price)

        return ProductItem(
            id=_value(row, "id"),
            title=_value(row, "title") or "",
            full_title=_value(row, "full_title"),
            description=_value(row, "description"),
            brand=_value(row, "brand"),
            artist=_value(row, "artist"),
            type=_value(row, "type") or OTHER_TYPE_LABEL,
            price=price if price is not None else 0.0,
            old_price=old_price,
            on_sale=on_sale,
            discount=discount,
            sales_count=_value(row, "stock_sold") or 0,
            stock=_value(row, "stock"),
            image=_value(row, "image"),
            url=_value(row, "url"),
        )


# Global ranking instance
ranking_service = RankingService()
