"""
Compile a SearchFilter into parameterized SQLAlchemy conditions.

Each condition kind is a small clause object that renders itself through a
ParamBinder, so every user-supplied value reaches the database as a bound
parameter (``p1``, ``p2``, ...) and never as SQL text. The item statement and
the count statement are both built from the same condition list.

Conditions, all AND-ed:

    visibility      always
    equality        type, when set
    fulltext_any    OR of keyword matches, when use_keywords is true
    range           price_min / price_max, when set
    artist          artist or brand contains the artist name, when set
"""
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, List, Optional, Sequence, Tuple

from sqlalchemy import bindparam, func, literal_column, or_, select
from sqlalchemy.sql.elements import BindParameter, ColumnElement

from kpsearch.database.models import Product
from kpsearch.schemas.search import SearchFilter

logger = logging.getLogger(__name__)

TEXT_SEARCH_CONFIG = "dutch"


class FilterCompileError(ValueError):
    """Raised when a filter cannot be turned into conditions."""


class ParamBinder:
    """Hands out positionally named bind parameters and records their values."""

    def __init__(self):
        self.params: List[Any] = []

    def bind(self, value: Any) -> BindParameter:
        self.params.append(value)
        return bindparam(f"p{len(self.params)}", value)


def _column(name: str):
    column = getattr(Product, name, None)
    if column is None:
        raise FilterCompileError(f"Unknown product column: {name}")
    return column


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class VisibilityClause:
    kind: ClassVar[str] = "visibility"

    def render(self, binder: ParamBinder) -> ColumnElement:
        return Product.is_visible == binder.bind(True)


@dataclass(frozen=True)
class EqualityClause:
    kind: ClassVar[str] = "equality"
    column: str
    value: Any

    def render(self, binder: ParamBinder) -> ColumnElement:
        return _column(self.column) == binder.bind(self.value)


@dataclass(frozen=True)
class RangeClause:
    kind: ClassVar[str] = "range"
    column: str
    operator: str
    value: float

    def render(self, binder: ParamBinder) -> ColumnElement:
        column = _column(self.column)
        if self.operator == ">=":
            return column >= binder.bind(self.value)
        if self.operator == "<=":
            return column <= binder.bind(self.value)
        raise FilterCompileError(f"Unsupported range operator: {self.operator}")


@dataclass(frozen=True)
class FullTextAnyClause:
    """Match any keyword against the search vector; phrases keep word order."""

    kind: ClassVar[str] = "fulltext_any"
    keywords: Tuple[str, ...]

    def render(self, binder: ParamBinder) -> ColumnElement:
        if not self.keywords:
            raise FilterCompileError("Full-text clause needs at least one keyword")

        config = literal_column(f"'{TEXT_SEARCH_CONFIG}'")
        matches = []
        for keyword in self.keywords:
            if len(keyword.split()) > 1:
                query = func.phraseto_tsquery(config, binder.bind(keyword))
            else:
                query = func.plainto_tsquery(config, binder.bind(keyword))
            matches.append(Product.search_vector.op("@@")(query))
        return or_(*matches)


@dataclass(frozen=True)
class ArtistClause:
    kind: ClassVar[str] = "artist"
    artist: str

    def render(self, binder: ParamBinder) -> ColumnElement:
        pattern = binder.bind(f"%{escape_like(self.artist)}%")
        return or_(
            Product.artist.ilike(pattern, escape="\\"),
            Product.brand.ilike(pattern, escape="\\"),
        )


@dataclass
class CompiledFilter:
    """Rendered conditions plus the ordered parameter values behind them"""

    clauses: List[Any]
    conditions: List[ColumnElement]
    params: List[Any] = field(default_factory=list)

    @property
    def kinds(self) -> List[str]:
        return [clause.kind for clause in self.clauses]

    def select_items(self):
        """Item statement; ordering and paging are added by the ranking service."""
        return select(Product).where(*self.conditions)

    def select_count(self):
        return select(func.count()).select_from(Product).where(*self.conditions)


class FilterCompiler:
    """Builds clause objects from a SearchFilter"""

    def build_clauses(self, search_filter: SearchFilter) -> List[Any]:
        clauses: List[Any] = [VisibilityClause()]

        if search_filter.type:
            clauses.append(EqualityClause("type", search_filter.type))

        if search_filter.use_keywords and search_filter.keywords:
            clauses.append(FullTextAnyClause(tuple(search_filter.keywords)))

        if search_filter.price_min is not None:
            clauses.append(RangeClause("price", ">=", float(search_filter.price_min)))

        if search_filter.price_max is not None:
            clauses.append(RangeClause("price", "<=", float(search_filter.price_max)))

        if search_filter.artist:
            clauses.append(ArtistClause(search_filter.artist))

        return clauses

    def compile(self, search_filter: SearchFilter, clauses: Optional[Sequence[Any]] = None) -> CompiledFilter:
        clauses = list(clauses) if clauses is not None else self.build_clauses(search_filter)
        binder = ParamBinder()
        conditions = [clause.render(binder) for clause in clauses]

        logger.debug(f"Compiled filter into {[clause.kind for clause in clauses]} with {len(binder.params)} params")
        return CompiledFilter(clauses=clauses, conditions=conditions, params=binder.params)


# Global compiler instance
filter_compiler = FilterCompiler()
