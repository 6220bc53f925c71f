"""
Pydantic schemas for the search endpoint and the parsed query filter
"""
from typing import Any, List, Optional

from pydantic import BaseModel, Field, validator


class SearchFilter(BaseModel):
    """Validated, structured form of a shopper's query"""

    type: Optional[str] = None
    keywords: List[str] = Field(..., min_length=1)
    use_keywords: bool = True
    price_min: Optional[float] = Field(None, allow_inf_nan=False)
    price_max: Optional[float] = Field(None, allow_inf_nan=False)
    artist: Optional[str] = None
    confidence: float = Field(0.5, ge=0.0, le=1.0)

    class Config:
        frozen = True


class RawParsedQuery(BaseModel):
    """Untrusted completion output, before repair"""

    type: Optional[str] = None
    keywords: List[str] = []
    use_keywords: Optional[bool] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    artist: Optional[str] = None
    confidence: float = 0.5

    class Config:
        extra = "ignore"

    @validator("keywords", pre=True)
    def coerce_keywords(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if isinstance(v, list):
            return [str(item) for item in v if isinstance(item, (str, int, float)) and not isinstance(item, bool)]
        raise ValueError("keywords must be a list of strings")

    @validator("type", "artist", pre=True)
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        if v is not None and not isinstance(v, str):
            return None
        return v

    @validator("price_min", "price_max", pre=True)
    def parse_price(cls, v):
        if v is None or v == "" or isinstance(v, bool):
            return None
        if isinstance(v, str):
            v = v.replace("€", "").replace(",", ".").strip()
        return v

    @validator("confidence", pre=True)
    def default_confidence(cls, v):
        return 0.5 if v is None else v


class SearchRequest(BaseModel):
    """Search request body"""

    query: str
    limit: Optional[int] = None
    offset: Optional[int] = None

    @validator("query")
    def query_not_empty(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("query must not be empty")
        return v


class ProductItem(BaseModel):
    """Product as returned in search results"""

    id: int
    title: str
    full_title: Optional[str] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    artist: Optional[str] = None
    type: str
    price: float
    old_price: Optional[float] = None
    on_sale: bool = False
    discount: int = 0
    sales_count: int = 0
    stock: Optional[int] = None
    image: Optional[str] = None
    url: Optional[str] = None

    class Config:
        from_attributes = True


class QueryInfo(BaseModel):
    original: str
    parsed: SearchFilter
    confidence: float
    suggestion: Optional[str] = None


class SearchResults(BaseModel):
    total: int
    showing: int
    limit: int
    offset: int
    items: List[ProductItem] = []
    advice: str
    highlighted: List[int] = []


class SearchMeta(BaseModel):
    """Timing metadata, present on every response"""

    took_ms: int
    parse_ms: Optional[int] = None
    query_ms: Optional[int] = None
    rank_ms: Optional[int] = None
    advice_ms: Optional[int] = None
    degraded: List[str] = []


class SearchResponse(BaseModel):
    success: bool = True
    query: QueryInfo
    results: SearchResults
    meta: SearchMeta


class SearchErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: Optional[str] = None
    suggestion: Optional[str] = None
    meta: SearchMeta
    details: Optional[Any] = None
