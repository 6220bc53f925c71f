"""
Natural-language query parser.

A shopper's free text ("beeldje met hart max 80 euro") is sent to the
completion service, which proposes a filter as JSON. Nothing the service
returns is trusted as-is: the proposal is validated and repaired against the
catalog vocabulary before it becomes a SearchFilter, and price bounds are
re-read from the query text with plain regular expressions.

The parser never raises. Any failure yields the fallback filter
``{type: None, keywords: [query], use_keywords: True, confidence: 0.5}``.
"""
import logging
import math
import re
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from pydantic import ValidationError

from kpsearch.core.config import settings
from kpsearch.schemas.search import RawParsedQuery, SearchFilter
from kpsearch.services.catalog_metadata import CatalogMetadata
from kpsearch.services.completion_service import CompletionError, CompletionService
from kpsearch.services.type_classifier import ProductTypeClassifier, type_classifier

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5

UNCLEAR_QUERY_SUGGESTION = (
    'Kun je specifieker zijn? Bijvoorbeeld: "beeldje met hart onder 80 euro" of "schilderij abstract blauw"'
)

# Price extraction ---------------------------------------------------------

_NUMBER = r"(\d{1,3}(?:\.\d{3})+|\d+(?:[.,]\d{1,2})?)"
_EURO = r"(?:€\s*)?"
_CURRENCY = r"(?:euro|eur|€)"

_BETWEEN_PATTERN = re.compile(rf"\btussen\s+{_EURO}{_NUMBER}\s*{_CURRENCY}?\s+en\s+{_EURO}{_NUMBER}")
_RANGE_PATTERN = re.compile(rf"{_EURO}{_NUMBER}\s*-\s*{_EURO}{_NUMBER}\s*{_CURRENCY}")
_MAX_PATTERN = re.compile(
    rf"\b(?:onder|max(?:imaal|\.)?|tot|minder\s+dan|hooguit|niet\s+meer\s+dan)\s+(?:de\s+)?{_EURO}{_NUMBER}"
)
_MIN_PATTERN = re.compile(rf"\b(?:vanaf|min(?:imaal|\.)?|boven|meer\s+dan|minstens)\s+(?:de\s+)?{_EURO}{_NUMBER}")
_APPROX_PATTERN = re.compile(rf"\b(?:rond(?:om)?|ongeveer|circa|ca\.?)\s+(?:de\s+)?{_EURO}{_NUMBER}")
_CHEAP_PATTERN = re.compile(r"\bgoedko(?:op|pe)\b")
_AFFORDABLE_PATTERN = re.compile(r"\bbetaalba(?:ar|re)\b")

APPROX_BAND = 0.2
CHEAP_PRICE_MAX = 50.0
AFFORDABLE_PRICE_MAX = 100.0

# Anything matched here is price wording, not a search term
_PRICE_PHRASE_PATTERN = re.compile(
    rf"{_BETWEEN_PATTERN.pattern}|{_RANGE_PATTERN.pattern}|{_MAX_PATTERN.pattern}|{_MIN_PATTERN.pattern}"
    rf"|{_APPROX_PATTERN.pattern}|{_EURO}{_NUMBER}\s*{_CURRENCY}|{_CHEAP_PATTERN.pattern}|{_AFFORDABLE_PATTERN.pattern}"
)

# Keyword sanitation -------------------------------------------------------

_KEYWORD_STRIP = re.compile(r"[^\w\s\-'&]")
_HAS_LETTER = re.compile(r"[^\W\d_]")


def _to_number(raw: str) -> float:
    if re.fullmatch(r"\d{1,3}(?:\.\d{3})+", raw):
        return float(raw.replace(".", ""))
    return float(raw.replace(",", "."))


@dataclass
class PriceBounds:
    price_min: Optional[float] = None
    price_max: Optional[float] = None


def extract_price_bounds(text: str) -> PriceBounds:
    """
    Read price bounds from Dutch query text.

    ``tussen X en Y`` and ``X-Y euro`` give both bounds, ``onder/max/tot X`` an
    upper bound, ``vanaf/min/boven X`` a lower bound and ``rond X`` a band of
    20% either side. ``goedkoop`` and ``betaalbaar`` only apply when no upper
    bound is given explicitly.
    """
    text = (text or "").lower()
    bounds = PriceBounds()

    match = _BETWEEN_PATTERN.search(text) or _RANGE_PATTERN.search(text)
    if match:
        low, high = _to_number(match.group(1)), _to_number(match.group(2))
        bounds.price_min, bounds.price_max = min(low, high), max(low, high)
        return bounds

    match = _APPROX_PATTERN.search(text)
    if match:
        value = _to_number(match.group(1))
        bounds.price_min = round(value * (1 - APPROX_BAND), 2)
        bounds.price_max = round(value * (1 + APPROX_BAND), 2)
        return bounds

    match = _MAX_PATTERN.search(text)
    if match:
        bounds.price_max = _to_number(match.group(1))

    match = _MIN_PATTERN.search(text)
    if match:
        bounds.price_min = _to_number(match.group(1))

    if bounds.price_max is None:
        if _CHEAP_PATTERN.search(text):
            bounds.price_max = CHEAP_PRICE_MAX
        elif _AFFORDABLE_PATTERN.search(text):
            bounds.price_max = AFFORDABLE_PRICE_MAX

    return bounds


def fallback_filter(query: str) -> SearchFilter:
    """Filter used whenever parsing fails."""
    return SearchFilter(
        type=None,
        keywords=[query],
        use_keywords=True,
        price_min=None,
        price_max=None,
        artist=None,
        confidence=FALLBACK_CONFIDENCE,
    )


@dataclass
class ParseResult:
    """Parser output with degradation info"""

    filter: SearchFilter
    degraded: bool = False
    elapsed_ms: int = 0
    error: Optional[str] = None

    @property
    def confidence(self) -> float:
        return self.filter.confidence


def build_system_prompt(metadata: CatalogMetadata) -> str:
    """System prompt encoding the extraction rules and the catalog vocabulary."""
    artists = "\n".join(f"  * {artist}" for artist in metadata.artists)
    aliases = "\n".join(f'  "{alias}" → "{target}"' for alias, target in sorted(metadata.artist_aliases.items()))
    types = ", ".join(metadata.product_types)
    themes = ", ".join(metadata.popular_themes)
    generic = ", ".join(sorted(metadata.generic_words))

    return f"""Je bent een zoekopdracht-parser voor Kunstpakket.nl, een Nederlandse online kunstwinkel.
Zet de zoekopdracht om naar JSON met precies deze velden:
{{"type": string|null, "keywords": string[], "use_keywords": boolean,
  "price_min": number|null, "price_max": number|null, "artist": string|null, "confidence": number}}

REGELS VOOR KEYWORDS:
- Specifiek onderwerp (bijv. "bodybuilder", één dier): 3-10 nauwe varianten (enkelvoud/meervoud, directe synoniemen, één Engelse vertaling). Laat "type" leeg tenzij er ook een producttype genoemd wordt.
- Breed onderwerp (bijv. "kunst", "dieren", "cadeau"): 15-35 varianten over de sub-thema's.
- Kunstenaarsnaam: zet de genormaliseerde naam in "artist", 3-5 naamvarianten als keywords, "type" altijd null.
- Alleen een producttype (bijv. "mok"): "type" invullen, 3-5 synoniemen van het type als keywords, "use_keywords": false.
- Producttype plus kenmerk (bijv. "beeldje met hart"): "type" invullen, keywords ALLEEN voor het kenmerk (nooit het type herhalen), "use_keywords": true.
- Vaste woordcombinaties (bijv. "romeinse goden") blijven één keyword, niet splitsen.
- Negeer algemene woorden: {generic}.
- Prijzen in euro: "goedkoop" → price_max 50, "betaalbaar" → price_max 100.

GELDIGE PRODUCTTYPES (alleen deze waarden, anders null): {types}
Keramieken beelden en ballonhonden zijn type "Beeld".

BEKENDE KUNSTENAARS (alleen deze waarden voor "artist"):
{artists}

NORMALISATIE VAN KUNSTENAARSNAMEN:
{aliases}

POPULAIRE THEMA'S: {themes}

Geef "confidence" tussen 0 en 1 (1 = zeer zeker, onder 0.7 = onduidelijke zoekopdracht)."""


class QueryParser:
    """Turns free text into a validated SearchFilter"""

    def __init__(
        self,
        completion_service: CompletionService,
        metadata: CatalogMetadata,
        classifier: ProductTypeClassifier = type_classifier,
        max_keywords: Optional[int] = None,
        max_keyword_length: Optional[int] = None,
    ):
        self.completion_service = completion_service
        self.metadata = metadata
        self.classifier = classifier
        self.max_keywords = max_keywords or settings.max_keywords
        self.max_keyword_length = max_keyword_length or settings.max_keyword_length
        self.system_prompt = build_system_prompt(metadata)

    async def parse(self, query: str) -> ParseResult:
        """Parse a query; on any failure return the fallback filter."""
        start_time = time.time()
        try:
            raw = await self.completion_service.complete_json(
                self.system_prompt,
                query,
                temperature=settings.parse_temperature,
                max_tokens=settings.parse_max_tokens,
            )
            parsed = RawParsedQuery(**raw)
            search_filter = self.repair(parsed, query)
        except (CompletionError, ValidationError, ValueError, TypeError) as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.warning(f"Query parsing degraded for '{query}': {type(e).__name__}: {e}")
            return ParseResult(filter=fallback_filter(query), degraded=True, elapsed_ms=elapsed_ms, error=str(e))
        except Exception as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Unexpected error parsing query '{query}': {e}", exc_info=True)
            return ParseResult(filter=fallback_filter(query), degraded=True, elapsed_ms=elapsed_ms, error=str(e))

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Parsed '{query}' in {elapsed_ms}ms: type={search_filter.type}, artist={search_filter.artist}, "
            f"keywords={len(search_filter.keywords)}, use_keywords={search_filter.use_keywords}, "
            f"price=({search_filter.price_min}, {search_filter.price_max}), confidence={search_filter.confidence:.2f}"
        )
        return ParseResult(filter=search_filter, elapsed_ms=elapsed_ms)

    def repair(self, raw: RawParsedQuery, query: str) -> SearchFilter:
        """Validate a completion proposal against the catalog vocabulary."""
        keywords = self.sanitize_keywords(raw.keywords)
        query_terms = self._query_terms(query)

        artist = self.metadata.resolve_artist(raw.artist)
        if artist is None:
            artist = self.metadata.resolve_artist(" ".join(query_terms))

        product_type = None
        use_keywords = True

        if artist is not None or raw.artist is not None:
            # Artist queries are never type-constrained
            if artist is not None:
                variants = self.metadata.artist_name_variants(artist)
                variant_words = {word for variant in variants for word in variant.split()}
                remaining = [
                    kw for kw in keywords if kw not in variants and not set(kw.split()) <= variant_words
                ]
                if not remaining:
                    use_keywords = False
                    keywords = keywords or [artist.lower()]
                else:
                    keywords = remaining
        else:
            product_type = self.metadata.resolve_type(raw.type) or self._detect_query_type(query_terms)
            if product_type is not None:
                keywords, use_keywords = self._split_type_keywords(product_type, keywords, query_terms)

        if not keywords:
            keywords = [query]
            use_keywords = True

        bounds = extract_price_bounds(query)
        price_min = bounds.price_min if bounds.price_min is not None else self._positive(raw.price_min)
        price_max = bounds.price_max if bounds.price_max is not None else self._positive(raw.price_max)

        return SearchFilter(
            type=product_type,
            keywords=keywords,
            use_keywords=use_keywords,
            price_min=price_min,
            price_max=price_max,
            artist=artist,
            confidence=self._clamp_confidence(raw.confidence),
        )

    def sanitize_keywords(self, keywords: List[str]) -> List[str]:
        """
        Lower-case, strip odd characters, drop filler words and duplicates.

        When more keywords remain than the cap allows, known catalog tags are
        kept ahead of free-form terms; the kept keywords stay in their
        original order.
        """
        cleaned: List[str] = []
        seen = set()
        for keyword in keywords:
            value = _KEYWORD_STRIP.sub(" ", keyword.lower())
            value = " ".join(value.split()).strip("-'& ")
            if len(value) > self.max_keyword_length:
                value = value[: self.max_keyword_length].rsplit(" ", 1)[0].strip()
            if not value or not _HAS_LETTER.search(value):
                continue
            if self.metadata.is_generic(value) or value in seen:
                continue
            seen.add(value)
            cleaned.append(value)

        if len(cleaned) <= self.max_keywords:
            return cleaned

        known = [kw for kw in cleaned if self.metadata.is_known_tag(kw)]
        free_form = [kw for kw in cleaned if not self.metadata.is_known_tag(kw)]
        kept = set((known + free_form)[: self.max_keywords])
        return [kw for kw in cleaned if kw in kept]

    def _query_terms(self, query: str) -> List[str]:
        """Words of the query itself, without price wording and filler."""
        text = _PRICE_PHRASE_PATTERN.sub(" ", query.lower())
        text = _KEYWORD_STRIP.sub(" ", text)
        return [word for word in text.split() if _HAS_LETTER.search(word) and not self.metadata.is_generic(word)]

    def _detect_query_type(self, query_terms: List[str]) -> Optional[str]:
        """Type named by a query made only of type words, e.g. "mokken"."""
        if not query_terms:
            return None
        for rule in self.classifier.rules:
            if all(self.classifier.is_type_synonym(term, rule.name) for term in query_terms):
                return rule.name
        return None

    def _split_type_keywords(
        self, product_type: str, keywords: List[str], query_terms: List[str]
    ) -> Tuple[List[str], bool]:
        synonyms = self.classifier.synonyms_for(product_type)
        pure_type_query = bool(query_terms) and all(
            self.classifier.is_type_synonym(term, product_type) for term in query_terms
        )
        attribute_keywords = [kw for kw in keywords if not self.classifier.is_type_synonym(kw, product_type)]

        if pure_type_query or not attribute_keywords:
            type_keywords = [kw for kw in keywords if self.classifier.is_type_synonym(kw, product_type)]
            return (type_keywords or synonyms[:5]), False
        return attribute_keywords, True

    @staticmethod
    def _positive(value: Optional[float]) -> Optional[float]:
        # json.loads accepts NaN and Infinity
        if value is None or not math.isfinite(value) or value <= 0:
            return None
        return float(value)

    @staticmethod
    def _clamp_confidence(value: float) -> float:
        if not math.isfinite(value):
            return FALLBACK_CONFIDENCE
        return min(max(value, 0.0), 1.0)
