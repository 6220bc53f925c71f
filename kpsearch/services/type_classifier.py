"""
Rule-based product type classifier.

Every product is assigned one type from a fixed table, or None (shown to
shoppers as "Overig"). Matching runs in passes of decreasing strength:

    1. title      (title + full title)         weight 100
    2. content    (description + content)      weight 20, only if no title match
    3. category   (category labels)            weight 10, only if nothing else matched

Within a pass a type scores ``weight * matched_keywords * priority`` and the
highest score wins; equal scores go to the rule listed first. A type whose
exclude keyword appears in the title is disqualified for every pass, and an
exclude keyword in the text of the current pass disqualifies it for that
pass. All matching is whole-word, so a brand such as "Mokum Design" never
reads as "mok".
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

logger = logging.getLogger(__name__)

OTHER_TYPE_LABEL = "Overig"

TITLE_WEIGHT = 100
CONTENT_WEIGHT = 20
CATEGORY_WEIGHT = 10


@dataclass(frozen=True)
class TypeRule:
    """Keywords and priority for one product type"""

    name: str
    priority: int
    title_keywords: Tuple[str, ...]
    content_keywords: Tuple[str, ...] = ()
    category_keywords: Tuple[str, ...] = ()
    exclude_keywords: Tuple[str, ...] = ()
    # How shoppers ask for the type in a query
    synonyms: Tuple[str, ...] = ()


@dataclass
class TypeMatch:
    """Classification outcome with the pass that decided it"""

    type: Optional[str]
    matched_pass: Optional[str] = None
    score: int = 0
    matched_keywords: List[str] = field(default_factory=list)

    @property
    def display_type(self) -> str:
        return self.type or OTHER_TYPE_LABEL


TYPE_RULES: Tuple[TypeRule, ...] = (
    TypeRule(
        name="Schilderij",
        priority=10,
        title_keywords=("schilderij", "schilderijen", "canvas", "painting", "doek met", "giclee", "giclée"),
        content_keywords=("handgeschilderd", "geschilderd doek", "opgespannen op", "spieraam", "origineel schilderij"),
        category_keywords=("schilderijen", "wandkunst", "kunst aan de muur"),
        exclude_keywords=("beeld", "beeldje", "sculptuur", "masker", "spiegeldoosje", "vaas", "mok"),
        synonyms=("schilderij", "schilderijen", "schilderijtje", "painting", "canvas", "doek"),
    ),
    TypeRule(
        name="Beeld",
        priority=9,
        title_keywords=(
            "beeld",
            "beeldje",
            "beelden",
            "beeldjes",
            "sculptuur",
            "sculpturen",
            "dierenbeeld",
            "sportbeeld",
            "verbronsd",
            "verzilverd",
            "bronzen",
            "statue",
        ),
        content_keywords=("beeld", "sculptuur", "verbronsd", "verzilverd", "tin gegoten", "tin legering", "kunsthars"),
        category_keywords=("beelden", "sportbeelden", "bedankbeelden", "bronzen beelden", "moderne beelden"),
        exclude_keywords=("wandbord", "schaal", "vaas", "mok"),
        synonyms=("beeld", "beeldje", "beelden", "beeldjes", "sculptuur", "sculpturen", "statue", "standbeeld"),
    ),
    TypeRule(
        name="Wandbord",
        priority=10,
        title_keywords=("wandbord", "wandborden", "wanddecoratie", "wall plate"),
        content_keywords=("wandbord", "wanddecoratie"),
        category_keywords=("wandborden",),
        synonyms=("wandbord", "wandborden", "wall plate"),
    ),
    TypeRule(
        name="Onderzetters",
        priority=10,
        title_keywords=("onderzetter", "onderzetters", "coaster", "coasters"),
        content_keywords=("onderzetter", "onderzetters", "coasters"),
        category_keywords=("onderzetters",),
        synonyms=("onderzetter", "onderzetters", "coaster", "coasters"),
    ),
    TypeRule(
        name="Theelichthouder",
        priority=10,
        title_keywords=("theelicht", "theelichthouder", "kaarsenhouder", "candleholder", "waxinelicht", "waxinelichthouder"),
        content_keywords=("theelicht", "waxinelicht", "waxine"),
        category_keywords=("theelichthouders", "kaarsenhouders"),
        synonyms=("theelichthouder", "theelicht", "waxinelichthouder", "kaarsenhouder", "candleholder"),
    ),
    TypeRule(
        name="Spiegeldoosje",
        priority=10,
        title_keywords=("spiegeldoosje", "spiegeldoosjes", "zakspiegel", "pocket mirror"),
        content_keywords=("spiegeldoosje", "zakspiegeltje"),
        category_keywords=("spiegeldoosjes",),
        synonyms=("spiegeldoosje", "spiegeldoosjes", "zakspiegel", "spiegeltje"),
    ),
    TypeRule(
        name="Glasobject",
        priority=8,
        title_keywords=("glasobject", "glasobjecten", "glassculptuur", "glazen object", "kristal"),
        content_keywords=("mondgeblazen", "glasobject", "handgeblazen glas"),
        category_keywords=("glaskunst", "glas"),
        exclude_keywords=("vaas", "schaal", "mok"),
        synonyms=("glasobject", "glasobjecten", "glaskunst", "glas"),
    ),
    TypeRule(
        name="Vaas",
        priority=9,
        title_keywords=("vaas", "vazen", "vase"),
        content_keywords=("vaas", "porselein vaas"),
        category_keywords=("vazen",),
        exclude_keywords=("schaal",),
        synonyms=("vaas", "vazen", "vaasje", "vase"),
    ),
    TypeRule(
        name="Schaal",
        priority=9,
        title_keywords=("schaal", "schalen", "bowl"),
        content_keywords=("schaal", "glazen schaal"),
        category_keywords=("schalen",),
        synonyms=("schaal", "schalen", "schaaltje", "bowl"),
    ),
    TypeRule(
        name="Mok",
        priority=9,
        title_keywords=("mok", "mokken", "beker", "bekers", "mug", "mugs", "cup"),
        content_keywords=("mok", "koffiemok", "theemok"),
        category_keywords=("mokken", "bekers"),
        exclude_keywords=("vaas", "schaal"),
        synonyms=("mok", "mokken", "beker", "bekers", "mug", "mugs", "cup", "koffiemok", "theemok"),
    ),
    TypeRule(
        name="Keramiek",
        priority=5,
        title_keywords=("keramiek", "ceramic", "porselein"),
        content_keywords=("keramiek", "ceramic", "porselein", "gebakken"),
        category_keywords=("keramiek",),
        exclude_keywords=("wandbord", "vaas", "schaal", "mok", "theelicht"),
        synonyms=("keramiek", "ceramic", "porselein"),
    ),
)

TYPE_NAMES: Tuple[str, ...] = tuple(rule.name for rule in TYPE_RULES)


def _keyword_pattern(keyword: str) -> Pattern:
    words = [re.escape(word) for word in keyword.lower().split()]
    return re.compile(r"(?<!\w)" + r"\s+".join(words) + r"(?!\w)")


class ProductTypeClassifier:
    """Deterministic classifier over a fixed rule table"""

    PASSES = (
        ("title", TITLE_WEIGHT, "title_keywords"),
        ("content", CONTENT_WEIGHT, "content_keywords"),
        ("category", CATEGORY_WEIGHT, "category_keywords"),
    )

    def __init__(self, rules: Sequence[TypeRule] = TYPE_RULES):
        self.rules = tuple(rules)
        self._patterns: Dict[str, Pattern] = {}
        for rule in self.rules:
            for keyword in (
                rule.title_keywords + rule.content_keywords + rule.category_keywords + rule.exclude_keywords
            ):
                if keyword not in self._patterns:
                    self._patterns[keyword] = _keyword_pattern(keyword)

    def _matches(self, keywords: Iterable[str], text: str) -> List[str]:
        if not text:
            return []
        return [kw for kw in keywords if self._patterns[kw].search(text)]

    def explain(
        self,
        title: Optional[str],
        content: Optional[str] = None,
        categories: Optional[Iterable[str]] = None,
        full_title: Optional[str] = None,
    ) -> TypeMatch:
        """Classify and report which pass and keywords decided the type."""
        texts = {
            "title": " ".join(part for part in (title, full_title) if part).lower(),
            "content": (content or "").lower(),
            "category": " | ".join(c for c in (categories or []) if c).lower(),
        }

        eligible = [rule for rule in self.rules if not self._matches(rule.exclude_keywords, texts["title"])]

        for pass_name, weight, attribute in self.PASSES:
            text = texts[pass_name]
            if not text:
                continue

            best: Optional[TypeMatch] = None
            for rule in eligible:
                if pass_name != "title" and self._matches(rule.exclude_keywords, text):
                    continue
                matched = self._matches(getattr(rule, attribute), text)
                if not matched:
                    continue
                score = weight * len(matched) * rule.priority
                # Strictly greater keeps the earlier rule on ties
                if best is None or score > best.score:
                    best = TypeMatch(type=rule.name, matched_pass=pass_name, score=score, matched_keywords=matched)

            if best is not None:
                return best

        return TypeMatch(type=None)

    def classify(
        self,
        title: Optional[str],
        content: Optional[str] = None,
        categories: Optional[Iterable[str]] = None,
        full_title: Optional[str] = None,
    ) -> Optional[str]:
        """Return the product type, or None when no rule matches."""
        return self.explain(title, content, categories, full_title).type

    def classify_product(self, product, categories: Optional[Iterable[str]] = None) -> Optional[str]:
        """Classify a Product row (or any object with the same attributes)."""
        content = " ".join(
            part for part in (getattr(product, "description", None), getattr(product, "content", None)) if part
        )
        return self.classify(
            getattr(product, "title", None),
            content,
            categories,
            full_title=getattr(product, "full_title", None),
        )

    def get_rule(self, type_name: Optional[str]) -> Optional[TypeRule]:
        for rule in self.rules:
            if rule.name == type_name:
                return rule
        return None

    def synonyms_for(self, type_name: Optional[str]) -> List[str]:
        rule = self.get_rule(type_name)
        return list(rule.synonyms) if rule else []

    def is_type_synonym(self, keyword: str, type_name: Optional[str]) -> bool:
        """True when the keyword only names the given type."""
        rule = self.get_rule(type_name)
        if rule is None:
            return False
        return " ".join(keyword.lower().split()) in rule.synonyms


# Global classifier instance
type_classifier = ProductTypeClassifier()
