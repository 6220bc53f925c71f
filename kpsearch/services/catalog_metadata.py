"""
Read-only catalog vocabulary used by the query parser.

The vocabulary (known artists and their spelling aliases, popular themes,
known tags and the generic filler words shoppers add to a query) is loaded
once at startup from a JSON file and handed to the parser explicitly. It is
frozen after load.
"""
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from kpsearch.services.type_classifier import TYPE_NAMES

logger = logging.getLogger(__name__)


def _normalize(value: str) -> str:
    return " ".join(value.lower().split())


@dataclass(frozen=True)
class CatalogMetadata:
    """Vocabulary snapshot of the catalog."""

    product_types: Tuple[str, ...]
    artists: Tuple[str, ...]
    artist_aliases: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    categories: Tuple[str, ...] = ()
    popular_themes: Tuple[str, ...] = ()
    tags: FrozenSet[str] = frozenset()
    generic_words: FrozenSet[str] = frozenset()

    @classmethod
    def from_dict(cls, data: Dict, product_types: Iterable[str] = TYPE_NAMES) -> "CatalogMetadata":
        artists = tuple(sorted({a.strip() for a in data.get("artists", []) if a and a.strip()}))
        known = {_normalize(a): a for a in artists}

        aliases = {}
        for alias, target in data.get("artist_aliases", {}).items():
            canonical = known.get(_normalize(target))
            if canonical is None:
                logger.warning(f"Ignoring alias '{alias}' for unknown artist '{target}'")
                continue
            aliases[_normalize(alias)] = canonical

        tags = set()
        for values in data.get("tags", {}).values():
            tags.update(_normalize(v) for v in values)

        return cls(
            product_types=tuple(product_types),
            artists=artists,
            artist_aliases=MappingProxyType(aliases),
            categories=tuple(data.get("categories", [])),
            popular_themes=tuple(_normalize(t) for t in data.get("popular_themes", [])),
            tags=frozenset(tags),
            generic_words=frozenset(_normalize(w) for w in data.get("generic_words", [])),
        )

    @classmethod
    def load(cls, path) -> "CatalogMetadata":
        """Load the vocabulary from a JSON file."""
        path = Path(path)
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)

        metadata = cls.from_dict(data)
        logger.info(
            f"Catalog metadata loaded from {path.name}: {len(metadata.artists)} artists, "
            f"{len(metadata.artist_aliases)} aliases, {len(metadata.tags)} tags"
        )
        return metadata

    def resolve_type(self, value: Optional[str]) -> Optional[str]:
        """Canonical product type for a free-form value, or None."""
        if not value or not isinstance(value, str):
            return None
        wanted = _normalize(value)
        for product_type in self.product_types:
            if product_type.lower() == wanted:
                return product_type
        return None

    def resolve_artist(self, value: Optional[str]) -> Optional[str]:
        """
        Map a free-form artist value to a known catalog artist.

        Exact (case-insensitive) names win over aliases; unknown names
        resolve to None.
        """
        if not value or not isinstance(value, str):
            return None
        wanted = _normalize(value)
        for artist in self.artists:
            if artist.lower() == wanted:
                return artist
        return self.artist_aliases.get(wanted)

    def artist_name_variants(self, artist: str) -> FrozenSet[str]:
        """Lower-cased spellings that only name the given artist."""
        variants = {_normalize(artist)}
        variants.update(part for part in _normalize(artist).split() if len(part) > 2)
        variants.update(alias for alias, target in self.artist_aliases.items() if target == artist)
        return frozenset(variants)

    def is_generic(self, word: str) -> bool:
        return _normalize(word) in self.generic_words

    def is_known_tag(self, word: str) -> bool:
        return _normalize(word) in self.tags
