"""Keyword buckets and synonym tables used for relevance scoring.

Keywords arrive pre-extracted (material, demographic, product type); this
module never reads free product text.  The synonym tables map a requested
term to the label vocabulary the schedule actually uses, e.g. a "t-shirt"
is described as "singlets and other tank tops" in chapter 61.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterable, Mapping

#: Product type -> label terms that indicate that garment or article.
PRODUCT_TYPE_SYNONYMS: Mapping[str, tuple[str, ...]] = {
    "t-shirt": ("t-shirt", "tshirt", "singlet", "tank top"),
    "shirt": ("shirt", "blouse"),
    "underwear": ("underwear", "undergarment", "underpant", "brief"),
    "sweater": ("sweater", "pullover", "jumper", "cardigan"),
    "sweatshirt": ("sweatshirt", "hoodie"),
    "jacket": ("jacket", "anorak", "windbreaker", "blazer"),
    "coat": ("overcoat", "carcoat", "cape", "cloak"),
    "trousers": ("trouser", "pant", "slack", "breeches"),
    "shorts": ("shorts",),
    "dress": ("dress", "frock"),
    "skirt": ("skirt",),
    "suit": ("suit", "ensemble"),
    "vest": ("vest", "waistcoat"),
    "pajamas": ("pajama", "nightdress", "nightshirt", "sleepwear"),
    "socks": ("sock", "hosiery", "stocking"),
    "gloves": ("glove", "mitten", "mitt"),
    "footwear": ("footwear", "shoe", "boot", "sandal"),
}

#: Alternate spellings of a requested product type.
PRODUCT_TYPE_ALIASES: Mapping[str, str] = {
    "tshirt": "t-shirt",
    "tee": "t-shirt",
    "tank top": "t-shirt",
    "blouse": "shirt",
    "pants": "trousers",
    "trouser": "trousers",
    "slacks": "trousers",
    "jeans": "trousers",
    "hoodie": "sweatshirt",
    "pullover": "sweater",
    "jumper": "sweater",
    "short": "shorts",
    "shoes": "footwear",
    "shoe": "footwear",
    "boots": "footwear",
    "pyjamas": "pajamas",
}

#: Material -> label terms.
MATERIAL_SYNONYMS: Mapping[str, tuple[str, ...]] = {
    "cotton": ("cotton",),
    "wool": ("wool", "fine animal hair"),
    "silk": ("silk",),
    "linen": ("linen", "flax"),
    "synthetic": ("synthetic", "man-made"),
    "polyester": ("polyester", "synthetic", "man-made"),
    "nylon": ("nylon", "synthetic", "man-made"),
    "leather": ("leather",),
    "rubber": ("rubber",),
    "plastic": ("plastic", "plastics"),
    "steel": ("steel", "iron"),
    "aluminum": ("aluminum", "aluminium"),
}

#: Demographic -> label terms.
DEMOGRAPHIC_SYNONYMS: Mapping[str, tuple[str, ...]] = {
    "men": ("men's", "men", "male"),
    "women": ("women's", "women", "female"),
    "boys": ("boys'", "boys", "boy"),
    "girls": ("girls'", "girls", "girl"),
    "babies": ("babies'", "babies", "infant"),
    "unisex": ("unisex",),
}

DEMOGRAPHIC_ALIASES: Mapping[str, str] = {
    "man": "men",
    "mens": "men",
    "male": "men",
    "woman": "women",
    "womens": "women",
    "female": "women",
    "ladies": "women",
    "boy": "boys",
    "girl": "girls",
    "baby": "babies",
    "infant": "babies",
}


def _canonical(value: str, aliases: Mapping[str, str]) -> str:
    lowered = value.strip().lower().rstrip("'")
    if lowered.endswith("'s"):
        lowered = lowered[:-2]
    return aliases.get(lowered, lowered)


def _clean_terms(values: Iterable[Any] | None) -> tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, str):
        values = [values]
    seen: list[str] = []
    for value in values:
        text = str(value).strip()
        if text and text.lower() not in seen:
            seen.append(text.lower())
    return tuple(seen)


@dataclass(frozen=True)
class ProductKeywords:
    """Structured keyword buckets describing the product being classified."""

    materials: tuple[str, ...] = ()
    demographics: tuple[str, ...] = ()
    product_types: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "ProductKeywords":
        if not payload:
            return cls()
        product_types = payload.get("product_types", payload.get("productTypes"))
        return cls(
            materials=_clean_terms(payload.get("materials")),
            demographics=_clean_terms(payload.get("demographics")),
            product_types=_clean_terms(product_types),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.materials or self.demographics or self.product_types)

    def material_terms(self) -> tuple[str, ...]:
        return _expand(self.materials, MATERIAL_SYNONYMS, {})

    def demographic_terms(self) -> tuple[str, ...]:
        return _expand(self.demographics, DEMOGRAPHIC_SYNONYMS, DEMOGRAPHIC_ALIASES)

    def requested_product_types(self) -> tuple[str, ...]:
        return tuple(_canonical(value, PRODUCT_TYPE_ALIASES) for value in self.product_types)

    def product_type_terms(self) -> tuple[str, ...]:
        return _expand(self.product_types, PRODUCT_TYPE_SYNONYMS, PRODUCT_TYPE_ALIASES)

    def competing_product_terms(self) -> tuple[str, ...]:
        """Label terms for known product types the caller did *not* request."""
        requested = set(self.requested_product_types())
        own_terms = set(self.product_type_terms())
        terms: list[str] = []
        for product_type, synonyms in PRODUCT_TYPE_SYNONYMS.items():
            if product_type in requested:
                continue
            for term in synonyms:
                if term not in own_terms and term not in terms:
                    terms.append(term)
        return tuple(terms)


def _expand(
    values: tuple[str, ...],
    table: Mapping[str, tuple[str, ...]],
    aliases: Mapping[str, str],
) -> tuple[str, ...]:
    terms: list[str] = []
    for value in values:
        key = _canonical(value, aliases)
        for term in table.get(key, (key,)):
            if term not in terms:
                terms.append(term)
    return tuple(terms)


@lru_cache(maxsize=512)
def _term_pattern(term: str) -> re.Pattern[str]:
    # "men" never matches inside "women", "shirt" never inside "T-shirts",
    # "suit" never inside "suitable"; a plural ending is allowed.
    return re.compile(r"(?<![a-z])(?<!t-)" + re.escape(term.lower()) + r"(?:e?s)?(?![a-z])")


def label_mentions(label: str, terms: Iterable[str]) -> bool:
    """Return True when any term appears in ``label`` as a whole word."""
    lowered = label.lower()
    return any(_term_pattern(term).search(lowered) for term in terms if term)
