"""Relevance scoring of hierarchy nodes against product keywords."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from tariffstack.tariff.hierarchy import NEUTRAL_SCORE, HierarchyNode
from tariffstack.tariff.keywords import ProductKeywords, label_mentions

logger = logging.getLogger(__name__)

PRODUCT_TYPE_BOOST = 30.0
PRODUCT_TYPE_PENALTY = -20.0
DEMOGRAPHIC_BOOST = 15.0
MATERIAL_BOOST = 10.0
MIN_SCORE = 0.0
MAX_SCORE = 100.0
DEFAULT_TOP_MATCHES = 3


def _clamp(value: float) -> float:
    return max(MIN_SCORE, min(MAX_SCORE, value))


class _TermSets:
    """Keyword expansions computed once per scoring pass."""

    def __init__(self, keywords: ProductKeywords) -> None:
        self.product_terms = keywords.product_type_terms()
        self.competing_terms = keywords.competing_product_terms() if self.product_terms else ()
        self.demographic_terms = keywords.demographic_terms()
        self.material_terms = keywords.material_terms()


def score_label(label: str, keywords: ProductKeywords, *, catch_all: bool = False) -> float:
    """Score a single label; see :func:`score_hierarchy` for the rules."""
    return _score(label, _TermSets(keywords), catch_all)


def _score(label: str, terms: _TermSets, catch_all: bool) -> float:
    score = NEUTRAL_SCORE

    # Product type dominates; boosts are withheld from catch-all rows.
    if terms.product_terms:
        if label_mentions(label, terms.product_terms):
            if not catch_all:
                score += PRODUCT_TYPE_BOOST
        elif label_mentions(label, terms.competing_terms):
            score += PRODUCT_TYPE_PENALTY

    if terms.demographic_terms and not catch_all:
        if label_mentions(label, terms.demographic_terms):
            score += DEMOGRAPHIC_BOOST

    if terms.material_terms and not catch_all:
        if label_mentions(label, terms.material_terms):
            score += MATERIAL_BOOST

    return _clamp(score)


def _sibling_key(node: HierarchyNode) -> tuple[bool, float]:
    return (node.is_catch_all, -node.relevance_score)


def _annotate(node: HierarchyNode, terms: _TermSets) -> float:
    node.relevance_score = _score(node.display_label, terms, node.is_catch_all)
    node.is_top_match = False
    best = node.relevance_score
    for child in node.children:
        best = max(best, _annotate(child, terms))
    # list.sort is stable, so equal keys keep schedule code order.
    node.children.sort(key=_sibling_key)
    node.subtree_score = best
    return best


def score_hierarchy(
    roots: list[HierarchyNode],
    keywords: ProductKeywords | None = None,
) -> list[HierarchyNode]:
    """Annotate every node with a 0-100 relevance score and reorder siblings.

    Every node starts at the neutral score.  Product-type keywords give
    +30 to matching labels and -20 to labels that name a different known
    product type.  Demographic (+15) and material (+10) rules only run when
    the caller supplied keywords for them.  Catch-all ("Other") nodes never
    receive a boost and always sort after their non-catch-all siblings.

    The forest is modified in place and returned for chaining.
    """
    keywords = keywords or ProductKeywords()
    terms = _TermSets(keywords)
    for root in roots:
        _annotate(root, terms)
    roots.sort(key=_sibling_key)
    logger.debug(
        "Scored %d root(s) against keywords materials=%s demographics=%s product_types=%s",
        len(roots),
        keywords.materials,
        keywords.demographics,
        keywords.product_types,
    )
    return roots


def _walk(roots: Iterable[HierarchyNode]) -> Iterable[HierarchyNode]:
    for root in roots:
        yield from root.iter_subtree()


def _match_key(node: HierarchyNode) -> tuple:
    percent = node.effective_rate.percent
    rate_key = (0, percent) if percent is not None else (1, 0.0)
    return (-node.relevance_score, node.is_catch_all, rate_key, node.code or node.id)


def top_matches(roots: Sequence[HierarchyNode], limit: int = DEFAULT_TOP_MATCHES) -> list[HierarchyNode]:
    """Return and flag the highest scoring selectable codes.

    Ties prefer non-catch-all codes, then the lower known duty rate, then
    code order.
    """
    terminals = [node for node in _walk(roots) if node.is_terminal]
    for node in terminals:
        node.is_top_match = False
    ranked = sorted(terminals, key=_match_key)[: max(limit, 0)]
    for node in ranked:
        node.is_top_match = True
    return ranked


def best_match(roots: Sequence[HierarchyNode]) -> HierarchyNode | None:
    terminals = [node for node in _walk(roots) if node.is_terminal]
    return min(terminals, key=_match_key) if terminals else None


def relevant_branches(roots: Sequence[HierarchyNode]) -> list[HierarchyNode]:
    """Nodes whose subtree scores above the neutral baseline, in tree order."""
    return [node for node in _walk(roots) if node.subtree_score > NEUTRAL_SCORE]
