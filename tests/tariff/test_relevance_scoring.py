"""Tests for keyword relevance scoring of schedule trees."""

from __future__ import annotations

import pytest

from tariffstack.tariff.hierarchy import NEUTRAL_SCORE, build_hierarchy
from tariffstack.tariff.keywords import ProductKeywords, label_mentions
from tariffstack.tariff.relevance import (
    best_match,
    relevant_branches,
    score_hierarchy,
    score_label,
    top_matches,
)


@pytest.fixture()
def tree(chapter_61_rows):
    return build_hierarchy(chapter_61_rows)


@pytest.fixture()
def cotton_mens_tshirt() -> ProductKeywords:
    return ProductKeywords(materials=("cotton",), demographics=("men",), product_types=("t-shirt",))


def test_no_keywords_leaves_every_node_neutral(tree):
    score_hierarchy(tree.roots, ProductKeywords())
    assert all(node.relevance_score == NEUTRAL_SCORE for node in tree.iter_nodes())

    men = tree.find("grp-1")
    assert [child.id for child in men.children] == ["6109100004", "6109100011", "6109100007"]


def test_full_keyword_set(tree, cotton_mens_tshirt):
    score_hierarchy(tree.roots, cotton_mens_tshirt)
    scores = {node.id: node.relevance_score for node in tree.iter_nodes()}

    assert scores["6109"] == 80
    assert scores["610910"] == 90
    assert scores["grp-1"] == 75
    assert scores["6109100004"] == 80
    assert scores["6109100011"] == 80
    assert scores["6109901007"] == 65


def test_catch_all_is_never_boosted(tree, cotton_mens_tshirt):
    score_hierarchy(tree.roots, cotton_mens_tshirt)
    assert tree.find("6109.10.00.07").relevance_score == NEUTRAL_SCORE
    assert tree.find("6109.10.00.40").relevance_score == NEUTRAL_SCORE


def test_other_product_type_is_penalized(tree, cotton_mens_tshirt):
    score_hierarchy(tree.roots, cotton_mens_tshirt)
    assert tree.find("6110").relevance_score == 30
    assert tree.find("6110.20").relevance_score == 40
    assert tree.find("6110.20.20.10").relevance_score == 45


def test_demographic_does_not_match_inside_other_words(tree):
    score_hierarchy(tree.roots, ProductKeywords(demographics=("men",)))
    assert tree.find("grp-2").relevance_score == NEUTRAL_SCORE
    assert tree.find("grp-1").relevance_score == 65


def test_material_only(tree):
    score_hierarchy(tree.roots, ProductKeywords(materials=("cotton",)))
    assert tree.find("6109.10").relevance_score == 60
    assert tree.find("6109.90.10").relevance_score == NEUTRAL_SCORE


def test_score_is_clamped():
    keywords = ProductKeywords(materials=("cotton",), demographics=("men",), product_types=("t-shirt",))
    assert score_label("Men's cotton T-shirts", keywords) == 100
    assert score_label("Other", keywords, catch_all=True) == NEUTRAL_SCORE


def test_catch_all_sorts_last_regardless_of_score(tree):
    score_hierarchy(tree.roots, ProductKeywords(product_types=("t-shirt",)))
    men = tree.find("grp-1")
    assert men.children[-1].id == "6109100007"


def test_top_matches(tree, cotton_mens_tshirt):
    score_hierarchy(tree.roots, cotton_mens_tshirt)
    matches = top_matches(tree.roots, limit=3)

    assert [node.id for node in matches] == ["6109100004", "6109100011", "6109901007"]
    assert all(node.is_top_match for node in matches)
    assert not tree.find("6109.10.00.07").is_top_match
    assert best_match(tree.roots).id == "6109100004"


def test_relevant_branches(tree, cotton_mens_tshirt):
    score_hierarchy(tree.roots, cotton_mens_tshirt)
    ids = {node.id for node in relevant_branches(tree.roots)}
    assert {"61", "6109", "610910", "grp-1"} <= ids
    assert "6110" not in ids


def test_scoring_is_deterministic(chapter_61_rows, cotton_mens_tshirt):
    first = build_hierarchy(chapter_61_rows)
    second = build_hierarchy(chapter_61_rows)
    score_hierarchy(first.roots, cotton_mens_tshirt)
    score_hierarchy(second.roots, cotton_mens_tshirt)
    assert [(n.id, n.relevance_score) for n in first.iter_nodes()] == [
        (n.id, n.relevance_score) for n in second.iter_nodes()
    ]


class TestKeywords:
    def test_from_mapping_accepts_camel_case(self):
        keywords = ProductKeywords.from_mapping({"productTypes": ["T-Shirt"], "materials": "cotton"})
        assert keywords.product_types == ("t-shirt",)
        assert keywords.materials == ("cotton",)
        assert keywords.demographics == ()

    def test_aliases(self):
        keywords = ProductKeywords(product_types=("pants",), demographics=("women's",))
        assert keywords.requested_product_types() == ("trousers",)
        assert "trouser" in keywords.product_type_terms()
        assert "women's" in keywords.demographic_terms()

    def test_competing_terms_exclude_requested(self):
        keywords = ProductKeywords(product_types=("t-shirt",))
        competing = keywords.competing_product_terms()
        assert "sweater" in competing
        assert "singlet" not in competing

    def test_label_mentions_uses_leading_word_boundary(self):
        assert label_mentions("Men's or boys'", ["men's"])
        assert not label_mentions("Women's or girls'", ["men's", "men"])
        assert label_mentions("Trousers and shorts", ["trouser"])

    def test_empty(self):
        assert ProductKeywords.from_mapping(None).is_empty

    def test_label_mentions_whole_words_only(self):
        assert not label_mentions("T-shirts, singlets and tank tops", ["shirt"])
        assert label_mentions("Men's or boys' shirts", ["shirt"])
        assert not label_mentions("Briefcases", ["brief"])
        assert not label_mentions("Bags suitable for travel", ["suit"])
        assert label_mentions("Dresses", ["dress"])


def test_shirt_request_does_not_boost_t_shirts():
    keywords = ProductKeywords(product_types=("shirt",))
    assert score_label("Men's or boys' shirts", keywords) == 80
    assert score_label("T-shirts, singlets, tank tops and similar garments", keywords) == 30
