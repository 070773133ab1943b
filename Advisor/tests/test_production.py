"""Tests for the production resolver.

The enumeration order (subset size, then position order) decides which
recipe wins when recipes overlap; these tests pin it.
"""
from __future__ import annotations

import pytest

from Advisor.catalog import Catalog
from Advisor.production import powerset_positions, produced_ids, produced_recipes


@pytest.fixture(scope="module")
def catalog() -> Catalog:
    records = [{"id": i, "name": f"Base {i}"} for i in range(4)]
    records += [
        {"id": 10, "name": "AB", "recipe": [0, 1]},
        {"id": 11, "name": "BC", "recipe": [1, 2]},
        {"id": 12, "name": "ABC", "recipe": [0, 1, 2]},
        {"id": 13, "name": "CD", "recipe": [2, 3]},
    ]
    return Catalog.from_records(records)


class TestPowerset:

    def test_order(self):
        assert list(powerset_positions(2)) == [(), (0,), (1,), (0, 1)]
        assert list(powerset_positions(3)) == [
            (), (0,), (1,), (2,), (0, 1), (0, 2), (1, 2), (0, 1, 2),
        ]

    def test_bounded_by_queue_length(self):
        assert len(list(powerset_positions(4))) == 16


class TestProducedRecipes:

    def test_nothing_produced(self, catalog):
        assert produced_recipes([0, 2], catalog) == {}
        assert produced_recipes([], catalog) == {}

    def test_first_subset_claims_members(self, catalog):
        # {0,1} is visited before {1,2} and before {0,1,2}
        assert produced_recipes([0, 1, 2], catalog) == {frozenset({0, 1}): 10}

    def test_position_order_decides_overlap(self, catalog):
        # Positions (0,1) now hold {1,2}
        assert produced_recipes([1, 2, 0], catalog) == {frozenset({1, 2}): 11}

    def test_disjoint_recipes(self, catalog):
        assert produced_ids([0, 1, 2, 3], catalog) == {10, 13}

    def test_larger_recipe_only_when_unclaimed(self, catalog):
        assert 12 not in produced_ids([2, 0, 1], catalog)

    def test_default_catalog(self):
        # Deadeye + Vampiric -> Assassin, Berserker + Frenzied -> Executioner
        assert produced_ids([7, 26, 1, 11]) == {27, 30}
