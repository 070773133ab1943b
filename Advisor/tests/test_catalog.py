"""Tests for the modifier catalog.

Validates that:
1. Modifier data is loaded and validated from modifiers.json
2. The recipe index is the exact inverse of recipe -> modifier
3. Component bags expand nested recipes with multiplicities, excluding the root
4. Malformed data (duplicate recipes, self-references, cycles) is rejected
"""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from Advisor.catalog import (
    AdditionalReward,
    Catalog,
    CatalogError,
    Convert,
    DoubledReward,
    Reroll,
    Reward,
    get_catalog,
    load_catalog,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def catalog() -> Catalog:
    """Load the bundled catalog once per module."""
    return load_catalog()


def base_record(modifier_id, recipe=(), **extra):
    record = {"id": modifier_id, "name": f"Modifier {modifier_id}", "recipe": list(recipe)}
    record.update(extra)
    return record


# ---------------------------------------------------------------------------
# Tests: Loading
# ---------------------------------------------------------------------------

class TestCatalogLoading:
    """Test that the bundled data loads into a consistent catalog."""

    def test_loads_all_modifiers(self, catalog):
        assert len(catalog) == 62
        assert sorted(catalog.by_id) == list(range(62))

    def test_base_modifiers_have_no_recipe(self, catalog):
        assert catalog.base_ids() == list(range(27))
        assert catalog.is_base(0)
        assert not catalog.is_base(27)

    def test_recipe_index_is_inverse(self, catalog):
        for modifier in catalog.by_id.values():
            if modifier.recipe:
                assert catalog.by_recipe[modifier.recipe].id == modifier.id
        assert len(catalog.by_recipe) == 62 - 27

    def test_produced_by(self, catalog):
        assert catalog.produced_by([7, 26]) == 27
        assert catalog.produced_by({26, 7}) == 27
        assert catalog.produced_by([7]) is None

    def test_effects_parsed(self, catalog):
        assert catalog.get(9).effect == Reroll(count=1)
        assert catalog.get(18).effect == AdditionalReward()
        assert catalog.get(61).effect == DoubledReward()
        assert catalog.get(55).effect == Convert(to=Reward.DIVINATION_CARD)
        assert catalog.get(0).effect is None

    def test_rewards_parsed(self, catalog):
        assert catalog.get(7).rewards == {Reward.ARMOUR: 1, Reward.JEWELRY: 1}
        assert catalog.get(33).rewards == {Reward.FRAGMENT: 2}

    def test_names(self, catalog):
        assert catalog.name_of(27) == "Assassin"
        assert catalog.name_of(999) == "#999"

    def test_unknown_id_raises(self, catalog):
        with pytest.raises(KeyError):
            catalog.get(999)

    def test_singleton(self):
        assert get_catalog() is get_catalog()

    def test_indexes_are_read_only(self, catalog):
        with pytest.raises(TypeError):
            catalog.by_id[999] = catalog.get(0)
        with pytest.raises(TypeError):
            catalog.by_recipe[frozenset({0, 1})] = catalog.get(0)
        with pytest.raises(TypeError):
            catalog.components[27] = {}
        with pytest.raises(TypeError):
            catalog.components[27][7] = 5
        assert catalog.components[27] == {7: 1, 26: 1}

    def test_to_dict_omits_rewards(self, catalog):
        exported = catalog.to_dict()
        assert exported["byId"]["27"] == {"id": 27, "name": "Assassin", "recipe": [7, 26], "tier": 2}
        assert "rewards" not in exported["byId"]["27"]
        assert exported["components"]["27"] == {"7": 1, "26": 1}


# ---------------------------------------------------------------------------
# Tests: Components and tiers
# ---------------------------------------------------------------------------

class TestComponents:
    """Test recursive component expansion."""

    def test_base_has_no_components(self, catalog):
        assert catalog.components[0] == {}

    def test_direct_recipe(self, catalog):
        assert catalog.components[27] == {7: 1, 26: 1}

    def test_nested_recipe_counts_multiplicity(self, catalog):
        # Tukohama-touched = Bonebreaker + Executioner + Magma Barrier,
        # and Magma Barrier needs another Bonebreaker
        assert catalog.components[57] == {4: 2, 30: 1, 36: 1, 1: 1, 11: 1, 15: 1}

    def test_components_exclude_self(self, catalog):
        for modifier_id, bag in catalog.components.items():
            assert modifier_id not in bag

    def test_tiers(self, catalog):
        assert catalog.tier_of(0) == 1
        assert catalog.tier_of(27) == 2
        assert catalog.tier_of(43) == 3
        assert catalog.tier_of(57) == 3
        assert catalog.tier_of(61) == 4
        assert catalog.tier_of(60) == 5


# ---------------------------------------------------------------------------
# Tests: Malformed data
# ---------------------------------------------------------------------------

class TestMalformedData:
    """Malformed data is a fatal startup error."""

    def test_duplicate_recipe(self):
        records = [base_record(0), base_record(1), base_record(2, [0, 1]), base_record(3, [1, 0])]
        with pytest.raises(CatalogError, match="Recipe"):
            Catalog.from_records(records)

    def test_duplicate_id(self):
        with pytest.raises(CatalogError, match="Duplicate"):
            Catalog.from_records([base_record(0), base_record(0)])

    def test_self_reference(self):
        with pytest.raises(CatalogError, match="itself"):
            Catalog.from_records([base_record(0), base_record(1, [0, 1])])

    def test_unknown_member(self):
        with pytest.raises(CatalogError, match="unknown"):
            Catalog.from_records([base_record(0, [5])])

    def test_cycle(self):
        records = [base_record(0, [1]), base_record(1, [0]), base_record(2)]
        with pytest.raises(CatalogError, match="cycle"):
            Catalog.from_records(records)

    def test_unknown_reward(self):
        with pytest.raises(CatalogError):
            Catalog.from_records([base_record(0, rewards={"Gold": 1})])

    def test_unknown_effect(self):
        with pytest.raises(CatalogError):
            Catalog.from_records([base_record(0, effect={"type": "explode"})])

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(CatalogError):
            load_catalog(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "modifiers.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(CatalogError):
            load_catalog(path)

    def test_valid_custom_file(self, tmp_path: Path):
        path = tmp_path / "modifiers.json"
        path.write_text(json.dumps([base_record(0), base_record(1), base_record(2, [0, 1])]), encoding="utf-8")
        custom = load_catalog(path)
        assert custom.components[2] == {0: 1, 1: 1}
