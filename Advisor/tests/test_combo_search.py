"""Scenarios for the combo suggestion engine.

These scenarios cover the fast path (a roster combo that is already fully
owned), the backtracking search over recipes and fillers, and the
guarantees every suggestion carries: it extends the queue, has exactly four
distinct modifiers, and never contains more than two filler slots.
"""
from __future__ import annotations

import math
from itertools import permutations
from typing import Dict, List, Sequence

import pytest

from Advisor import LogLevel, create_string_logger
from Advisor.catalog import load_catalog
from Advisor.combo_search import (
    Candidate,
    _Best,
    _improves,
    best_ordering,
    build_candidates,
    count_fillers,
    next_modifier,
    suggest_combo,
    suggest_next_modifier,
)
from Advisor.combo_value import combo_value
from Advisor.config import LabeledCombo, UserSettings
from Advisor.production import produced_ids


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def catalog():
    return load_catalog()


def make_settings(combos: Sequence[Sequence[int]], forbidden: Sequence[int] = ()) -> UserSettings:
    """Settings whose roster is every combo, in the given priority order."""
    return UserSettings(
        combo_catalog=[LabeledCombo(i, f"Combo #{i}", list(combo)) for i, combo in enumerate(combos)],
        combo_roster=list(range(len(combos))),
        forbidden_modifier_ids=set(forbidden),
        hotkey="",
        show_tiers=False,
    )


def own(*modifier_ids: int, count: int = 1) -> Dict[int, int]:
    return {modifier_id: count for modifier_id in modifier_ids}


def assert_valid_suggestion(combo: List[int], queue: Sequence[int]) -> None:
    assert len(combo) == 4
    assert len(set(combo)) == 4
    assert combo[: len(queue)] == list(queue)


# ---------------------------------------------------------------------------
# Scenario 1: Requests that cannot be answered
# ---------------------------------------------------------------------------

class TestNoSuggestion:
    """Requests that yield no suggestion."""

    def test_full_queue(self, catalog):
        settings = make_settings([[0, 1, 2, 3]])
        assert suggest_combo(settings, own(0, 1, 2, 3), [7, 8, 9, 10], catalog=catalog) is None

    def test_empty_stash(self, catalog):
        settings = make_settings([[0, 1, 2, 3]])
        assert suggest_combo(settings, {}, [], catalog=catalog) is None

    def test_only_unrelated_fillers(self, catalog):
        """Four fillers that combine into nothing exceed the filler limit."""
        settings = make_settings([[0, 1, 2, 3]])
        assert suggest_combo(settings, own(4, 5, 6, 7), [], catalog=catalog) is None

    def test_forbidden_fillers_are_not_used(self, catalog):
        settings = make_settings([[0, 1, 2, 27]], forbidden=[4, 12])
        stash = own(7, 26, 4, 12)
        assert suggest_combo(settings, stash, [], catalog=catalog) is None

    def test_hard_limit_gives_up(self, catalog):
        settings = make_settings([[0, 1, 2, 27]])
        stash = own(7, 26, 4, 12)
        assert suggest_combo(settings, stash, [], catalog=catalog, hard_limit_ms=-1) is None

    def test_next_modifier_without_suggestion(self, catalog):
        settings = make_settings([[0, 1, 2, 3]])
        assert suggest_next_modifier(settings, {}, [], catalog=catalog) is None


# ---------------------------------------------------------------------------
# Scenario 2: Fast path
# ---------------------------------------------------------------------------

class TestActiveCombo:
    """A fully owned roster combo is suggested as-is."""

    def test_owned_combo(self, catalog):
        settings = make_settings([[0, 1, 2, 3]])
        assert suggest_combo(settings, own(0, 1, 2, 3), [], catalog=catalog) == [0, 1, 2, 3]

    def test_roster_priority(self, catalog):
        settings = make_settings([[0, 1, 2, 3], [4, 5, 6, 7]])
        stash = own(*range(8))
        assert suggest_combo(settings, stash, [], catalog=catalog) == [0, 1, 2, 3]

    def test_completes_queue(self, catalog):
        settings = make_settings([[0, 1, 2, 3], [4, 5, 6, 7]])
        stash = own(*range(8))
        assert suggest_combo(settings, stash, [0, 1, 2], catalog=catalog) == [0, 1, 2, 3]
        assert suggest_next_modifier(settings, stash, [0, 1, 2], catalog=catalog) == 3

    def test_queued_modifiers_need_not_be_owned(self, catalog):
        settings = make_settings([[0, 1, 2, 3]])
        assert suggest_combo(settings, own(3), [0, 1, 2], catalog=catalog) == [0, 1, 2, 3]

    def test_skips_combo_not_matching_queue(self, catalog):
        settings = make_settings([[0, 1, 2, 3], [4, 5, 6, 7]])
        stash = own(*range(8))
        assert suggest_combo(settings, stash, [4], catalog=catalog) == [4, 5, 6, 7]

    def test_missing_roster_ids_are_skipped(self, catalog):
        settings = make_settings([[0, 1, 2, 3]])
        settings.combo_roster = [7, 0]
        logger, _ = create_string_logger(LogLevel.SUMMARY)
        combo = suggest_combo(settings, own(0, 1, 2, 3), [], catalog=catalog, logger=logger)
        assert combo == [0, 1, 2, 3]
        assert logger.get_entries_by_category("SETTINGS")


# ---------------------------------------------------------------------------
# Scenario 3: Search over recipes and fillers
# ---------------------------------------------------------------------------

class TestCustomCombo:
    """Search-built combos that craft towards roster modifiers."""

    def test_recipe_with_fillers(self, catalog):
        """Assassin (Deadeye + Vampiric) is crafted, the other two slots are fillers."""
        settings = make_settings([[0, 1, 2, 27]])
        combo = suggest_combo(settings, own(7, 26, 4, 12), [], catalog=catalog)

        assert_valid_suggestion(combo, [])
        assert set(combo) == {4, 7, 12, 26}
        assert 27 in produced_ids(combo, catalog)
        assert combo == best_ordering([], {4, 7, 12, 26}, {27}, catalog)[0]

    def test_filler_free_combo(self, catalog):
        """Two recipes fill all four slots, so the search stops immediately."""
        settings = make_settings([[30, 36]])
        combo = suggest_combo(settings, own(1, 11, 4, 15), [], catalog=catalog)

        assert_valid_suggestion(combo, [])
        assert set(combo) == {1, 11, 4, 15}
        assert {30, 36} <= produced_ids(combo, catalog)

    def test_picks_highest_value_ordering(self, catalog):
        settings = make_settings([[30, 36]])
        combo = suggest_combo(settings, own(1, 11, 4, 15), [], catalog=catalog)

        best = max(math.floor(combo_value(list(p), catalog)) for p in permutations(combo))
        assert math.floor(combo_value(combo, catalog)) == best

    def test_recipe_overlapping_queue(self, catalog):
        """Vampiric is already queued; only Deadeye is needed to craft Assassin."""
        settings = make_settings([[0, 1, 2, 27]])
        combo = suggest_combo(settings, own(7, 4, 12), [26], catalog=catalog)

        assert_valid_suggestion(combo, [26])
        assert set(combo) == {4, 7, 12, 26}
        assert 27 in produced_ids(combo, catalog)
        assert next_modifier(combo, [26]) == combo[1]

    def test_zero_time_budget_still_returns_best(self, catalog):
        settings = make_settings([[0, 1, 2, 27]])
        combo = suggest_combo(settings, own(7, 26, 4, 12), [], catalog=catalog, time_budget_ms=0)
        assert combo is not None
        assert set(combo) == {4, 7, 12, 26}

    def test_deterministic(self, catalog):
        settings = make_settings([[30, 36]])
        stash = own(1, 11, 4, 15)
        first = suggest_combo(settings, stash, [], catalog=catalog)
        second = suggest_combo(settings, stash, [], catalog=catalog)
        assert first == second

    def test_fewer_fillers_beats_higher_value(self, catalog):
        """A one-filler Treant Horde combo replaces a more valuable two-filler Assassin combo."""
        settings = make_settings([[27, 42]])
        stash = {7: 1, 26: 1, 21: 1, 23: 1, 25: 1, 4: 5, 12: 4}
        logger, _ = create_string_logger(LogLevel.DEBUG)
        combo = suggest_combo(settings, stash, [], catalog=catalog, time_budget_ms=60_000, logger=logger)

        updates = [e.data for e in logger.get_entries_by_category("SEARCH") if e.data]
        assert updates[0]["fillers"] == 2
        assert updates[-1]["fillers"] == 1
        assert updates[0]["value"] > updates[-1]["value"]

        assert_valid_suggestion(combo, [])
        assert combo == updates[-1]["combo"]
        assert {21, 23, 25} <= set(combo)
        assert 42 in produced_ids(combo, catalog)
        filler_ids = settings.get_filler_modifier_ids(catalog)
        assert count_fillers(combo, filler_ids, catalog) == 1

    def test_logs_search(self, catalog):
        settings = make_settings([[0, 1, 2, 27]])
        logger, buffer = create_string_logger(LogLevel.DEBUG)
        suggest_combo(settings, own(7, 26, 4, 12), [], catalog=catalog, logger=logger)

        assert logger.get_entries_by_category("SEARCH")
        assert "Suggested custom combo" in buffer.getvalue()


# ---------------------------------------------------------------------------
# Candidate generation
# ---------------------------------------------------------------------------

class TestBuildCandidates:
    """Ordering and filtering of search moves."""

    def test_recipes_in_roster_order(self, catalog):
        settings = make_settings([[30, 36]])
        candidates = build_candidates(settings, own(1, 11, 4, 15), [], catalog)
        assert candidates == [
            Candidate(30, frozenset({1, 11})),
            Candidate(36, frozenset({4, 15})),
        ]

    def test_least_satisfied_requirement_first(self, catalog):
        """Owning Executioner already makes it less urgent than Magma Barrier."""
        settings = make_settings([[30, 36]])
        stash = own(1, 11, 4, 15, 30)
        candidates = build_candidates(settings, stash, [], catalog)
        assert [c.produced for c in candidates] == [36, 30]

    def test_unowned_members_excluded(self, catalog):
        settings = make_settings([[30]])
        assert build_candidates(settings, own(1), [], catalog) == []

    def test_recipe_members_in_queue_need_not_be_owned(self, catalog):
        settings = make_settings([[27]])
        candidates = build_candidates(settings, own(7), [26], catalog)
        assert candidates == [Candidate(27, frozenset({7, 26}))]

    def test_recipe_fully_queued_is_excluded(self, catalog):
        settings = make_settings([[27]])
        assert build_candidates(settings, {}, [7, 26], catalog) == []

    def test_duplicate_requirements_collapsed(self, catalog):
        settings = make_settings([[30], [30]])
        candidates = build_candidates(settings, own(1, 11), [], catalog)
        assert candidates == [Candidate(30, frozenset({1, 11}))]

    def test_fillers_most_abundant_first(self, catalog):
        settings = make_settings([[0, 1, 2, 3]])
        candidates = build_candidates(settings, {5: 7, 6: 4, 8: 1}, [], catalog)
        assert all(c.is_filler for c in candidates)
        assert [min(c.recipe) for c in candidates] == [5, 6, 8]

    def test_filler_fallback_to_abundant_base_modifiers(self, catalog):
        """With fewer than two usable fillers, abundant base modifiers are used."""
        settings = make_settings([[0, 1, 2, 3]], forbidden=[5, 6])
        candidates = build_candidates(settings, {5: 7, 6: 4, 0: 9, 8: 2}, [], catalog)
        assert [min(c.recipe) for c in candidates] == [0, 5, 6]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestSearchHelpers:

    def test_best_ordering_respects_queue(self, catalog):
        combo, _ = best_ordering([26], {7, 26, 4}, {27}, catalog)
        assert combo[0] == 26

    def test_best_ordering_requires_production(self, catalog):
        assert best_ordering([], {4, 12}, {27}, catalog) is None

    def test_count_fillers(self, catalog):
        filler_ids = make_settings([[0, 1, 2, 27]]).get_filler_modifier_ids(catalog)
        assert count_fillers([7, 26, 4, 12], filler_ids, catalog) == 2
        assert count_fillers([4, 5, 6, 12], filler_ids, catalog) == 4

    def test_recipe_producing_filler_counts_as_filler(self, catalog):
        # Ice Prison is not needed by the roster
        filler_ids = make_settings([[0, 1, 2, 27]]).get_filler_modifier_ids(catalog)
        assert 35 in filler_ids
        assert count_fillers([20, 21, 7, 26], filler_ids, catalog) == 2

    def test_improves_without_best(self):
        assert _improves(None, 0.0, 2)

    def test_improves_fewer_fillers_always_wins(self):
        best = _Best([26, 7, 4, 12], 48.0, 2)
        assert _improves(best, 26.0, 1)
        assert not _improves(best, 500.0, 3)

    def test_improves_equal_fillers_compares_value(self):
        best = _Best([26, 7, 4, 12], 48.0, 2)
        assert not _improves(best, 47.0, 2)
        assert _improves(best, 48.0, 2)
        assert _improves(best, 49.0, 2)

    def test_next_modifier(self):
        assert next_modifier([0, 1, 2, 3], [0, 1]) == 2
        assert next_modifier([0, 1, 2, 3], []) == 0
        assert next_modifier(None, []) is None
        assert next_modifier([0, 1, 2, 3], [0, 1, 2, 3]) is None
