"""Combo suggestion engine.

Given the user's settings, the stash and the modifiers already committed to
the queue, suggest the 4-modifier combo to complete:

1. Fast path: the highest-priority roster combo that extends the queue and
   whose remaining modifiers are all owned.
2. Otherwise, an anytime backtracking search over candidate moves (recipes
   that advance a roster combo, then filler modifiers). The search keeps the
   best complete combo found so far and stops early on a filler-free combo,
   or once the time budget has elapsed and a best combo exists.
"""
from __future__ import annotations

import math
import time
from collections import deque
from dataclasses import dataclass
from itertools import permutations
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .advisor_logging import AdvisorLogger, LogLevel, create_logger
from .catalog import Catalog, ModifierId, get_catalog
from .combo_value import combo_value
from .config import QUEUE_LENGTH, UserSettings
from .production import produced_ids, produced_recipes

# Search time budget; once exceeded, the best combo found so far is returned
DEFAULT_TIME_BUDGET_MS = 100

# Give up after this long even when nothing has been found yet
DEFAULT_HARD_LIMIT_MS = 2000

# Complete combos with more filler slots than this are never suggested
MAX_FILLER_COUNT = 2

# Fallback fillers must be base modifiers owned in more than this quantity
FALLBACK_FILLER_MIN_OWNED = 3

Stash = Mapping[ModifierId, int]


@dataclass(frozen=True)
class Candidate:
    """A search move: place ``recipe`` in the queue, producing ``produced`` (None for fillers)."""
    produced: Optional[ModifierId]
    recipe: FrozenSet[ModifierId]

    @property
    def is_filler(self) -> bool:
        return self.produced is None


@dataclass
class _Best:
    combo: List[ModifierId]
    value: float
    filler_count: int


def owned_count(stash: Stash, modifier_id: ModifierId) -> int:
    return stash.get(modifier_id, 0)


def owns(stash: Stash, modifier_id: ModifierId) -> bool:
    return owned_count(stash, modifier_id) > 0


# ---------------------------------------------------------------------------
# Fast path
# ---------------------------------------------------------------------------

def suggest_active_combo(
    settings: UserSettings,
    stash: Stash,
    queue: Sequence[ModifierId],
) -> Optional[List[ModifierId]]:
    """First roster combo that extends ``queue`` with modifiers that are all owned."""
    for combo in settings.roster_combos():
        if len(combo) <= len(queue) or list(combo[: len(queue)]) != list(queue):
            continue
        if all(owns(stash, modifier_id) for modifier_id in combo[len(queue):]):
            return list(combo)
    return None


# ---------------------------------------------------------------------------
# Candidate generation
# ---------------------------------------------------------------------------

def _rank_requirements(
    combo: Sequence[ModifierId],
    combo_priority: int,
    stash: Stash,
    queued: FrozenSet[ModifierId],
    catalog: Catalog,
) -> List[Tuple[ModifierId, float]]:
    """Craftable requirements of one roster combo with their priority (lower first)."""
    required: Dict[ModifierId, int] = {}
    for modifier_id in combo:
        required[modifier_id] = 1
        for component_id, count in catalog.components[modifier_id].items():
            required[component_id] = required.get(component_id, 0) + count

    # Owned counts accumulate down the recipe tree: owning a parent covers its members
    owned_along: Dict[ModifierId, int] = {}
    pending = deque((modifier_id, 0) for modifier_id in combo)
    while pending:
        modifier_id, parent_owned = pending.popleft()
        owned = owned_along.get(modifier_id, owned_count(stash, modifier_id)) + parent_owned
        owned_along[modifier_id] = owned
        pending.extend((member, owned) for member in sorted(catalog.get(modifier_id).recipe))

    ranked = []
    for modifier_id, required_count in required.items():
        recipe = catalog.get(modifier_id).recipe
        if not recipe:
            continue
        remaining = recipe - queued
        if not remaining or not all(owns(stash, member) for member in remaining):
            continue
        ratio = owned_along.get(modifier_id, 0) / required_count
        ranked.append((modifier_id, combo_priority + ratio))
    return ranked


def _filler_candidates(
    filler_ids: Set[ModifierId],
    stash: Stash,
    catalog: Catalog,
) -> List[Candidate]:
    by_abundance = lambda modifier_id: (-owned_count(stash, modifier_id), modifier_id)

    fillers = [
        Candidate(None, frozenset([modifier_id]))
        for modifier_id in sorted(filler_ids, key=by_abundance)
        if owns(stash, modifier_id)
    ]
    if len(fillers) < 2:
        abundant = [
            modifier_id for modifier_id in catalog.base_ids()
            if owned_count(stash, modifier_id) > FALLBACK_FILLER_MIN_OWNED
        ]
        fillers = [Candidate(None, frozenset([modifier_id])) for modifier_id in sorted(abundant, key=by_abundance)]
    return fillers


def build_candidates(
    settings: UserSettings,
    stash: Stash,
    queue: Sequence[ModifierId],
    catalog: Optional[Catalog] = None,
    filler_ids: Optional[Set[ModifierId]] = None,
) -> List[Candidate]:
    """
    Ordered candidate moves for the search.

    Recipes that advance a roster combo come first, least-satisfied
    requirement of the highest-priority combo first; filler modifiers follow,
    most abundant first.
    """
    catalog = catalog or get_catalog()
    if filler_ids is None:
        filler_ids = settings.get_filler_modifier_ids(catalog)
    queued = frozenset(queue)

    ranked: List[Tuple[ModifierId, float]] = []
    for combo_priority, combo in enumerate(settings.roster_combos(), start=1):
        ranked.extend(_rank_requirements(combo, combo_priority, stash, queued, catalog))
    ranked.sort(key=lambda item: item[1])

    candidates: List[Candidate] = []
    for modifier_id, _ in ranked:
        candidate = Candidate(modifier_id, catalog.get(modifier_id).recipe)
        if candidates and candidates[-1] == candidate:
            continue
        candidates.append(candidate)

    return candidates + _filler_candidates(filler_ids, stash, catalog)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

def best_ordering(
    queue: Sequence[ModifierId],
    modifier_ids: Set[ModifierId],
    required_ids: Set[ModifierId],
    catalog: Optional[Catalog] = None,
) -> Optional[Tuple[List[ModifierId], float]]:
    """
    Highest-value ordering of ``modifier_ids`` that starts with ``queue`` and
    produces every id in ``required_ids``. Values are compared on their floor;
    on ties the later ordering wins.
    """
    catalog = catalog or get_catalog()
    remaining = sorted(set(modifier_ids) - set(queue))
    best: Optional[Tuple[List[ModifierId], float]] = None
    for suffix in permutations(remaining):
        combo = list(queue) + list(suffix)
        if not required_ids <= produced_ids(combo, catalog):
            continue
        value = combo_value(combo, catalog)
        if best is None or math.floor(value) >= math.floor(best[1]):
            best = (combo, value)
    return best


def count_fillers(
    combo: Sequence[ModifierId],
    filler_ids: Set[ModifierId],
    catalog: Optional[Catalog] = None,
) -> int:
    """Slots of ``combo`` that do not advance a roster recipe."""
    recipes = produced_recipes(combo, catalog)
    productive = sum(len(recipe) for recipe in recipes)
    wasted = sum(len(recipe) for recipe, produced in recipes.items() if produced in filler_ids)
    return QUEUE_LENGTH - productive + wasted


def _improves(best: Optional[_Best], value: float, filler_count: int) -> bool:
    if best is None or filler_count < best.filler_count:
        return True
    return filler_count == best.filler_count and value >= best.value


def _next_extension(
    candidates: Sequence[Candidate],
    chosen_indices: Sequence[int],
    start_index: int,
    queue: Sequence[ModifierId],
    queue_produced: Set[ModifierId],
    catalog: Catalog,
) -> Optional[Tuple[int, List[ModifierId], float]]:
    """First candidate after ``start_index`` compatible with the chosen path."""
    chosen = [candidates[i] for i in chosen_indices]
    chosen_ids: Set[ModifierId] = set(queue)
    for candidate in chosen:
        chosen_ids |= candidate.recipe
    required_base = queue_produced | {c.produced for c in chosen if c.produced is not None}

    for index in range(start_index + 1, len(candidates)):
        candidate = candidates[index]
        if any(candidate.recipe & other.recipe for other in chosen):
            continue
        modifier_ids = chosen_ids | candidate.recipe
        if len(modifier_ids) > QUEUE_LENGTH:
            continue

        required_ids = set(required_base)
        if candidate.produced is not None:
            required_ids.add(candidate.produced)

        ordering = best_ordering(queue, modifier_ids, required_ids, catalog)
        if ordering is not None:
            return index, ordering[0], ordering[1]
    return None


def suggest_custom_combo(
    settings: UserSettings,
    stash: Stash,
    queue: Sequence[ModifierId],
    *,
    catalog: Optional[Catalog] = None,
    time_budget_ms: float = DEFAULT_TIME_BUDGET_MS,
    hard_limit_ms: float = DEFAULT_HARD_LIMIT_MS,
    logger: Optional[AdvisorLogger] = None,
) -> Optional[List[ModifierId]]:
    """Anytime backtracking search for a complete combo extending ``queue``."""
    catalog = catalog or get_catalog()
    logger = logger or create_logger(LogLevel.SILENT)

    filler_ids = settings.get_filler_modifier_ids(catalog)
    candidates = build_candidates(settings, stash, queue, catalog, filler_ids)
    logger.log_candidates(candidates)

    queue_produced = produced_ids(queue, catalog)

    # The stack holds the chosen path; its top is duplicated as the scan cursor
    stack: List[int] = [-1]
    best: Optional[_Best] = None
    iterations = 0
    started = time.perf_counter()

    while stack:
        elapsed_ms = (time.perf_counter() - started) * 1000
        if best is not None and elapsed_ms > time_budget_ms:
            logger.log_cutoff("time budget", elapsed_ms)
            break
        if elapsed_ms > hard_limit_ms:
            logger.log_cutoff("hard limit", elapsed_ms)
            break

        iterations += 1
        index = stack.pop()
        extension = _next_extension(candidates, stack, index, queue, queue_produced, catalog)
        if extension is None:
            continue

        next_index, combo, value = extension
        logger.log_partial_combo(combo, value)
        stack.append(next_index)
        stack.append(next_index)

        if len(combo) != QUEUE_LENGTH:
            continue

        filler_count = count_fillers(combo, filler_ids, catalog)
        if filler_count == 0:
            best = _Best(combo, value, filler_count)
            logger.log_best_update(combo, value, filler_count)
            break
        if filler_count <= MAX_FILLER_COUNT and _improves(best, value, filler_count):
            best = _Best(combo, value, filler_count)
            logger.log_best_update(combo, value, filler_count)

    result = best.combo if best is not None else None
    logger.log_search_complete(iterations, (time.perf_counter() - started) * 1000, result)
    return result


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def suggest_combo(
    settings: UserSettings,
    stash: Stash,
    queue: Sequence[ModifierId],
    *,
    catalog: Optional[Catalog] = None,
    time_budget_ms: float = DEFAULT_TIME_BUDGET_MS,
    hard_limit_ms: float = DEFAULT_HARD_LIMIT_MS,
    logger: Optional[AdvisorLogger] = None,
    log_level: Union[LogLevel, str, int, None] = None,
) -> Optional[List[ModifierId]]:
    """
    Suggest the combo to complete, or None when no suggestion exists.

    Parameters
    ----------
    settings : UserSettings
        Roster, combo catalog and forbidden modifiers
    stash : Mapping[int, int]
        Owned count per modifier id
    queue : Sequence[int]
        Modifiers already committed to the queue (0-3 for a valid request)
    time_budget_ms : float
        Search time after which the best combo found so far is returned
    logger : AdvisorLogger, optional
        Pre-configured logger. If None, one is created based on log_level.
    log_level : LogLevel | str | int, optional
        Logging verbosity. Only used if logger is None. Defaults to SILENT.

    Returns
    -------
    list[int] or None
        A combo whose first ``len(queue)`` entries equal ``queue``
    """
    catalog = catalog or get_catalog()
    if logger is None:
        logger = create_logger(
            level=log_level if log_level is not None else LogLevel.SILENT,
            name_of=catalog.name_of,
        )

    queue = list(queue)
    if len(queue) >= QUEUE_LENGTH:
        logger.log_queue_full(queue)
        return None

    roster = settings.roster_combos()
    logger.log_request(stash, queue, len(roster))
    logger.log_missing_roster_ids(settings.missing_roster_ids())

    combo = suggest_active_combo(settings, stash, queue)
    if combo is not None:
        logger.log_fast_path(combo)
        logger.log_suggestion("active", combo)
        return combo

    combo = suggest_custom_combo(
        settings,
        stash,
        queue,
        catalog=catalog,
        time_budget_ms=time_budget_ms,
        hard_limit_ms=hard_limit_ms,
        logger=logger,
    )
    logger.log_suggestion("custom", combo)
    return combo


def next_modifier(combo: Optional[Sequence[ModifierId]], queue: Sequence[ModifierId]) -> Optional[ModifierId]:
    """The slot the player should fill next: ``combo[len(queue)]``."""
    if combo is None or len(combo) <= len(queue):
        return None
    return combo[len(queue)]


def suggest_next_modifier(
    settings: UserSettings,
    stash: Stash,
    queue: Sequence[ModifierId],
    **kwargs,
) -> Optional[ModifierId]:
    """Suggest only the next modifier to add to the queue."""
    return next_modifier(suggest_combo(settings, stash, queue, **kwargs), queue)
