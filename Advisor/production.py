"""Which higher-tier modifiers a combo produces.

Position subsets are visited in a fixed order (ascending size, then
lexicographic position order). The first subset whose id set exactly equals a
known recipe and whose members are all still unclaimed is accepted; its
members are then claimed, so overlapping recipes resolve to whichever subset
comes first.
"""
from __future__ import annotations

from itertools import combinations
from typing import Dict, FrozenSet, Iterator, Optional, Sequence, Set, Tuple

from .catalog import Catalog, ModifierId, get_catalog


def powerset_positions(length: int) -> Iterator[Tuple[int, ...]]:
    """Position subsets of ``range(length)``, smallest first, empty subset included."""
    for size in range(length + 1):
        yield from combinations(range(length), size)


def produced_recipes(
    combo: Sequence[ModifierId],
    catalog: Optional[Catalog] = None,
) -> Dict[FrozenSet[ModifierId], ModifierId]:
    """Map each accepted recipe to the modifier id it produces."""
    catalog = catalog or get_catalog()
    used: Set[ModifierId] = set()
    produced: Dict[FrozenSet[ModifierId], ModifierId] = {}

    for positions in powerset_positions(len(combo)):
        members = [combo[position] for position in positions]
        if any(member in used for member in members):
            continue
        recipe = frozenset(members)
        produced_id = catalog.produced_by(recipe) if recipe else None
        if produced_id is None:
            continue
        produced[recipe] = produced_id
        used.update(members)

    return produced


def produced_ids(combo: Sequence[ModifierId], catalog: Optional[Catalog] = None) -> Set[ModifierId]:
    """Set of modifier ids produced by ``combo``."""
    return set(produced_recipes(combo, catalog).values())
