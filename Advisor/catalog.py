"""Modifier catalog: recipes, rewards, effects and recursive component bags.

This module provides functionality to:
1. Load and validate modifier records from Advisor/data/modifiers.json
2. Index modifiers by id and by recipe (the exact inverse of recipe -> modifier)
3. Expand every recipe transitively into a multiplicity-counted component bag
4. Reject malformed data (duplicate recipes, self-references, cycles) at startup

The catalog is immutable once built and shared process-wide via ``get_catalog``.
"""
from __future__ import annotations

import json
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import (
    Annotated,
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Literal,
    Mapping,
    Optional,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .resources import get_resource_path

MODIFIERS_DATA_PATH = get_resource_path("Advisor/data/modifiers.json")

ModifierId = int


class CatalogError(Exception):
    """Raised when the modifier data is malformed. Fatal at startup."""


class Reward(str, Enum):
    """Reward categories a modifier can grant."""
    GENERIC = "Generic"
    ARMOUR = "Armour"
    WEAPON = "Weapon"
    JEWELRY = "Jewelry"
    GEM = "Gem"
    MAP = "Map"
    DIVINATION_CARD = "DivinationCard"
    FRAGMENT = "Fragment"
    ESSENCE = "Essence"
    HARBINGER = "Harbinger"
    UNIQUE = "Unique"
    DELVE = "Delve"
    BLIGHT = "Blight"
    RITUAL = "Ritual"
    CURRENCY = "Currency"
    LEGION = "Legion"
    BREACH = "Breach"
    LABYRINTH = "Labyrinth"
    SCARAB = "Scarab"
    ABYSS = "Abyss"
    HEIST = "Heist"
    EXPEDITION = "Expedition"
    DELIRIUM = "Delirium"
    METAMORPH = "Metamorph"
    TREANT = "Treant"


# Base scalar value of a single reward of each category
REWARD_VALUES: Dict[Reward, int] = {
    Reward.GENERIC: 1,
    Reward.ARMOUR: 1,
    Reward.WEAPON: 1,
    Reward.JEWELRY: 1,
    Reward.GEM: 5,
    Reward.MAP: 10,
    Reward.DIVINATION_CARD: 25,
    Reward.FRAGMENT: 10,
    Reward.ESSENCE: 5,
    Reward.HARBINGER: 25,
    Reward.UNIQUE: 10,
    Reward.DELVE: 5,
    Reward.BLIGHT: 5,
    Reward.RITUAL: 5,
    Reward.CURRENCY: 25,
    Reward.LEGION: 10,
    Reward.BREACH: 5,
    Reward.LABYRINTH: 5,
    Reward.SCARAB: 25,
    Reward.ABYSS: 5,
    Reward.HEIST: 5,
    Reward.EXPEDITION: 10,
    Reward.DELIRIUM: 10,
    Reward.METAMORPH: 5,
    Reward.TREANT: 1,
}


# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Reroll:
    count: int


@dataclass(frozen=True)
class AdditionalReward:
    pass


@dataclass(frozen=True)
class DoubledReward:
    pass


@dataclass(frozen=True)
class Convert:
    to: Reward


Effect = Union[Reroll, AdditionalReward, DoubledReward, Convert]


@dataclass(frozen=True)
class Modifier:
    """A craftable modifier. ``recipe`` is empty for base modifiers."""
    id: ModifierId
    name: str
    recipe: FrozenSet[ModifierId] = frozenset()
    rewards: Dict[Reward, int] = field(default_factory=dict, compare=False, hash=False)
    effect: Optional[Effect] = None


# ---------------------------------------------------------------------------
# Raw record validation
# ---------------------------------------------------------------------------

class _RerollRecord(BaseModel):
    type: Literal["reroll"]
    count: int = Field(ge=1)


class _AdditionalRewardRecord(BaseModel):
    type: Literal["additionalReward"]


class _DoubledRewardRecord(BaseModel):
    type: Literal["doubledReward"]


class _ConvertRecord(BaseModel):
    type: Literal["convert"]
    to: Reward


_EffectRecord = Annotated[
    Union[_RerollRecord, _AdditionalRewardRecord, _DoubledRewardRecord, _ConvertRecord],
    Field(discriminator="type"),
]


class ModifierRecord(BaseModel):
    """One entry of modifiers.json, as written on disk."""
    id: int = Field(ge=0)
    name: str = Field(min_length=1)
    recipe: List[int] = Field(default_factory=list)
    rewards: Dict[Reward, int] = Field(default_factory=dict)
    effect: Optional[_EffectRecord] = None

    model_config = ConfigDict(extra="forbid")

    def to_modifier(self) -> Modifier:
        effect: Optional[Effect] = None
        if isinstance(self.effect, _RerollRecord):
            effect = Reroll(count=self.effect.count)
        elif isinstance(self.effect, _AdditionalRewardRecord):
            effect = AdditionalReward()
        elif isinstance(self.effect, _DoubledRewardRecord):
            effect = DoubledReward()
        elif isinstance(self.effect, _ConvertRecord):
            effect = Convert(to=self.effect.to)
        return Modifier(
            id=self.id,
            name=self.name,
            recipe=frozenset(self.recipe),
            rewards=dict(self.rewards),
            effect=effect,
        )


MODIFIER_RECORDS_ADAPTER: TypeAdapter = TypeAdapter(List[ModifierRecord])


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class Catalog:
    """
    Immutable index over the modifier dataset.

    Builds the recipe inverse index, validates the recipe graph and
    precomputes the recursive component bag and tier of every modifier.
    """

    def __init__(self, modifiers: Iterable[Modifier]):
        self._by_id: Dict[ModifierId, Modifier] = {}
        self._by_recipe: Dict[FrozenSet[ModifierId], Modifier] = {}

        for modifier in modifiers:
            if modifier.id in self._by_id:
                raise CatalogError(f"Duplicate modifier id {modifier.id}")
            self._by_id[modifier.id] = modifier

        for modifier in self._by_id.values():
            if modifier.id in modifier.recipe:
                raise CatalogError(f"Modifier {modifier.id} ({modifier.name}) lists itself in its recipe")
            unknown = sorted(m for m in modifier.recipe if m not in self._by_id)
            if unknown:
                raise CatalogError(
                    f"Modifier {modifier.id} ({modifier.name}) references unknown ids {unknown}"
                )
            if not modifier.recipe:
                continue
            existing = self._by_recipe.get(modifier.recipe)
            if existing is not None:
                raise CatalogError(
                    f"Recipe {sorted(modifier.recipe)} produces both "
                    f"{existing.id} ({existing.name}) and {modifier.id} ({modifier.name})"
                )
            self._by_recipe[modifier.recipe] = modifier

        order = self._topological_order()
        self._tiers: Dict[ModifierId, int] = {}
        for modifier_id in order:
            recipe = self._by_id[modifier_id].recipe
            self._tiers[modifier_id] = 1 + max((self._tiers[m] for m in recipe), default=0)

        self._components: Dict[ModifierId, Mapping[ModifierId, int]] = {
            modifier_id: MappingProxyType(self._expand_components(modifier_id)) for modifier_id in self._by_id
        }

    @classmethod
    def from_records(cls, records: Any) -> "Catalog":
        """Validate raw JSON records and build a catalog from them."""
        try:
            parsed = MODIFIER_RECORDS_ADAPTER.validate_python(records)
        except ValidationError as exc:
            raise CatalogError(f"Invalid modifier data: {exc}") from exc
        return cls(record.to_modifier() for record in parsed)

    def _topological_order(self) -> List[ModifierId]:
        """Kahn's algorithm over recipe edges; raises CatalogError on cycles."""
        in_degree: Dict[ModifierId, int] = {
            modifier_id: len(modifier.recipe) for modifier_id, modifier in self._by_id.items()
        }
        dependents: Dict[ModifierId, List[ModifierId]] = {modifier_id: [] for modifier_id in self._by_id}
        for modifier_id, modifier in self._by_id.items():
            for member in modifier.recipe:
                dependents[member].append(modifier_id)

        ready = deque(sorted(m for m, degree in in_degree.items() if degree == 0))
        order: List[ModifierId] = []
        while ready:
            node = ready.popleft()
            order.append(node)
            for dependent in dependents[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)

        if len(order) != len(self._by_id):
            cyclic = sorted(m for m, degree in in_degree.items() if degree > 0)
            raise CatalogError(f"Recipe graph contains a cycle through {cyclic}")
        return order

    def _expand_components(self, modifier_id: ModifierId) -> Dict[ModifierId, int]:
        """Every modifier reachable through nested recipes, counted, excluding the root."""
        bag: Counter = Counter()
        pending = list(self._by_id[modifier_id].recipe)
        while pending:
            member = pending.pop()
            bag[member] += 1
            pending.extend(self._by_id[member].recipe)
        return dict(bag)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def __contains__(self, modifier_id: object) -> bool:
        return modifier_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    @property
    def by_id(self) -> Mapping[ModifierId, Modifier]:
        return MappingProxyType(self._by_id)

    @property
    def by_recipe(self) -> Mapping[FrozenSet[ModifierId], Modifier]:
        return MappingProxyType(self._by_recipe)

    @property
    def components(self) -> Mapping[ModifierId, Mapping[ModifierId, int]]:
        """Read-only component bag per modifier."""
        return MappingProxyType(self._components)

    def get(self, modifier_id: ModifierId) -> Modifier:
        """Look up a modifier; an unknown id is a data defect and raises KeyError."""
        return self._by_id[modifier_id]

    def produced_by(self, recipe: Iterable[ModifierId]) -> Optional[ModifierId]:
        """Return the id whose recipe is exactly ``recipe``, if any."""
        modifier = self._by_recipe.get(frozenset(recipe))
        return modifier.id if modifier is not None else None

    def is_base(self, modifier_id: ModifierId) -> bool:
        return not self._by_id[modifier_id].recipe

    def base_ids(self) -> List[ModifierId]:
        return sorted(m for m, modifier in self._by_id.items() if not modifier.recipe)

    def name_of(self, modifier_id: ModifierId) -> str:
        modifier = self._by_id.get(modifier_id)
        return modifier.name if modifier is not None else f"#{modifier_id}"

    def tier_of(self, modifier_id: ModifierId) -> int:
        return self._tiers[modifier_id]

    def to_dict(self) -> Dict[str, Any]:
        """Serialisable view for display layers (rewards and effects are not exported)."""
        return {
            "byId": {
                str(m.id): {
                    "id": m.id,
                    "name": m.name,
                    "recipe": sorted(m.recipe),
                    "tier": self._tiers[m.id],
                }
                for m in self._by_id.values()
            },
            "components": {
                str(modifier_id): {str(k): v for k, v in bag.items()}
                for modifier_id, bag in self._components.items()
            },
        }


def load_catalog(path: Optional[Path] = None) -> Catalog:
    """Load and validate the modifier catalog from JSON."""
    data_path = path or MODIFIERS_DATA_PATH
    try:
        with data_path.open("r", encoding="utf-8") as fh:
            records = json.load(fh)
    except OSError as exc:
        raise CatalogError(f"Unable to read {data_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CatalogError(f"Invalid JSON in {data_path}: {exc}") from exc
    return Catalog.from_records(records)


# Module-level singleton
_catalog: Optional[Catalog] = None


def get_catalog() -> Catalog:
    """Get or create the singleton modifier catalog."""
    global _catalog
    if _catalog is None:
        _catalog = load_catalog()
    return _catalog
