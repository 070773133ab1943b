"""Expected-reward scoring for an ordered modifier sequence.

Every prefix of the combo is scored as if the queue were completed at that
point, and the prefix scores are summed. Within a prefix:

    contribution(reward) = REWARD_VALUES[reward]
                           * (count + additional_rewards)
                           * (2 if doubled else 1)
                           * (1 + rerolls * REROLL_MULTIPLIER)
"""
from __future__ import annotations

from typing import Dict, Optional, Sequence

from .catalog import (
    REWARD_VALUES,
    AdditionalReward,
    Catalog,
    Convert,
    DoubledReward,
    ModifierId,
    Reroll,
    Reward,
    get_catalog,
)

REROLL_MULTIPLIER = 0.25


def prefix_value(prefix: Sequence[ModifierId], catalog: Catalog) -> float:
    """Score a single prefix (one partially completed queue)."""
    modifiers = [catalog.get(modifier_id) for modifier_id in prefix]
    effects = [modifier.effect for modifier in modifiers if modifier.effect is not None]

    additional_reward_count = sum(1 for effect in effects if isinstance(effect, AdditionalReward))
    doubled_rewards = any(isinstance(effect, DoubledReward) for effect in effects)
    reroll_count = sum(effect.count for effect in effects if isinstance(effect, Reroll))

    rewards: Dict[Reward, int] = {}
    for modifier in modifiers:
        rewards.update(modifier.rewards)

    converted_reward: Optional[Reward] = None
    for effect in effects:
        if isinstance(effect, Convert):
            converted_reward = effect.to
    if converted_reward is not None:
        rewards = {converted_reward: sum(rewards.values())}

    multiplier = (2 if doubled_rewards else 1) * (1.0 + reroll_count * REROLL_MULTIPLIER)
    return sum(
        REWARD_VALUES[reward] * (reward_count + additional_reward_count) * multiplier
        for reward, reward_count in rewards.items()
    )


def combo_value(combo: Sequence[ModifierId], catalog: Optional[Catalog] = None) -> float:
    """Total value of ``combo``: the sum of every prefix's contribution."""
    catalog = catalog or get_catalog()
    return sum(prefix_value(combo[: index + 1], catalog) for index in range(len(combo)))
