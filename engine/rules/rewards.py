"""Combat rewards and the defeat penalty.

Rewards are rolled when a session ends and returned as deltas, so they go
through the same clamping as every other state change.
"""

import math

from aws_lambda_powertools import Logger

from rules.models import CombatRewards, Delta, DeltaOperation
from shared.dice import RandomSource, choose, random_int
from shared.models import GameState, ItemRarity, ItemType

logger = Logger(child=True)

# =============================================================================
# LOOT TABLES - inclusive ranges
# =============================================================================

FIELD_LOOT: dict[str, tuple[int, int]] = {
    "silver": (20, 69),
    "cultivation_exp": (20, 49),
}

DUNGEON_LOOT: dict[str, tuple[int, int]] = {
    "silver": (50, 149),
    "cultivation_exp": (40, 99),
    "spirit_stones": (1, 3),
}

COMMON_DROPS = ["spirit_herb", "beast_core", "spirit_jade"]
RARE_DROPS = ["phoenix_feather", "dragon_scale", "void_crystal"]

# Item roll above these thresholds drops a common (and also a rare) material
COMMON_DROP_THRESHOLD = 0.5
RARE_DROP_THRESHOLD = 0.8

DROP_NAMES: dict[str, str] = {
    "spirit_herb": "Spirit Herb",
    "beast_core": "Beast Core",
    "spirit_jade": "Spirit Jade",
    "phoenix_feather": "Phoenix Feather",
    "dragon_scale": "Dragon Scale",
    "void_crystal": "Void Crystal",
}

DEFEAT_HP_FRACTION = 0.3
DEFEAT_SILVER_PENALTY = 50


def _drop(item_id: str, rarity: ItemRarity) -> dict:
    """Build an inventory item payload for a dropped material."""
    return {
        "id": item_id,
        "name": DROP_NAMES.get(item_id, item_id.replace("_", " ").title()),
        "description": "Item obtained from a dungeon",
        "type": ItemType.MATERIAL.value,
        "rarity": rarity.value,
        "quantity": 1,
    }


def roll_victory_rewards(state: GameState, rng: RandomSource) -> CombatRewards:
    """Roll victory loot.

    Inside a dungeon the ranges are larger, spirit stones drop, and one item
    roll may yield a common material (above 0.5) plus a rare one (above 0.8).

    Args:
        state: Player state at the end of combat
        rng: Random source

    Returns:
        CombatRewards
    """
    in_dungeon = state.dungeon is not None
    table = DUNGEON_LOOT if in_dungeon else FIELD_LOOT

    rewards = CombatRewards(
        silver=random_int(rng, *table["silver"]),
        cultivation_exp=random_int(rng, *table["cultivation_exp"]),
    )

    if in_dungeon:
        rewards.spirit_stones = random_int(rng, *table["spirit_stones"])
        item_roll = rng.random()
        if item_roll > COMMON_DROP_THRESHOLD:
            rewards.items.append(_drop(choose(rng, COMMON_DROPS), ItemRarity.COMMON))
        if item_roll > RARE_DROP_THRESHOLD:
            rewards.items.append(_drop(choose(rng, RARE_DROPS), ItemRarity.RARE))

    logger.info(
        "Rolled combat loot",
        extra={
            "in_dungeon": in_dungeon,
            "silver": rewards.silver,
            "cultivation_exp": rewards.cultivation_exp,
            "spirit_stones": rewards.spirit_stones,
            "items": [item["id"] for item in rewards.items],
        },
    )
    return rewards


def defeat_penalty(state: GameState) -> CombatRewards:
    """Soft-fail penalty: restore 30% hp and lose 50 silver (floor 0)."""
    return CombatRewards(
        silver=-min(DEFEAT_SILVER_PENALTY, state.inventory.silver),
        hp_restored_to=math.floor(state.stats.hp_max * DEFEAT_HP_FRACTION),
    )


def reward_deltas(rewards: CombatRewards) -> list[Delta]:
    """Express rewards as deltas for the application engine.

    Args:
        rewards: Rolled rewards or penalty

    Returns:
        Deltas to apply in order
    """
    deltas: list[Delta] = []
    if rewards.silver > 0:
        deltas.append(
            Delta(field="inventory.silver", operation=DeltaOperation.ADD, value=rewards.silver)
        )
    elif rewards.silver < 0:
        deltas.append(
            Delta(
                field="inventory.silver",
                operation=DeltaOperation.SUBTRACT,
                value=-rewards.silver,
            )
        )
    if rewards.cultivation_exp:
        deltas.append(
            Delta(
                field="progress.cultivation_exp",
                operation=DeltaOperation.ADD,
                value=rewards.cultivation_exp,
            )
        )
    if rewards.spirit_stones:
        deltas.append(
            Delta(
                field="inventory.spirit_stones",
                operation=DeltaOperation.ADD,
                value=rewards.spirit_stones,
            )
        )
    for item in rewards.items:
        deltas.append(
            Delta(field="inventory.add_item", operation=DeltaOperation.ADD, value=item)
        )
    if rewards.hp_restored_to is not None:
        deltas.append(
            Delta(field="stats.hp", operation=DeltaOperation.SET, value=rewards.hp_restored_to)
        )
    for delta in deltas:
        delta.reason = "combat"
    return deltas
