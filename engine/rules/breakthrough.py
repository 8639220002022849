"""Breakthrough detection and its fixed stat rewards.

Rewards are game-balance data keyed by realm. Realm breakthroughs use the
realm being left; stage breakthroughs use the realm the stage belongs to.
"""

from aws_lambda_powertools import Logger

from rules.models import BreakthroughEvent, Delta, DeltaOperation
from shared.models import GameState, Progress, Realm

logger = Logger(child=True)


def _bonus(hp_max: int, qi_max: int, attribute: int, perception: int) -> dict[str, int]:
    """One row of a bonus table; str, agi and int rise together."""
    return {
        "stats.hp_max": hp_max,
        "stats.qi_max": qi_max,
        "attrs.str": attribute,
        "attrs.agi": attribute,
        "attrs.int": attribute,
        "attrs.perception": perception,
    }


REALM_BONUSES: dict[Realm, dict[str, int]] = {
    Realm.MORTAL: _bonus(50, 100, 2, 1),
    Realm.QI_CONDENSATION: _bonus(100, 200, 3, 2),
    Realm.FOUNDATION_ESTABLISHMENT: _bonus(150, 300, 4, 3),
    Realm.CORE_FORMATION: _bonus(200, 400, 5, 4),
    Realm.NASCENT_SOUL: _bonus(300, 600, 7, 5),
}

STAGE_BONUSES: dict[Realm, dict[str, int]] = {
    Realm.MORTAL: _bonus(10, 20, 0, 0),
    Realm.QI_CONDENSATION: _bonus(30, 50, 1, 0),
    Realm.FOUNDATION_ESTABLISHMENT: _bonus(50, 80, 2, 1),
    Realm.CORE_FORMATION: _bonus(80, 120, 3, 2),
    Realm.NASCENT_SOUL: _bonus(120, 200, 4, 2),
}


def detect(before: Progress, after: Progress) -> BreakthroughEvent | None:
    """Compare progress before and after a turn.

    Fires when the realm differs, or the realm is the same and the stage
    went up. Pure.

    Args:
        before: Progress before the turn
        after: Progress after the turn

    Returns:
        BreakthroughEvent, or None if nothing qualifies
    """
    if before.realm != after.realm:
        increases = REALM_BONUSES[before.realm]
    elif after.realm_stage > before.realm_stage:
        increases = STAGE_BONUSES[before.realm]
    else:
        return None

    event = BreakthroughEvent(
        previous_realm=before.realm,
        previous_stage=before.realm_stage,
        new_realm=after.realm,
        new_stage=after.realm_stage,
        stat_increases=dict(increases),
    )
    logger.info(
        "Breakthrough detected",
        extra={
            "from": f"{before.realm.value}/{before.realm_stage}",
            "to": f"{after.realm.value}/{after.realm_stage}",
        },
    )
    return event


def breakthrough_deltas(event: BreakthroughEvent, state: GameState) -> list[Delta]:
    """Turn a breakthrough into deltas: the stat increases plus a full restore.

    Args:
        event: Detected breakthrough
        state: State the deltas will be applied to (before the increases)

    Returns:
        Deltas to apply in order
    """
    deltas = [
        Delta(
            field=path,
            operation=DeltaOperation.ADD,
            value=amount,
            reason="breakthrough",
        )
        for path, amount in event.stat_increases.items()
    ]
    hp_max = state.stats.hp_max + event.stat_increases.get("stats.hp_max", 0)
    qi_max = state.stats.qi_max + event.stat_increases.get("stats.qi_max", 0)
    deltas.append(
        Delta(field="stats.hp", operation=DeltaOperation.SET, value=hp_max, reason="breakthrough")
    )
    deltas.append(
        Delta(field="stats.qi", operation=DeltaOperation.SET, value=qi_max, reason="breakthrough")
    )
    return deltas
