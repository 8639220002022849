"""Cultivation advancement: experience requirements, body path and time.

Qi stages are 1-indexed; the requirement for stage ``s`` of a realm is
``QI_REQUIREMENTS[realm][s - 1]``. Mortals have a single stage whose
requirement leads into qi condensation stage 1. Body stages run 0..5 and a
sixth threshold (the next body realm's first) carries into that realm.
"""

import math

from aws_lambda_powertools import Logger

from shared.models import (
    BodyRealm,
    CultivationPath,
    Element,
    GameState,
    GameTime,
    Progress,
    Realm,
    TechniqueType,
    TimeSegment,
)

logger = Logger(child=True)

QI_REQUIREMENTS: dict[Realm, list[int]] = {
    Realm.MORTAL: [150],
    Realm.QI_CONDENSATION: [300, 500, 800, 1200, 1800, 2500, 3500, 5000, 7000],
    Realm.FOUNDATION_ESTABLISHMENT: [
        8000, 10000, 12000, 15000, 18000, 22000, 27000, 33000, 40000,
    ],
    Realm.CORE_FORMATION: [
        45000, 50000, 60000, 70000, 85000, 100000, 120000, 140000, 170000,
    ],
    Realm.NASCENT_SOUL: [
        200000, 230000, 270000, 320000, 380000, 450000, 530000, 620000, 750000,
    ],
}

BODY_REQUIREMENTS: dict[BodyRealm, list[int]] = {
    BodyRealm.MORTAL_BODY: [50, 100, 150, 200, 250],
    BodyRealm.BONE_FORGING: [200, 400, 600, 800, 1000],
    BodyRealm.COPPER_TENDON: [500, 1000, 1500, 2000, 2500],
    BodyRealm.DIAMOND_BODY: [1000, 2000, 3000, 4000, 5000],
    BodyRealm.PRIMORDIAL_BODY: [2500, 5000, 7500, 10000, 15000],
}

MAX_BODY_STAGE = 5

# Bonuses granted on entering a body realm, keyed by the realm entered
BODY_REALM_BONUSES: dict[BodyRealm, dict[str, float]] = {
    BodyRealm.MORTAL_BODY: {"stats.hp_max": 10, "attrs.str": 1, "stats.stamina_max": 5},
    BodyRealm.BONE_FORGING: {"stats.hp_max": 25, "attrs.str": 2, "stats.stamina_max": 10},
    BodyRealm.COPPER_TENDON: {"stats.hp_max": 50, "attrs.str": 4, "stats.stamina_max": 20},
    BodyRealm.DIAMOND_BODY: {"stats.hp_max": 100, "attrs.str": 8, "stats.stamina_max": 40},
    BodyRealm.PRIMORDIAL_BODY: {
        "stats.hp_max": 200, "attrs.str": 15, "stats.stamina_max": 80,
    },
}

BODY_STAGE_BONUS: dict[str, float] = {
    "stats.hp_max": 5,
    "attrs.str": 0.5,
    "stats.stamina_max": 2,
}

DEFAULT_EXP_SPLIT = 50

# Wu Xing cycles
ELEMENT_GENERATES: dict[Element, Element] = {
    Element.METAL: Element.WATER,
    Element.WATER: Element.WOOD,
    Element.WOOD: Element.FIRE,
    Element.FIRE: Element.EARTH,
    Element.EARTH: Element.METAL,
}

ELEMENT_OVERCOMES: dict[Element, Element] = {
    Element.METAL: Element.WOOD,
    Element.WOOD: Element.EARTH,
    Element.EARTH: Element.WATER,
    Element.WATER: Element.FIRE,
    Element.FIRE: Element.METAL,
}

SEGMENTS_PER_DAY = len(TimeSegment)
DAYS_PER_MONTH = 30
MONTHS_PER_YEAR = 12


def max_stage(realm: Realm) -> int:
    """Highest stage of a realm."""
    return len(QI_REQUIREMENTS[realm])


def exp_requirement(realm: Realm, stage: int) -> int | None:
    """Cultivation exp needed to leave the given stage.

    Args:
        realm: Current realm
        stage: Current stage (1-indexed)

    Returns:
        Required exp, or None when the stage is out of range
    """
    requirements = QI_REQUIREMENTS[realm]
    if stage < 1 or stage > len(requirements):
        return None
    return requirements[stage - 1]


def advance_cultivation(progress: Progress) -> Progress:
    """Advance at most one qi stage if the current requirement is met.

    Exp resets to 0 on advancement. The last stage of a realm advances into
    stage 1 of the next realm; the final stage of the final realm caps out and
    keeps its exp.

    Args:
        progress: Progress before advancement

    Returns:
        New Progress (the input is not modified)
    """
    result = progress.model_copy(deep=True)
    required = exp_requirement(result.realm, result.realm_stage)
    if required is None or result.cultivation_exp < required:
        return result

    if result.realm_stage < max_stage(result.realm):
        result.realm_stage += 1
    else:
        next_realm = result.realm.next()
        if next_realm is None:
            return result
        result.realm = next_realm
        result.realm_stage = 1

    result.cultivation_exp = 0
    logger.info(
        "Cultivation advanced",
        extra={"realm": result.realm.value, "stage": result.realm_stage},
    )
    return result


def _body_requirement(realm: BodyRealm, stage: int) -> int | None:
    """Body exp needed to leave the given body stage, None at the very top."""
    if stage < MAX_BODY_STAGE:
        return BODY_REQUIREMENTS[realm][stage]
    next_realm = realm.next()
    if next_realm is None:
        return None
    return BODY_REQUIREMENTS[next_realm][0]


def advance_body(progress: Progress) -> tuple[Progress, dict[str, int]]:
    """Resolve every body stage and realm the accumulated body exp pays for.

    Args:
        progress: Progress with body fields (missing fields start at the
            mortal body, stage 0)

    Returns:
        Tuple of (new progress, stat bonuses keyed by delta field path)
    """
    result = progress.model_copy(deep=True)
    realm = result.body_realm or BodyRealm.MORTAL_BODY
    stage = result.body_stage or 0
    exp = result.body_exp or 0
    bonuses: dict[str, float] = {}

    required = _body_requirement(realm, stage)
    while required is not None and exp >= required:
        exp -= required
        if stage >= MAX_BODY_STAGE:
            realm = realm.next()
            stage = 0
            gained = BODY_REALM_BONUSES[realm]
        else:
            stage += 1
            gained = BODY_STAGE_BONUS
        for path, amount in gained.items():
            bonuses[path] = bonuses.get(path, 0) + amount
        required = _body_requirement(realm, stage)

    result.body_realm = realm
    result.body_stage = stage
    result.body_exp = exp
    return result, {path: math.floor(amount) for path, amount in bonuses.items()}


def split_experience(total: int, exp_split: int) -> tuple[int, int]:
    """Split exp between qi and body; the body gets the rounding remainder.

    Args:
        total: Exp to split
        exp_split: Percent routed to qi (clamped to 0..100)

    Returns:
        Tuple of (qi_exp, body_exp)
    """
    percent = max(0, min(100, exp_split))
    qi_exp = math.floor(total * percent / 100)
    return qi_exp, total - qi_exp


def element_compatibility(root: list[Element], technique: list[Element]) -> float:
    """Bonus (or penalty) for pairing a technique with a spirit root.

    All technique elements present in the root is a perfect match (+0.3).
    Otherwise each element pair contributes by the generating and overcoming
    cycles and the result is averaged.
    """
    if not technique:
        return 0.0
    if all(element in root for element in technique):
        return 0.3

    total = 0.0
    matches = 0
    for tech_element in technique:
        for root_element in root:
            if tech_element == root_element:
                total += 0.3
            elif ELEMENT_GENERATES[root_element] == tech_element:
                total += 0.15
            elif ELEMENT_GENERATES[tech_element] == root_element:
                total += 0.1
            elif ELEMENT_OVERCOMES[tech_element] == root_element:
                total -= 0.2
            elif ELEMENT_OVERCOMES[root_element] == tech_element:
                total -= 0.1
            else:
                continue
            matches += 1
    return total / matches if matches else 0.0


def technique_multiplier(state: GameState) -> float:
    """Cultivation speed multiplier from learned techniques.

    The best main technique counts fully; support techniques add half of
    their bonus each, capped at +50% together.
    """
    main_bonus = 0.0
    support_bonus = 0.0
    for technique in state.techniques:
        bonus = (technique.cultivation_speed_bonus or 0) / 100
        bonus += element_compatibility(state.spirit_root.elements, technique.elements)
        if technique.type == TechniqueType.MAIN:
            main_bonus = max(main_bonus, bonus)
        else:
            support_bonus += bonus * 0.5
    return 1.0 + main_bonus + min(support_bonus, 0.5)


def scale_cultivation_exp(state: GameState, base_exp: float) -> int:
    """Apply spirit root and technique multipliers to raw exp.

    Args:
        state: Current game state
        base_exp: Raw exp from the narrative

    Returns:
        Floored, non-negative exp
    """
    scaled = base_exp * state.spirit_root.multiplier * technique_multiplier(state)
    return max(0, math.floor(scaled))


def gain_cultivation_exp(state: GameState, base_exp: float) -> tuple[int, int]:
    """Add scaled cultivation exp to the state, routing it by cultivation path.

    Mutates ``state.progress`` in place; callers pass a working copy.

    Args:
        state: Working copy of the game state
        base_exp: Raw exp gained

    Returns:
        Tuple of (qi_exp, body_exp) actually added
    """
    total = scale_cultivation_exp(state, base_exp)
    progress = state.progress

    if progress.cultivation_path == CultivationPath.DUAL:
        split = progress.exp_split if progress.exp_split is not None else DEFAULT_EXP_SPLIT
        qi_exp, body_exp = split_experience(total, split)
    elif progress.cultivation_path == CultivationPath.BODY:
        qi_exp, body_exp = 0, total
    else:
        qi_exp, body_exp = total, 0

    progress.cultivation_exp += qi_exp
    if body_exp:
        if progress.body_realm is None:
            progress.body_realm = BodyRealm.MORTAL_BODY
            progress.body_stage = 0
        progress.body_exp = (progress.body_exp or 0) + body_exp

    logger.debug(
        "Cultivation exp gained",
        extra={"base": base_exp, "qi_exp": qi_exp, "body_exp": body_exp},
    )
    return qi_exp, body_exp


def advance_time(time: GameTime, segments: int) -> tuple[GameTime, int]:
    """Move the calendar forward.

    Args:
        time: Current time
        segments: Number of day segments to advance (negative is treated as 0)

    Returns:
        Tuple of (new time, whole years passed)
    """
    order = list(TimeSegment)
    segment_index = order.index(time.segment) + max(0, segments)
    days = segment_index // SEGMENTS_PER_DAY
    day_index = time.day - 1 + days
    months = day_index // DAYS_PER_MONTH
    month_index = time.month - 1 + months
    years = month_index // MONTHS_PER_YEAR

    new_time = GameTime(
        year=time.year + years,
        month=month_index % MONTHS_PER_YEAR + 1,
        day=day_index % DAYS_PER_MONTH + 1,
        segment=order[segment_index % SEGMENTS_PER_DAY],
    )
    return new_time, years
