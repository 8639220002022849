"""Skill progression: experience, leveling and cooldowns.

All helpers return new Skill objects and leave their input untouched.
"""

from aws_lambda_powertools import Logger

from shared.dice import RandomSource, random_int
from shared.models import Skill

logger = Logger(child=True)

EXP_PER_LEVEL = 100
LEVEL_UP_MULTIPLIER = 1.05
UPGRADE_MULTIPLIER = 1.1

# Exp granted per use in combat, and per narrative skills.gain_exp delta
COMBAT_EXP_RANGE = (5, 15)
NARRATIVE_EXP_RANGE = (15, 30)


def grant_exp(skill: Skill, amount: int) -> Skill:
    """Add exp to a skill and resolve every level-up it pays for.

    Loops while ``exp >= max_exp`` and ``level < max_level``: each pass
    spends ``max_exp``, raises the level, sets ``max_exp = level * 100`` and
    grows the damage multiplier by 5%. At max level, exp keeps accumulating.

    Args:
        skill: Skill before the grant
        amount: Exp to add (negative amounts add nothing)

    Returns:
        Updated copy of the skill
    """
    result = skill.model_copy(deep=True)
    result.exp += max(0, int(amount))

    while result.exp >= result.max_exp and result.level < result.max_level:
        result.exp -= result.max_exp
        result.level += 1
        result.max_exp = result.level * EXP_PER_LEVEL
        result.damage_multiplier *= LEVEL_UP_MULTIPLIER

    if result.level != skill.level:
        logger.info(
            "Skill leveled up",
            extra={
                "skill_id": skill.id,
                "from_level": skill.level,
                "to_level": result.level,
            },
        )
    return result


def roll_exp(rng: RandomSource, exp_range: tuple[int, int]) -> int:
    """Roll an exp amount in an inclusive range."""
    return random_int(rng, *exp_range)


def upgrade_skill(skill: Skill) -> Skill:
    """Raise a skill one level when it is learned a second time.

    No-op at max level.
    """
    result = skill.model_copy(deep=True)
    if result.level < result.max_level:
        result.level += 1
        result.max_exp = result.level * EXP_PER_LEVEL
        result.damage_multiplier *= UPGRADE_MULTIPLIER
    return result


def start_cooldown(skill: Skill) -> Skill:
    """Put a skill on cooldown after use."""
    return skill.model_copy(update={"current_cooldown": skill.cooldown})


def tick_cooldowns(skills: list[Skill]) -> list[Skill]:
    """Decrement every positive cooldown by one.

    Args:
        skills: Learned skills

    Returns:
        New list of skills
    """
    return [
        skill.model_copy(update={"current_cooldown": skill.current_cooldown - 1})
        if skill.current_cooldown > 0
        else skill
        for skill in skills
    ]
