"""Turn-based combat resolution.

A CombatSession is created from a ``combat_encounter`` event and runs on a
working copy of the player's state until victory, defeat or a successful
flight. Illegal actions are declined: nothing changes and the caller gets a
CombatTurnResult with ``accepted=False`` and the reason.

Roll order per action, all uniform in [0, 1):
    player damage: crit, miss (then 5-15 skill exp for skills)
    flee: success
    enemy: variance, miss, crit
"""

import asyncio
import math
import random
from collections.abc import Callable
from typing import Any

from aws_lambda_powertools import Logger

from rules.deltas import DeltaApplication, apply
from rules.models import (
    CombatAction,
    CombatActionType,
    CombatEnemy,
    CombatLogEntry,
    CombatPhase,
    CombatRewards,
    CombatTurnResult,
    DomainEvent,
    DomainEventType,
    GameEvent,
)
from rules.rewards import defeat_penalty, reward_deltas, roll_victory_rewards
from rules.skills import COMBAT_EXP_RANGE, grant_exp, roll_exp, start_cooldown, tick_cooldowns
from shared.config import DEFAULT_ENEMY_TURN_DELAY
from shared.dice import RandomSource, chance
from shared.exceptions import CombatIllegalAction
from shared.models import GameState, Skill, SkillType

logger = Logger(child=True)

PLAYER_ACTOR = "player"

ATTACK_STR_MULTIPLIER = 1.5
QI_ATTACK_COST = 10
PLAYER_CRIT_CHANCE = 0.15
PLAYER_CRIT_MULTIPLIER = 2.0
SKILL_CRIT_MULTIPLIER = 1.5
PLAYER_MISS_CHANCE = 0.10

ENEMY_MISS_CHANCE = 0.15
ENEMY_CRIT_CHANCE = 0.10
ENEMY_CRIT_MULTIPLIER = 1.5
ENEMY_VARIANCE_BASE = 0.8
ENEMY_VARIANCE_SPREAD = 0.4
DEFEND_DAMAGE_FACTOR = 0.5

FLEE_CHANCE = 0.5

CombatObserver = Callable[[CombatLogEntry], None]


def mitigated_damage(raw: float, defense: int) -> int:
    """Damage after defense: ``max(1, floor(raw) - floor(def / 2))``."""
    return max(1, math.floor(raw) - defense // 2)


class CombatSession:
    """One encounter between the player and a single enemy."""

    def __init__(
        self,
        state: GameState,
        enemy: CombatEnemy,
        rng: RandomSource | None = None,
        enemy_turn_delay: float = DEFAULT_ENEMY_TURN_DELAY,
    ) -> None:
        """Start a session.

        Args:
            state: Player state when combat starts (copied, not modified)
            enemy: Enemy stat block
            rng: Random source for every roll in the session
            enemy_turn_delay: Seconds take_turn_paced waits before the enemy acts
        """
        self.state = state.model_copy(deep=True)
        self.enemy = enemy.model_copy(deep=True)
        self.rng = rng or random.Random()
        self.enemy_turn_delay = enemy_turn_delay

        self.phase = CombatPhase.AWAITING_PLAYER_ACTION
        self.player_turn = True
        self.turn = 1
        self.log: list[CombatLogEntry] = []
        self.rewards: CombatRewards | None = None

        self._defending = False
        self._first_action = True
        self._finished = False
        self._observers: list[CombatObserver] = []

        logger.info(
            "Combat started",
            extra={"enemy": self.enemy.name, "enemy_hp": self.enemy.hp},
        )

    @classmethod
    def from_event(
        cls,
        state: GameState,
        event: GameEvent | dict[str, Any],
        rng: RandomSource | None = None,
        enemy_turn_delay: float = DEFAULT_ENEMY_TURN_DELAY,
    ) -> "CombatSession":
        """Start a session from a ``combat_encounter`` event.

        Args:
            state: Player state
            event: Event whose data carries ``enemy``
            rng: Random source
            enemy_turn_delay: Pacing delay for take_turn_paced

        Returns:
            New CombatSession
        """
        if isinstance(event, dict):
            event = GameEvent.model_validate(event)
        enemy = CombatEnemy.model_validate(event.data["enemy"])
        return cls(state, enemy, rng=rng, enemy_turn_delay=enemy_turn_delay)

    def subscribe(self, observer: CombatObserver) -> None:
        """Receive every log entry as it is written, in order."""
        self._observers.append(observer)

    @property
    def is_over(self) -> bool:
        """Whether the session reached a terminal phase."""
        return self.phase.is_terminal

    # ========== Public turn API ==========

    def player_action(self, action: CombatAction) -> CombatTurnResult:
        """Resolve the player's action (but not the enemy's response).

        Args:
            action: Chosen action

        Returns:
            CombatTurnResult; declined actions leave the session untouched
        """
        try:
            entries = self._resolve_player(action)
        except CombatIllegalAction as e:
            return self._declined(e)
        return CombatTurnResult(accepted=True, phase=self.phase, entries=entries)

    def enemy_action(self) -> CombatTurnResult:
        """Resolve the enemy's turn.

        Returns:
            CombatTurnResult; declined when it is not the enemy's turn
        """
        try:
            entries = self._resolve_enemy()
        except CombatIllegalAction as e:
            return self._declined(e)
        return CombatTurnResult(accepted=True, phase=self.phase, entries=entries)

    def take_turn(self, action: CombatAction) -> CombatTurnResult:
        """Resolve the player's action and, if combat continues, the enemy's."""
        result = self.player_action(action)
        if not result.accepted or self.phase != CombatPhase.AWAITING_ENEMY_ACTION:
            return result
        enemy_result = self.enemy_action()
        return CombatTurnResult(
            accepted=True,
            phase=self.phase,
            entries=result.entries + enemy_result.entries,
        )

    async def take_turn_paced(
        self, action: CombatAction, delay: float | None = None
    ) -> CombatTurnResult:
        """Like take_turn, but wait before the enemy acts.

        Args:
            action: Chosen action
            delay: Seconds to wait; defaults to the session's pacing delay

        Returns:
            CombatTurnResult covering both halves of the turn
        """
        result = self.player_action(action)
        if not result.accepted or self.phase != CombatPhase.AWAITING_ENEMY_ACTION:
            return result
        await asyncio.sleep(self.enemy_turn_delay if delay is None else delay)
        enemy_result = self.enemy_action()
        return CombatTurnResult(
            accepted=True,
            phase=self.phase,
            entries=result.entries + enemy_result.entries,
        )

    def finish(self) -> DeltaApplication:
        """Fold the outcome back into the player's state.

        Victory rolls loot, defeat applies the soft-fail penalty, flight
        changes nothing. Skill exp and cooldowns from the fight are already in
        the working state.

        Returns:
            DeltaApplication with the final state

        Raises:
            CombatIllegalAction: If combat is still running or already finished
        """
        if not self.is_over:
            raise CombatIllegalAction(
                "Combat has not ended", reason="session_active", phase=self.phase.value
            )
        if self._finished:
            raise CombatIllegalAction(
                "Combat already finished", reason="already_finished", phase=self.phase.value
            )
        self._finished = True

        if self.phase == CombatPhase.VICTORY:
            self.rewards = roll_victory_rewards(self.state, self.rng)
        elif self.phase == CombatPhase.DEFEAT:
            self.rewards = defeat_penalty(self.state)
        else:
            self.rewards = CombatRewards()

        outcome = apply(self.state, reward_deltas(self.rewards), rng=self.rng)
        if self.phase == CombatPhase.VICTORY:
            outcome.events.insert(
                0,
                DomainEvent(
                    type=DomainEventType.LOOT,
                    data={
                        "silver": self.rewards.silver,
                        "cultivation_exp": self.rewards.cultivation_exp,
                        "spirit_stones": self.rewards.spirit_stones,
                        "items": [item["id"] for item in self.rewards.items],
                    },
                ),
            )

        logger.info(
            "Combat ended",
            extra={
                "outcome": self.phase.value,
                "turns": self.turn,
                "silver": self.rewards.silver,
            },
        )
        return outcome

    # ========== Resolution ==========

    def _declined(self, error: CombatIllegalAction) -> CombatTurnResult:
        """Convert an illegal action into a declined result."""
        logger.warning(
            "Combat action declined",
            extra={"reason": error.reason, "phase": self.phase.value},
        )
        return CombatTurnResult(accepted=False, reason=error.reason, phase=self.phase)

    def _illegal(self, message: str, reason: str) -> CombatIllegalAction:
        """Build an illegal-action error for the current phase."""
        return CombatIllegalAction(message, reason=reason, phase=self.phase.value)

    def _find_skill(self, skill_id: str | None) -> tuple[int, Skill]:
        """Locate a learned skill, or decline."""
        for index, skill in enumerate(self.state.skills):
            if skill.id == skill_id:
                return index, skill
        raise self._illegal(f"Unknown skill {skill_id!r}", "unknown_skill")

    def _check_player_action(self, action: CombatAction) -> None:
        """Decline anything the player cannot do right now."""
        if self.phase.is_terminal:
            raise self._illegal("Combat is over", "session_over")
        if self.phase != CombatPhase.AWAITING_PLAYER_ACTION:
            raise self._illegal("Not the player's turn", "not_player_turn")

        qi = self.state.stats.qi
        if action.action_type == CombatActionType.QI_ATTACK and qi < QI_ATTACK_COST:
            raise self._illegal("Not enough qi", "insufficient_qi")
        if action.action_type == CombatActionType.SKILL:
            _, skill = self._find_skill(action.skill_id)
            if qi < skill.qi_cost:
                raise self._illegal("Not enough qi", "insufficient_qi")
            if skill.current_cooldown > 0 and not self._first_action:
                raise self._illegal(f"{skill.name} is on cooldown", "on_cooldown")

    def _resolve_player(self, action: CombatAction) -> list[CombatLogEntry]:
        """Resolve a player action and move to the next phase."""
        self._check_player_action(action)
        self.phase = CombatPhase.RESOLVING_PLAYER_ACTION
        self._first_action = False
        fled = False

        if action.action_type == CombatActionType.ATTACK:
            raw = self.state.attrs.strength * ATTACK_STR_MULTIPLIER
            entry = self._strike("attack", raw, PLAYER_CRIT_MULTIPLIER)
        elif action.action_type == CombatActionType.QI_ATTACK:
            self.state.stats.qi -= QI_ATTACK_COST
            attrs = self.state.attrs
            raw = attrs.intelligence * 2 + attrs.strength
            entry = self._strike("qi_attack", raw, PLAYER_CRIT_MULTIPLIER)
        elif action.action_type == CombatActionType.DEFEND:
            self._defending = True
            entry = self._entry("defend", message="You brace for the next blow.")
        elif action.action_type == CombatActionType.FLEE:
            fled = chance(self.rng, FLEE_CHANCE)
            logger.debug("Flee roll", extra={"success": fled})
            message = "You escape." if fled else "You fail to get away."
            entry = self._entry("flee", message=message)
        else:
            entry = self._use_skill(action.skill_id)

        self._record(entry)

        if self.enemy.hp <= 0:
            self.phase = CombatPhase.VICTORY
        elif fled:
            self.phase = CombatPhase.FLED
        else:
            self.phase = CombatPhase.AWAITING_ENEMY_ACTION
            self.player_turn = False
        return [entry]

    def _roll_player_damage(self, raw: float, crit_multiplier: float) -> tuple[int, bool, bool]:
        """Roll crit then miss and mitigate by the enemy's defense.

        Returns:
            Tuple of (damage, is_critical, is_miss)
        """
        is_crit = chance(self.rng, PLAYER_CRIT_CHANCE)
        is_miss = chance(self.rng, PLAYER_MISS_CHANCE)
        if is_miss:
            damage = 0
        else:
            damage = mitigated_damage(raw * crit_multiplier if is_crit else raw, self.enemy.def_)
        logger.debug(
            "Player damage rolled",
            extra={"raw": raw, "crit": is_crit, "miss": is_miss, "damage": damage},
        )
        return damage, is_crit and not is_miss, is_miss

    def _strike(
        self,
        action: str,
        raw: float,
        crit_multiplier: float,
        skill_id: str | None = None,
    ) -> CombatLogEntry:
        """Deal rolled damage to the enemy."""
        damage, is_crit, is_miss = self._roll_player_damage(raw, crit_multiplier)
        self.enemy.hp = max(0, self.enemy.hp - damage)
        if is_miss:
            message = "Your strike misses."
        elif is_crit:
            message = f"Critical hit for {damage}!"
        else:
            message = f"You hit {self.enemy.name} for {damage}."
        return self._entry(
            action,
            damage=damage,
            is_critical=is_crit,
            is_miss=is_miss,
            skill_id=skill_id,
            message=message,
        )

    def _use_skill(self, skill_id: str | None) -> CombatLogEntry:
        """Use a skill: pay qi, hit or heal, gain exp, start the cooldown."""
        index, skill = self._find_skill(skill_id)
        stats = self.state.stats
        stats.qi -= skill.qi_cost

        if skill.type == SkillType.ATTACK:
            raw = self.state.attrs.strength * ATTACK_STR_MULTIPLIER * skill.damage_multiplier
            entry = self._strike("skill", raw, SKILL_CRIT_MULTIPLIER, skill_id=skill.id)
        elif skill.heals:
            healed = min(
                math.floor(stats.hp_max * skill.effects.heal_percent),
                stats.hp_max - stats.hp,
            )
            stats.hp += healed
            entry = self._entry(
                "skill", healed=healed, skill_id=skill.id, message=f"{skill.name} restores {healed} hp."
            )
        else:
            self._defending = True
            entry = self._entry(
                "skill", skill_id=skill.id, message=f"{skill.name} shields you."
            )

        updated = grant_exp(skill, roll_exp(self.rng, COMBAT_EXP_RANGE))
        self.state.skills[index] = start_cooldown(updated)
        return entry

    def _resolve_enemy(self) -> list[CombatLogEntry]:
        """Resolve the enemy's attack and hand the turn back."""
        if self.phase != CombatPhase.AWAITING_ENEMY_ACTION:
            reason = "session_over" if self.phase.is_terminal else "not_enemy_turn"
            raise self._illegal("Not the enemy's turn", reason)
        self.phase = CombatPhase.RESOLVING_ENEMY_ACTION

        variance = self.rng.random()
        damage = math.floor(
            self.enemy.atk * (ENEMY_VARIANCE_BASE + variance * ENEMY_VARIANCE_SPREAD)
        )
        is_miss = chance(self.rng, ENEMY_MISS_CHANCE)
        is_crit = chance(self.rng, ENEMY_CRIT_CHANCE)
        if is_miss:
            damage = 0
        else:
            damage = math.floor(
                damage
                * (DEFEND_DAMAGE_FACTOR if self._defending else 1)
                * (ENEMY_CRIT_MULTIPLIER if is_crit else 1)
            )

        stats = self.state.stats
        stats.hp = max(0, stats.hp - damage)
        self._defending = False

        logger.debug(
            "Enemy damage rolled",
            extra={"variance": variance, "crit": is_crit, "miss": is_miss, "damage": damage},
        )

        if is_miss:
            message = f"{self.enemy.name} misses."
        else:
            message = f"{self.enemy.name} hits you for {damage}."
        entry = self._entry(
            "attack",
            actor=self.enemy.id,
            damage=damage,
            is_critical=is_crit and not is_miss,
            is_miss=is_miss,
            message=message,
        )
        self._record(entry)

        if stats.hp <= 0:
            self.phase = CombatPhase.DEFEAT
        else:
            self.phase = CombatPhase.AWAITING_PLAYER_ACTION
            self.player_turn = True
            self.turn += 1
            self.state.skills = tick_cooldowns(self.state.skills)
        return [entry]

    def _entry(self, action: str, actor: str = PLAYER_ACTOR, **fields) -> CombatLogEntry:
        """Build a log entry stamped with the current hp of both sides."""
        return CombatLogEntry(
            turn=self.turn,
            actor=actor,
            action=action,
            player_hp=self.state.stats.hp,
            enemy_hp=self.enemy.hp,
            **fields,
        )

    def _record(self, entry: CombatLogEntry) -> None:
        """Append to the log and notify observers."""
        self.log.append(entry)
        for observer in self._observers:
            observer(entry)
