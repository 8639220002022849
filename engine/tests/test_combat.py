"""Tests for combat resolution module."""

import asyncio
import random

import pytest

from rules.combat import CombatSession, mitigated_damage
from rules.models import (
    CombatAction,
    CombatActionType,
    CombatEnemy,
    CombatPhase,
    DomainEventType,
)
from shared.exceptions import CombatIllegalAction
from shared.models import Skill

# Draw pairs for a player hit: (crit roll, miss roll)
HIT = (0.5, 0.5)
CRIT = (0.0, 0.5)
MISS = (0.5, 0.0)

# Enemy turn that deals floor(atk * 0.8) and neither misses nor crits
ENEMY_LOW_HIT = (0.0, 0.99, 0.99)

ATTACK = CombatAction(action_type=CombatActionType.ATTACK)
QI_ATTACK = CombatAction(action_type=CombatActionType.QI_ATTACK)
DEFEND = CombatAction(action_type=CombatActionType.DEFEND)
FLEE = CombatAction(action_type=CombatActionType.FLEE)


def use(skill_id: str) -> CombatAction:
    """Skill action."""
    return CombatAction(action_type=CombatActionType.SKILL, skill_id=skill_id)


@pytest.fixture
def wolf():
    """The reference enemy: 30 hp, 8 atk, 4 def."""
    return CombatEnemy(id="wolf-1", name="Grey Wolf", hp=30, atk=8, def_=4)


@pytest.fixture
def session_for(fighter, wolf, scripted):
    """Build a session for the fighter and the wolf with scripted draws."""

    def build(*draws, state=None):
        return CombatSession(state or fighter, wolf, rng=scripted(*draws), enemy_turn_delay=0)

    return build


class TestDamage:
    """Tests for player damage."""

    def test_mitigation(self):
        """Half the defense comes off, never below 1."""
        assert mitigated_damage(15, 4) == 13
        assert mitigated_damage(15.9, 5) == 13
        assert mitigated_damage(2, 10) == 1

    def test_normal_hit(self, session_for):
        """STR 10 against def 4 deals 13."""
        session = session_for(*HIT)
        result = session.player_action(ATTACK)
        assert result.entries[0].damage == 13
        assert session.enemy.hp == 17

    def test_critical_hit(self, session_for):
        """A crit doubles the raw damage: 28."""
        session = session_for(*CRIT)
        entry = session.player_action(ATTACK).entries[0]
        assert entry.damage == 28
        assert entry.is_critical is True

    def test_miss(self, session_for):
        """A miss deals nothing."""
        session = session_for(*MISS)
        entry = session.player_action(ATTACK).entries[0]
        assert entry.damage == 0
        assert entry.is_miss is True
        assert entry.is_critical is False
        assert session.enemy.hp == 30

    def test_qi_attack(self, session_for):
        """Qi attacks use INT x 2 + STR and cost 10 qi."""
        session = session_for(*HIT)
        entry = session.player_action(QI_ATTACK).entries[0]
        assert entry.damage == 6 * 2 + 10 - 2
        assert session.state.stats.qi == 10


class TestEndToEnd:
    """The reference fight: three clean attacks kill the wolf."""

    def test_victory(self, session_for, fighter):
        """Enemy hp goes 30, 17, 4, 0 and the fight ends in victory."""
        session = session_for(
            *HIT, *ENEMY_LOW_HIT, *HIT, *ENEMY_LOW_HIT, *HIT, 0.0, 0.0
        )
        enemy_hp = [session.enemy.hp]
        for _ in range(3):
            session.take_turn(ATTACK)
            enemy_hp.append(session.enemy.hp)

        assert enemy_hp == [30, 17, 4, 0]
        assert session.phase == CombatPhase.VICTORY
        assert session.is_over
        assert session.state.stats.hp == 100 - 6 - 6
        assert session.turn == 3

        outcome = session.finish()
        assert outcome.events[0].type == DomainEventType.LOOT
        assert outcome.state.inventory.silver == fighter.inventory.silver + 20
        assert outcome.state.progress.cultivation_exp == 20
        assert fighter.stats.hp == 100

    def test_actions_after_victory_declined(self, session_for):
        """A finished session accepts nothing."""
        session = session_for(*CRIT, *ENEMY_LOW_HIT, *CRIT)
        session.take_turn(ATTACK)
        session.take_turn(ATTACK)
        assert session.phase == CombatPhase.VICTORY

        result = session.take_turn(ATTACK)
        assert result.accepted is False
        assert result.reason == "session_over"
        assert session.enemy_action().reason == "session_over"


class TestDefeatAndFlight:
    """Tests for the other terminal phases."""

    def test_defeat(self, fighter, wolf, scripted):
        """Reaching 0 hp loses the fight and costs silver."""
        fighter.stats.hp = 5
        session = CombatSession(fighter, wolf, rng=scripted(*HIT, *ENEMY_LOW_HIT))
        session.take_turn(ATTACK)
        assert session.phase == CombatPhase.DEFEAT
        assert session.state.stats.hp == 0

        outcome = session.finish()
        assert outcome.state.stats.hp == 30
        assert outcome.state.inventory.silver == 50

    def test_successful_flee(self, session_for, fighter):
        """A flee roll under 0.5 escapes with no rewards."""
        session = session_for(0.1)
        result = session.take_turn(FLEE)
        assert result.phase == CombatPhase.FLED
        assert len(result.entries) == 1

        outcome = session.finish()
        assert outcome.state.inventory.silver == fighter.inventory.silver
        assert outcome.events == []

    def test_failed_flee_wastes_turn(self, session_for):
        """A failed flee lets the enemy act."""
        session = session_for(0.9, *ENEMY_LOW_HIT)
        result = session.take_turn(FLEE)
        assert result.phase == CombatPhase.AWAITING_PLAYER_ACTION
        assert [e.actor for e in result.entries] == ["player", "wolf-1"]

    def test_flee_fairness(self, fighter, wolf):
        """Flee succeeds about half the time."""
        rng = random.Random(1234)
        trials = 2000
        fled = 0
        for _ in range(trials):
            session = CombatSession(fighter, wolf, rng=rng)
            session.player_action(FLEE)
            fled += session.phase == CombatPhase.FLED
        assert abs(fled / trials - 0.5) < 0.05


class TestEnemyTurn:
    """Tests for enemy resolution."""

    def test_defend_halves_next_hit(self, session_for):
        """Defending halves one enemy hit."""
        session = session_for(*ENEMY_LOW_HIT, *HIT, *ENEMY_LOW_HIT)
        session.take_turn(DEFEND)
        assert session.state.stats.hp == 97

        session.take_turn(ATTACK)
        assert session.state.stats.hp == 91

    def test_defended_crit_floors_once(self, fighter, scripted):
        """A crit against a defender is floored once: floor(7 * 0.5 * 1.5) = 5."""
        enemy = CombatEnemy(id="bandit-1", name="Bandit", hp=30, atk=7, def_=2)
        session = CombatSession(fighter, enemy, rng=scripted(0.5, 0.99, 0.0), enemy_turn_delay=0)
        result = session.take_turn(DEFEND)
        assert result.entries[-1].is_critical is True
        assert result.entries[-1].damage == 5
        assert session.state.stats.hp == 95

    def test_enemy_crit_and_miss(self, session_for):
        """Enemy crits multiply by 1.5; misses deal nothing."""
        session = session_for(*HIT, 0.999, 0.5, 0.0, *HIT, 0.5, 0.0, 0.99)
        session.take_turn(ATTACK)
        # floor(8 * 1.1996) = 9, crit -> 13
        assert session.state.stats.hp == 87
        session.take_turn(ATTACK)
        assert session.state.stats.hp == 87

    def test_enemy_out_of_turn(self, session_for):
        """The enemy cannot act on the player's turn."""
        session = session_for()
        result = session.enemy_action()
        assert result.accepted is False
        assert result.reason == "not_enemy_turn"

    def test_player_out_of_turn(self, session_for):
        """The player cannot act twice before the enemy."""
        session = session_for(*HIT)
        session.player_action(ATTACK)
        result = session.player_action(ATTACK)
        assert result.accepted is False
        assert result.reason == "not_player_turn"


class TestSkills:
    """Tests for skill use in combat."""

    @pytest.fixture
    def skilled(self, fighter):
        """The fighter with an attack skill and a heal."""
        fighter.skills = [
            Skill(id="palm", name="Azure Palm", damage_multiplier=2.0, qi_cost=5, cooldown=2, current_cooldown=1),
            Skill(
                id="mend",
                name="Mend",
                type="support",
                qi_cost=5,
                effects={"heal_percent": 0.2},
            ),
        ]
        return fighter

    def test_attack_skill(self, session_for, skilled):
        """Attack skills scale by the multiplier and grant exp."""
        session = session_for(*HIT, 0.0, state=skilled)
        entry = session.player_action(use("palm")).entries[0]
        # 10 * 1.5 * 2.0 = 30, minus 2
        assert entry.damage == 28
        assert entry.skill_id == "palm"
        palm = session.state.find_skill("palm")
        assert palm.exp == 5
        assert palm.current_cooldown == 2
        assert session.state.stats.qi == 15

    def test_skill_crit_is_one_and_a_half(self, session_for, skilled):
        """Skill crits multiply by 1.5."""
        session = session_for(*CRIT, 0.0, state=skilled)
        entry = session.player_action(use("palm")).entries[0]
        assert entry.damage == 43

    def test_heal_skill(self, session_for, skilled):
        """Heals restore a share of hp_max, never past it."""
        skilled.stats.hp = 50
        session = session_for(0.0, state=skilled)
        entry = session.player_action(use("mend")).entries[0]
        assert entry.healed == 20
        assert session.state.stats.hp == 70

    def test_cooldown_rules(self, skilled, scripted):
        """Cooldowns block reuse until they tick down between turns."""
        ogre = CombatEnemy(name="Ogre", hp=200, atk=8, def_=4)
        session = CombatSession(
            skilled,
            ogre,
            rng=scripted(
                *HIT, 0.0, *ENEMY_LOW_HIT,
                *HIT, *ENEMY_LOW_HIT,
                *HIT, 0.0, *ENEMY_LOW_HIT,
            ),
        )
        # First action ignores the starting cooldown
        assert session.take_turn(use("palm")).accepted is True
        assert session.state.find_skill("palm").current_cooldown == 1

        declined = session.take_turn(use("palm"))
        assert declined.accepted is False
        assert declined.reason == "on_cooldown"
        assert session.state.find_skill("palm").current_cooldown == 1

        session.take_turn(ATTACK)
        assert session.state.find_skill("palm").current_cooldown == 0
        assert session.take_turn(use("palm")).accepted is True

    def test_insufficient_qi(self, session_for, fighter):
        """Qi attacks need 10 qi."""
        fighter.stats.qi = 9
        session = session_for(state=fighter)
        result = session.take_turn(QI_ATTACK)
        assert result.accepted is False
        assert result.reason == "insufficient_qi"
        assert session.phase == CombatPhase.AWAITING_PLAYER_ACTION

    def test_unknown_skill(self, session_for):
        """Unknown skills are declined."""
        result = session_for().take_turn(use("ghost_palm"))
        assert result.reason == "unknown_skill"


class TestSessionLifecycle:
    """Tests for session construction, observers and pacing."""

    def test_from_event(self, fighter):
        """A combat_encounter event starts a session."""
        event = {"type": "combat_encounter", "data": {"enemy": {"hp": 30, "atk": 8, "def": 4}}}
        session = CombatSession.from_event(fighter, event)
        assert session.phase == CombatPhase.AWAITING_PLAYER_ACTION
        assert session.player_turn is True
        assert session.enemy.hp_max == 30
        assert session.enemy.def_ == 4

    def test_observers_see_entries_in_order(self, session_for):
        """Observers receive every entry as it is logged."""
        seen = []
        session = session_for(*HIT, *ENEMY_LOW_HIT)
        session.subscribe(seen.append)
        session.take_turn(ATTACK)
        assert seen == session.log
        assert [e.actor for e in seen] == ["player", "wolf-1"]

    def test_paced_turn(self, session_for):
        """The paced variant resolves both halves of the turn."""
        session = session_for(*HIT, *ENEMY_LOW_HIT)
        result = asyncio.run(session.take_turn_paced(ATTACK, delay=0))
        assert len(result.entries) == 2
        assert session.phase == CombatPhase.AWAITING_PLAYER_ACTION
        assert session.turn == 2

    def test_finish_while_active(self, session_for):
        """Finishing a running fight is illegal."""
        with pytest.raises(CombatIllegalAction) as exc_info:
            session_for().finish()
        assert exc_info.value.reason == "session_active"

    def test_finish_twice(self, session_for):
        """A session is folded back only once."""
        session = session_for(0.1)
        session.take_turn(FLEE)
        session.finish()
        with pytest.raises(CombatIllegalAction) as exc_info:
            session.finish()
        assert exc_info.value.reason == "already_finished"

    def test_input_state_untouched(self, session_for, fighter):
        """The session works on a copy of the player's state."""
        session = session_for(*HIT, *ENEMY_LOW_HIT)
        session.take_turn(ATTACK)
        assert fighter.stats.hp == 100
