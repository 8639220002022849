"""Tests for skill progression."""

import pytest

from rules.skills import (
    COMBAT_EXP_RANGE,
    grant_exp,
    roll_exp,
    start_cooldown,
    tick_cooldowns,
    upgrade_skill,
)
from shared.models import Skill


@pytest.fixture
def palm():
    """A level 1 attack skill."""
    return Skill(id="palm", name="Azure Palm", damage_multiplier=1.5, cooldown=2)


class TestGrantExp:
    """Tests for grant_exp."""

    def test_below_threshold(self, palm):
        """Exp under max_exp just accumulates."""
        result = grant_exp(palm, 40)
        assert result.level == 1
        assert result.exp == 40

    def test_three_levels_in_one_grant(self, palm):
        """Crossing three thresholds levels three times and keeps the remainder."""
        # 100 (L1) + 200 (L2) + 300 (L3) = 600
        result = grant_exp(palm, 650)
        assert result.level == 4
        assert result.exp == 50
        assert result.max_exp == 400
        assert result.damage_multiplier == pytest.approx(1.5 * 1.05**3)

    def test_stops_at_max_level(self, palm):
        """At max level, exp keeps piling up."""
        capped = palm.model_copy(update={"level": 10, "max_exp": 1000})
        result = grant_exp(capped, 5000)
        assert result.level == 10
        assert result.exp == 5000

    def test_negative_amount_adds_nothing(self, palm):
        """Negative grants are ignored."""
        assert grant_exp(palm, -20).exp == 0

    def test_input_untouched(self, palm):
        """The original skill is not modified."""
        grant_exp(palm, 650)
        assert palm.level == 1
        assert palm.exp == 0


class TestHelpers:
    """Tests for cooldown and upgrade helpers."""

    def test_roll_exp_range(self, scripted):
        """Combat exp rolls 5-15."""
        assert roll_exp(scripted(0.0), COMBAT_EXP_RANGE) == 5
        assert roll_exp(scripted(0.999), COMBAT_EXP_RANGE) == 15

    def test_upgrade(self, palm):
        """Upgrading raises level and multiplier by 10%."""
        result = upgrade_skill(palm)
        assert result.level == 2
        assert result.max_exp == 200
        assert result.damage_multiplier == pytest.approx(1.65)

    def test_upgrade_at_max_level(self, palm):
        """Upgrading a maxed skill changes nothing."""
        maxed = palm.model_copy(update={"level": 10})
        assert upgrade_skill(maxed) == maxed

    def test_cooldowns(self, palm):
        """Cooldown starts full and ticks down to zero."""
        used = start_cooldown(palm)
        assert used.current_cooldown == 2

        skills = tick_cooldowns([used, palm])
        assert [s.current_cooldown for s in skills] == [1, 0]

        skills = tick_cooldowns(tick_cooldowns(skills))
        assert [s.current_cooldown for s in skills] == [0, 0]
