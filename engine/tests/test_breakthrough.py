"""Tests for breakthrough detection."""

import itertools

import pytest

from rules.breakthrough import REALM_BONUSES, STAGE_BONUSES, breakthrough_deltas, detect
from rules.deltas import apply
from shared.models import GameState, Progress, Realm


def progress(realm: str, stage: int) -> Progress:
    """Progress at a realm and stage."""
    return Progress(realm=realm, realm_stage=stage)


class TestDetect:
    """Tests for detect."""

    def test_no_change(self):
        """Same realm and stage is not a breakthrough."""
        assert detect(progress("qi_condensation", 3), progress("qi_condensation", 3)) is None

    def test_stage_gain(self):
        """A stage gain within qi condensation uses that realm's stage row."""
        event = detect(progress("qi_condensation", 3), progress("qi_condensation", 4))
        assert event is not None
        assert event.realm_changed is False
        assert event.stat_increases == STAGE_BONUSES[Realm.QI_CONDENSATION]
        assert event.stat_increases["stats.hp_max"] == 30
        assert event.stat_increases["attrs.perception"] == 0

    def test_mortal_stage_row(self):
        """Mortal stage gains are small and leave attributes alone."""
        event = detect(progress("mortal", 1), progress("mortal", 2))
        assert event.stat_increases["stats.hp_max"] == 10
        assert event.stat_increases["stats.qi_max"] == 20
        assert event.stat_increases["attrs.str"] == 0
        assert event.stat_increases["attrs.perception"] == 0

    @pytest.mark.parametrize(
        "realm, qi_max, perception",
        [
            ("foundation_establishment", 80, 1),
            ("core_formation", 120, 2),
            ("nascent_soul", 200, 2),
        ],
    )
    def test_stage_rows(self, realm, qi_max, perception):
        """Each realm has its own stage row, perception included."""
        event = detect(progress(realm, 1), progress(realm, 2))
        assert event.stat_increases["stats.qi_max"] == qi_max
        assert event.stat_increases["attrs.perception"] == perception

    def test_nascent_soul_stage_row(self):
        event = detect(progress("nascent_soul", 2), progress("nascent_soul", 3))
        assert event.stat_increases["stats.hp_max"] == 120
        assert event.stat_increases["attrs.int"] == 4

    @pytest.mark.parametrize(
        "before, after, hp_max, qi_max, attribute, perception",
        [
            ("mortal", "qi_condensation", 50, 100, 2, 1),
            ("qi_condensation", "foundation_establishment", 100, 200, 3, 2),
            ("foundation_establishment", "core_formation", 150, 300, 4, 3),
            ("core_formation", "nascent_soul", 200, 400, 5, 4),
            ("nascent_soul", "core_formation", 300, 600, 7, 5),
        ],
    )
    def test_realm_rows(self, before, after, hp_max, qi_max, attribute, perception):
        """Realm breakthroughs are keyed by the realm being left."""
        event = detect(progress(before, 1), progress(after, 1))
        assert event.realm_changed is True
        assert event.stat_increases == {
            "stats.hp_max": hp_max,
            "stats.qi_max": qi_max,
            "attrs.str": attribute,
            "attrs.agi": attribute,
            "attrs.int": attribute,
            "attrs.perception": perception,
        }

    def test_never_fires_on_stage_loss(self):
        """Losing stages within a realm never counts."""
        for before, after in itertools.permutations(range(1, 10), 2):
            event = detect(progress("qi_condensation", before), progress("qi_condensation", after))
            assert (event is not None) == (after > before)

    def test_event_tables_are_copies(self):
        """Mutating an event does not touch the tables."""
        event = detect(progress("mortal", 1), progress("qi_condensation", 1))
        event.stat_increases["stats.hp_max"] = 0
        assert REALM_BONUSES[Realm.MORTAL]["stats.hp_max"] == 50


class TestBreakthroughDeltas:
    """Tests for breakthrough_deltas."""

    def test_increases_and_restore(self):
        """Stats rise and hp/qi are restored to the new maximums."""
        state = GameState.model_validate(
            {"stats": {"hp": 40, "hp_max": 100, "qi": 0, "qi_max": 0}, "attrs": {"str": 3}}
        )
        event = detect(progress("mortal", 1), progress("qi_condensation", 1))

        result = apply(state, breakthrough_deltas(event, state))

        stats = result.state.stats
        assert stats.hp_max == 150
        assert stats.hp == 150
        assert stats.qi_max == 100
        assert stats.qi == 100
        assert result.state.attrs.strength == 5
        assert result.warnings == []

    @pytest.mark.parametrize("realm", [r.value for r in Realm if r != Realm.MORTAL])
    def test_deltas_are_tagged(self, realm):
        """Every delta carries the breakthrough reason."""
        event = detect(progress(realm, 1), progress(realm, 2))
        deltas = breakthrough_deltas(event, GameState())
        assert {d.reason for d in deltas} == {"breakthrough"}
