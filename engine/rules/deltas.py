"""Delta application engine.

Applies an ordered list of validated deltas to a copy of a GameState. Each
delta sees the result of the ones before it. Numeric results are floored and
clamped silently; a delta that cannot be applied is skipped with a warning
and the rest of the turn still goes through.
"""

import math
import random

from aws_lambda_powertools import Logger
from pydantic import BaseModel, Field, ValidationError

from rules.cultivation import advance_time, gain_cultivation_exp, max_stage
from rules.models import (
    Delta,
    DeltaApplicationWarning,
    DeltaOperation,
    DomainEvent,
    DomainEventType,
)
from rules.payloads import (
    AmountPayload,
    ItemPayload,
    RemoveItemPayload,
    SectJoinPayload,
    SectLeavePayload,
    SectPromotePayload,
    SkillExpPayload,
    SkillPayload,
    TechniquePayload,
    parse_payload,
)
from rules.schema import (
    COMPOSITE_FIELDS,
    FLAG_PREFIX,
    MAX_TO_CURRENT,
    NUMERIC_FIELDS,
    TEXT_FIELDS,
    NumericLeaf,
    is_flag_field,
)
from rules.skills import NARRATIVE_EXP_RANGE, grant_exp, roll_exp, upgrade_skill
from shared.dice import RandomSource
from shared.models import (
    MAX_PER_TYPE,
    MAX_SKILLS,
    MAX_TECHNIQUES,
    RANK_BENEFITS,
    GameState,
    InventoryItem,
    Realm,
    SectMembership,
    Skill,
    Technique,
    TimeSegment,
)

logger = Logger(child=True)


class DeltaApplication(BaseModel):
    """Outcome of applying one turn's deltas."""

    state: GameState
    """New snapshot. The input snapshot is never modified."""

    events: list[DomainEvent] = Field(default_factory=list)
    """Domain events in the order they happened."""

    warnings: list[DeltaApplicationWarning] = Field(default_factory=list)
    """Deltas that were skipped or blocked."""


class SkippedDelta(Exception):
    """Raised by a handler to skip the delta it is applying."""

    def __init__(self, reason: str) -> None:
        """Initialize with a machine-readable reason.

        Args:
            reason: Why the delta was skipped
        """
        self.reason = reason
        super().__init__(reason)


def _is_number(value: object) -> bool:
    """True for finite ints and floats; booleans do not count."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _combine(current: int, operation: DeltaOperation, value: float) -> float:
    """Apply a numeric operation."""
    if operation == DeltaOperation.ADD:
        return current + value
    if operation == DeltaOperation.SUBTRACT:
        return current - value
    if operation == DeltaOperation.MULTIPLY:
        return current * value
    return value


class DeltaApplier:
    """Applies deltas to a working copy of a game state.

    One instance handles one turn; it is not reusable.
    """

    def __init__(self, state: GameState, rng: RandomSource | None = None) -> None:
        """Initialize with the snapshot to copy.

        Args:
            state: Snapshot before the turn (left untouched)
            rng: Random source for rolled amounts
        """
        self.state = state.model_copy(deep=True)
        self.rng = rng or random.Random()
        self.events: list[DomainEvent] = []
        self.warnings: list[DeltaApplicationWarning] = []
        self._composites = {
            "inventory.add_item": self._add_item,
            "inventory.remove_item": self._remove_item,
            "techniques.add": self._add_technique,
            "skills.add": self._add_skill,
            "skills.gain_exp": self._gain_skill_exp,
            "sect.join": self._join_sect,
            "sect.leave": self._leave_sect,
            "sect.promote": self._promote,
            "sect.contribution": self._add_contribution,
            "sect.mission": self._complete_mission,
            "progress.gain_exp": self._gain_cultivation_exp,
            "time.advance": self._advance_time,
        }

    def apply_all(self, deltas: list[Delta]) -> DeltaApplication:
        """Apply deltas in order and verify the invariants.

        Args:
            deltas: Validated deltas

        Returns:
            DeltaApplication with the new state, events and warnings

        Raises:
            InvariantViolation: If the result breaks a hard invariant
        """
        for delta in deltas:
            try:
                self._apply_one(delta)
            except SkippedDelta as e:
                self._warn(delta, e.reason)
            except ValidationError as e:
                logger.debug("Payload rejected", extra={"errors": e.error_count()})
                self._warn(delta, "invalid_payload")

        self.state.check_invariants()

        logger.info(
            "Deltas applied",
            extra={
                "delta_count": len(deltas),
                "event_count": len(self.events),
                "warning_count": len(self.warnings),
            },
        )
        return DeltaApplication(state=self.state, events=self.events, warnings=self.warnings)

    def _apply_one(self, delta: Delta) -> None:
        """Route a delta to its handler."""
        field = delta.field
        if field in NUMERIC_FIELDS:
            self._apply_numeric(NUMERIC_FIELDS[field], delta)
        elif field in TEXT_FIELDS:
            self._apply_text(delta)
        elif field in COMPOSITE_FIELDS:
            payload = parse_payload(field, delta.value)
            self._composites[field](payload, delta)
        elif is_flag_field(field):
            self._set_flag(delta)
        else:
            raise SkippedDelta("unknown_field")

    def _warn(self, delta: Delta, reason: str) -> None:
        """Record a skipped delta."""
        self.warnings.append(
            DeltaApplicationWarning(
                field=delta.field,
                reason=reason,
                delta=delta.model_dump(mode="json"),
            )
        )
        logger.warning(
            "Delta skipped",
            extra={"field": delta.field, "operation": delta.operation.value, "reason": reason},
        )

    def _emit(self, event_type: DomainEventType, **data) -> None:
        """Record a domain event."""
        self.events.append(DomainEvent(type=event_type, data=data))

    def _membership(self) -> SectMembership:
        """Current sect membership, or skip the delta."""
        if self.state.sect_membership is None:
            raise SkippedDelta("no_sect_membership")
        return self.state.sect_membership

    # ========== Leaves ==========

    def _apply_numeric(self, leaf: NumericLeaf, delta: Delta) -> None:
        """Add, subtract, multiply or set a numeric leaf, then floor and clamp."""
        if not _is_number(delta.value):
            raise SkippedDelta("non_numeric_value")

        if leaf.owner == "sect_membership":
            owner = self._membership()
        else:
            owner = getattr(self.state, leaf.owner) if leaf.owner else self.state

        current = getattr(owner, leaf.attr) or 0
        result = _combine(current, delta.operation, delta.value)
        if not math.isfinite(result):
            raise SkippedDelta("non_finite_result")

        value = math.floor(result)
        if leaf.low is not None:
            value = max(leaf.low, value)
        high = leaf.high
        if isinstance(high, str):
            high = getattr(owner, high)
        if leaf.attr == "realm_stage":
            high = max_stage(self.state.progress.realm)
        if high is not None:
            value = min(high, value)

        setattr(owner, leaf.attr, value)

        # A lowered maximum drags its current value down with it
        if leaf.attr in MAX_TO_CURRENT:
            current_attr = MAX_TO_CURRENT[leaf.attr]
            setattr(owner, current_attr, min(getattr(owner, current_attr), value))

        logger.debug(
            "Numeric delta applied",
            extra={"field": delta.field, "before": current, "after": value},
        )

    def _apply_text(self, delta: Delta) -> None:
        """Set a text or enum leaf."""
        if delta.operation != DeltaOperation.SET:
            raise SkippedDelta("unsupported_operation")
        value = delta.value
        if not isinstance(value, str) or not value.strip():
            raise SkippedDelta("non_text_value")

        if delta.field == "location.place":
            self.state.location.place = value
        elif delta.field == "location.region":
            self.state.location.region = value
        elif delta.field == "progress.realm":
            try:
                realm = Realm(value.strip().lower())
            except ValueError:
                raise SkippedDelta("invalid_realm") from None
            progress = self.state.progress
            progress.realm = realm
            progress.realm_stage = min(progress.realm_stage, max_stage(realm))
        elif delta.field == "time.segment":
            try:
                self.state.time.segment = TimeSegment(value.strip().lower())
            except ValueError:
                raise SkippedDelta("invalid_segment") from None

    def _set_flag(self, delta: Delta) -> None:
        """Set ``flags.<name>`` to a boolean."""
        if delta.operation != DeltaOperation.SET:
            raise SkippedDelta("unsupported_operation")
        if not isinstance(delta.value, bool):
            raise SkippedDelta("non_boolean_flag")
        self.state.flags[delta.field[len(FLAG_PREFIX):]] = delta.value

    # ========== Inventory ==========

    def _add_item(self, payload: ItemPayload, delta: Delta) -> None:
        """Stack onto an existing item with the same id, or append."""
        inventory = self.state.inventory
        existing = inventory.find(payload.id)
        if existing:
            existing.quantity += payload.quantity
            total = existing.quantity
        else:
            inventory.items.append(InventoryItem.model_validate(payload.model_dump()))
            total = payload.quantity
        self._emit(
            DomainEventType.ITEM_ADDED,
            item_id=payload.id,
            name=payload.name,
            quantity=payload.quantity,
            total=total,
        )

    def _remove_item(self, payload: RemoveItemPayload, delta: Delta) -> None:
        """Decrement a stack; it disappears at zero."""
        inventory = self.state.inventory
        existing = inventory.find(payload.id)
        if existing is None:
            raise SkippedDelta("unknown_item")
        removed = min(existing.quantity, payload.quantity)
        existing.quantity -= removed
        if existing.quantity <= 0:
            inventory.items.remove(existing)
        self._emit(
            DomainEventType.ITEM_REMOVED,
            item_id=payload.id,
            quantity=removed,
            total=existing.quantity,
        )

    # ========== Techniques & skills ==========

    def _capacity_blocked(
        self, kind: str, item_id: str, item_type: str, learned: list, cap: int
    ) -> bool:
        """Check aggregate and per-type caps; emit and warn when blocked."""
        same_type = sum(1 for entry in learned if entry.type.value == item_type)
        if len(learned) < cap and same_type < MAX_PER_TYPE:
            return False
        self._emit(
            DomainEventType.CAPACITY_EXCEEDED,
            kind=kind,
            id=item_id,
            type=item_type,
            total=len(learned),
            same_type=same_type,
        )
        return True

    def _add_technique(self, payload: TechniquePayload, delta: Delta) -> None:
        """Learn a technique if the caps allow it."""
        techniques = self.state.techniques
        if any(t.id == payload.id for t in techniques):
            raise SkippedDelta("already_known")
        if self._capacity_blocked(
            "technique", payload.id, payload.type.value, techniques, MAX_TECHNIQUES
        ):
            raise SkippedDelta("capacity_exceeded")
        techniques.append(Technique.model_validate(payload.model_dump()))
        self._emit(
            DomainEventType.TECHNIQUE_LEARNED,
            technique_id=payload.id,
            name=payload.name,
            type=payload.type.value,
        )

    def _add_skill(self, payload: SkillPayload, delta: Delta) -> None:
        """Learn a skill, or level up one already known."""
        skills = self.state.skills
        for index, skill in enumerate(skills):
            if skill.id == payload.id:
                skills[index] = upgraded = upgrade_skill(skill)
                self._emit(
                    DomainEventType.SKILL_UPGRADED,
                    skill_id=skill.id,
                    level=upgraded.level,
                )
                return

        if self._capacity_blocked("skill", payload.id, payload.type.value, skills, MAX_SKILLS):
            raise SkippedDelta("capacity_exceeded")
        skills.append(Skill.model_validate(payload.model_dump()))
        self._emit(
            DomainEventType.SKILL_LEARNED,
            skill_id=payload.id,
            name=payload.name,
            type=payload.type.value,
        )

    def _gain_skill_exp(self, payload: SkillExpPayload, delta: Delta) -> None:
        """Grant 15-30 exp to a learned skill."""
        skills = self.state.skills
        low, high = NARRATIVE_EXP_RANGE
        for index, skill in enumerate(skills):
            if skill.id != payload.skill_id:
                continue
            if payload.exp is None:
                amount = roll_exp(self.rng, NARRATIVE_EXP_RANGE)
            else:
                amount = max(low, min(high, math.floor(payload.exp)))
            skills[index] = updated = grant_exp(skill, amount)
            if updated.level != skill.level:
                self._emit(
                    DomainEventType.SKILL_LEVELED,
                    skill_id=skill.id,
                    from_level=skill.level,
                    to_level=updated.level,
                )
            return
        raise SkippedDelta("unknown_skill")

    # ========== Sect ==========

    def _join_sect(self, payload: SectJoinPayload, delta: Delta) -> None:
        """Replace the membership wholesale."""
        benefits = payload.benefits or RANK_BENEFITS[payload.rank].model_copy()
        self.state.sect_membership = SectMembership(
            sect=payload.sect,
            rank=payload.rank,
            contribution=payload.contribution,
            reputation=payload.reputation,
            mentor=payload.mentor,
            benefits=benefits,
        )
        self._emit(
            DomainEventType.SECT_JOIN,
            sect_id=payload.sect.id,
            sect=payload.sect.name,
            rank=payload.rank.value,
        )

    def _leave_sect(self, payload: SectLeavePayload, delta: Delta) -> None:
        """Clear the membership."""
        membership = self._membership()
        self.state.sect_membership = None
        self._emit(
            DomainEventType.SECT_EXPULSION,
            sect=membership.sect.name,
            reason=payload.reason,
        )

    def _promote(self, payload: SectPromotePayload, delta: Delta) -> None:
        """Set the rank and the benefits that come with it."""
        membership = self._membership()
        old_rank = membership.rank
        membership.rank = payload.rank
        membership.benefits = RANK_BENEFITS[payload.rank].model_copy()
        self._emit(
            DomainEventType.SECT_PROMOTION,
            sect=membership.sect.name,
            old_rank=old_rank.value,
            new_rank=payload.rank.value,
        )

    def _add_contribution(self, payload: AmountPayload, delta: Delta) -> None:
        """Adjust contribution, never below zero."""
        membership = self._membership()
        amount = -payload.amount if delta.operation == DeltaOperation.SUBTRACT else payload.amount
        membership.contribution = max(0, math.floor(membership.contribution + amount))

    def _complete_mission(self, payload: AmountPayload, delta: Delta) -> None:
        """Count a finished mission and bank its contribution reward."""
        membership = self._membership()
        if payload.amount < 0:
            raise SkippedDelta("negative_amount")
        reward = math.floor(payload.amount)
        membership.missions_completed += 1
        membership.contribution += reward
        self._emit(
            DomainEventType.SECT_MISSION,
            sect=membership.sect.name,
            reward=reward,
            total_missions=membership.missions_completed,
        )

    # ========== Progress & time ==========

    def _gain_cultivation_exp(self, payload: AmountPayload, delta: Delta) -> None:
        """Scale raw exp and route it along the cultivation path."""
        if payload.amount < 0:
            raise SkippedDelta("negative_amount")
        gain_cultivation_exp(self.state, payload.amount)

    def _advance_time(self, payload: AmountPayload, delta: Delta) -> None:
        """Advance the calendar; the character ages with each year."""
        if payload.amount < 0:
            raise SkippedDelta("negative_amount")
        self.state.time, years = advance_time(self.state.time, math.floor(payload.amount))
        self.state.age += years


def apply(
    state: GameState,
    deltas: list[Delta],
    rng: RandomSource | None = None,
) -> DeltaApplication:
    """Apply deltas to a snapshot.

    Args:
        state: Snapshot before the turn (not modified)
        deltas: Validated deltas, applied in order
        rng: Random source for rolled amounts

    Returns:
        DeltaApplication with the new state, events and warnings
    """
    return DeltaApplier(state, rng).apply_all(deltas)
