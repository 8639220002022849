"""Pydantic models for turn results, deltas and combat sessions."""

from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shared.models import Realm

MIN_NARRATIVE_LENGTH = 50
MIN_CHOICES = 2
MAX_CHOICES = 5


class DeltaOperation(str, Enum):
    """Legal mutation operations."""

    ADD = "add"
    SUBTRACT = "subtract"
    SET = "set"
    MULTIPLY = "multiply"


class Delta(BaseModel):
    """A single declarative state mutation from the narrative generator."""

    field: str = Field(..., min_length=1)
    """Dotted path (``stats.hp``) or composite name (``inventory.add_item``)."""

    operation: DeltaOperation
    """How to apply ``value``. Unknown operations fail validation."""

    value: Any = None
    """Number, string, boolean or object depending on the field."""

    reason: str | None = None
    """Free-text justification, kept for diagnostics only."""


class ChoiceCost(BaseModel):
    """Resources a choice consumes when the player picks it."""

    stamina: int = Field(default=0, ge=0)
    qi: int = Field(default=0, ge=0)
    silver: int = Field(default=0, ge=0)
    spirit_stones: int = Field(default=0, ge=0)
    time_segments: int = Field(default=0, ge=0)


class ChoiceRequirements(BaseModel):
    """Gating shown to the player. Not enforced by the engine."""

    min_realm_stage: int | None = None
    min_stats: dict[str, int] | None = None
    required_items: list[str] | None = None


class Choice(BaseModel):
    """Option offered to the player for the next turn."""

    id: str
    text: str
    cost: ChoiceCost | None = None
    requirements: ChoiceRequirements | None = None


class GameEvent(BaseModel):
    """Event proposed by the narrative generator."""

    type: str
    data: dict[str, Any] = Field(default_factory=dict)


class TurnResult(BaseModel):
    """Validated output of the narrative generator for one turn."""

    narrative: str = Field(..., min_length=MIN_NARRATIVE_LENGTH)
    choices: list[Choice] = Field(..., min_length=MIN_CHOICES, max_length=MAX_CHOICES)
    proposed_deltas: list[Delta] = Field(default_factory=list)
    events: list[GameEvent] = Field(default_factory=list)


class DomainEventType(str, Enum):
    """Events emitted by the rules engine."""

    ITEM_ADDED = "item_added"
    ITEM_REMOVED = "item_removed"
    TECHNIQUE_LEARNED = "technique_learned"
    SKILL_LEARNED = "skill_learned"
    SKILL_UPGRADED = "skill_upgraded"
    SKILL_LEVELED = "skill_leveled"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    SECT_JOIN = "sect_join"
    SECT_EXPULSION = "sect_expulsion"
    SECT_PROMOTION = "sect_promotion"
    SECT_MISSION = "sect_mission"
    BREAKTHROUGH = "breakthrough"
    LOOT = "loot"


class DomainEvent(BaseModel):
    """Something noteworthy the engine did while applying a turn."""

    type: DomainEventType
    data: dict[str, Any] = Field(default_factory=dict)


class DeltaApplicationWarning(BaseModel):
    """A delta that was skipped or partially applied. Never raised."""

    field: str
    """Field path of the offending delta."""

    reason: str
    """Why it was skipped."""

    delta: dict[str, Any] | None = None
    """The offending delta as received."""


class BreakthroughEvent(BaseModel):
    """A realm or stage advancement and its fixed stat reward."""

    previous_realm: Realm
    previous_stage: int
    new_realm: Realm
    new_stage: int
    stat_increases: dict[str, int]
    """Keys are delta field paths, e.g. ``stats.hp_max``."""

    @property
    def realm_changed(self) -> bool:
        """Whether this was a realm breakthrough rather than a stage one."""
        return self.previous_realm != self.new_realm


# ========== Combat ==========


class CombatPhase(str, Enum):
    """Combat state machine phases."""

    AWAITING_PLAYER_ACTION = "awaiting_player_action"
    RESOLVING_PLAYER_ACTION = "resolving_player_action"
    AWAITING_ENEMY_ACTION = "awaiting_enemy_action"
    RESOLVING_ENEMY_ACTION = "resolving_enemy_action"
    VICTORY = "victory"
    DEFEAT = "defeat"
    FLED = "fled"

    @property
    def is_terminal(self) -> bool:
        """Whether the session has ended."""
        return self in (CombatPhase.VICTORY, CombatPhase.DEFEAT, CombatPhase.FLED)


class CombatActionType(str, Enum):
    """Player combat action types."""

    ATTACK = "attack"
    QI_ATTACK = "qi_attack"
    DEFEND = "defend"
    FLEE = "flee"
    SKILL = "skill"


class CombatAction(BaseModel):
    """Player's chosen combat action."""

    action_type: CombatActionType
    skill_id: str | None = None  # For skill actions


class EnemyBehavior(str, Enum):
    """Enemy temperament, carried for presentation."""

    AGGRESSIVE = "aggressive"
    DEFENSIVE = "defensive"
    BALANCED = "balanced"


class CombatEnemy(BaseModel):
    """Enemy stat block from a ``combat_encounter`` event."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    """Unique ID (generated if not provided)."""

    name: str = "Enemy"
    """Enemy name."""

    hp: int = Field(..., ge=0)
    """Current hit points."""

    hp_max: int = Field(..., ge=1)
    """Maximum hit points."""

    atk: int = Field(..., ge=0)
    """Attack power."""

    def_: int = Field(default=0, ge=0, alias="def")
    """Defense. Half of it is subtracted from player damage."""

    behavior: EnemyBehavior = EnemyBehavior.BALANCED
    """Temperament."""

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def default_hp_max(cls, data: Any) -> Any:
        """An enemy without hp_max starts at full health."""
        if isinstance(data, dict) and data.get("hp_max") is None and "hp" in data:
            data = {**data, "hp_max": max(1, data["hp"])}
        return data

    @field_validator("behavior", mode="before")
    @classmethod
    def normalize_behavior(cls, v: Any) -> Any:
        """Lowercase behavior; unknown values fall back to balanced."""
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in {b.value for b in EnemyBehavior}:
                return EnemyBehavior.BALANCED
        return v


class CombatLogEntry(BaseModel):
    """Single entry in the combat log."""

    turn: int
    actor: str  # "player" or enemy id
    action: str  # "attack", "qi_attack", "skill", "defend", "flee", ...
    damage: int = 0
    healed: int = 0
    is_critical: bool = False
    is_miss: bool = False
    skill_id: str | None = None
    player_hp: int
    enemy_hp: int
    message: str = ""


class CombatTurnResult(BaseModel):
    """What happened when the player tried to act."""

    accepted: bool
    """False when the action was declined and nothing changed."""

    reason: str | None = None
    """Decline reason, e.g. ``insufficient_qi`` or ``on_cooldown``."""

    phase: CombatPhase
    """Phase after the action (and enemy response) resolved."""

    entries: list[CombatLogEntry] = Field(default_factory=list)
    """Log entries produced by this action, in order."""


class CombatRewards(BaseModel):
    """What the session folds back into the game state when it ends."""

    silver: int = 0
    """Silver gained (negative for the defeat penalty)."""

    cultivation_exp: int = 0
    spirit_stones: int = 0
    items: list[dict[str, Any]] = Field(default_factory=list)
    """Item payloads granted on victory."""

    hp_restored_to: int | None = None
    """HP after the defeat restoration."""
