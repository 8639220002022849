"""Rules engine: turn validation, state deltas, cultivation and combat."""

from .combat import CombatSession
from .deltas import DeltaApplication, apply
from .models import (
    BreakthroughEvent,
    Choice,
    CombatAction,
    CombatActionType,
    CombatEnemy,
    CombatPhase,
    Delta,
    DeltaOperation,
    DomainEvent,
    DomainEventType,
    TurnResult,
)
from .schema import validate_turn_result
from .service import TurnOutcome, TurnService

__all__ = [
    "BreakthroughEvent",
    "Choice",
    "CombatAction",
    "CombatActionType",
    "CombatEnemy",
    "CombatPhase",
    "CombatSession",
    "Delta",
    "DeltaApplication",
    "DeltaOperation",
    "DomainEvent",
    "DomainEventType",
    "TurnOutcome",
    "TurnResult",
    "TurnService",
    "apply",
    "validate_turn_result",
]
