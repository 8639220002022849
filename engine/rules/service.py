"""Turn service: runs one narrative turn through the rules engine."""

import random

from aws_lambda_powertools import Logger, Metrics
from aws_lambda_powertools.metrics import MetricUnit
from pydantic import BaseModel, ConfigDict, Field

from rules.breakthrough import breakthrough_deltas, detect
from rules.combat import CombatSession
from rules.cultivation import advance_body, advance_cultivation
from rules.deltas import DeltaApplication, apply
from rules.models import (
    BreakthroughEvent,
    Choice,
    ChoiceCost,
    Delta,
    DeltaApplicationWarning,
    DeltaOperation,
    DomainEvent,
    DomainEventType,
    GameEvent,
    TurnResult,
)
from rules.schema import COMBAT_ENCOUNTER, validate_turn_result
from shared.config import DEFAULT_ENEMY_TURN_DELAY, Config, get_config
from shared.db import DynamoDBClient
from shared.dice import RandomSource, create_turn_rng
from shared.models import GameState, SpiritRoot, create_initial_state, roll_spirit_root
from shared.state_store import DynamoDBStateGateway, StateGateway
from shared.utils import generate_id

logger = Logger(child=True)
metrics = Metrics(namespace="CultivationEngine")


class TurnOutcome(BaseModel):
    """Everything a caller needs after one turn."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    turn_no: int
    """Turn number that was just processed."""

    narrative: str
    """Narrative text, passed through."""

    choices: list[Choice]
    """Choices for the next turn."""

    state: GameState
    """State after the turn."""

    events: list[GameEvent] = Field(default_factory=list)
    """Narrative events, passed through to presentation."""

    domain_events: list[DomainEvent] = Field(default_factory=list)
    """Events emitted by the engine."""

    warnings: list[DeltaApplicationWarning] = Field(default_factory=list)
    """Dropped or skipped deltas."""

    breakthrough: BreakthroughEvent | None = None
    """Breakthrough reached this turn, if any."""

    combat: CombatSession | None = None
    """Session opened by a combat_encounter event."""


def choice_cost_deltas(cost: ChoiceCost | None) -> list[Delta]:
    """Express the cost of a picked choice as deltas.

    Args:
        cost: Cost of the choice the player picked

    Returns:
        Deltas to apply before the narrative's own deltas
    """
    if cost is None:
        return []
    deltas = []
    for field, amount in (
        ("stats.stamina", cost.stamina),
        ("stats.qi", cost.qi),
        ("inventory.silver", cost.silver),
        ("inventory.spirit_stones", cost.spirit_stones),
    ):
        if amount:
            deltas.append(
                Delta(field=field, operation=DeltaOperation.SUBTRACT, value=amount, reason="choice")
            )
    if cost.time_segments:
        deltas.append(
            Delta(
                field="time.advance",
                operation=DeltaOperation.ADD,
                value=cost.time_segments,
                reason="choice",
            )
        )
    return deltas


def _bonus_deltas(bonuses: dict[str, int], reason: str) -> list[Delta]:
    """Turn a path -> amount mapping into add deltas."""
    return [
        Delta(field=path, operation=DeltaOperation.ADD, value=amount, reason=reason)
        for path, amount in bonuses.items()
        if amount
    ]


class TurnService:
    """Validates, applies and persists narrative turns."""

    def __init__(
        self,
        gateway: StateGateway,
        world_seed: str | None = None,
        enemy_turn_delay: float = DEFAULT_ENEMY_TURN_DELAY,
    ) -> None:
        """Initialize turn service.

        Args:
            gateway: Where states are loaded from and saved to
            world_seed: Seed for per-turn RNG streams; the run id is used
                when not set
            enemy_turn_delay: Pacing delay handed to combat sessions
        """
        self.gateway = gateway
        self.world_seed = world_seed
        self.enemy_turn_delay = enemy_turn_delay

    @classmethod
    def from_config(cls, config: Config | None = None) -> "TurnService":
        """Build a service backed by DynamoDB from configuration.

        Args:
            config: Configuration to use; the cached environment config when omitted
        """
        config = config or get_config()
        gateway = DynamoDBStateGateway(DynamoDBClient(config.table_name))
        return cls(
            gateway,
            world_seed=config.world_seed,
            enemy_turn_delay=config.enemy_turn_delay,
        )

    def _rng(self, run_id: str, turn_no: int) -> random.Random:
        """Deterministic RNG stream for one turn of a run."""
        return create_turn_rng(self.world_seed or run_id, turn_no)

    def start_run(
        self, age: int = 16, spirit_root: SpiritRoot | None = None
    ) -> tuple[str, GameState]:
        """Create and persist a fresh run.

        Args:
            age: Starting age
            spirit_root: Spirit root; rolled when not given

        Returns:
            Tuple of (run_id, initial state)
        """
        run_id = generate_id()
        root = spirit_root or roll_spirit_root(self._rng(run_id, 0))
        state = create_initial_state(age, root)
        self.gateway.save_state(run_id, state)
        logger.info(
            "Run started",
            extra={"run_id": run_id, "spirit_root": root.grade.value},
        )
        return run_id, state

    def process_turn(
        self,
        run_id: str,
        raw_result: dict | TurnResult,
        choice: Choice | None = None,
    ) -> TurnOutcome:
        """Load, resolve and save one turn.

        Args:
            run_id: Run ID
            raw_result: Turn result from the narrative generator
            choice: Choice the player picked, whose cost is charged first

        Returns:
            TurnOutcome

        Raises:
            NotFoundError: If the run does not exist
            SchemaError: If the turn result is invalid (nothing is saved)
            ConflictError: If another turn for this run committed first
        """
        state = self.gateway.load_state(run_id)
        rng = self._rng(run_id, state.turn_count + 1)
        outcome = self.resolve_turn(state, raw_result, choice=choice, rng=rng)
        self.gateway.save_state(run_id, outcome.state, expected_turn=state.turn_count)

        metrics.add_metric(name="TurnsProcessed", unit=MetricUnit.Count, value=1)
        if outcome.warnings:
            metrics.add_metric(
                name="DeltasSkipped", unit=MetricUnit.Count, value=len(outcome.warnings)
            )
        if outcome.breakthrough:
            metrics.add_metric(name="Breakthroughs", unit=MetricUnit.Count, value=1)
        metrics.flush_metrics()
        return outcome

    def resolve_turn(
        self,
        state: GameState,
        raw_result: dict | TurnResult,
        choice: Choice | None = None,
        rng: RandomSource | None = None,
    ) -> TurnOutcome:
        """Resolve one turn against a snapshot without touching storage.

        Order: validate, charge the choice cost, apply the narrative deltas,
        advance cultivation, apply body and breakthrough bonuses, count the
        turn, open combat if the narrative started one.

        Args:
            state: Snapshot before the turn (not modified)
            raw_result: Turn result from the narrative generator
            choice: Choice the player picked
            rng: Random source for the whole turn

        Returns:
            TurnOutcome

        Raises:
            SchemaError: If the turn result is invalid
        """
        rng = rng or random.Random()
        result, warnings = validate_turn_result(raw_result)

        cost = choice.cost if choice else None
        applied = apply(state, choice_cost_deltas(cost) + result.proposed_deltas, rng=rng)
        domain_events = list(applied.events)
        warnings.extend(applied.warnings)

        working = applied.state
        progress = advance_cultivation(working.progress)
        body_bonuses: dict[str, int] = {}
        if progress.body_realm is not None:
            progress, body_bonuses = advance_body(progress)
        working.progress = progress

        breakthrough = detect(state.progress, working.progress)

        if body_bonuses:
            applied = apply(working, _bonus_deltas(body_bonuses, "body"), rng=rng)
            working = applied.state
            warnings.extend(applied.warnings)
        if breakthrough:
            applied = apply(working, breakthrough_deltas(breakthrough, working), rng=rng)
            working = applied.state
            warnings.extend(applied.warnings)
            domain_events.append(
                DomainEvent(
                    type=DomainEventType.BREAKTHROUGH,
                    data={
                        "realm": breakthrough.new_realm.value,
                        "stage": breakthrough.new_stage,
                        "stat_increases": breakthrough.stat_increases,
                    },
                )
            )

        working.turn_count = state.turn_count + 1
        working.check_invariants()

        combat = None
        for event in result.events:
            if event.type == COMBAT_ENCOUNTER:
                combat = CombatSession.from_event(
                    working, event, rng=rng, enemy_turn_delay=self.enemy_turn_delay
                )
                break

        logger.info(
            "Turn resolved",
            extra={
                "turn_no": working.turn_count,
                "deltas": len(result.proposed_deltas),
                "warnings": len(warnings),
                "breakthrough": breakthrough is not None,
                "combat": combat is not None,
            },
        )

        return TurnOutcome(
            turn_no=working.turn_count,
            narrative=result.narrative,
            choices=result.choices,
            state=working,
            events=result.events,
            domain_events=domain_events,
            warnings=warnings,
            breakthrough=breakthrough,
            combat=combat,
        )

    def finish_combat(self, run_id: str, session: CombatSession) -> DeltaApplication:
        """Fold a finished combat session back into the stored state.

        Args:
            run_id: Run ID
            session: Session in a terminal phase

        Returns:
            DeltaApplication with the saved state

        Raises:
            CombatIllegalAction: If the session has not ended
            ConflictError: If a turn for this run committed during the fight
        """
        outcome = session.finish()
        self.gateway.save_state(
            run_id, outcome.state, expected_turn=outcome.state.turn_count
        )
        metrics.add_metric(
            name=f"Combat{session.phase.value.title()}", unit=MetricUnit.Count, value=1
        )
        metrics.flush_metrics()
        return outcome
