"""Delta field registry and turn-result validation.

Structural problems with a turn result are fatal (SchemaError); deltas that
target unknown fields are dropped with a warning so a newer narrative
generator cannot crash a turn.
"""

from dataclasses import dataclass
from typing import Any

from aws_lambda_powertools import Logger
from pydantic import ValidationError

from rules.models import CombatEnemy, DeltaApplicationWarning, DeltaOperation, TurnResult
from shared.exceptions import SchemaError

logger = Logger(child=True)

COMBAT_ENCOUNTER = "combat_encounter"
FLAG_PREFIX = "flags."


@dataclass(frozen=True)
class NumericLeaf:
    """Where a numeric field lives and how it is bounded.

    ``high`` is either a fixed bound or the name of a sibling attribute
    holding the bound (``hp`` is bounded by ``hp_max``).
    """

    owner: str
    attr: str
    low: int | None = 0
    high: int | str | None = None


NUMERIC_FIELDS: dict[str, NumericLeaf] = {
    "stats.hp": NumericLeaf("stats", "hp", high="hp_max"),
    "stats.hp_max": NumericLeaf("stats", "hp_max"),
    "stats.qi": NumericLeaf("stats", "qi", high="qi_max"),
    "stats.qi_max": NumericLeaf("stats", "qi_max"),
    "stats.stamina": NumericLeaf("stats", "stamina", high="stamina_max"),
    "stats.stamina_max": NumericLeaf("stats", "stamina_max"),
    "attrs.str": NumericLeaf("attrs", "strength"),
    "attrs.agi": NumericLeaf("attrs", "agility"),
    "attrs.int": NumericLeaf("attrs", "intelligence"),
    "attrs.perception": NumericLeaf("attrs", "perception"),
    "attrs.luck": NumericLeaf("attrs", "luck"),
    "progress.cultivation_exp": NumericLeaf("progress", "cultivation_exp"),
    "progress.realm_stage": NumericLeaf("progress", "realm_stage", low=1),
    "progress.body_exp": NumericLeaf("progress", "body_exp"),
    "progress.body_stage": NumericLeaf("progress", "body_stage", high=5),
    "progress.exp_split": NumericLeaf("progress", "exp_split", high=100),
    "inventory.silver": NumericLeaf("inventory", "silver"),
    "inventory.spirit_stones": NumericLeaf("inventory", "spirit_stones"),
    "sect.reputation": NumericLeaf("sect_membership", "reputation", high=100),
    "karma": NumericLeaf("", "karma", low=None),
    "age": NumericLeaf("", "age"),
}

# Which current value to re-clamp when a maximum changes
MAX_TO_CURRENT: dict[str, str] = {
    "hp_max": "hp",
    "qi_max": "qi",
    "stamina_max": "stamina",
}

TEXT_FIELDS: frozenset[str] = frozenset(
    {"location.place", "location.region", "progress.realm", "time.segment"}
)

COMPOSITE_FIELDS: frozenset[str] = frozenset(
    {
        "inventory.add_item",
        "inventory.remove_item",
        "techniques.add",
        "skills.add",
        "skills.gain_exp",
        "sect.join",
        "sect.leave",
        "sect.promote",
        "sect.contribution",
        "sect.mission",
        "progress.gain_exp",
        "time.advance",
    }
)


def is_flag_field(path: str) -> bool:
    """Whether a path addresses a boolean flag (``flags.<name>``)."""
    return path.startswith(FLAG_PREFIX) and len(path) > len(FLAG_PREFIX)


def is_known_field(path: str) -> bool:
    """Whether the engine knows how to apply a delta to this path."""
    return (
        path in NUMERIC_FIELDS
        or path in TEXT_FIELDS
        or path in COMPOSITE_FIELDS
        or is_flag_field(path)
    )


def _check_delta_shapes(raw: dict[str, Any]) -> None:
    """Reject deltas that are not objects or carry an unknown operation.

    Raises:
        SchemaError: On the first malformed delta
    """
    deltas = raw.get("proposed_deltas", [])
    if not isinstance(deltas, list):
        raise SchemaError("proposed_deltas must be a list")

    allowed = {op.value for op in DeltaOperation}
    for index, delta in enumerate(deltas):
        if not isinstance(delta, dict):
            raise SchemaError(f"Delta {index} is not an object")
        if delta.get("operation") not in allowed:
            raise SchemaError(
                f"Delta {index} has unrecognized operation {delta.get('operation')!r}",
                errors=[{"loc": ["proposed_deltas", index, "operation"], "input": delta}],
            )


def validate_turn_result(
    raw: dict[str, Any] | TurnResult,
) -> tuple[TurnResult, list[DeltaApplicationWarning]]:
    """Validate a turn result from the narrative generator.

    Args:
        raw: Decoded JSON object (or an already-built TurnResult)

    Returns:
        Tuple of (TurnResult without unknown-field deltas, warnings)

    Raises:
        SchemaError: If the narrative is too short, the choice count is out of
            range, or any delta is malformed
    """
    if isinstance(raw, TurnResult):
        raw = raw.model_dump(mode="json")
    if not isinstance(raw, dict):
        raise SchemaError("Turn result must be an object")

    _check_delta_shapes(raw)

    try:
        result = TurnResult.model_validate(raw)
    except ValidationError as e:
        logger.warning("Turn result rejected", extra={"error_count": e.error_count()})
        raise SchemaError(
            f"Invalid turn result: {e.error_count()} error(s)",
            errors=e.errors(include_url=False, include_context=False),
        ) from e

    warnings: list[DeltaApplicationWarning] = []

    kept = []
    for delta in result.proposed_deltas:
        if is_known_field(delta.field):
            kept.append(delta)
            continue
        warnings.append(
            DeltaApplicationWarning(
                field=delta.field,
                reason="unknown_field",
                delta=delta.model_dump(mode="json"),
            )
        )
        logger.warning("Dropping delta for unknown field", extra={"field": delta.field})
    result.proposed_deltas = kept

    events = []
    for event in result.events:
        if event.type == COMBAT_ENCOUNTER:
            try:
                CombatEnemy.model_validate(event.data.get("enemy"))
            except ValidationError:
                warnings.append(
                    DeltaApplicationWarning(
                        field=f"events.{COMBAT_ENCOUNTER}",
                        reason="invalid_enemy",
                        delta=event.model_dump(mode="json"),
                    )
                )
                logger.warning("Dropping combat encounter with invalid enemy")
                continue
        events.append(event)
    result.events = events

    return result, warnings
