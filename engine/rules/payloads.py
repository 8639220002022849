"""Typed payloads for composite delta operations.

Each composite field has a closed payload model. ``parse_payload`` turns the
loosely typed ``Delta.value`` into one of them, accepting the shorthand forms
the narrative generator tends to emit (a bare id string, a bare rank).
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from shared.models import (
    InventoryItem,
    Sect,
    SectBenefits,
    SectRank,
    Skill,
    Technique,
    TechniqueGrade,
)

# Item types that belong in techniques/skills, never in the inventory
NON_INVENTORY_TYPES = {"main", "support", "attack", "defense", "movement"}


class ItemPayload(InventoryItem):
    """``inventory.add_item``: an item stack, quantity defaults to 1."""

    @model_validator(mode="before")
    @classmethod
    def reject_abilities(cls, data: Any) -> Any:
        """Techniques and skills do not go into the inventory."""
        if isinstance(data, dict):
            item_type = str(data.get("type", "")).strip().lower()
            if item_type in NON_INVENTORY_TYPES:
                raise ValueError(f"{item_type} belongs in techniques or skills")
            if not data.get("name") and data.get("id"):
                data = {**data, "name": data["id"]}
        return data


class RemoveItemPayload(BaseModel):
    """``inventory.remove_item``: which stack and how many."""

    id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1)


class TechniquePayload(Technique):
    """``techniques.add``: a technique; grade is mandatory here."""

    grade: TechniqueGrade


class SkillPayload(Skill):
    """``skills.add``: a skill; always learned off cooldown."""

    @field_validator("current_cooldown", mode="before")
    @classmethod
    def start_ready(cls, v: Any) -> int:
        """New skills start with no cooldown."""
        return 0


class SkillExpPayload(BaseModel):
    """``skills.gain_exp``: target skill and optional amount."""

    skill_id: str = Field(..., min_length=1)
    exp: float | None = Field(default=None, allow_inf_nan=False)


class SectJoinPayload(BaseModel):
    """``sect.join``: the full membership that replaces the current one."""

    sect: Sect
    rank: SectRank = SectRank.OUTER_DISCIPLE
    contribution: int = Field(default=0, ge=0)
    reputation: int = Field(default=50, ge=0, le=100)
    mentor: str | None = None
    benefits: SectBenefits | None = None

    @field_validator("rank", mode="before")
    @classmethod
    def normalize_rank(cls, v: Any) -> Any:
        """Accept rank values regardless of case."""
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("reputation", mode="before")
    @classmethod
    def clamp_reputation(cls, v: Any) -> Any:
        """Reputation outside 0..100 is clamped rather than rejected."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return max(0, min(100, int(v)))
        return v


class SectLeavePayload(BaseModel):
    """``sect.leave``: why the player left."""

    reason: str = "voluntary"


class SectPromotePayload(BaseModel):
    """``sect.promote``: the new rank."""

    rank: SectRank

    @field_validator("rank", mode="before")
    @classmethod
    def normalize_rank(cls, v: Any) -> Any:
        """Accept rank values regardless of case."""
        return v.strip().lower() if isinstance(v, str) else v


class AmountPayload(BaseModel):
    """An amount for counter-style composites."""

    amount: float = Field(..., allow_inf_nan=False)


# Shorthand value -> payload dict, for fields that accept a bare scalar
_SHORTHAND: dict[str, str] = {
    "inventory.remove_item": "id",
    "skills.gain_exp": "skill_id",
    "sect.promote": "rank",
    "sect.leave": "reason",
    "sect.contribution": "amount",
    "sect.mission": "amount",
    "progress.gain_exp": "amount",
    "time.advance": "amount",
}

PAYLOAD_MODELS: dict[str, type[BaseModel]] = {
    "inventory.add_item": ItemPayload,
    "inventory.remove_item": RemoveItemPayload,
    "techniques.add": TechniquePayload,
    "skills.add": SkillPayload,
    "skills.gain_exp": SkillExpPayload,
    "sect.join": SectJoinPayload,
    "sect.leave": SectLeavePayload,
    "sect.promote": SectPromotePayload,
    "sect.contribution": AmountPayload,
    "sect.mission": AmountPayload,
    "progress.gain_exp": AmountPayload,
    "time.advance": AmountPayload,
}


def parse_payload(field: str, value: Any) -> BaseModel:
    """Parse a composite delta value into its payload model.

    Booleans never count as amounts.

    Args:
        field: Composite field path
        value: Raw delta value

    Returns:
        Payload model instance

    Raises:
        pydantic.ValidationError: If the value does not fit the payload
        KeyError: If the field is not a composite field
    """
    model = PAYLOAD_MODELS[field]
    if field in _SHORTHAND and not isinstance(value, dict):
        if isinstance(value, bool):
            value = {_SHORTHAND[field]: None}
        elif field == "sect.leave" and value is None:
            value = {}
        else:
            value = {_SHORTHAND[field]: value}
    return model.model_validate(value)
