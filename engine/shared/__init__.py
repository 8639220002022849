"""Shared state model, persistence and configuration for the rules engine."""

from .config import Config
from .db import DynamoDBClient
from .exceptions import (
    CombatIllegalAction,
    ConfigurationError,
    ConflictError,
    CultivationError,
    InvariantViolation,
    NotFoundError,
    SchemaError,
)
from .models import (
    GameState,
    Inventory,
    InventoryItem,
    Progress,
    Realm,
    Skill,
    Stats,
    Technique,
)
from .state_store import DynamoDBStateGateway, StateGateway

__all__ = [
    # Config
    "Config",
    # Database
    "DynamoDBClient",
    "DynamoDBStateGateway",
    "StateGateway",
    # Exceptions
    "CombatIllegalAction",
    "ConfigurationError",
    "ConflictError",
    "CultivationError",
    "InvariantViolation",
    "NotFoundError",
    "SchemaError",
    # Models
    "GameState",
    "Inventory",
    "InventoryItem",
    "Progress",
    "Realm",
    "Skill",
    "Stats",
    "Technique",
]
