"""Custom exceptions for the cultivation rules engine."""

from typing import Any


class CultivationError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str = "An error occurred") -> None:
        """Initialize exception with message.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(self.message)


class SchemaError(CultivationError):
    """A turn result from the narrative generator is structurally invalid.

    Fatal to the turn: the caller discards it and the game state is left
    untouched.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        """Initialize schema error.

        Args:
            message: Summary of the violation
            errors: Optional per-field error details (pydantic error dicts)
        """
        self.errors = errors or []
        super().__init__(message)


class CombatIllegalAction(CultivationError):
    """Player action cannot be performed in the current combat state.

    Raised inside the combat state machine and converted into a declined
    turn result at the session boundary.
    """

    def __init__(self, message: str, reason: str, phase: str | None = None) -> None:
        """Initialize illegal action error.

        Args:
            message: Human-readable description
            reason: Machine-readable decline reason
            phase: Combat phase when the action was attempted
        """
        self.reason = reason
        self.phase = phase
        super().__init__(message)


class InvariantViolation(CultivationError):
    """Game state broke a hard invariant. Always an engine bug."""

    def __init__(self, message: str, invariant: str | None = None) -> None:
        """Initialize invariant violation.

        Args:
            message: Description of the broken invariant
            invariant: Short name of the invariant
        """
        self.invariant = invariant
        super().__init__(message)


class NotFoundError(CultivationError):
    """Resource not found."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        """Initialize not found error.

        Args:
            resource_type: Type of resource (e.g., "Run")
            resource_id: ID of the missing resource
        """
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} '{resource_id}' not found")


class ConflictError(CultivationError):
    """A concurrent write won the race for the same resource."""

    def __init__(self, message: str, resource_id: str | None = None) -> None:
        """Initialize conflict error.

        Args:
            message: Error message
            resource_id: ID of the contested resource
        """
        self.resource_id = resource_id
        super().__init__(message)


class ConfigurationError(CultivationError):
    """Configuration or environment error."""

    def __init__(self, message: str, config_key: str | None = None) -> None:
        """Initialize configuration error.

        Args:
            message: Error message
            config_key: Optional configuration key that caused the error
        """
        self.config_key = config_key
        super().__init__(message)
