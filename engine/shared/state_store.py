"""Persistence gateway for game-state documents.

One item per run: ``PK=RUN#{run_id}``, ``SK=STATE``. The stored
``turn_count`` doubles as the optimistic-concurrency version, so two turns
for the same run can never both commit.
"""

from typing import Protocol

from aws_lambda_powertools import Logger

from .db import DynamoDBClient
from .models import GameState

logger = Logger(child=True)

STATE_SK = "STATE"


def run_pk(run_id: str) -> str:
    """Partition key for a run."""
    return f"RUN#{run_id}"


class StateGateway(Protocol):
    """Where game-state snapshots are loaded from and saved to."""

    def load_state(self, run_id: str) -> GameState:
        """Load the latest snapshot for a run."""
        ...

    def save_state(
        self, run_id: str, state: GameState, expected_turn: int | None = None
    ) -> None:
        """Save a snapshot, optionally requiring the stored turn to match."""
        ...


class DynamoDBStateGateway:
    """StateGateway backed by the single DynamoDB table."""

    def __init__(self, db: DynamoDBClient) -> None:
        """Initialize gateway.

        Args:
            db: DynamoDB client wrapper
        """
        self.db = db

    def load_state(self, run_id: str) -> GameState:
        """Load the state document for a run.

        Args:
            run_id: Run ID

        Returns:
            Parsed GameState

        Raises:
            NotFoundError: If the run has no saved state
        """
        item = self.db.get_item_or_raise(run_pk(run_id), STATE_SK, "Run", run_id)
        return GameState.model_validate(item["state"])

    def save_state(
        self, run_id: str, state: GameState, expected_turn: int | None = None
    ) -> None:
        """Persist a state document.

        Args:
            run_id: Run ID
            state: Snapshot to store
            expected_turn: turn_count the stored document must still have.
                None writes unconditionally (new runs).

        Raises:
            ConflictError: If another turn committed first
        """
        data = {"state": state.to_document(), "turn_count": state.turn_count}

        if expected_turn is None:
            self.db.put_item(run_pk(run_id), STATE_SK, data)
        else:
            self.db.put_item(
                run_pk(run_id),
                STATE_SK,
                data,
                condition="turn_count = :expected",
                condition_values={":expected": expected_turn},
            )

        logger.info(
            "State saved",
            extra={"run_id": run_id, "turn_count": state.turn_count},
        )
