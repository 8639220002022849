"""Shared pytest fixtures."""

import boto3
import pytest
from moto import mock_aws

from shared.config import get_config
from shared.models import GameState


class ScriptedRandom:
    """Random source that replays a fixed list of draws."""

    def __init__(self, *draws: float) -> None:
        self.draws = list(draws)

    def random(self) -> float:
        if not self.draws:
            raise AssertionError("ScriptedRandom ran out of draws")
        return self.draws.pop(0)


@pytest.fixture
def scripted():
    """Factory for scripted random sources: ``scripted(0.5, 0.9, ...)``."""
    return ScriptedRandom


@pytest.fixture
def env_setup(monkeypatch):
    """Environment for Config.from_env."""
    monkeypatch.setenv("TABLE_NAME", "test-table")
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("POWERTOOLS_LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("ENEMY_TURN_DELAY_SECONDS", raising=False)
    monkeypatch.delenv("WORLD_SEED", raising=False)
    if hasattr(get_config, "_config"):
        del get_config._config
    yield
    if hasattr(get_config, "_config"):
        del get_config._config


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches AWS."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Single-table DynamoDB layout (PK/SK) under moto."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        table = dynamodb.create_table(
            TableName="test-table",
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        yield table


@pytest.fixture
def state():
    """A fresh mortal with default stats."""
    return GameState()


@pytest.fixture
def fighter():
    """The reference fighter: STR 10, 20 qi."""
    return GameState.model_validate(
        {
            "stats": {"hp": 100, "hp_max": 100, "qi": 20, "qi_max": 50},
            "attrs": {"str": 10, "agi": 5, "int": 6},
        }
    )
