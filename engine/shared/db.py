"""DynamoDB client wrapper for single-table design."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import ClientError

from .exceptions import ConflictError, NotFoundError

logger = Logger(child=True)


def convert_floats_to_decimal(obj: Any) -> Any:
    """Recursively convert floats to Decimal for DynamoDB compatibility.

    DynamoDB does not support Python float types (skill multipliers,
    heal percentages), so every float in nested dicts/lists becomes a Decimal.

    Args:
        obj: Any Python object (dict, list, or primitive)

    Returns:
        The object with all floats converted to Decimal
    """
    if isinstance(obj, float):
        return Decimal(str(obj))
    elif isinstance(obj, dict):
        return {k: convert_floats_to_decimal(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [convert_floats_to_decimal(item) for item in obj]
    return obj


def convert_decimals(obj: Any) -> Any:
    """Recursively turn DynamoDB Decimals back into int or float.

    Args:
        obj: Item or attribute read from DynamoDB

    Returns:
        The object with Decimals replaced by native numbers
    """
    if isinstance(obj, Decimal):
        return int(obj) if obj == obj.to_integral_value() else float(obj)
    elif isinstance(obj, dict):
        return {k: convert_decimals(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [convert_decimals(item) for item in obj]
    return obj


class DynamoDBClient:
    """DynamoDB client wrapper with consistent error handling and logging.

    Implements single-table design patterns with PK/SK composite keys.
    """

    def __init__(self, table_name: str) -> None:
        """Initialize with table name.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource("dynamodb")
        self.table = self.dynamodb.Table(table_name)

    def put_item(
        self,
        pk: str,
        sk: str,
        data: dict[str, Any],
        condition: str | None = None,
        condition_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Put an item into the table, optionally guarded by a condition.

        Args:
            pk: Partition key value
            sk: Sort key value
            data: Additional attributes to store
            condition: Optional ConditionExpression
            condition_values: ExpressionAttributeValues for the condition

        Returns:
            The complete item that was stored

        Raises:
            ConflictError: If the condition did not hold
        """
        now = datetime.now(UTC).isoformat()
        item = {
            "PK": pk,
            "SK": sk,
            **convert_floats_to_decimal(data),
            "updated_at": now,
        }

        if "created_at" not in item:
            item["created_at"] = now

        params: dict[str, Any] = {"Item": item}
        if condition:
            params["ConditionExpression"] = condition
            if condition_values:
                params["ExpressionAttributeValues"] = condition_values

        try:
            self.table.put_item(**params)
            logger.info("Item stored", extra={"pk": pk, "sk": sk})
            return item
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                logger.warning("Conditional put rejected", extra={"pk": pk, "sk": sk})
                raise ConflictError(f"Concurrent write to {pk}", resource_id=pk) from e
            logger.error("Failed to put item", extra={"error": str(e), "pk": pk, "sk": sk})
            raise

    def get_item(self, pk: str, sk: str) -> dict[str, Any] | None:
        """Get a single item by PK and SK.

        Args:
            pk: Partition key value
            sk: Sort key value

        Returns:
            Item dict with native numbers, or None if not found
        """
        try:
            response = self.table.get_item(Key={"PK": pk, "SK": sk}, ConsistentRead=True)
            item = response.get("Item")
            if item:
                logger.debug("Item found", extra={"pk": pk, "sk": sk})
                return convert_decimals(item)
            return None
        except ClientError as e:
            logger.error("Failed to get item", extra={"error": str(e), "pk": pk, "sk": sk})
            raise

    def get_item_or_raise(
        self,
        pk: str,
        sk: str,
        resource_type: str,
        resource_id: str,
    ) -> dict[str, Any]:
        """Get an item or raise NotFoundError if it doesn't exist.

        Args:
            pk: Partition key value
            sk: Sort key value
            resource_type: Type of resource for error message
            resource_id: ID of resource for error message

        Returns:
            The item dict

        Raises:
            NotFoundError: If item doesn't exist
        """
        item = self.get_item(pk, sk)
        if item is None:
            raise NotFoundError(resource_type, resource_id)
        return item
