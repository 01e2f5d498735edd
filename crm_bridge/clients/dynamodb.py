"""
DynamoDB implementation of the record store for deployed environments.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError


class DynamoDBClient:
    """Record store backed by a table with ``pk`` / ``sk`` string keys."""

    def __init__(self, table_name: str, *, region_name: str = "us-east-1", resource: Any = None) -> None:
        self._resource = resource or boto3.resource("dynamodb", region_name=region_name)
        self._table = self._resource.Table(table_name)

    def put_item(self, item: Dict[str, Any]) -> None:
        """Put an item in the DynamoDB table."""
        self._table.put_item(Item=item)

    def put_item_if_absent(self, item: Dict[str, Any]) -> bool:
        """Conditionally put an item; False when the key is already taken."""
        try:
            self._table.put_item(
                Item=item,
                ConditionExpression="attribute_not_exists(pk)",
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            raise
        return True

    def get_item(self, *, partition_key: str, sort_key: str) -> Optional[Dict[str, Any]]:
        """Retrieve an item using its key."""
        response = self._table.get_item(Key={"pk": partition_key, "sk": sort_key})
        return response.get("Item")


__all__ = ["DynamoDBClient"]
