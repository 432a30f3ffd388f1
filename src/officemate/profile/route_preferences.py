"""Commute route preferences stored in DynamoDB.

Table ``<prefix>_route_preferences``: partition key ``userId``, sort key
``routeType``. Saving a route writes the HOME_TO_WORK item and a
WORK_TO_HOME item with start and end swapped. DynamoDB rejects floats, so
coordinates are written as ``Decimal`` and read back as ``float``.
"""

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from officemate.aws.clients import get_client, get_resource
from officemate.config import get_settings
from officemate.errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

HOME_TO_WORK = "HOME_TO_WORK"
WORK_TO_HOME = "WORK_TO_HOME"
ROUTE_TYPES = (HOME_TO_WORK, WORK_TO_HOME)
TABLE_NAME = "route_preferences"


@dataclass
class RoutePreferences:
    """A commute from home (start) to work (end)."""

    start_latitude: float
    start_longitude: float
    end_latitude: float
    end_longitude: float
    start_address: Optional[str] = None
    end_address: Optional[str] = None
    preferred_start_times: list[str] = field(default_factory=list)
    is_active: bool = True

    def validate(self) -> None:
        for name in ("start_latitude", "end_latitude"):
            value = getattr(self, name)
            if value is None or not -90 <= value <= 90:
                raise ValidationError(f"{name} must be between -90 and 90")
        for name in ("start_longitude", "end_longitude"):
            value = getattr(self, name)
            if value is None or not -180 <= value <= 180:
                raise ValidationError(f"{name} must be between -180 and 180")

    def reversed(self) -> "RoutePreferences":
        return RoutePreferences(
            start_latitude=self.end_latitude,
            start_longitude=self.end_longitude,
            end_latitude=self.start_latitude,
            end_longitude=self.start_longitude,
            start_address=self.end_address,
            end_address=self.start_address,
            preferred_start_times=list(self.preferred_start_times),
            is_active=self.is_active,
        )


def _to_dynamo(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, list):
        return [_to_dynamo(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    return value


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    return value


def build_item(user_id: uuid.UUID, route_type: str, prefs: RoutePreferences) -> dict:
    now = datetime.now(timezone.utc).isoformat()
    item = {
        "userId": str(user_id),
        "routeType": route_type,
        "startLatitude": prefs.start_latitude,
        "startLongitude": prefs.start_longitude,
        "startAddress": prefs.start_address,
        "endLatitude": prefs.end_latitude,
        "endLongitude": prefs.end_longitude,
        "endAddress": prefs.end_address,
        "preferredStartTimes": list(prefs.preferred_start_times),
        "isActive": prefs.is_active,
        "createdAt": now,
        "updatedAt": now,
    }
    return _to_dynamo({k: v for k, v in item.items() if v is not None})


class RoutePreferenceStore:
    """Async access to the route preferences table."""

    def __init__(self, table=None, client=None):
        self.table_name = get_settings().dynamodb_table(TABLE_NAME)
        self._table = table
        self._client = client

    @property
    def table(self):
        if self._table is None:
            self._table = get_resource("dynamodb").Table(self.table_name)
        return self._table

    @property
    def client(self):
        if self._client is None:
            self._client = get_client("dynamodb")
        return self._client

    async def _run(self, operation: str, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, lambda: func(*args, **kwargs))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"DynamoDB {operation} on {self.table_name} failed: {e}")
            raise ExternalServiceError("DynamoDB", f"Failed to {operation} route preferences")

    async def save_route_preferences(self, user_id: uuid.UUID, prefs: RoutePreferences) -> None:
        """Write both commute directions for a user."""
        prefs.validate()
        logger.info(f"Saving route preferences for user: {user_id}")
        await self._run("save", self.table.put_item, Item=build_item(user_id, HOME_TO_WORK, prefs))
        await self._run(
            "save", self.table.put_item, Item=build_item(user_id, WORK_TO_HOME, prefs.reversed())
        )

    async def update_route_preferences(self, user_id: uuid.UUID, prefs: RoutePreferences) -> None:
        # Items are overwritten in place
        await self.save_route_preferences(user_id, prefs)

    async def get_route_preference(self, user_id: uuid.UUID, route_type: str) -> Optional[dict]:
        if route_type not in ROUTE_TYPES:
            raise ValidationError(f"Invalid route type: {route_type}", "INVALID_ROUTE_TYPE")
        response = await self._run(
            "get",
            self.table.get_item,
            Key={"userId": str(user_id), "routeType": route_type},
        )
        item = response.get("Item")
        return _from_dynamo(item) if item else None

    async def get_all_route_preferences(self, user_id: uuid.UUID) -> list[dict]:
        response = await self._run(
            "query",
            self.table.query,
            KeyConditionExpression=Key("userId").eq(str(user_id)),
        )
        items = [_from_dynamo(item) for item in response.get("Items", [])]
        logger.debug(f"Found {len(items)} route preferences for user: {user_id}")
        return items

    async def delete_route_preferences(self, user_id: uuid.UUID) -> None:
        logger.info(f"Deleting route preferences for user: {user_id}")
        for route_type in ROUTE_TYPES:
            await self._run(
                "delete",
                self.table.delete_item,
                Key={"userId": str(user_id), "routeType": route_type},
            )

    async def ensure_table(self) -> bool:
        """Create the table when it does not exist; True when created."""
        try:
            await asyncio.get_running_loop().run_in_executor(
                None, lambda: self.client.describe_table(TableName=self.table_name)
            )
            return False
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ResourceNotFoundException":
                raise ExternalServiceError("DynamoDB", f"describe_table failed: {e}")

        await self._run(
            "create table for",
            self.client.create_table,
            TableName=self.table_name,
            KeySchema=[
                {"AttributeName": "userId", "KeyType": "HASH"},
                {"AttributeName": "routeType", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "userId", "AttributeType": "S"},
                {"AttributeName": "routeType", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        logger.info(f"Created DynamoDB table {self.table_name}")
        return True


def preferences_from_dict(data: dict) -> RoutePreferences:
    """Build ``RoutePreferences`` from request data (snake_case keys)."""
    allowed = set(asdict(RoutePreferences(0.0, 0.0, 0.0, 0.0)))
    return RoutePreferences(**{k: v for k, v in data.items() if k in allowed})
