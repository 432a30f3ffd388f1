"""Tests for route preferences kept in DynamoDB."""

import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from officemate.errors import ExternalServiceError, ValidationError
from officemate.profile.route_preferences import (
    HOME_TO_WORK,
    WORK_TO_HOME,
    RoutePreferences,
    RoutePreferenceStore,
    build_item,
    preferences_from_dict,
)

PREFS = RoutePreferences(
    start_latitude=12.9716,
    start_longitude=77.5946,
    end_latitude=12.9352,
    end_longitude=77.6245,
    start_address="Home",
    end_address="Office",
    preferred_start_times=["08:30", "09:00"],
)


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestRoutePreferences:
    def test_reversed_swaps_ends(self):
        back = PREFS.reversed()
        assert back.start_latitude == PREFS.end_latitude
        assert back.end_longitude == PREFS.start_longitude
        assert back.start_address == "Office"
        assert back.preferred_start_times == PREFS.preferred_start_times

    def test_validate_rejects_bad_latitude(self):
        prefs = RoutePreferences(95.0, 0.0, 0.0, 0.0)
        with pytest.raises(ValidationError):
            prefs.validate()

    def test_build_item_uses_decimal(self):
        item = build_item(uuid.uuid4(), HOME_TO_WORK, PREFS)
        assert item["startLatitude"] == Decimal("12.9716")
        assert item["routeType"] == HOME_TO_WORK
        assert "createdAt" in item

    def test_build_item_drops_none(self):
        item = build_item(uuid.uuid4(), HOME_TO_WORK, RoutePreferences(1.0, 2.0, 3.0, 4.0))
        assert "startAddress" not in item

    def test_from_dict_ignores_unknown_keys(self):
        prefs = preferences_from_dict(
            {"start_latitude": 1.0, "start_longitude": 2.0, "end_latitude": 3.0, "end_longitude": 4.0, "x": 1}
        )
        assert prefs.end_longitude == 4.0


class TestRoutePreferenceStore:
    @pytest.mark.asyncio
    async def test_save_writes_both_directions(self, route_store, route_table):
        user_id = uuid.uuid4()
        await route_store.save_route_preferences(user_id, PREFS)

        home = await route_store.get_route_preference(user_id, HOME_TO_WORK)
        work = await route_store.get_route_preference(user_id, WORK_TO_HOME)

        assert home["startLatitude"] == 12.9716
        assert isinstance(home["startLatitude"], float)
        assert work["startLatitude"] == 12.9352
        assert work["endAddress"] == "Home"
        assert len(await route_store.get_all_route_preferences(user_id)) == 2

    @pytest.mark.asyncio
    async def test_invalid_route_type(self, route_store):
        with pytest.raises(ValidationError) as exc_info:
            await route_store.get_route_preference(uuid.uuid4(), "SCHOOL_RUN")
        assert exc_info.value.error_code == "INVALID_ROUTE_TYPE"

    @pytest.mark.asyncio
    async def test_missing_route(self, route_store):
        assert await route_store.get_route_preference(uuid.uuid4(), HOME_TO_WORK) is None

    @pytest.mark.asyncio
    async def test_delete(self, route_store, route_table):
        user_id = uuid.uuid4()
        await route_store.save_route_preferences(user_id, PREFS)
        await route_store.delete_route_preferences(user_id)
        assert await route_store.get_all_route_preferences(user_id) == []

    @pytest.mark.asyncio
    async def test_dynamodb_failure_wrapped(self):
        table = MagicMock()
        table.put_item.side_effect = client_error("ProvisionedThroughputExceededException", "PutItem")
        store = RoutePreferenceStore(table=table, client=MagicMock())

        with pytest.raises(ExternalServiceError) as exc_info:
            await store.save_route_preferences(uuid.uuid4(), PREFS)
        assert exc_info.value.service == "DynamoDB"

    @pytest.mark.asyncio
    async def test_ensure_table_creates_when_missing(self):
        client = MagicMock()
        client.describe_table.side_effect = client_error("ResourceNotFoundException", "DescribeTable")
        store = RoutePreferenceStore(table=MagicMock(), client=client)

        assert await store.ensure_table() is True
        kwargs = client.create_table.call_args.kwargs
        assert kwargs["TableName"] == store.table_name
        assert kwargs["BillingMode"] == "PAY_PER_REQUEST"

    @pytest.mark.asyncio
    async def test_ensure_table_existing(self):
        client = MagicMock()
        store = RoutePreferenceStore(table=MagicMock(), client=client)

        assert await store.ensure_table() is False
        client.create_table.assert_not_called()
