"""Tests for user, driver and rider profiles."""

import uuid
from datetime import date, timedelta

import pytest
import pytest_asyncio

from officemate.contracts.profile import (
    DriverProfileRequest,
    DriverProfileUpdateRequest,
    RiderProfileRequest,
    RoutePreferencesRequest,
    UserProfileRequest,
    UserProfileUpdateRequest,
)
from officemate.db.models import GenderPreference, VehicleType
from officemate.errors import ConflictError, NotFoundError, ProfileAccessError, ValidationError
from officemate.profile import DriverProfileService, RiderProfileService, UserProfileService
from officemate.profile.route_preferences import HOME_TO_WORK, WORK_TO_HOME

ROUTE = RoutePreferencesRequest(
    start_latitude=12.9716,
    start_longitude=77.5946,
    start_address="Home",
    end_latitude=12.9352,
    end_longitude=77.6245,
    end_address="Office",
    preferred_start_times=["08:30"],
)


def driver_request(**overrides) -> DriverProfileRequest:
    data = {
        "license_number": "ka0120230001234",
        "license_expiry": date.today() + timedelta(days=365),
        "vehicle_type": VehicleType.CAR,
        "vehicle_make": "Maruti",
        "vehicle_model": "Swift",
        "vehicle_year": 2021,
        "license_plate": "ka 01 ab 1234",
        "vehicle_capacity": 4,
    }
    data.update(overrides)
    return DriverProfileRequest(**data)


@pytest_asyncio.fixture
async def basic_profile(db_session, verified_account):
    return await UserProfileService(db_session).create_profile(
        verified_account.id, UserProfileRequest(first_name="Jane", last_name="Doe")
    )


class TestUserProfile:
    @pytest.mark.asyncio
    async def test_create_and_get(self, db_session, verified_account, basic_profile):
        response = await UserProfileService(db_session).get_profile(verified_account.id)

        assert response.full_name == "Jane Doe"
        assert response.is_fully_verified is True
        assert response.has_driver_profile is False
        assert response.phone_number == verified_account.phone_number

    @pytest.mark.asyncio
    async def test_requires_verified_phone(self, db_session, account_factory):
        account = await account_factory(phone_verified=False)
        with pytest.raises(ProfileAccessError) as exc_info:
            await UserProfileService(db_session).create_profile(
                account.id, UserProfileRequest(first_name="Jane", last_name="Doe")
            )
        assert exc_info.value.error_code == "MOBILE_VERIFICATION_REQUIRED"

    @pytest.mark.asyncio
    async def test_duplicate(self, db_session, verified_account, basic_profile):
        with pytest.raises(ConflictError):
            await UserProfileService(db_session).create_profile(
                verified_account.id, UserProfileRequest(first_name="Jane", last_name="Doe")
            )

    @pytest.mark.asyncio
    async def test_blank_name(self, db_session, verified_account):
        with pytest.raises(ValidationError):
            await UserProfileService(db_session).create_profile(
                verified_account.id, UserProfileRequest(first_name="  ", last_name="Doe")
            )

    @pytest.mark.asyncio
    async def test_future_birth_date(self, db_session, verified_account):
        with pytest.raises(ValidationError):
            await UserProfileService(db_session).create_profile(
                verified_account.id,
                UserProfileRequest(
                    first_name="Jane", last_name="Doe", date_of_birth=date.today() + timedelta(days=1)
                ),
            )

    @pytest.mark.asyncio
    async def test_update_ignores_blank_names(self, db_session, verified_account, basic_profile):
        service = UserProfileService(db_session)
        profile = await service.update_profile(
            verified_account.id, UserProfileUpdateRequest(first_name=" ", last_name="Smith")
        )
        assert profile.full_name == "Jane Smith"

    @pytest.mark.asyncio
    async def test_ride_access(self, db_session, verified_account, phone_only_account):
        service = UserProfileService(db_session)
        assert await service.can_access_ride_features(verified_account.id) is True
        assert await service.can_access_ride_features(phone_only_account.id) is False

    @pytest.mark.asyncio
    async def test_delete(self, db_session, verified_account, basic_profile):
        service = UserProfileService(db_session)
        await service.delete_profile(verified_account.id)
        with pytest.raises(NotFoundError):
            await service.get_profile(verified_account.id)


class TestDriverProfile:
    @pytest.mark.asyncio
    async def test_create_with_route(self, db_session, verified_account, basic_profile, route_store, route_table):
        service = DriverProfileService(db_session, route_store)
        profile = await service.create_driver_profile(
            verified_account.id, driver_request(route_preferences=ROUTE)
        )

        assert profile.license_number == "KA0120230001234"
        assert profile.license_plate == "KA 01 AB 1234"
        assert profile.license_verified is False
        assert (str(verified_account.id), HOME_TO_WORK) in route_table.items
        assert (str(verified_account.id), WORK_TO_HOME) in route_table.items

    @pytest.mark.asyncio
    async def test_requires_full_verification(self, db_session, phone_only_account, route_store):
        await UserProfileService(db_session).create_profile(
            phone_only_account.id, UserProfileRequest(first_name="Sam", last_name="Roe")
        )
        with pytest.raises(ProfileAccessError) as exc_info:
            await DriverProfileService(db_session, route_store).create_driver_profile(
                phone_only_account.id, driver_request()
            )
        assert exc_info.value.mobile_verified is True
        assert exc_info.value.email_verified is False

    @pytest.mark.asyncio
    async def test_requires_basic_profile(self, db_session, verified_account, route_store):
        with pytest.raises(ValidationError) as exc_info:
            await DriverProfileService(db_session, route_store).create_driver_profile(
                verified_account.id, driver_request()
            )
        assert exc_info.value.error_code == "PROFILE_REQUIRED"

    @pytest.mark.asyncio
    async def test_expired_license(self, db_session, verified_account, basic_profile, route_store):
        with pytest.raises(ValidationError) as exc_info:
            await DriverProfileService(db_session, route_store).create_driver_profile(
                verified_account.id, driver_request(license_expiry=date.today())
            )
        assert exc_info.value.error_code == "LICENSE_EXPIRED"

    @pytest.mark.asyncio
    async def test_capacity_per_vehicle_type(self, db_session, verified_account, basic_profile, route_store):
        with pytest.raises(ValidationError) as exc_info:
            await DriverProfileService(db_session, route_store).create_driver_profile(
                verified_account.id,
                driver_request(vehicle_type=VehicleType.MOTORCYCLE, vehicle_capacity=3),
            )
        assert exc_info.value.error_code == "INVALID_VEHICLE_CAPACITY"

    @pytest.mark.asyncio
    async def test_unsafe_plate(self, db_session, verified_account, basic_profile, route_store):
        with pytest.raises(ValidationError):
            await DriverProfileService(db_session, route_store).create_driver_profile(
                verified_account.id, driver_request(license_plate="KA01<script>")
            )

    @pytest.mark.asyncio
    async def test_license_change_resets_verification(
        self, db_session, verified_account, basic_profile, route_store
    ):
        service = DriverProfileService(db_session, route_store)
        await service.create_driver_profile(verified_account.id, driver_request())
        verified = await service.verify_driver_license(verified_account.id)
        assert verified.license_verified is True

        updated = await service.update_driver_profile(
            verified_account.id, DriverProfileUpdateRequest(license_number="KA0520240009999")
        )
        assert updated.license_verified is False
        assert updated.license_verified_at is None

    @pytest.mark.asyncio
    async def test_delete_removes_routes(
        self, db_session, verified_account, basic_profile, route_store, route_table
    ):
        service = DriverProfileService(db_session, route_store)
        await service.create_driver_profile(verified_account.id, driver_request(route_preferences=ROUTE))
        await service.delete_driver_profile(verified_account.id)

        assert route_table.items == {}
        assert await service.driver_profile_exists(verified_account.id) is False


class TestRiderProfile:
    @pytest.mark.asyncio
    async def test_create_dedupes_vehicle_types(self, db_session, verified_account, route_store):
        service = RiderProfileService(db_session, route_store)
        profile = await service.create_rider_profile(
            verified_account.id,
            RiderProfileRequest(vehicle_type_preferences=[VehicleType.CAR, VehicleType.CAR, VehicleType.SCOOTER]),
        )
        assert profile.vehicle_type_preferences == ["CAR", "SCOOTER"]
        assert profile.gender_preference == GenderPreference.NO_PREFERENCE

    @pytest.mark.asyncio
    async def test_requires_full_verification(self, db_session, phone_only_account, route_store):
        with pytest.raises(ProfileAccessError):
            await RiderProfileService(db_session, route_store).create_rider_profile(
                phone_only_account.id, RiderProfileRequest()
            )

    @pytest.mark.asyncio
    async def test_vehicle_type_preferences(self, db_session, verified_account, route_store):
        service = RiderProfileService(db_session, route_store)
        await service.create_rider_profile(verified_account.id, RiderProfileRequest())

        await service.add_vehicle_type_preference(verified_account.id, VehicleType.CAR)
        await service.add_vehicle_type_preference(verified_account.id, VehicleType.CAR)
        profile = await service.add_vehicle_type_preference(verified_account.id, VehicleType.BICYCLE)
        assert profile.vehicle_type_preferences == ["CAR", "BICYCLE"]

        profile = await service.remove_vehicle_type_preference(verified_account.id, VehicleType.CAR)
        assert profile.vehicle_type_preferences == ["BICYCLE"]

    @pytest.mark.asyncio
    async def test_favorite_drivers(self, db_session, verified_account, route_store):
        service = RiderProfileService(db_session, route_store)
        await service.create_rider_profile(verified_account.id, RiderProfileRequest())
        driver_id = uuid.uuid4()

        profile = await service.add_favorite_driver(verified_account.id, driver_id)
        assert profile.favorite_drivers == [str(driver_id)]

        with pytest.raises(ValidationError):
            await service.add_favorite_driver(verified_account.id, verified_account.id)

        profile = await service.remove_favorite_driver(verified_account.id, driver_id)
        assert profile.favorite_drivers == []

    @pytest.mark.asyncio
    async def test_gender_preference(self, db_session, verified_account, route_store):
        service = RiderProfileService(db_session, route_store)
        await service.create_rider_profile(verified_account.id, RiderProfileRequest())

        profile = await service.update_gender_preference(verified_account.id, GenderPreference.FEMALE_ONLY)
        assert profile.gender_preference == GenderPreference.FEMALE_ONLY
