"""User, driver and rider profiles.

A basic profile needs a verified phone. Driver and rider profiles give
access to ride features and need both the phone and the corporate email
verified. Commute routes of either role live in DynamoDB.
"""

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from officemate.audit import AuditService, audited
from officemate.contracts.profile import (
    DriverProfileRequest,
    DriverProfileUpdateRequest,
    ProfileResponse,
    RiderProfileRequest,
    RiderProfileUpdateRequest,
    RoutePreferencesRequest,
    UserProfileRequest,
    UserProfileUpdateRequest,
)
from officemate.db.models import (
    DriverProfile,
    GenderPreference,
    RiderProfile,
    UserAccount,
    UserProfile,
    VehicleType,
    enum_value,
)
from officemate.errors import ConflictError, NotFoundError, ProfileAccessError, ValidationError
from officemate.profile.route_preferences import RoutePreferences, RoutePreferenceStore
from officemate.validation import normalize_license_plate

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
MAX_DETOUR_METERS = 500


async def _get_account(session: AsyncSession, user_id: uuid.UUID) -> UserAccount:
    account = await session.get(UserAccount, user_id)
    if account is None:
        raise NotFoundError(f"User account not found: {user_id}", "USER_NOT_FOUND")
    return account


def _require_full_verification(account: UserAccount, action: str) -> None:
    if not account.is_fully_verified:
        logger.warning(
            f"{action} denied for user {account.id} - verification incomplete. "
            f"Mobile: {account.phone_verified}, Email: {account.email_verified}"
        )
        raise ProfileAccessError(
            f"Both mobile and email verification required before {action}",
            bool(account.phone_verified),
            bool(account.email_verified),
        )


def _validate_name(value: Optional[str], field_name: str) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"{field_name} is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"{field_name} must be at most {MAX_NAME_LENGTH} characters")
    return name


def _validate_date_of_birth(value: Optional[date]) -> Optional[date]:
    if value is not None and value >= date.today():
        raise ValidationError("Date of birth must be in the past")
    return value


def _route(request: RoutePreferencesRequest) -> RoutePreferences:
    return RoutePreferences(**request.model_dump())


class UserProfileService:
    """Basic profile attached to a phone-verified account."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _find(self, user_id: uuid.UUID) -> Optional[UserProfile]:
        result = await self.session.execute(select(UserProfile).where(UserProfile.user_id == user_id))
        return result.scalar_one_or_none()

    async def _get(self, user_id: uuid.UUID) -> UserProfile:
        profile = await self._find(user_id)
        if profile is None:
            raise NotFoundError(f"Profile not found for user: {user_id}", "PROFILE_NOT_FOUND")
        return profile

    async def profile_exists(self, user_id: uuid.UUID) -> bool:
        return await self._find(user_id) is not None

    @audited("CREATE", "UserProfile")
    async def create_profile(self, user_id: uuid.UUID, request: UserProfileRequest) -> UserProfile:
        """Create the basic profile.

        Raises:
            ProfileAccessError: Phone not verified yet
            ConflictError: Profile already exists
            ValidationError: Bad name or date of birth
        """
        logger.info(f"Creating basic profile for user: {user_id}")
        account = await _get_account(self.session, user_id)
        if not account.phone_verified:
            raise ProfileAccessError(
                "Mobile verification required before creating a profile",
                False,
                bool(account.email_verified),
                "MOBILE_VERIFICATION_REQUIRED",
            )
        if await self.profile_exists(user_id):
            raise ConflictError(f"Profile already exists for user: {user_id}", "PROFILE_ALREADY_EXISTS")

        profile = UserProfile(
            user_id=user_id,
            first_name=_validate_name(request.first_name, "First name"),
            last_name=_validate_name(request.last_name, "Last name"),
            date_of_birth=_validate_date_of_birth(request.date_of_birth),
            gender=request.gender,
            profile_picture_url=request.profile_picture_url,
        )
        self.session.add(profile)
        await self.session.flush()
        return profile

    @audited("UPDATE", "UserProfile")
    async def update_profile(self, user_id: uuid.UUID, request: UserProfileUpdateRequest) -> UserProfile:
        """Apply the provided fields; blank names are ignored."""
        profile = await self._get(user_id)

        if request.first_name and request.first_name.strip():
            profile.first_name = _validate_name(request.first_name, "First name")
        if request.last_name and request.last_name.strip():
            profile.last_name = _validate_name(request.last_name, "Last name")
        if request.date_of_birth is not None:
            profile.date_of_birth = _validate_date_of_birth(request.date_of_birth)
        if request.gender is not None:
            profile.gender = request.gender
        if request.profile_picture_url is not None:
            profile.profile_picture_url = request.profile_picture_url

        await self.session.flush()
        logger.info(f"Updated profile for user: {user_id}")
        return profile

    async def get_profile(self, user_id: uuid.UUID) -> ProfileResponse:
        profile = await self._get(user_id)
        account = await _get_account(self.session, user_id)

        driver = await self.session.execute(select(DriverProfile.id).where(DriverProfile.user_id == user_id))
        rider = await self.session.execute(select(RiderProfile.id).where(RiderProfile.user_id == user_id))

        return ProfileResponse(
            user_id=user_id,
            first_name=profile.first_name,
            last_name=profile.last_name,
            full_name=profile.full_name,
            date_of_birth=profile.date_of_birth,
            gender=profile.gender,
            profile_picture_url=profile.profile_picture_url,
            phone_number=account.phone_number,
            corporate_email=account.corporate_email,
            mobile_verified=bool(account.phone_verified),
            email_verified=bool(account.email_verified),
            is_fully_verified=account.is_fully_verified,
            has_driver_profile=driver.first() is not None,
            has_rider_profile=rider.first() is not None,
            created_at=profile.created_at,
        )

    async def can_access_ride_features(self, user_id: uuid.UUID) -> bool:
        account = await _get_account(self.session, user_id)
        return account.is_fully_verified

    async def delete_profile(self, user_id: uuid.UUID) -> None:
        profile = await self._get(user_id)
        await self.session.delete(profile)
        AuditService(self.session).log_entity_deletion("UserProfile", profile.id, user_id)
        await self.session.flush()
        logger.info(f"Deleted profile for user: {user_id}")


class DriverProfileService:
    """Driver licence and vehicle details."""

    def __init__(self, session: AsyncSession, route_store: Optional[RoutePreferenceStore] = None):
        self.session = session
        self.route_store = route_store or RoutePreferenceStore()

    async def _find(self, user_id: uuid.UUID) -> Optional[DriverProfile]:
        result = await self.session.execute(select(DriverProfile).where(DriverProfile.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_driver_profile(self, user_id: uuid.UUID) -> DriverProfile:
        profile = await self._find(user_id)
        if profile is None:
            raise NotFoundError(f"Driver profile not found for user: {user_id}", "DRIVER_PROFILE_NOT_FOUND")
        return profile

    async def driver_profile_exists(self, user_id: uuid.UUID) -> bool:
        return await self._find(user_id) is not None

    async def _license_taken(self, license_number: str, user_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(DriverProfile.id).where(
                DriverProfile.license_number == license_number,
                DriverProfile.user_id != user_id,
            )
        )
        return result.first() is not None

    @staticmethod
    def _validate_license_expiry(expiry: date) -> None:
        if expiry <= date.today():
            raise ValidationError("License expiry date must be in the future", "LICENSE_EXPIRED")

    @staticmethod
    def _validate_capacity(vehicle_type: VehicleType, capacity: int) -> None:
        vehicle_type = VehicleType(enum_value(vehicle_type))
        if not 1 <= capacity <= vehicle_type.max_capacity:
            raise ValidationError(
                f"{vehicle_type.value} capacity must be between 1 and "
                f"{vehicle_type.max_capacity} passengers",
                "INVALID_VEHICLE_CAPACITY",
            )

    @staticmethod
    def _validate_detour(meters: int) -> None:
        if not 0 <= meters <= MAX_DETOUR_METERS:
            raise ValidationError(f"Maximum detour must be between 0 and {MAX_DETOUR_METERS} meters")

    @audited("CREATE", "DriverProfile")
    async def create_driver_profile(self, user_id: uuid.UUID, request: DriverProfileRequest) -> DriverProfile:
        """Register the user as a driver.

        Route preferences, when given, are written to DynamoDB after the row
        is flushed; a DynamoDB failure aborts the whole request.
        """
        logger.info(f"Creating driver profile for user: {user_id}")
        account = await _get_account(self.session, user_id)
        _require_full_verification(account, "creating driver profile")

        if not await UserProfileService(self.session).profile_exists(user_id):
            raise ValidationError("Basic profile required before creating a driver profile", "PROFILE_REQUIRED")
        if await self.driver_profile_exists(user_id):
            raise ConflictError(f"Driver profile already exists for user: {user_id}", "DRIVER_PROFILE_EXISTS")

        license_number = request.license_number.strip().upper()
        if await self._license_taken(license_number, user_id):
            raise ConflictError(f"License number already registered: {license_number}", "LICENSE_ALREADY_REGISTERED")

        self._validate_license_expiry(request.license_expiry)
        self._validate_capacity(request.vehicle_type, request.vehicle_capacity)
        self._validate_detour(request.max_detour_meters)

        profile = DriverProfile(
            user_id=user_id,
            license_number=license_number,
            license_expiry=request.license_expiry,
            license_verified=False,
            vehicle_type=request.vehicle_type,
            vehicle_make=request.vehicle_make.strip(),
            vehicle_model=request.vehicle_model.strip(),
            vehicle_year=request.vehicle_year,
            license_plate=normalize_license_plate(request.license_plate),
            vehicle_capacity=request.vehicle_capacity,
            fuel_type=request.fuel_type,
            max_detour_meters=request.max_detour_meters,
        )
        self.session.add(profile)
        await self.session.flush()

        if request.route_preferences is not None:
            await self.route_store.save_route_preferences(user_id, _route(request.route_preferences))

        logger.info(f"Driver profile {profile.id} created for user: {user_id}")
        return profile

    @audited("UPDATE", "DriverProfile")
    async def update_driver_profile(
        self, user_id: uuid.UUID, request: DriverProfileUpdateRequest
    ) -> DriverProfile:
        """Apply the provided fields. A new licence number resets verification."""
        profile = await self.get_driver_profile(user_id)

        if request.license_number:
            license_number = request.license_number.strip().upper()
            if license_number != profile.license_number:
                if await self._license_taken(license_number, user_id):
                    raise ConflictError(
                        f"License number already registered: {license_number}",
                        "LICENSE_ALREADY_REGISTERED",
                    )
                profile.license_number = license_number
                profile.reset_license_verification()
                logger.info(f"License changed for driver {user_id}, verification reset")

        if request.license_expiry is not None:
            self._validate_license_expiry(request.license_expiry)
            profile.license_expiry = request.license_expiry

        vehicle_type = request.vehicle_type or profile.vehicle_type
        capacity = request.vehicle_capacity if request.vehicle_capacity is not None else profile.vehicle_capacity
        if request.vehicle_type is not None or request.vehicle_capacity is not None:
            self._validate_capacity(vehicle_type, capacity)
            profile.vehicle_type = VehicleType(enum_value(vehicle_type))
            profile.vehicle_capacity = capacity

        if request.vehicle_make:
            profile.vehicle_make = request.vehicle_make.strip()
        if request.vehicle_model:
            profile.vehicle_model = request.vehicle_model.strip()
        if request.vehicle_year is not None:
            profile.vehicle_year = request.vehicle_year
        if request.license_plate:
            profile.license_plate = normalize_license_plate(request.license_plate)
        if request.fuel_type is not None:
            profile.fuel_type = request.fuel_type
        if request.max_detour_meters is not None:
            self._validate_detour(request.max_detour_meters)
            profile.max_detour_meters = request.max_detour_meters

        await self.session.flush()

        if request.route_preferences is not None:
            await self.route_store.update_route_preferences(user_id, _route(request.route_preferences))

        return profile

    async def verify_driver_license(self, user_id: uuid.UUID) -> DriverProfile:
        profile = await self.get_driver_profile(user_id)
        profile.verify_license()
        AuditService(self.session).log_entity_update(
            "DriverProfile", profile.id, user_id, license_verified=True
        )
        await self.session.flush()
        logger.info(f"License verified for driver: {user_id}")
        return profile

    async def delete_driver_profile(self, user_id: uuid.UUID) -> None:
        profile = await self.get_driver_profile(user_id)
        await self.session.delete(profile)
        AuditService(self.session).log_entity_deletion("DriverProfile", profile.id, user_id)
        await self.session.flush()
        await self.route_store.delete_route_preferences(user_id)
        logger.info(f"Deleted driver profile for user: {user_id}")


class RiderProfileService:
    """Rider preferences: co-rider gender, vehicle types, favourite drivers."""

    def __init__(self, session: AsyncSession, route_store: Optional[RoutePreferenceStore] = None):
        self.session = session
        self.route_store = route_store or RoutePreferenceStore()

    async def _find(self, user_id: uuid.UUID) -> Optional[RiderProfile]:
        result = await self.session.execute(select(RiderProfile).where(RiderProfile.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_rider_profile(self, user_id: uuid.UUID) -> RiderProfile:
        profile = await self._find(user_id)
        if profile is None:
            raise NotFoundError(f"Rider profile not found for user: {user_id}", "RIDER_PROFILE_NOT_FOUND")
        return profile

    async def rider_profile_exists(self, user_id: uuid.UUID) -> bool:
        return await self._find(user_id) is not None

    @audited("CREATE", "RiderProfile")
    async def create_rider_profile(self, user_id: uuid.UUID, request: RiderProfileRequest) -> RiderProfile:
        logger.info(f"Creating rider profile for user: {user_id}")
        account = await _get_account(self.session, user_id)
        _require_full_verification(account, "creating rider profile")

        if await self.rider_profile_exists(user_id):
            raise ConflictError(f"Rider profile already exists for user: {user_id}", "RIDER_PROFILE_EXISTS")

        profile = RiderProfile(
            user_id=user_id,
            gender_preference=request.gender_preference,
            vehicle_type_preferences=_unique_values(request.vehicle_type_preferences),
            favorite_drivers=[],
        )
        self.session.add(profile)
        await self.session.flush()

        if request.route_preferences is not None:
            await self.route_store.save_route_preferences(user_id, _route(request.route_preferences))
        return profile

    @audited("UPDATE", "RiderProfile")
    async def update_rider_profile(self, user_id: uuid.UUID, request: RiderProfileUpdateRequest) -> RiderProfile:
        profile = await self.get_rider_profile(user_id)
        if request.gender_preference is not None:
            profile.gender_preference = request.gender_preference
        if request.vehicle_type_preferences is not None:
            profile.vehicle_type_preferences = _unique_values(request.vehicle_type_preferences)
        await self.session.flush()

        if request.route_preferences is not None:
            await self.route_store.update_route_preferences(user_id, _route(request.route_preferences))
        return profile

    async def update_gender_preference(self, user_id: uuid.UUID, preference: GenderPreference) -> RiderProfile:
        profile = await self.get_rider_profile(user_id)
        profile.gender_preference = GenderPreference(enum_value(preference))
        await self.session.flush()
        return profile

    # JSON list columns are reassigned, never mutated, so changes are tracked.
    async def add_vehicle_type_preference(self, user_id: uuid.UUID, vehicle_type: VehicleType) -> RiderProfile:
        profile = await self.get_rider_profile(user_id)
        value = VehicleType(enum_value(vehicle_type)).value
        current = list(profile.vehicle_type_preferences or [])
        if value not in current:
            profile.vehicle_type_preferences = current + [value]
            await self.session.flush()
        return profile

    async def remove_vehicle_type_preference(self, user_id: uuid.UUID, vehicle_type: VehicleType) -> RiderProfile:
        profile = await self.get_rider_profile(user_id)
        value = VehicleType(enum_value(vehicle_type)).value
        profile.vehicle_type_preferences = [v for v in profile.vehicle_type_preferences or [] if v != value]
        await self.session.flush()
        return profile

    async def add_favorite_driver(self, user_id: uuid.UUID, driver_id: uuid.UUID) -> RiderProfile:
        profile = await self.get_rider_profile(user_id)
        if driver_id == user_id:
            raise ValidationError("Cannot add yourself as a favorite driver")
        current = list(profile.favorite_drivers or [])
        if str(driver_id) not in current:
            profile.favorite_drivers = current + [str(driver_id)]
            await self.session.flush()
        logger.info(f"Added favorite driver {driver_id} for rider: {user_id}")
        return profile

    async def remove_favorite_driver(self, user_id: uuid.UUID, driver_id: uuid.UUID) -> RiderProfile:
        profile = await self.get_rider_profile(user_id)
        profile.favorite_drivers = [d for d in profile.favorite_drivers or [] if d != str(driver_id)]
        await self.session.flush()
        return profile

    async def update_route_preferences(
        self, user_id: uuid.UUID, request: RoutePreferencesRequest
    ) -> RiderProfile:
        profile = await self.get_rider_profile(user_id)
        await self.route_store.update_route_preferences(user_id, _route(request))
        return profile

    async def delete_rider_profile(self, user_id: uuid.UUID) -> None:
        profile = await self.get_rider_profile(user_id)
        await self.session.delete(profile)
        AuditService(self.session).log_entity_deletion("RiderProfile", profile.id, user_id)
        await self.session.flush()
        await self.route_store.delete_route_preferences(user_id)
        logger.info(f"Deleted rider profile for user: {user_id}")


def _unique_values(values: list) -> list[str]:
    result: list[str] = []
    for value in values:
        plain = enum_value(value)
        if plain not in result:
            result.append(plain)
    return result
