"""Profile endpoints: basic profile, driver and rider profiles, commute routes."""

import uuid

from fastapi import APIRouter, Depends

from officemate.api.dependencies import (
    CurrentUser,
    get_route_store,
    require_full_verification,
    require_mobile_verified,
)
from officemate.contracts.auth import MessageResponse
from officemate.contracts.profile import (
    DriverProfileRequest,
    DriverProfileResponse,
    DriverProfileUpdateRequest,
    FavoriteDriverRequest,
    GenderPreferenceRequest,
    ProfileResponse,
    RideAccessResponse,
    RiderProfileRequest,
    RiderProfileResponse,
    RiderProfileUpdateRequest,
    RoutePreferencesRequest,
    UserProfileRequest,
    UserProfileUpdateRequest,
    VehicleTypeRequest,
)
from officemate.db.database import get_db
from officemate.db.models import VehicleType
from officemate.errors import NotFoundError
from officemate.profile import DriverProfileService, RiderProfileService, UserProfileService
from officemate.profile.route_preferences import RoutePreferenceStore, preferences_from_dict

router = APIRouter(prefix="/profile", tags=["profile"])


# Basic profile
@router.post("", response_model=ProfileResponse, status_code=201)
async def create_profile(
    request: UserProfileRequest, user: CurrentUser = Depends(require_mobile_verified)
) -> ProfileResponse:
    async with get_db() as session:
        service = UserProfileService(session)
        await service.create_profile(user.user_id, request)
        return await service.get_profile(user.user_id)


@router.get("", response_model=ProfileResponse)
async def get_profile(user: CurrentUser = Depends(require_mobile_verified)) -> ProfileResponse:
    async with get_db() as session:
        return await UserProfileService(session).get_profile(user.user_id)


@router.put("", response_model=ProfileResponse)
async def update_profile(
    request: UserProfileUpdateRequest, user: CurrentUser = Depends(require_mobile_verified)
) -> ProfileResponse:
    async with get_db() as session:
        service = UserProfileService(session)
        await service.update_profile(user.user_id, request)
        return await service.get_profile(user.user_id)


@router.delete("", response_model=MessageResponse)
async def delete_profile(user: CurrentUser = Depends(require_mobile_verified)) -> MessageResponse:
    async with get_db() as session:
        await UserProfileService(session).delete_profile(user.user_id)
    return MessageResponse(message="Profile deleted")


@router.get("/ride-access", response_model=RideAccessResponse)
async def ride_access(user: CurrentUser = Depends(require_mobile_verified)) -> RideAccessResponse:
    """Whether the caller may use driver and rider features yet."""
    async with get_db() as session:
        allowed = await UserProfileService(session).can_access_ride_features(user.user_id)
    return RideAccessResponse(can_access_ride_features=allowed)


# Driver
@router.post("/driver", response_model=DriverProfileResponse, status_code=201)
async def create_driver_profile(
    request: DriverProfileRequest,
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> DriverProfileResponse:
    async with get_db() as session:
        profile = await DriverProfileService(session, routes).create_driver_profile(user.user_id, request)
        return DriverProfileResponse.model_validate(profile)


@router.get("/driver", response_model=DriverProfileResponse)
async def get_driver_profile(
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> DriverProfileResponse:
    async with get_db() as session:
        profile = await DriverProfileService(session, routes).get_driver_profile(user.user_id)
        return DriverProfileResponse.model_validate(profile)


@router.put("/driver", response_model=DriverProfileResponse)
async def update_driver_profile(
    request: DriverProfileUpdateRequest,
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> DriverProfileResponse:
    async with get_db() as session:
        profile = await DriverProfileService(session, routes).update_driver_profile(user.user_id, request)
        return DriverProfileResponse.model_validate(profile)


@router.delete("/driver", response_model=MessageResponse)
async def delete_driver_profile(
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> MessageResponse:
    async with get_db() as session:
        await DriverProfileService(session, routes).delete_driver_profile(user.user_id)
    return MessageResponse(message="Driver profile deleted")


# Rider
@router.post("/rider", response_model=RiderProfileResponse, status_code=201)
async def create_rider_profile(
    request: RiderProfileRequest,
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> RiderProfileResponse:
    async with get_db() as session:
        profile = await RiderProfileService(session, routes).create_rider_profile(user.user_id, request)
        return RiderProfileResponse.model_validate(profile)


@router.get("/rider", response_model=RiderProfileResponse)
async def get_rider_profile(
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> RiderProfileResponse:
    async with get_db() as session:
        profile = await RiderProfileService(session, routes).get_rider_profile(user.user_id)
        return RiderProfileResponse.model_validate(profile)


@router.put("/rider", response_model=RiderProfileResponse)
async def update_rider_profile(
    request: RiderProfileUpdateRequest,
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> RiderProfileResponse:
    async with get_db() as session:
        profile = await RiderProfileService(session, routes).update_rider_profile(user.user_id, request)
        return RiderProfileResponse.model_validate(profile)


@router.put("/rider/gender-preference", response_model=RiderProfileResponse)
async def update_gender_preference(
    request: GenderPreferenceRequest,
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> RiderProfileResponse:
    async with get_db() as session:
        profile = await RiderProfileService(session, routes).update_gender_preference(
            user.user_id, request.gender_preference
        )
        return RiderProfileResponse.model_validate(profile)


@router.post("/rider/vehicle-types", response_model=RiderProfileResponse)
async def add_vehicle_type(
    request: VehicleTypeRequest,
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> RiderProfileResponse:
    async with get_db() as session:
        profile = await RiderProfileService(session, routes).add_vehicle_type_preference(
            user.user_id, request.vehicle_type
        )
        return RiderProfileResponse.model_validate(profile)


@router.delete("/rider/vehicle-types/{vehicle_type}", response_model=RiderProfileResponse)
async def remove_vehicle_type(
    vehicle_type: VehicleType,
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> RiderProfileResponse:
    async with get_db() as session:
        profile = await RiderProfileService(session, routes).remove_vehicle_type_preference(
            user.user_id, vehicle_type
        )
        return RiderProfileResponse.model_validate(profile)


@router.post("/rider/favorite-drivers", response_model=RiderProfileResponse)
async def add_favorite_driver(
    request: FavoriteDriverRequest,
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> RiderProfileResponse:
    async with get_db() as session:
        profile = await RiderProfileService(session, routes).add_favorite_driver(user.user_id, request.driver_id)
        return RiderProfileResponse.model_validate(profile)


@router.delete("/rider/favorite-drivers/{driver_id}", response_model=RiderProfileResponse)
async def remove_favorite_driver(
    driver_id: uuid.UUID,
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> RiderProfileResponse:
    async with get_db() as session:
        profile = await RiderProfileService(session, routes).remove_favorite_driver(user.user_id, driver_id)
        return RiderProfileResponse.model_validate(profile)


@router.delete("/rider", response_model=MessageResponse)
async def delete_rider_profile(
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> MessageResponse:
    async with get_db() as session:
        await RiderProfileService(session, routes).delete_rider_profile(user.user_id)
    return MessageResponse(message="Rider profile deleted")


# Commute routes
@router.get("/route-preferences")
async def get_route_preferences(
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> list[dict]:
    return await routes.get_all_route_preferences(user.user_id)


@router.get("/route-preferences/{route_type}")
async def get_route_preference(
    route_type: str,
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> dict:
    item = await routes.get_route_preference(user.user_id, route_type.upper())
    if item is None:
        raise NotFoundError(f"No {route_type.upper()} route saved", "ROUTE_PREFERENCE_NOT_FOUND")
    return item


@router.put("/route-preferences", response_model=MessageResponse)
async def save_route_preferences(
    request: RoutePreferencesRequest,
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> MessageResponse:
    """Save the home-to-work route; the return route is stored reversed."""
    await routes.save_route_preferences(user.user_id, preferences_from_dict(request.model_dump()))
    return MessageResponse(message="Route preferences saved")


@router.delete("/route-preferences", response_model=MessageResponse)
async def delete_route_preferences(
    user: CurrentUser = Depends(require_full_verification),
    routes: RoutePreferenceStore = Depends(get_route_store),
) -> MessageResponse:
    await routes.delete_route_preferences(user.user_id)
    return MessageResponse(message="Route preferences deleted")
