"""Profile request and response contracts.

Range and format rules that depend on other fields (capacity per vehicle
type, licence expiry) are enforced by the profile services.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from officemate.db.models import FuelType, Gender, GenderPreference, VehicleType


class RoutePreferencesRequest(BaseModel):
    """Home to work commute. The return trip is derived by swapping the ends."""

    start_latitude: float = Field(..., ge=-90, le=90)
    start_longitude: float = Field(..., ge=-180, le=180)
    start_address: Optional[str] = Field(None, max_length=500)
    end_latitude: float = Field(..., ge=-90, le=90)
    end_longitude: float = Field(..., ge=-180, le=180)
    end_address: Optional[str] = Field(None, max_length=500)
    preferred_start_times: list[str] = Field(default_factory=list, description="HH:MM entries")
    is_active: bool = True


class UserProfileRequest(BaseModel):
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    profile_picture_url: Optional[str] = Field(None, max_length=500)


class UserProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    profile_picture_url: Optional[str] = Field(None, max_length=500)


class ProfileResponse(BaseModel):
    """User profile joined with account verification state."""

    user_id: uuid.UUID
    first_name: str
    last_name: str
    full_name: str
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    profile_picture_url: Optional[str] = None
    phone_number: str
    corporate_email: Optional[str] = None
    mobile_verified: bool
    email_verified: bool
    is_fully_verified: bool
    has_driver_profile: bool = False
    has_rider_profile: bool = False
    created_at: Optional[datetime] = None


class DriverProfileRequest(BaseModel):
    license_number: str = Field(..., min_length=1, max_length=50)
    license_expiry: date
    vehicle_type: VehicleType
    vehicle_make: str = Field(..., min_length=1, max_length=50)
    vehicle_model: str = Field(..., min_length=1, max_length=50)
    vehicle_year: int = Field(..., ge=1980, le=2100)
    license_plate: str = Field(..., min_length=1, max_length=20)
    vehicle_capacity: int
    fuel_type: Optional[FuelType] = None
    max_detour_meters: int = 500
    route_preferences: Optional[RoutePreferencesRequest] = None


class DriverProfileUpdateRequest(BaseModel):
    license_number: Optional[str] = Field(None, min_length=1, max_length=50)
    license_expiry: Optional[date] = None
    vehicle_type: Optional[VehicleType] = None
    vehicle_make: Optional[str] = Field(None, min_length=1, max_length=50)
    vehicle_model: Optional[str] = Field(None, min_length=1, max_length=50)
    vehicle_year: Optional[int] = Field(None, ge=1980, le=2100)
    license_plate: Optional[str] = Field(None, min_length=1, max_length=20)
    vehicle_capacity: Optional[int] = None
    fuel_type: Optional[FuelType] = None
    max_detour_meters: Optional[int] = None
    route_preferences: Optional[RoutePreferencesRequest] = None


class DriverProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    license_number: str
    license_expiry: date
    license_verified: bool
    vehicle_type: VehicleType
    vehicle_make: str
    vehicle_model: str
    vehicle_year: int
    license_plate: str
    vehicle_capacity: int
    fuel_type: Optional[FuelType] = None
    max_detour_meters: int
    created_at: Optional[datetime] = None


class RiderProfileRequest(BaseModel):
    gender_preference: GenderPreference = GenderPreference.NO_PREFERENCE
    vehicle_type_preferences: list[VehicleType] = Field(default_factory=list)
    route_preferences: Optional[RoutePreferencesRequest] = None


class RiderProfileUpdateRequest(BaseModel):
    gender_preference: Optional[GenderPreference] = None
    vehicle_type_preferences: Optional[list[VehicleType]] = None
    route_preferences: Optional[RoutePreferencesRequest] = None


class RiderProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    gender_preference: GenderPreference
    vehicle_type_preferences: list[str] = Field(default_factory=list)
    favorite_drivers: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class VehicleTypeRequest(BaseModel):
    vehicle_type: VehicleType


class FavoriteDriverRequest(BaseModel):
    driver_id: uuid.UUID


class GenderPreferenceRequest(BaseModel):
    gender_preference: GenderPreference


class RideAccessResponse(BaseModel):
    can_access_ride_features: bool
