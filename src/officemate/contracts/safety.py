"""Safety request and response contracts."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from officemate.db.models import SOSStatus


class EmergencyContactRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone_number: str = Field(..., min_length=1, max_length=20)
    relation: Optional[str] = Field(None, max_length=50, description="Spouse, parent, friend...")
    is_primary: bool = False


class EmergencyContactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    phone_number: str
    relation: Optional[str] = None
    is_primary: bool
    created_at: Optional[datetime] = None


class FamilyContactRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    can_view_location: bool = True
    receive_ride_updates: bool = True


class FamilyContactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None
    can_view_location: bool
    receive_ride_updates: bool
    created_at: Optional[datetime] = None


class SOSRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    message: Optional[str] = Field(None, max_length=1000)
    ride_id: Optional[str] = Field(None, max_length=64)


class SOSResolveRequest(BaseModel):
    resolution_notes: Optional[str] = Field(None, max_length=1000)


class SOSAlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    latitude: float
    longitude: float
    message: Optional[str] = None
    status: SOSStatus
    contacts_notified: int
    location_share_id: Optional[uuid.UUID] = None
    resolution_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class LocationShareRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    ride_id: Optional[str] = Field(None, max_length=64)


class LocationUpdateRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class LocationShareResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    share_token: str
    share_url: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    ride_id: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PublicLocationResponse(BaseModel):
    """What a share-link holder may see."""

    model_config = ConfigDict(from_attributes=True)

    share_token: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    ride_id: Optional[str] = None
    is_active: bool
    updated_at: Optional[datetime] = None


class RideUpdatesRequest(BaseModel):
    enabled: bool
