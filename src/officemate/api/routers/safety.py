"""Safety endpoints: emergency and family contacts, SOS, live location sharing."""

import uuid

from fastapi import APIRouter, Depends

from officemate.api.dependencies import CurrentUser, require_full_verification
from officemate.contracts.auth import MessageResponse
from officemate.contracts.safety import (
    EmergencyContactRequest,
    EmergencyContactResponse,
    FamilyContactRequest,
    FamilyContactResponse,
    LocationShareRequest,
    LocationShareResponse,
    LocationUpdateRequest,
    PublicLocationResponse,
    RideUpdatesRequest,
    SOSAlertResponse,
    SOSRequest,
    SOSResolveRequest,
)
from officemate.db.database import get_db
from officemate.db.models import LocationShare
from officemate.safety import SafetyService

router = APIRouter(prefix="/safety", tags=["safety"])


def _share_response(service: SafetyService, share: LocationShare) -> LocationShareResponse:
    response = LocationShareResponse.model_validate(share)
    response.share_url = service.share_link(share.share_token)
    return response


# Emergency contacts
@router.get("/emergency-contacts", response_model=list[EmergencyContactResponse])
async def list_emergency_contacts(
    user: CurrentUser = Depends(require_full_verification),
) -> list[EmergencyContactResponse]:
    async with get_db() as session:
        contacts = await SafetyService(session).get_emergency_contacts(user.user_id)
        return [EmergencyContactResponse.model_validate(c) for c in contacts]


@router.post("/emergency-contacts", response_model=EmergencyContactResponse, status_code=201)
async def add_emergency_contact(
    request: EmergencyContactRequest, user: CurrentUser = Depends(require_full_verification)
) -> EmergencyContactResponse:
    async with get_db() as session:
        contact = await SafetyService(session).add_emergency_contact(user.user_id, request)
        return EmergencyContactResponse.model_validate(contact)


@router.put("/emergency-contacts/{contact_id}", response_model=EmergencyContactResponse)
async def update_emergency_contact(
    contact_id: uuid.UUID,
    request: EmergencyContactRequest,
    user: CurrentUser = Depends(require_full_verification),
) -> EmergencyContactResponse:
    async with get_db() as session:
        contact = await SafetyService(session).update_emergency_contact(user.user_id, contact_id, request)
        return EmergencyContactResponse.model_validate(contact)


@router.post("/emergency-contacts/{contact_id}/primary", response_model=EmergencyContactResponse)
async def set_primary_emergency_contact(
    contact_id: uuid.UUID, user: CurrentUser = Depends(require_full_verification)
) -> EmergencyContactResponse:
    async with get_db() as session:
        contact = await SafetyService(session).set_primary_emergency_contact(user.user_id, contact_id)
        return EmergencyContactResponse.model_validate(contact)


@router.delete("/emergency-contacts/{contact_id}", response_model=MessageResponse)
async def delete_emergency_contact(
    contact_id: uuid.UUID, user: CurrentUser = Depends(require_full_verification)
) -> MessageResponse:
    async with get_db() as session:
        await SafetyService(session).delete_emergency_contact(user.user_id, contact_id)
    return MessageResponse(message="Emergency contact deleted")


# Family contacts
@router.get("/family-contacts", response_model=list[FamilyContactResponse])
async def list_family_contacts(
    user: CurrentUser = Depends(require_full_verification),
) -> list[FamilyContactResponse]:
    async with get_db() as session:
        contacts = await SafetyService(session).get_family_contacts(user.user_id)
        return [FamilyContactResponse.model_validate(c) for c in contacts]


@router.post("/family-contacts", response_model=FamilyContactResponse, status_code=201)
async def add_family_contact(
    request: FamilyContactRequest, user: CurrentUser = Depends(require_full_verification)
) -> FamilyContactResponse:
    async with get_db() as session:
        contact = await SafetyService(session).add_family_contact(user.user_id, request)
        return FamilyContactResponse.model_validate(contact)


@router.put("/family-contacts/{contact_id}", response_model=FamilyContactResponse)
async def update_family_contact(
    contact_id: uuid.UUID,
    request: FamilyContactRequest,
    user: CurrentUser = Depends(require_full_verification),
) -> FamilyContactResponse:
    async with get_db() as session:
        contact = await SafetyService(session).update_family_contact(user.user_id, contact_id, request)
        return FamilyContactResponse.model_validate(contact)


@router.put("/family-contacts/{contact_id}/ride-updates", response_model=FamilyContactResponse)
async def set_ride_updates(
    contact_id: uuid.UUID,
    request: RideUpdatesRequest,
    user: CurrentUser = Depends(require_full_verification),
) -> FamilyContactResponse:
    async with get_db() as session:
        contact = await SafetyService(session).set_ride_updates(user.user_id, contact_id, request.enabled)
        return FamilyContactResponse.model_validate(contact)


@router.delete("/family-contacts/{contact_id}", response_model=MessageResponse)
async def delete_family_contact(
    contact_id: uuid.UUID, user: CurrentUser = Depends(require_full_verification)
) -> MessageResponse:
    async with get_db() as session:
        await SafetyService(session).delete_family_contact(user.user_id, contact_id)
    return MessageResponse(message="Family contact deleted")


# SOS
@router.post("/sos", response_model=SOSAlertResponse, status_code=201)
async def trigger_sos(request: SOSRequest, user: CurrentUser = Depends(require_full_verification)) -> SOSAlertResponse:
    """Raise an SOS: shares the location and texts every emergency contact."""
    async with get_db() as session:
        alert = await SafetyService(session).trigger_sos_alert(
            user.user_id, request.latitude, request.longitude, request.message, request.ride_id
        )
        return SOSAlertResponse.model_validate(alert)


@router.get("/sos", response_model=list[SOSAlertResponse])
async def list_sos_alerts(user: CurrentUser = Depends(require_full_verification)) -> list[SOSAlertResponse]:
    async with get_db() as session:
        alerts = await SafetyService(session).get_sos_alerts(user.user_id)
        return [SOSAlertResponse.model_validate(a) for a in alerts]


@router.post("/sos/{alert_id}/resolve", response_model=SOSAlertResponse)
async def resolve_sos(
    alert_id: uuid.UUID,
    request: SOSResolveRequest,
    user: CurrentUser = Depends(require_full_verification),
) -> SOSAlertResponse:
    async with get_db() as session:
        alert = await SafetyService(session).resolve_sos_alert(user.user_id, alert_id, request.resolution_notes)
        return SOSAlertResponse.model_validate(alert)


@router.post("/sos/{alert_id}/cancel", response_model=SOSAlertResponse)
async def cancel_sos(
    alert_id: uuid.UUID, user: CurrentUser = Depends(require_full_verification)
) -> SOSAlertResponse:
    async with get_db() as session:
        alert = await SafetyService(session).cancel_sos_alert(user.user_id, alert_id)
        return SOSAlertResponse.model_validate(alert)


# Location sharing
@router.post("/location-shares", response_model=LocationShareResponse, status_code=201)
async def start_location_sharing(
    request: LocationShareRequest, user: CurrentUser = Depends(require_full_verification)
) -> LocationShareResponse:
    async with get_db() as session:
        service = SafetyService(session)
        share = await service.start_location_sharing(
            user.user_id, request.latitude, request.longitude, request.ride_id
        )
        return _share_response(service, share)


@router.put("/location-shares/{share_id}", response_model=LocationShareResponse)
async def update_shared_location(
    share_id: uuid.UUID,
    request: LocationUpdateRequest,
    user: CurrentUser = Depends(require_full_verification),
) -> LocationShareResponse:
    async with get_db() as session:
        service = SafetyService(session)
        share = await service.update_shared_location(user.user_id, share_id, request.latitude, request.longitude)
        return _share_response(service, share)


@router.delete("/location-shares/{share_id}", response_model=LocationShareResponse)
async def end_location_sharing(
    share_id: uuid.UUID, user: CurrentUser = Depends(require_full_verification)
) -> LocationShareResponse:
    async with get_db() as session:
        service = SafetyService(session)
        share = await service.end_location_sharing(user.user_id, share_id)
        return _share_response(service, share)


@router.get("/location/{share_token}", response_model=PublicLocationResponse)
async def view_shared_location(share_token: str) -> PublicLocationResponse:
    """Public view behind a share link; no authentication."""
    async with get_db() as session:
        share = await SafetyService(session).get_location_share_by_token(share_token)
        return PublicLocationResponse.model_validate(share)
