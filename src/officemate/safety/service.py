"""Rider safety: emergency contacts, family sharing, SOS and live location.

An SOS alert texts every emergency contact and starts a location share
whose public link is included in the message. A user has at most one
ACTIVE alert at a time.
"""

import html
import logging
import uuid
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from officemate.audit import AuditService, audited
from officemate.config import get_settings
from officemate.contracts.safety import EmergencyContactRequest, FamilyContactRequest
from officemate.db.models import (
    EmergencyContact,
    FamilySharingContact,
    LocationShare,
    SecuritySeverity,
    SOSAlert,
    SOSStatus,
    UserAccount,
    UserProfile,
    utcnow,
)
from officemate.errors import ExternalServiceError, NotFoundError, SafetyError, ValidationError
from officemate.notifications.email import EmailSender, get_email_sender
from officemate.notifications.sms import SmsSender, get_sms_sender
from officemate.validation import (
    is_valid_contact_phone,
    is_valid_email,
    mask_phone_number,
    normalize_phone_number,
)

logger = logging.getLogger(__name__)


def _contact_phone(raw: Optional[str]) -> str:
    if not raw or not raw.strip():
        raise SafetyError("Contact phone number is required", "INVALID_PHONE_NUMBER")
    if not is_valid_contact_phone(raw):
        raise SafetyError("Invalid phone number format", "INVALID_PHONE_NUMBER")
    try:
        return normalize_phone_number(raw)
    except ValidationError:
        raise SafetyError("Invalid phone number format", "INVALID_PHONE_NUMBER")


def _validate_coordinates(latitude: Optional[float], longitude: Optional[float]) -> None:
    if latitude is None or longitude is None:
        raise SafetyError("Location coordinates are required", "LOCATION_REQUIRED")
    if not -90 <= latitude <= 90:
        raise SafetyError("Invalid latitude value", "INVALID_LOCATION")
    if not -180 <= longitude <= 180:
        raise SafetyError("Invalid longitude value", "INVALID_LOCATION")


class SafetyService:
    """Contacts, SOS alerts and location sharing for one unit of work."""

    def __init__(
        self,
        session: AsyncSession,
        sms_sender: Optional[SmsSender] = None,
        email_sender: Optional[EmailSender] = None,
    ):
        settings = get_settings()
        self.session = session
        self.audit = AuditService(session)
        self.sms = sms_sender or get_sms_sender()
        self.email = email_sender or get_email_sender()
        self.share_base_url = settings.location_share_base_url.rstrip("/")
        self.max_emergency_contacts = settings.max_emergency_contacts
        self.max_family_contacts = settings.max_family_contacts

    async def _display_name(self, user_id: uuid.UUID) -> str:
        result = await self.session.execute(select(UserProfile).where(UserProfile.user_id == user_id))
        profile = result.scalar_one_or_none()
        if profile is not None:
            return profile.full_name
        account = await self.session.get(UserAccount, user_id)
        return mask_phone_number(account.phone_number) if account else "An OfficeMate user"

    def share_link(self, share_token: str) -> str:
        return f"{self.share_base_url}/{share_token}"

    # ======================
    # Emergency contacts
    # ======================

    async def get_emergency_contacts(self, user_id: uuid.UUID) -> list[EmergencyContact]:
        stmt = (
            select(EmergencyContact)
            .where(EmergencyContact.user_id == user_id)
            .order_by(EmergencyContact.is_primary.desc(), EmergencyContact.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _get_emergency_contact(self, user_id: uuid.UUID, contact_id: uuid.UUID) -> EmergencyContact:
        contact = await self.session.get(EmergencyContact, contact_id)
        if contact is None or contact.user_id != user_id:
            raise NotFoundError(f"Emergency contact not found: {contact_id}", "CONTACT_NOT_FOUND")
        return contact

    async def _unmark_primary_contacts(self, user_id: uuid.UUID) -> None:
        await self.session.execute(
            update(EmergencyContact)
            .where(EmergencyContact.user_id == user_id, EmergencyContact.is_primary.is_(True))
            .values(is_primary=False)
        )

    @audited("CREATE", "EmergencyContact")
    async def add_emergency_contact(
        self, user_id: uuid.UUID, request: EmergencyContactRequest
    ) -> EmergencyContact:
        """Add an emergency contact. The first contact becomes primary."""
        count = await self.session.scalar(
            select(func.count()).select_from(EmergencyContact).where(EmergencyContact.user_id == user_id)
        )
        if count >= self.max_emergency_contacts:
            raise SafetyError(
                f"Maximum number of emergency contacts ({self.max_emergency_contacts}) reached",
                "MAX_CONTACTS_REACHED",
            )

        name = (request.name or "").strip()
        if not name:
            raise SafetyError("Emergency contact name is required", "INVALID_CONTACT")
        phone = _contact_phone(request.phone_number)

        is_primary = request.is_primary or count == 0
        if is_primary:
            await self._unmark_primary_contacts(user_id)

        contact = EmergencyContact(
            user_id=user_id,
            name=name,
            phone_number=phone,
            relation=request.relation,
            is_primary=is_primary,
        )
        self.session.add(contact)
        await self.session.flush()
        logger.info(f"Added emergency contact {contact.id} for user {user_id}")
        return contact

    async def update_emergency_contact(
        self, user_id: uuid.UUID, contact_id: uuid.UUID, request: EmergencyContactRequest
    ) -> EmergencyContact:
        contact = await self._get_emergency_contact(user_id, contact_id)
        name = (request.name or "").strip()
        if not name:
            raise SafetyError("Emergency contact name is required", "INVALID_CONTACT")
        contact.name = name
        contact.phone_number = _contact_phone(request.phone_number)
        contact.relation = request.relation
        if request.is_primary and not contact.is_primary:
            await self._unmark_primary_contacts(user_id)
            contact.is_primary = True
        self.audit.log_entity_update("EmergencyContact", contact.id, user_id)
        await self.session.flush()
        return contact

    async def get_primary_emergency_contact(self, user_id: uuid.UUID) -> Optional[EmergencyContact]:
        contacts = await self.get_emergency_contacts(user_id)
        return next((c for c in contacts if c.is_primary), None)

    async def set_primary_emergency_contact(self, user_id: uuid.UUID, contact_id: uuid.UUID) -> EmergencyContact:
        contact = await self._get_emergency_contact(user_id, contact_id)
        await self._unmark_primary_contacts(user_id)
        contact.is_primary = True
        await self.session.flush()
        return contact

    async def delete_emergency_contact(self, user_id: uuid.UUID, contact_id: uuid.UUID) -> None:
        """Delete a contact; when it was primary the oldest remaining one takes over."""
        contact = await self._get_emergency_contact(user_id, contact_id)
        was_primary = contact.is_primary
        await self.session.delete(contact)
        self.audit.log_entity_deletion("EmergencyContact", contact_id, user_id)
        await self.session.flush()

        if was_primary:
            remaining = await self.get_emergency_contacts(user_id)
            if remaining:
                remaining[0].is_primary = True
                await self.session.flush()

    async def delete_all_emergency_contacts(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(delete(EmergencyContact).where(EmergencyContact.user_id == user_id))
        return result.rowcount or 0

    # ======================
    # Family sharing contacts
    # ======================

    async def get_family_contacts(self, user_id: uuid.UUID) -> list[FamilySharingContact]:
        stmt = (
            select(FamilySharingContact)
            .where(FamilySharingContact.user_id == user_id)
            .order_by(FamilySharingContact.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_family_contacts_with_ride_updates(self, user_id: uuid.UUID) -> list[FamilySharingContact]:
        return [c for c in await self.get_family_contacts(user_id) if c.receive_ride_updates]

    async def _get_family_contact(self, user_id: uuid.UUID, contact_id: uuid.UUID) -> FamilySharingContact:
        contact = await self.session.get(FamilySharingContact, contact_id)
        if contact is None or contact.user_id != user_id:
            raise NotFoundError(f"Family sharing contact not found: {contact_id}", "CONTACT_NOT_FOUND")
        return contact

    @staticmethod
    def _family_fields(request: FamilyContactRequest) -> dict:
        name = (request.name or "").strip()
        if not name:
            raise SafetyError("Family contact name is required", "INVALID_CONTACT")

        phone = request.phone_number.strip() if request.phone_number else None
        email = request.email.strip().lower() if request.email else None
        if not phone and not email:
            raise SafetyError(
                "At least one contact method (phone number or email) is required", "INVALID_CONTACT"
            )
        if email and not is_valid_email(email):
            raise SafetyError("Invalid email format", "INVALID_EMAIL")

        return {
            "name": name,
            "phone_number": _contact_phone(phone) if phone else None,
            "email": email,
            "can_view_location": request.can_view_location,
            "receive_ride_updates": request.receive_ride_updates,
        }

    @audited("CREATE", "FamilySharingContact")
    async def add_family_contact(self, user_id: uuid.UUID, request: FamilyContactRequest) -> FamilySharingContact:
        count = await self.session.scalar(
            select(func.count()).select_from(FamilySharingContact).where(FamilySharingContact.user_id == user_id)
        )
        if count >= self.max_family_contacts:
            raise SafetyError(
                f"Maximum number of family sharing contacts ({self.max_family_contacts}) reached",
                "MAX_CONTACTS_REACHED",
            )

        contact = FamilySharingContact(user_id=user_id, **self._family_fields(request))
        self.session.add(contact)
        await self.session.flush()
        logger.info(f"Added family sharing contact {contact.id} for user {user_id}")
        return contact

    async def update_family_contact(
        self, user_id: uuid.UUID, contact_id: uuid.UUID, request: FamilyContactRequest
    ) -> FamilySharingContact:
        contact = await self._get_family_contact(user_id, contact_id)
        for key, value in self._family_fields(request).items():
            setattr(contact, key, value)
        self.audit.log_entity_update("FamilySharingContact", contact.id, user_id)
        await self.session.flush()
        return contact

    async def set_ride_updates(
        self, user_id: uuid.UUID, contact_id: uuid.UUID, enabled: bool
    ) -> FamilySharingContact:
        contact = await self._get_family_contact(user_id, contact_id)
        contact.receive_ride_updates = enabled
        await self.session.flush()
        return contact

    async def delete_family_contact(self, user_id: uuid.UUID, contact_id: uuid.UUID) -> None:
        contact = await self._get_family_contact(user_id, contact_id)
        await self.session.delete(contact)
        self.audit.log_entity_deletion("FamilySharingContact", contact_id, user_id)
        await self.session.flush()

    async def delete_all_family_contacts(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(
            delete(FamilySharingContact).where(FamilySharingContact.user_id == user_id)
        )
        return result.rowcount or 0

    # ======================
    # SOS
    # ======================

    async def get_active_sos_alert(self, user_id: uuid.UUID) -> Optional[SOSAlert]:
        stmt = (
            select(SOSAlert)
            .where(SOSAlert.user_id == user_id, SOSAlert.status == SOSStatus.ACTIVE.value)
            .order_by(SOSAlert.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_sos_alerts(self, user_id: uuid.UUID) -> list[SOSAlert]:
        stmt = select(SOSAlert).where(SOSAlert.user_id == user_id).order_by(SOSAlert.created_at.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _get_sos_alert(self, user_id: uuid.UUID, alert_id: uuid.UUID) -> SOSAlert:
        alert = await self.session.get(SOSAlert, alert_id)
        if alert is None or alert.user_id != user_id:
            raise NotFoundError(f"SOS alert not found: {alert_id}", "SOS_NOT_FOUND")
        return alert

    async def trigger_sos_alert(
        self,
        user_id: uuid.UUID,
        latitude: float,
        longitude: float,
        message: Optional[str] = None,
        ride_id: Optional[str] = None,
    ) -> SOSAlert:
        """Raise an SOS alert, share the location and text emergency contacts.

        Raises:
            SafetyError: Bad coordinates or an alert is already active
        """
        _validate_coordinates(latitude, longitude)
        if await self.get_active_sos_alert(user_id) is not None:
            raise SafetyError("An active SOS alert already exists for this user", "SOS_ALREADY_ACTIVE")

        logger.warning(f"SOS alert triggered by user {user_id}")
        share = await self.start_location_sharing(
            user_id, latitude, longitude, ride_id=ride_id, notify_family=False
        )

        alert = SOSAlert(
            user_id=user_id,
            latitude=latitude,
            longitude=longitude,
            message=message,
            status=SOSStatus.ACTIVE,
            contacts_notified=0,
            location_share_id=share.id,
        )
        self.session.add(alert)
        await self.session.flush()

        name = await self._display_name(user_id)
        text = (
            f"EMERGENCY: {name} triggered an SOS alert on OfficeMate. "
            f"Live location: {self.share_link(share.share_token)}"
        )
        if message:
            text += f" Message: {message}"

        notified = 0
        for contact in await self.get_emergency_contacts(user_id):
            if await self._try_sms(contact.phone_number, text):
                notified += 1
        alert.contacts_notified = notified

        self.audit.log_security_event(
            "SOS_TRIGGERED",
            SecuritySeverity.CRITICAL,
            user_id=user_id,
            details={"alert_id": str(alert.id), "contacts_notified": notified},
        )
        self.audit.log_entity_creation("SOSAlert", alert.id, user_id)
        await self.session.flush()
        logger.warning(f"SOS alert {alert.id} for user {user_id}: {notified} contacts notified")
        return alert

    async def _try_sms(self, phone_number: str, text: str) -> bool:
        # One unreachable contact must not stop the others from being alerted
        try:
            await self.sms.send_sms(phone_number, text)
            return True
        except ExternalServiceError as e:
            logger.error(f"Could not notify {mask_phone_number(phone_number)}: {e.message}")
            return False

    async def resolve_sos_alert(
        self, user_id: uuid.UUID, alert_id: uuid.UUID, resolution_notes: Optional[str] = None
    ) -> SOSAlert:
        return await self._close_alert(user_id, alert_id, SOSStatus.RESOLVED, resolution_notes)

    async def cancel_sos_alert(self, user_id: uuid.UUID, alert_id: uuid.UUID) -> SOSAlert:
        return await self._close_alert(user_id, alert_id, SOSStatus.CANCELLED, "Cancelled by user")

    async def _close_alert(
        self, user_id: uuid.UUID, alert_id: uuid.UUID, status: SOSStatus, notes: Optional[str]
    ) -> SOSAlert:
        alert = await self._get_sos_alert(user_id, alert_id)
        if alert.status != SOSStatus.ACTIVE:
            raise SafetyError("SOS alert is not active", "SOS_NOT_ACTIVE")

        alert.status = status
        alert.resolution_notes = notes
        alert.resolved_at = utcnow()
        if alert.location_share_id is not None:
            share = await self.session.get(LocationShare, alert.location_share_id)
            if share is not None and share.is_active:
                share.is_active = False
                share.ended_at = utcnow()

        self.audit.log_entity_update("SOSAlert", alert.id, user_id, status=status.value)
        await self.session.flush()
        logger.info(f"SOS alert {alert_id} for user {user_id} is now {status.value}")
        return alert

    # ======================
    # Location sharing
    # ======================

    async def get_active_location_share(self, user_id: uuid.UUID) -> Optional[LocationShare]:
        stmt = (
            select(LocationShare)
            .where(LocationShare.user_id == user_id, LocationShare.is_active.is_(True))
            .order_by(LocationShare.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def start_location_sharing(
        self,
        user_id: uuid.UUID,
        latitude: float,
        longitude: float,
        ride_id: Optional[str] = None,
        notify_family: bool = True,
    ) -> LocationShare:
        """Start (or refresh) the user's live location share.

        A new share notifies family contacts that receive ride updates.
        """
        _validate_coordinates(latitude, longitude)

        share = await self.get_active_location_share(user_id)
        if share is not None:
            share.latitude = latitude
            share.longitude = longitude
            if ride_id:
                share.ride_id = ride_id
            await self.session.flush()
            return share

        share = LocationShare(
            user_id=user_id,
            share_token=uuid.uuid4().hex,
            latitude=latitude,
            longitude=longitude,
            ride_id=ride_id,
            is_active=True,
        )
        self.session.add(share)
        await self.session.flush()
        logger.info(f"Location sharing started for user {user_id} ({share.id})")

        if notify_family:
            await self._notify_family(user_id, share)
        return share

    async def _notify_family(self, user_id: uuid.UUID, share: LocationShare) -> int:
        name = await self._display_name(user_id)
        link = self.share_link(share.share_token)
        text = f"{name} is sharing their live location with you on OfficeMate: {link}"

        notified = 0
        for contact in await self.get_family_contacts_with_ride_updates(user_id):
            if not contact.can_view_location:
                continue
            if contact.phone_number:
                if await self._try_sms(contact.phone_number, text):
                    notified += 1
            elif contact.email:
                try:
                    await self.email.send_email(
                        contact.email,
                        f"{name} is sharing their location",
                        f"<html><body><p>{html.escape(text)}</p></body></html>",
                    )
                    notified += 1
                except ExternalServiceError as e:
                    logger.error(f"Could not email family contact {contact.id}: {e.message}")
        logger.info(f"Notified {notified} family contacts of location share {share.id}")
        return notified

    async def update_shared_location(
        self, user_id: uuid.UUID, share_id: uuid.UUID, latitude: float, longitude: float
    ) -> LocationShare:
        _validate_coordinates(latitude, longitude)
        share = await self._get_share(user_id, share_id)
        if not share.is_active:
            raise SafetyError("Location share is not active", "SHARE_NOT_ACTIVE")
        share.latitude = latitude
        share.longitude = longitude
        share.updated_at = utcnow()
        await self.session.flush()
        return share

    async def _get_share(self, user_id: uuid.UUID, share_id: uuid.UUID) -> LocationShare:
        share = await self.session.get(LocationShare, share_id)
        if share is None or share.user_id != user_id:
            raise NotFoundError(f"Location share not found: {share_id}", "SHARE_NOT_FOUND")
        return share

    async def get_location_share_by_token(self, share_token: str) -> LocationShare:
        """Public lookup behind a share link; only active shares are visible."""
        stmt = select(LocationShare).where(
            LocationShare.share_token == share_token, LocationShare.is_active.is_(True)
        )
        result = await self.session.execute(stmt)
        share = result.scalar_one_or_none()
        if share is None:
            raise NotFoundError("Location share not found or expired", "SHARE_NOT_FOUND")
        return share

    async def end_location_sharing(self, user_id: uuid.UUID, share_id: uuid.UUID) -> LocationShare:
        share = await self._get_share(user_id, share_id)
        if not share.is_active:
            raise SafetyError("Location share is not active", "SHARE_NOT_ACTIVE")
        share.is_active = False
        share.ended_at = utcnow()
        await self.session.flush()
        logger.info(f"Location sharing {share_id} ended for user {user_id}")
        return share

    async def end_all_location_sharing(self, user_id: uuid.UUID) -> int:
        stmt = select(LocationShare).where(LocationShare.user_id == user_id, LocationShare.is_active.is_(True))
        result = await self.session.execute(stmt)
        ended = 0
        now = utcnow()
        for share in result.scalars().all():
            share.is_active = False
            share.ended_at = now
            ended += 1
        await self.session.flush()
        return ended
