"""Tests for emergency contacts, family sharing, SOS and location sharing."""

import uuid

import pytest
from sqlalchemy import select

from officemate.contracts.safety import EmergencyContactRequest, FamilyContactRequest
from officemate.db.models import SecurityEvent, SOSStatus, UserProfile
from officemate.errors import ExternalServiceError, NotFoundError, SafetyError
from officemate.notifications.sms import SmsSender
from officemate.safety import SafetyService


class FlakySmsSender(SmsSender):
    """Fails for one number, records everything else."""

    def __init__(self, failing_number: str):
        super().__init__(dry_run=True)
        self.failing_number = failing_number
        self.sent: list[str] = []

    async def send_sms(self, phone_number: str, message: str) -> str:
        if phone_number == self.failing_number:
            raise ExternalServiceError("SNS", "unreachable")
        self.sent.append(phone_number)
        return "msg-1"


def contact(name: str, phone: str, **kwargs) -> EmergencyContactRequest:
    return EmergencyContactRequest(name=name, phone_number=phone, **kwargs)


@pytest.fixture
def safety(db_session, sms_sender, email_sender):
    return SafetyService(db_session, sms_sender, email_sender)


class TestEmergencyContacts:
    @pytest.mark.asyncio
    async def test_first_contact_is_primary(self, safety, verified_account):
        first = await safety.add_emergency_contact(verified_account.id, contact("Mom", "9876500001"))
        second = await safety.add_emergency_contact(verified_account.id, contact("Dad", "+919876500002"))

        assert first.is_primary is True
        assert second.is_primary is False
        assert first.phone_number == "+919876500001"

    @pytest.mark.asyncio
    async def test_new_primary_replaces_old(self, safety, verified_account):
        first = await safety.add_emergency_contact(verified_account.id, contact("Mom", "+919876500001"))
        second = await safety.add_emergency_contact(
            verified_account.id, contact("Dad", "+919876500002", is_primary=True)
        )

        primary = await safety.get_primary_emergency_contact(verified_account.id)
        assert primary.id == second.id
        assert first.is_primary is False

    @pytest.mark.asyncio
    async def test_max_contacts(self, safety, verified_account):
        for i in range(5):
            await safety.add_emergency_contact(verified_account.id, contact(f"C{i}", f"+9198765000{i:02d}"))

        with pytest.raises(SafetyError) as exc_info:
            await safety.add_emergency_contact(verified_account.id, contact("Extra", "+919876500099"))
        assert exc_info.value.error_code == "MAX_CONTACTS_REACHED"

    @pytest.mark.asyncio
    async def test_invalid_phone(self, safety, verified_account):
        with pytest.raises(SafetyError) as exc_info:
            await safety.add_emergency_contact(verified_account.id, contact("Mom", "abc"))
        assert exc_info.value.error_code == "INVALID_PHONE_NUMBER"

    @pytest.mark.asyncio
    async def test_delete_primary_promotes_next(self, safety, verified_account):
        first = await safety.add_emergency_contact(verified_account.id, contact("Mom", "+919876500001"))
        second = await safety.add_emergency_contact(verified_account.id, contact("Dad", "+919876500002"))

        await safety.delete_emergency_contact(verified_account.id, first.id)
        primary = await safety.get_primary_emergency_contact(verified_account.id)
        assert primary.id == second.id

    @pytest.mark.asyncio
    async def test_other_users_contact_hidden(self, safety, verified_account, phone_only_account):
        mine = await safety.add_emergency_contact(verified_account.id, contact("Mom", "+919876500001"))
        with pytest.raises(NotFoundError):
            await safety.delete_emergency_contact(phone_only_account.id, mine.id)


class TestFamilyContacts:
    @pytest.mark.asyncio
    async def test_requires_phone_or_email(self, safety, verified_account):
        with pytest.raises(SafetyError) as exc_info:
            await safety.add_family_contact(verified_account.id, FamilyContactRequest(name="Sis"))
        assert exc_info.value.error_code == "INVALID_CONTACT"

    @pytest.mark.asyncio
    async def test_invalid_email(self, safety, verified_account):
        with pytest.raises(SafetyError) as exc_info:
            await safety.add_family_contact(
                verified_account.id, FamilyContactRequest(name="Sis", email="not-an-email")
            )
        assert exc_info.value.error_code == "INVALID_EMAIL"

    @pytest.mark.asyncio
    async def test_ride_updates_toggle(self, safety, verified_account):
        added = await safety.add_family_contact(
            verified_account.id, FamilyContactRequest(name="Sis", email="Sis@Example.org")
        )
        assert added.email == "sis@example.org"

        await safety.set_ride_updates(verified_account.id, added.id, False)
        assert await safety.get_family_contacts_with_ride_updates(verified_account.id) == []


class TestSOS:
    @pytest.mark.asyncio
    async def test_trigger_notifies_contacts(self, safety, sms_sender, verified_account):
        await safety.add_emergency_contact(verified_account.id, contact("Mom", "+919876500001"))
        await safety.add_emergency_contact(verified_account.id, contact("Dad", "+919876500002"))

        alert = await safety.trigger_sos_alert(verified_account.id, 12.97, 77.59, message="Help")

        assert alert.status == SOSStatus.ACTIVE
        assert alert.contacts_notified == 2
        assert alert.location_share_id is not None

        texts = [text for _, text in sms_sender.messages]
        assert len(texts) == 2
        assert "EMERGENCY" in texts[0]
        assert "Help" in texts[0]

        share = await safety.get_active_location_share(verified_account.id)
        assert share.share_token in texts[0]

    @pytest.mark.asyncio
    async def test_failed_contact_does_not_stop_others(self, db_session, email_sender, verified_account):
        safety = SafetyService(db_session, FlakySmsSender("+919876500001"), email_sender)
        await safety.add_emergency_contact(verified_account.id, contact("Mom", "+919876500001"))
        await safety.add_emergency_contact(verified_account.id, contact("Dad", "+919876500002"))

        alert = await safety.trigger_sos_alert(verified_account.id, 12.97, 77.59)
        assert alert.contacts_notified == 1
        assert safety.sms.sent == ["+919876500002"]

    @pytest.mark.asyncio
    async def test_one_active_alert(self, safety, verified_account):
        await safety.trigger_sos_alert(verified_account.id, 12.97, 77.59)
        with pytest.raises(SafetyError) as exc_info:
            await safety.trigger_sos_alert(verified_account.id, 12.97, 77.59)
        assert exc_info.value.error_code == "SOS_ALREADY_ACTIVE"

    @pytest.mark.asyncio
    async def test_invalid_coordinates(self, safety, verified_account):
        with pytest.raises(SafetyError) as exc_info:
            await safety.trigger_sos_alert(verified_account.id, 91.0, 0.0)
        assert exc_info.value.error_code == "INVALID_LOCATION"

    @pytest.mark.asyncio
    async def test_resolve_ends_location_share(self, db_session, safety, verified_account):
        alert = await safety.trigger_sos_alert(verified_account.id, 12.97, 77.59)
        resolved = await safety.resolve_sos_alert(verified_account.id, alert.id, "Safe now")

        assert resolved.status == SOSStatus.RESOLVED
        assert resolved.resolved_at is not None
        assert await safety.get_active_location_share(verified_account.id) is None

        with pytest.raises(SafetyError) as exc_info:
            await safety.cancel_sos_alert(verified_account.id, alert.id)
        assert exc_info.value.error_code == "SOS_NOT_ACTIVE"

        # A new alert is allowed once the previous one is closed
        await safety.trigger_sos_alert(verified_account.id, 12.97, 77.59)

    @pytest.mark.asyncio
    async def test_security_event_logged(self, db_session, safety, verified_account):
        await safety.trigger_sos_alert(verified_account.id, 12.97, 77.59)
        await db_session.flush()

        events = (await db_session.execute(select(SecurityEvent))).scalars().all()
        assert [e.event_type for e in events] == ["SOS_TRIGGERED"]


class TestLocationSharing:
    @pytest.mark.asyncio
    async def test_start_notifies_family(self, safety, sms_sender, email_sender, verified_account):
        await safety.add_family_contact(
            verified_account.id, FamilyContactRequest(name="Sis", phone_number="+919876500003")
        )
        await safety.add_family_contact(
            verified_account.id, FamilyContactRequest(name="Bro", email="bro@example.org")
        )
        await safety.add_family_contact(
            verified_account.id,
            FamilyContactRequest(name="Aunt", phone_number="+919876500004", receive_ride_updates=False),
        )

        share = await safety.start_location_sharing(verified_account.id, 12.97, 77.59, ride_id="ride-1")

        assert [number for number, _ in sms_sender.messages] == ["+919876500003"]
        assert [address for address, _ in email_sender.messages] == ["bro@example.org"]
        assert safety.share_link(share.share_token).endswith(share.share_token)

    @pytest.mark.asyncio
    async def test_email_escapes_user_name(self, db_session, safety, email_sender, verified_account):
        db_session.add(
            UserProfile(user_id=verified_account.id, first_name="<script>alert(1)</script>", last_name="X")
        )
        await db_session.flush()
        await safety.add_family_contact(
            verified_account.id, FamilyContactRequest(name="Bro", email="bro@example.org")
        )

        await safety.start_location_sharing(verified_account.id, 12.97, 77.59)

        [body] = email_sender.bodies
        assert "<script>" not in body
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in body
        assert body.startswith("<html><body><p>")

    @pytest.mark.asyncio
    async def test_restart_reuses_active_share(self, safety, verified_account):
        first = await safety.start_location_sharing(verified_account.id, 12.97, 77.59)
        second = await safety.start_location_sharing(verified_account.id, 13.0, 77.6)

        assert first.id == second.id
        assert second.latitude == 13.0

    @pytest.mark.asyncio
    async def test_public_lookup_only_while_active(self, safety, verified_account):
        share = await safety.start_location_sharing(verified_account.id, 12.97, 77.59)
        found = await safety.get_location_share_by_token(share.share_token)
        assert found.id == share.id

        await safety.end_location_sharing(verified_account.id, share.id)
        with pytest.raises(NotFoundError):
            await safety.get_location_share_by_token(share.share_token)

        with pytest.raises(SafetyError) as exc_info:
            await safety.update_shared_location(verified_account.id, share.id, 1.0, 1.0)
        assert exc_info.value.error_code == "SHARE_NOT_ACTIVE"

    @pytest.mark.asyncio
    async def test_unknown_share(self, safety, verified_account):
        with pytest.raises(NotFoundError):
            await safety.end_location_sharing(verified_account.id, uuid.uuid4())
