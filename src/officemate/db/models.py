"""SQLAlchemy models for the relational store."""

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp used for every stored datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class AccountStatus(str, Enum):
    """Lifecycle state of a user account."""

    PENDING_EMAIL = "PENDING_EMAIL"  # Phone verified, corporate email outstanding
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class EmailChangeType(str, Enum):
    ADDITION = "ADDITION"
    UPDATE = "UPDATE"
    REMOVAL = "REMOVAL"


class EmailChangeStatus(str, Enum):
    INITIATED = "INITIATED"
    MOBILE_VERIFIED = "MOBILE_VERIFIED"
    EMAIL_VERIFIED = "EMAIL_VERIFIED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class VehicleType(str, Enum):
    CAR = "CAR"
    MOTORCYCLE = "MOTORCYCLE"
    SCOOTER = "SCOOTER"
    BICYCLE = "BICYCLE"

    @property
    def max_capacity(self) -> int:
        """Passenger seats a vehicle of this type can offer."""
        return 7 if self is VehicleType.CAR else 2


class FuelType(str, Enum):
    PETROL = "PETROL"
    DIESEL = "DIESEL"
    ELECTRIC = "ELECTRIC"
    HYBRID = "HYBRID"
    CNG = "CNG"


class GenderPreference(str, Enum):
    """Which co-riders a rider is willing to share with."""

    FEMALE_ONLY = "FEMALE_ONLY"
    MALE_SINGLE_FEMALE = "MALE_SINGLE_FEMALE"
    MALE_ALL_FEMALE = "MALE_ALL_FEMALE"
    NO_PREFERENCE = "NO_PREFERENCE"


class PaymentMethodType(str, Enum):
    CREDIT_CARD = "CREDIT_CARD"
    BANK_ACCOUNT = "BANK_ACCOUNT"
    UPI = "UPI"


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    AUTO_RELOAD = "AUTO_RELOAD"
    RIDE_PAYMENT = "RIDE_PAYMENT"
    REFUND = "REFUND"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class SOSStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RESOLVED = "RESOLVED"
    CANCELLED = "CANCELLED"


class SecuritySeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# ======================
# Accounts and sessions
# ======================


class UserAccount(Base):
    """A phone-registered account, optionally tied to a corporate email."""

    __tablename__ = "user_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    phone_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    corporate_email: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    account_status: Mapped[AccountStatus] = mapped_column(
        String(20), default=AccountStatus.PENDING_EMAIL, nullable=False
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_fully_verified(self) -> bool:
        return bool(self.phone_verified and self.email_verified)

    @property
    def is_active(self) -> bool:
        return self.account_status == AccountStatus.ACTIVE

    @property
    def is_suspended(self) -> bool:
        return self.account_status == AccountStatus.SUSPENDED

    def verify_phone(self) -> None:
        self.phone_verified = True

    def verify_email(self) -> None:
        """Mark the corporate email verified; activates a pending account."""
        self.email_verified = True
        if self.account_status == AccountStatus.PENDING_EMAIL and self.phone_verified:
            self.account_status = AccountStatus.ACTIVE

    def clear_corporate_email(self) -> None:
        """Drop the corporate email; an active account falls back to pending."""
        self.corporate_email = None
        self.email_verified = False
        if self.account_status == AccountStatus.ACTIVE:
            self.account_status = AccountStatus.PENDING_EMAIL

    def update_last_login(self) -> None:
        self.last_login_at = utcnow()

    def suspend(self) -> None:
        self.account_status = AccountStatus.SUSPENDED

    def reactivate(self) -> None:
        """Lift a suspension. Accounts without a verified email stay pending."""
        if self.is_fully_verified:
            self.account_status = AccountStatus.ACTIVE
        else:
            self.account_status = AccountStatus.PENDING_EMAIL


class SessionMetadata(Base):
    """Durable trail of sessions whose live state is kept in Redis."""

    __tablename__ = "session_metadata"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_accounts.id"), nullable=False, index=True
    )
    device_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    device_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    app_version: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    mobile_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    end_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    def end(self, reason: str) -> None:
        self.is_active = False
        self.ended_at = utcnow()
        self.end_reason = reason


class EmailVerification(Base):
    """Pending corporate email OTP."""

    __tablename__ = "email_verifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_accounts.id"), nullable=False, index=True
    )
    corporate_email: Mapped[str] = mapped_column(String(255), nullable=False)
    otp_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @classmethod
    def create(
        cls, user_id: uuid.UUID, corporate_email: str, otp_hash: str, ttl_minutes: int
    ) -> "EmailVerification":
        now = utcnow()
        return cls(
            user_id=user_id,
            corporate_email=corporate_email,
            otp_hash=otp_hash,
            attempts=0,
            verified=False,
            created_at=now,
            expires_at=now + timedelta(minutes=ttl_minutes),
        )

    def is_expired(self) -> bool:
        return utcnow() > self.expires_at

    def can_attempt(self, max_attempts: int) -> bool:
        return self.attempts < max_attempts and not self.verified and not self.is_expired()

    def mark_verified(self) -> None:
        self.verified = True
        self.verified_at = utcnow()


class EmailChangeAuditLog(Base):
    """Trail of corporate email additions, updates and removals."""

    __tablename__ = "email_change_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_accounts.id"), nullable=False, index=True
    )
    old_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    new_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    change_type: Mapped[EmailChangeType] = mapped_column(String(20), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    mobile_otp_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    email_otp_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[EmailChangeStatus] = mapped_column(
        String(20), default=EmailChangeStatus.INITIATED, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


# ======================
# Profiles
# ======================


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_accounts.id"), unique=True, nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    gender: Mapped[Optional[Gender]] = mapped_column(String(10), nullable=True)
    profile_picture_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class DriverProfile(Base):
    __tablename__ = "driver_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_accounts.id"), unique=True, nullable=False, index=True
    )
    license_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    license_expiry: Mapped[date] = mapped_column(Date, nullable=False)
    license_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    license_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    vehicle_type: Mapped[VehicleType] = mapped_column(String(20), nullable=False)
    vehicle_make: Mapped[str] = mapped_column(String(50), nullable=False)
    vehicle_model: Mapped[str] = mapped_column(String(50), nullable=False)
    vehicle_year: Mapped[int] = mapped_column(Integer, nullable=False)
    license_plate: Mapped[str] = mapped_column(String(20), nullable=False)
    vehicle_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    fuel_type: Mapped[Optional[FuelType]] = mapped_column(String(20), nullable=True)
    max_detour_meters: Mapped[int] = mapped_column(Integer, default=500)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    def verify_license(self) -> None:
        self.license_verified = True
        self.license_verified_at = utcnow()

    def reset_license_verification(self) -> None:
        self.license_verified = False
        self.license_verified_at = None


class RiderProfile(Base):
    __tablename__ = "rider_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_accounts.id"), unique=True, nullable=False, index=True
    )
    gender_preference: Mapped[GenderPreference] = mapped_column(
        String(30), default=GenderPreference.NO_PREFERENCE, nullable=False
    )
    # JSON lists are replaced, never mutated in place, so changes are tracked
    vehicle_type_preferences: Mapped[list[str]] = mapped_column(JSON, default=list)
    favorite_drivers: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


# ======================
# Wallet
# ======================


class Wallet(Base):
    __tablename__ = "wallets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_accounts.id"), unique=True, nullable=False, index=True
    )
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    currency: Mapped[str] = mapped_column(String(3), default="INR")
    auto_reload_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_reload_threshold: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    auto_reload_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    bank_account_linked: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class PaymentMethod(Base):
    """A card, bank account or UPI id; the raw identifier is stored encrypted."""

    __tablename__ = "payment_methods"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    wallet_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("wallets.id"), nullable=False, index=True)
    method_type: Mapped[PaymentMethodType] = mapped_column(String(20), nullable=False)
    identifier_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    identifier_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    masked_identifier: Mapped[str] = mapped_column(String(50), nullable=False)
    provider: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"
    __table_args__ = (Index("ix_wallet_transactions_wallet_created", "wallet_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    wallet_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("wallets.id"), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        String(20), default=TransactionStatus.PENDING, nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_method_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("payment_methods.id"), nullable=True
    )
    reference_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


# ======================
# Safety
# ======================


class EmergencyContact(Base):
    __tablename__ = "emergency_contacts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_accounts.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    relation: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class FamilySharingContact(Base):
    __tablename__ = "family_sharing_contacts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_accounts.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    can_view_location: Mapped[bool] = mapped_column(Boolean, default=True)
    receive_ride_updates: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class SOSAlert(Base):
    __tablename__ = "sos_alerts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_accounts.id"), nullable=False, index=True
    )
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[SOSStatus] = mapped_column(String(20), default=SOSStatus.ACTIVE, nullable=False)
    contacts_notified: Mapped[int] = mapped_column(Integer, default=0)
    location_share_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class LocationShare(Base):
    __tablename__ = "location_shares"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_accounts.id"), nullable=False, index=True
    )
    share_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    ride_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


# ======================
# Audit
# ======================


class AuditLog(Base):
    """Record of a state-changing service call."""

    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_user_created", "user_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class SecurityEvent(Base):
    """Authentication failures, lockouts and other security-relevant events."""

    __tablename__ = "security_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    severity: Mapped[SecuritySeverity] = mapped_column(
        String(10), default=SecuritySeverity.LOW, nullable=False
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    identifier: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


def enum_value(value: Any) -> Any:
    """Plain value of a str enum member; other values pass through."""
    return value.value if isinstance(value, Enum) else value
