"""Relational persistence: accounts, profiles, wallet, safety and audit records."""

from officemate.db.database import close_db, get_db, get_engine, init_db
from officemate.db.models import (
    AccountStatus,
    AuditLog,
    Base,
    DriverProfile,
    EmailVerification,
    RiderProfile,
    SecurityEvent,
    SessionMetadata,
    UserAccount,
    UserProfile,
    Wallet,
)

__all__ = [
    # Models
    "Base",
    "UserAccount",
    "SessionMetadata",
    "EmailVerification",
    "UserProfile",
    "DriverProfile",
    "RiderProfile",
    "Wallet",
    "AuditLog",
    "SecurityEvent",
    # Enums
    "AccountStatus",
    # Database
    "get_db",
    "get_engine",
    "init_db",
    "close_db",
]
