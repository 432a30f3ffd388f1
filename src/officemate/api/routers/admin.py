"""Admin API endpoints (token-protected)."""

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy import func, select

from officemate.api.dependencies import get_store, require_admin_token
from officemate.audit import AuditService
from officemate.auth.rate_limit import RateLimiter
from officemate.auth.sessions import SessionManager
from officemate.cache.redis_client import RedisStore
from officemate.config import get_settings
from officemate.db.database import get_db
from officemate.db.models import (
    AccountStatus,
    SecuritySeverity,
    SOSAlert,
    SOSStatus,
    UserAccount,
    Wallet,
    enum_value,
)
from officemate.profile import DriverProfileService
from officemate.validation import mask_phone_number

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class AccountSummary(BaseModel):
    """Account state as seen by support staff."""

    user_id: uuid.UUID
    phone_number: str
    corporate_email: Optional[str] = None
    mobile_verified: bool
    email_verified: bool
    account_status: str
    locked: bool
    active_sessions: int


class SuspendRequest(BaseModel):
    reason: str


class SecurityEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_type: str
    severity: SecuritySeverity
    user_id: Optional[uuid.UUID] = None
    identifier: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_at: datetime


class SystemStats(BaseModel):
    """System statistics."""

    accounts: int
    active_accounts: int
    suspended_accounts: int
    wallets: int
    active_sos_alerts: int
    notifications_dry_run: bool


async def _account_or_404(session, user_id: uuid.UUID) -> UserAccount:
    account = await session.get(UserAccount, user_id)
    if account is None:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return account


async def _summary(account: UserAccount, store: RedisStore, session) -> AccountSummary:
    return AccountSummary(
        user_id=account.id,
        phone_number=mask_phone_number(account.phone_number),
        corporate_email=account.corporate_email,
        mobile_verified=bool(account.phone_verified),
        email_verified=bool(account.email_verified),
        account_status=enum_value(account.account_status),
        locked=await RateLimiter(store).is_account_locked(account.phone_number),
        active_sessions=await SessionManager(store, session).get_active_session_count(str(account.id)),
    )


@router.get("/stats", response_model=SystemStats)
async def get_stats(_: bool = Depends(require_admin_token)) -> SystemStats:
    """Get system statistics."""
    async with get_db() as session:
        accounts = await session.scalar(select(func.count(UserAccount.id)))
        active = await session.scalar(
            select(func.count(UserAccount.id)).where(UserAccount.account_status == AccountStatus.ACTIVE.value)
        )
        suspended = await session.scalar(
            select(func.count(UserAccount.id)).where(
                UserAccount.account_status == AccountStatus.SUSPENDED.value
            )
        )
        wallets = await session.scalar(select(func.count(Wallet.id)))
        sos = await session.scalar(
            select(func.count(SOSAlert.id)).where(SOSAlert.status == SOSStatus.ACTIVE.value)
        )

    return SystemStats(
        accounts=accounts or 0,
        active_accounts=active or 0,
        suspended_accounts=suspended or 0,
        wallets=wallets or 0,
        active_sos_alerts=sos or 0,
        notifications_dry_run=get_settings().notifications_dry_run,
    )


@router.get("/accounts/{user_id}", response_model=AccountSummary)
async def get_account(
    user_id: uuid.UUID,
    _: bool = Depends(require_admin_token),
    store: RedisStore = Depends(get_store),
) -> AccountSummary:
    async with get_db() as session:
        account = await _account_or_404(session, user_id)
        return await _summary(account, store, session)


@router.post("/accounts/{user_id}/suspend", response_model=AccountSummary)
async def suspend_account(
    user_id: uuid.UUID,
    request: SuspendRequest,
    _: bool = Depends(require_admin_token),
    store: RedisStore = Depends(get_store),
) -> AccountSummary:
    """Suspend an account and end all of its sessions."""
    async with get_db() as session:
        account = await _account_or_404(session, user_id)
        account.suspend()
        await SessionManager(store, session).revoke_all_sessions(str(user_id), "ACCOUNT_SUSPENDED")
        AuditService(session).log_security_event(
            "ACCOUNT_SUSPENDED",
            SecuritySeverity.HIGH,
            user_id=user_id,
            identifier=mask_phone_number(account.phone_number),
            details={"reason": request.reason},
        )
        await session.flush()
        logger.warning(f"Account {user_id} suspended: {request.reason}")
        return await _summary(account, store, session)


@router.post("/accounts/{user_id}/reactivate", response_model=AccountSummary)
async def reactivate_account(
    user_id: uuid.UUID,
    _: bool = Depends(require_admin_token),
    store: RedisStore = Depends(get_store),
) -> AccountSummary:
    async with get_db() as session:
        account = await _account_or_404(session, user_id)
        if not account.is_suspended:
            raise HTTPException(status_code=400, detail="Account is not suspended")
        account.reactivate()
        AuditService(session).log_security_event(
            "ACCOUNT_REACTIVATED",
            SecuritySeverity.MEDIUM,
            user_id=user_id,
            identifier=mask_phone_number(account.phone_number),
        )
        await session.flush()
        logger.info(f"Account {user_id} reactivated")
        return await _summary(account, store, session)


@router.post("/accounts/{user_id}/unlock", response_model=AccountSummary)
async def unlock_account(
    user_id: uuid.UUID,
    _: bool = Depends(require_admin_token),
    store: RedisStore = Depends(get_store),
) -> AccountSummary:
    """Clear an OTP lockout and its failed-attempt counter."""
    async with get_db() as session:
        account = await _account_or_404(session, user_id)
        await RateLimiter(store).unlock_account(account.phone_number)
        return await _summary(account, store, session)


@router.post("/drivers/{user_id}/verify-license")
async def verify_driver_license(user_id: uuid.UUID, _: bool = Depends(require_admin_token)) -> dict:
    """Mark a driver's licence as checked."""
    async with get_db() as session:
        profile = await DriverProfileService(session).verify_driver_license(user_id)
        return {"user_id": str(user_id), "license_verified": profile.license_verified}


@router.get("/security-events", response_model=list[SecurityEventResponse])
async def get_security_events(
    user_id: Optional[uuid.UUID] = None,
    event_type: Optional[str] = None,
    since: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=500),
    _: bool = Depends(require_admin_token),
) -> list[SecurityEventResponse]:
    async with get_db() as session:
        events = await AuditService(session).get_security_events(user_id, event_type, since, limit)
        return [SecurityEventResponse.model_validate(e) for e in events]
