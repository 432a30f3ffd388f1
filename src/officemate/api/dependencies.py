"""Request dependencies: bearer authentication, verification gates, admin token."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from officemate.auth.sessions import DeviceInfo, SessionManager
from officemate.cache.redis_client import RedisStore, get_redis_store
from officemate.config import get_settings
from officemate.db.database import get_db
from officemate.db.models import UserAccount
from officemate.errors import AuthenticationError, ProfileAccessError
from officemate.profile.route_preferences import RoutePreferenceStore

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    """Authenticated caller, with verification state read from the database."""

    user_id: uuid.UUID
    session_id: str
    access_token: str
    mobile_verified: bool = False
    email_verified: bool = False
    permissions: list[str] = field(default_factory=list)

    @property
    def is_fully_verified(self) -> bool:
        return self.mobile_verified and self.email_verified


async def get_store() -> RedisStore:
    return await get_redis_store()


def get_route_store() -> RoutePreferenceStore:
    return RoutePreferenceStore()


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def device_from_request(
    request: Request,
    device_type: Optional[str] = None,
    device_id: Optional[str] = None,
    app_version: Optional[str] = None,
) -> DeviceInfo:
    return DeviceInfo(
        device_type=device_type or "UNKNOWN",
        device_id=device_id or "UNKNOWN",
        app_version=app_version or "UNKNOWN",
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    store: RedisStore = Depends(get_store),
) -> CurrentUser:
    """Resolve the bearer token to a live session and an active account.

    Raises:
        AuthenticationError: Missing, invalid, revoked or terminated token
        ProfileAccessError: Suspended account
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token", "MISSING_TOKEN")

    async with get_db() as session:
        validation = await SessionManager(store, session).validate_token(credentials.credentials)
        if not validation.valid:
            raise AuthenticationError(validation.error_message or "Invalid token", "INVALID_TOKEN")

        account = await session.get(UserAccount, uuid.UUID(validation.user_id))
        if account is None:
            raise AuthenticationError("User account not found", "INVALID_TOKEN")
        if account.is_suspended:
            raise ProfileAccessError(
                "Account is suspended",
                bool(account.phone_verified),
                bool(account.email_verified),
                "ACCOUNT_SUSPENDED",
            )

        user = CurrentUser(
            user_id=account.id,
            session_id=validation.session_id,
            access_token=credentials.credentials,
            mobile_verified=bool(account.phone_verified),
            email_verified=bool(account.email_verified),
            permissions=validation.permissions,
        )

    return user


async def require_mobile_verified(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.mobile_verified:
        raise ProfileAccessError(
            "Mobile verification required", False, user.email_verified, "MOBILE_VERIFICATION_REQUIRED"
        )
    return user


async def require_full_verification(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Ride features (profiles, wallet, safety) need phone and email verified."""
    if not user.is_fully_verified:
        raise ProfileAccessError(
            "Both mobile and email verification required",
            user.mobile_verified,
            user.email_verified,
            "VERIFICATION_REQUIRED",
        )
    return user


async def require_admin_token(x_admin_token: str = Header(None)) -> bool:
    """Verify admin token from header.

    If ADMIN_TOKEN is not set, allows access outside production (dev mode).
    """
    settings = get_settings()

    if not settings.admin_token:
        if settings.is_production:
            raise HTTPException(status_code=503, detail="Admin API disabled: ADMIN_TOKEN not set")
        return True

    if x_admin_token != settings.admin_token:
        logger.warning("Rejected admin request with invalid token")
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return True
