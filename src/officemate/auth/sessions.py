"""Session lifecycle: JWT issue, validation, refresh and revocation.

Live session state sits in Redis (``session:<id>``, TTL = refresh token
lifetime) with a per-user index set ``user_sessions:<user_id>``. Revoked
token ids are kept as ``revoked_token:<jti>`` until the token would have
expired anyway. A ``SessionMetadata`` row per session keeps the durable
audit trail in the relational store.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from officemate.auth.tokens import TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH, TokenCodec
from officemate.cache.redis_client import RedisStore
from officemate.config import get_settings
from officemate.db.models import SessionMetadata, UserAccount, enum_value, utcnow
from officemate.errors import AuthenticationError

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"
USER_SESSIONS_PREFIX = "user_sessions:"
REVOKED_TOKEN_PREFIX = "revoked_token:"

PERMISSION_MOBILE_VERIFIED = "MOBILE_VERIFIED"
PERMISSION_EMAIL_VERIFIED = "EMAIL_VERIFIED"
PERMISSION_FULLY_VERIFIED = "FULLY_VERIFIED"
PERMISSION_RIDE_FEATURES = "ACCESS_RIDE_FEATURES"
PERMISSION_ACCOUNT_ACTIVE = "ACCOUNT_ACTIVE"

END_USER_LOGOUT = "USER_LOGOUT"
END_SECURITY_EVENT = "SECURITY_EVENT"
END_DEVICE_REVOKED = "DEVICE_REVOKED"
END_EXPIRED = "EXPIRED"


@dataclass
class DeviceInfo:
    device_type: str = "UNKNOWN"
    device_id: str = "UNKNOWN"
    app_version: str = "UNKNOWN"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class SessionTokens:
    access_token: str
    refresh_token: str
    expires_at: datetime
    session_id: str
    user_id: str
    token_type: str = "Bearer"


@dataclass
class TokenValidation:
    valid: bool
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    mobile_verified: bool = False
    email_verified: bool = False
    account_status: Optional[str] = None
    permissions: list[str] = field(default_factory=list)
    error_message: Optional[str] = None


def build_permissions(account: UserAccount) -> list[str]:
    """Permissions granted by the account's verification state."""
    permissions = []
    if account.phone_verified:
        permissions.append(PERMISSION_MOBILE_VERIFIED)
    if account.email_verified:
        permissions.append(PERMISSION_EMAIL_VERIFIED)
    if account.is_fully_verified:
        permissions.append(PERMISSION_FULLY_VERIFIED)
        permissions.append(PERMISSION_RIDE_FEATURES)
    if account.is_active:
        permissions.append(PERMISSION_ACCOUNT_ACTIVE)
    return permissions


class SessionManager:
    """Creates and manages user sessions."""

    def __init__(self, store: RedisStore, session: AsyncSession, codec: Optional[TokenCodec] = None):
        settings = get_settings()
        self.store = store
        self.session = session
        self.codec = codec or TokenCodec(settings)
        self.access_ttl = settings.jwt_access_token_expiration
        self.refresh_ttl = settings.jwt_refresh_token_expiration

    # Token generation
    def _access_token(self, account: UserAccount, session_id: str) -> tuple[str, str, int]:
        claims = {
            "userId": str(account.id),
            "sessionId": session_id,
            "mobileVerified": bool(account.phone_verified),
            "emailVerified": bool(account.email_verified),
            "accountStatus": enum_value(account.account_status),
            "permissions": build_permissions(account),
            "tokenType": TOKEN_TYPE_ACCESS,
        }
        return self.codec.encode(str(account.id), claims, self.access_ttl)

    def _refresh_token(self, account: UserAccount, session_id: str) -> tuple[str, str, int]:
        claims = {"sessionId": session_id, "tokenType": TOKEN_TYPE_REFRESH}
        return self.codec.encode(str(account.id), claims, self.refresh_ttl)

    async def create_session(
        self, account: UserAccount, device: Optional[DeviceInfo] = None
    ) -> SessionTokens:
        """Issue an access/refresh token pair and record the session."""
        device = device or DeviceInfo()
        session_id = str(uuid.uuid4())
        user_id = str(account.id)
        now = utcnow()

        access_token, access_jti, access_exp = self._access_token(account, session_id)
        refresh_token, refresh_jti, refresh_exp = self._refresh_token(account, session_id)

        record = {
            "session_id": session_id,
            "user_id": user_id,
            "device_type": device.device_type,
            "device_id": device.device_id,
            "app_version": device.app_version,
            "permissions": build_permissions(account),
            "mobile_verified": bool(account.phone_verified),
            "email_verified": bool(account.email_verified),
            "created_at": now.isoformat(),
            "last_access_at": now.isoformat(),
            "expires_at": (now + timedelta(seconds=self.refresh_ttl)).isoformat(),
            "refresh_token": refresh_token,
            "refresh_jti": refresh_jti,
            "refresh_exp": refresh_exp,
            "access_jti": access_jti,
            "access_exp": access_exp,
        }
        await self.store.set_json(SESSION_PREFIX + session_id, record, ttl=self.refresh_ttl)
        await self.store.sadd(USER_SESSIONS_PREFIX + user_id, session_id)
        await self.store.expire(USER_SESSIONS_PREFIX + user_id, self.refresh_ttl)

        self.session.add(
            SessionMetadata(
                session_id=session_id,
                user_id=account.id,
                device_type=device.device_type,
                device_id=device.device_id,
                app_version=device.app_version,
                ip_address=device.ip_address,
                user_agent=device.user_agent,
                mobile_verified=bool(account.phone_verified),
                email_verified=bool(account.email_verified),
                is_active=True,
                created_at=now,
                last_activity_at=now,
                expires_at=now + timedelta(seconds=self.refresh_ttl),
            )
        )
        await self.session.flush()

        logger.info(f"Created session {session_id} for user {user_id} on device {device.device_type}")
        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=now + timedelta(seconds=self.access_ttl),
            session_id=session_id,
            user_id=user_id,
        )

    # Validation
    async def validate_token(
        self, token: str, token_type: str = TOKEN_TYPE_ACCESS
    ) -> TokenValidation:
        """Validate a bearer token against signature, revocation and session state."""
        try:
            claims = self.codec.decode(token)
        except AuthenticationError as e:
            return TokenValidation(valid=False, error_message=e.message)

        if claims.get("tokenType") != token_type:
            return TokenValidation(valid=False, error_message="Invalid token type")

        jti = claims.get("jti")
        if jti and await self.store.exists(REVOKED_TOKEN_PREFIX + jti):
            logger.warning(f"Rejected revoked token {jti}")
            return TokenValidation(valid=False, error_message="Token has been revoked")

        session_id = claims.get("sessionId")
        if not session_id or not await self._touch_session(session_id):
            return TokenValidation(valid=False, error_message="Session has been terminated")

        return TokenValidation(
            valid=True,
            user_id=claims.get("sub"),
            session_id=session_id,
            mobile_verified=bool(claims.get("mobileVerified")),
            email_verified=bool(claims.get("emailVerified")),
            account_status=claims.get("accountStatus"),
            permissions=list(claims.get("permissions") or []),
        )

    async def _touch_session(self, session_id: str) -> bool:
        key = SESSION_PREFIX + session_id
        record = await self.store.get_json(key)
        if record is None:
            return False
        record["last_access_at"] = utcnow().isoformat()
        ttl = await self.store.ttl(key)
        await self.store.set_json(key, record, ttl=ttl if ttl > 0 else self.refresh_ttl)
        return True

    # Refresh
    async def refresh_session(self, refresh_token: str, account: UserAccount) -> SessionTokens:
        """Issue a new access token for a live session; the refresh token is kept.

        Raises:
            AuthenticationError: If the token is not a usable refresh token
        """
        try:
            claims = self.codec.decode(refresh_token)
        except AuthenticationError:
            raise AuthenticationError("Invalid refresh token", "INVALID_REFRESH_TOKEN")

        if claims.get("tokenType") != TOKEN_TYPE_REFRESH:
            raise AuthenticationError("Invalid token type for refresh", "INVALID_REFRESH_TOKEN")
        if claims.get("sub") != str(account.id):
            raise AuthenticationError("Refresh token does not belong to this account", "INVALID_REFRESH_TOKEN")

        jti = claims.get("jti")
        if jti and await self.store.exists(REVOKED_TOKEN_PREFIX + jti):
            raise AuthenticationError("Refresh token has been revoked", "TOKEN_REVOKED")

        session_id = claims.get("sessionId")
        key = SESSION_PREFIX + session_id
        record = await self.store.get_json(key)
        if record is None:
            raise AuthenticationError("Session not found", "SESSION_NOT_FOUND")

        access_token, access_jti, access_exp = self._access_token(account, session_id)
        now = utcnow()
        record.update(
            {
                "mobile_verified": bool(account.phone_verified),
                "email_verified": bool(account.email_verified),
                "permissions": build_permissions(account),
                "last_access_at": now.isoformat(),
                "access_jti": access_jti,
                "access_exp": access_exp,
            }
        )
        ttl = await self.store.ttl(key)
        await self.store.set_json(key, record, ttl=ttl if ttl > 0 else self.refresh_ttl)

        logger.info(f"Refreshed session {session_id} for user {account.id}")
        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=now + timedelta(seconds=self.access_ttl),
            session_id=session_id,
            user_id=str(account.id),
        )

    # Revocation
    async def _revoke_jti(self, jti: Optional[str], exp: Optional[int], reason: str) -> None:
        if not jti or not exp:
            return
        ttl = int(exp) - int(time.time())
        if ttl > 0:
            await self.store.set(REVOKED_TOKEN_PREFIX + jti, reason, ttl=ttl)

    async def _end_metadata(self, session_id: str, reason: str) -> None:
        stmt = select(SessionMetadata).where(SessionMetadata.session_id == session_id)
        result = await self.session.execute(stmt)
        metadata = result.scalar_one_or_none()
        if metadata is not None and metadata.is_active:
            metadata.end(reason)

    async def _terminate(self, record: dict, reason: str) -> None:
        session_id = record["session_id"]
        await self._revoke_jti(record.get("refresh_jti"), record.get("refresh_exp"), reason)
        await self._revoke_jti(record.get("access_jti"), record.get("access_exp"), reason)
        await self._end_metadata(session_id, reason)
        await self.store.delete(SESSION_PREFIX + session_id)
        await self.store.srem(USER_SESSIONS_PREFIX + record["user_id"], session_id)

    async def revoke_session(self, session_id: str, reason: str = END_USER_LOGOUT) -> bool:
        """End one session. Returns False if it no longer exists."""
        record = await self.store.get_json(SESSION_PREFIX + session_id)
        if record is None:
            await self._end_metadata(session_id, reason)
            return False
        await self._terminate(record, reason)
        logger.info(f"Revoked session {session_id} for user {record['user_id']}: {reason}")
        return True

    async def revoke_all_sessions(self, user_id: str, reason: str = END_SECURITY_EVENT) -> int:
        """End every session of a user; returns how many were live."""
        sessions = await self.get_user_sessions(user_id)
        for record in sessions:
            await self._terminate(record, reason)
        await self.store.delete(USER_SESSIONS_PREFIX + user_id)
        logger.info(f"Revoked all {len(sessions)} sessions for user {user_id}")
        return len(sessions)

    async def revoke_device_sessions(self, user_id: str, device_id: str) -> int:
        count = 0
        for record in await self.get_user_sessions(user_id):
            if record.get("device_id") == device_id:
                await self._terminate(record, END_DEVICE_REVOKED)
                count += 1
        logger.info(f"Revoked {count} sessions for user {user_id} on device {device_id}")
        return count

    async def revoke_token(self, token: str, reason: str) -> bool:
        """Revoke a single token. Tokens that no longer verify need no revocation."""
        try:
            claims = self.codec.decode(token)
        except AuthenticationError:
            return False
        await self._revoke_jti(claims.get("jti"), claims.get("exp"), reason)
        logger.info(f"Revoked token {claims.get('jti')} for user {claims.get('sub')}: {reason}")
        return True

    async def is_token_revoked(self, jti: str) -> bool:
        return await self.store.exists(REVOKED_TOKEN_PREFIX + jti)

    # Queries
    async def get_user_sessions(self, user_id: str) -> list[dict]:
        """Live sessions of a user; stale index entries are pruned."""
        index_key = USER_SESSIONS_PREFIX + user_id
        sessions = []
        for session_id in sorted(await self.store.smembers(index_key)):
            record = await self.store.get_json(SESSION_PREFIX + session_id)
            if record is None:
                await self.store.srem(index_key, session_id)
                continue
            sessions.append(record)
        return sessions

    async def get_active_session_count(self, user_id: str) -> int:
        return len(await self.get_user_sessions(user_id))

    async def is_session_active(self, session_id: str) -> bool:
        return await self.store.exists(SESSION_PREFIX + session_id)

    async def get_session_history(self, user_id: uuid.UUID, limit: int = 20) -> list[SessionMetadata]:
        stmt = (
            select(SessionMetadata)
            .where(SessionMetadata.user_id == user_id)
            .order_by(SessionMetadata.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def cleanup_expired_metadata(self) -> int:
        """Close metadata rows whose Redis session has expired."""
        stmt = select(SessionMetadata).where(SessionMetadata.is_active.is_(True))
        result = await self.session.execute(stmt)
        closed = 0
        for metadata in result.scalars().all():
            if not await self.store.exists(SESSION_PREFIX + metadata.session_id):
                metadata.end(END_EXPIRED)
                closed += 1
        if closed:
            logger.info(f"Closed {closed} expired session records")
        return closed
