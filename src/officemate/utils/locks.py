"""Per-user locking for wallet balance changes.

Deposits, withdrawals and auto reloads read and rewrite a wallet balance;
the lock serialises them per user within the process.
"""

import asyncio
import logging
import uuid
from typing import Optional

logger = logging.getLogger(__name__)

# Global lock registry: user_id -> asyncio.Lock
_user_locks: dict[uuid.UUID, asyncio.Lock] = {}
_registry_lock = asyncio.Lock()


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


async def get_user_lock(user_id: uuid.UUID) -> asyncio.Lock:
    """Get or create the lock for a user."""
    async with _registry_lock:
        if user_id not in _user_locks:
            _user_locks[user_id] = asyncio.Lock()
        return _user_locks[user_id]


class WalletLock:
    """Context manager for exclusive access to a user's wallet balance.

    Example:
        async with WalletLock(user_id, operation="withdraw"):
            wallet = await service.get_wallet(user_id)
            wallet.balance -= amount
    """

    def __init__(
        self,
        user_id: uuid.UUID,
        timeout: Optional[float] = 30.0,
        operation: str = "wallet_operation",
    ):
        self.user_id = user_id
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "WalletLock":
        self._lock = await get_user_lock(self.user_id)

        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
            self._acquired = True
            logger.debug(f"Lock acquired for user {self.user_id}: {self.operation}")
            return self

        except asyncio.TimeoutError:
            logger.warning(
                f"Lock timeout for user {self.user_id} after {self.timeout}s: {self.operation}"
            )
            raise LockTimeoutError(
                f"Could not acquire lock for user {self.user_id} within {self.timeout}s"
            )

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug(f"Lock released for user {self.user_id}: {self.operation}")
        return False


def clear_user_locks() -> None:
    """Clear all user locks (useful for testing)."""
    _user_locks.clear()
