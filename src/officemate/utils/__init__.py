"""Shared utilities."""

from officemate.utils.locks import LockTimeoutError, WalletLock, clear_user_locks, get_user_lock

__all__ = ["LockTimeoutError", "WalletLock", "clear_user_locks", "get_user_lock"]
