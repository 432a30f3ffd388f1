"""Wallet and payments."""

from officemate.wallet.service import WalletService, WalletStatus

__all__ = ["WalletService", "WalletStatus"]
