"""Wallet, payment method and balance operations.

Balances change only inside ``WalletLock``: the wallet row is re-read
under the lock and the change is committed before the lock is released,
so deposits and withdrawals for the same user are applied one at a time
even across request sessions. Every balance change writes a
``WalletTransaction`` carrying the resulting balance.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from officemate.audit import AuditService, audited
from officemate.crypto import Encryptor, fingerprint, get_field_encryptor
from officemate.db.models import (
    PaymentMethod,
    PaymentMethodType,
    TransactionStatus,
    TransactionType,
    UserAccount,
    Wallet,
    WalletTransaction,
    enum_value,
)
from officemate.errors import NotFoundError, ProfileAccessError, WalletError
from officemate.utils.locks import WalletLock

logger = logging.getLogger(__name__)

Amount = Union[Decimal, int, float, str]

CARD_PATTERN = re.compile(r"^\d{13,19}$")
BANK_ACCOUNT_PATTERN = re.compile(r"^[A-Za-z0-9]{5,20}$")
UPI_PATTERN = re.compile(r"^[\w.\-]+@[\w]+$")

CENT = Decimal("0.01")


@dataclass
class WalletStatus:
    """Wallet together with its payment methods."""

    wallet: Wallet
    payment_methods: list[PaymentMethod] = field(default_factory=list)

    @property
    def has_verified_payment_method(self) -> bool:
        return any(pm.is_verified for pm in self.payment_methods)

    @property
    def primary_payment_method(self) -> Optional[PaymentMethod]:
        return next((pm for pm in self.payment_methods if pm.is_primary), None)


def to_amount(value: Amount, error_code: str = "INVALID_AMOUNT") -> Decimal:
    """Parse a money amount and round it to two decimals."""
    try:
        amount = Decimal(str(value)).quantize(CENT)
    except (InvalidOperation, ValueError):
        raise WalletError(f"Invalid amount: {value}", error_code)
    if not amount.is_finite():
        raise WalletError(f"Invalid amount: {value}", error_code)
    return amount


def mask_identifier(method_type: PaymentMethodType, identifier: str) -> str:
    if method_type == PaymentMethodType.CREDIT_CARD:
        return f"**** **** **** {identifier[-4:]}"
    if method_type == PaymentMethodType.BANK_ACCOUNT:
        return f"******{identifier[-4:]}"
    name, _, provider = identifier.partition("@")
    return f"{name[:2]}****@{provider}"


def validate_payment_identifier(method_type: str, identifier: Optional[str]) -> tuple[PaymentMethodType, str]:
    """Check the identifier format for a payment method type.

    Returns:
        Parsed method type and the cleaned identifier

    Raises:
        WalletError: INVALID_METHOD_TYPE or INVALID_IDENTIFIER
    """
    try:
        parsed = PaymentMethodType(str(enum_value(method_type)).upper())
    except ValueError:
        valid = ", ".join(t.value for t in PaymentMethodType)
        raise WalletError(
            f"Invalid payment method type: {method_type}. Must be one of: {valid}",
            "INVALID_METHOD_TYPE",
        )

    cleaned = (identifier or "").strip()
    if not cleaned:
        raise WalletError("Payment method identifier is required", "INVALID_IDENTIFIER")

    if parsed == PaymentMethodType.CREDIT_CARD:
        cleaned = re.sub(r"[\s\-]", "", cleaned)
        if not CARD_PATTERN.match(cleaned):
            raise WalletError("Invalid credit card number format", "INVALID_IDENTIFIER")
    elif parsed == PaymentMethodType.BANK_ACCOUNT:
        if not BANK_ACCOUNT_PATTERN.match(cleaned):
            raise WalletError("Invalid bank account number format", "INVALID_IDENTIFIER")
    elif not UPI_PATTERN.match(cleaned):
        raise WalletError("Invalid UPI ID format", "INVALID_IDENTIFIER")

    return parsed, cleaned


class WalletService:
    """Wallet lifecycle, payment methods and balance operations."""

    def __init__(self, session: AsyncSession, encryptor: Optional[Encryptor] = None):
        self.session = session
        self.audit = AuditService(session)
        self._encryptor = encryptor

    @property
    def encryptor(self) -> Encryptor:
        if self._encryptor is None:
            self._encryptor = get_field_encryptor()
        return self._encryptor

    # Lookups
    async def get_wallet(self, user_id: uuid.UUID) -> Wallet:
        stmt = select(Wallet).where(Wallet.user_id == user_id)
        result = await self.session.execute(stmt)
        wallet = result.scalar_one_or_none()
        if wallet is None:
            raise NotFoundError(f"Wallet not found for user: {user_id}", "WALLET_NOT_FOUND")
        return wallet

    async def _get_wallet_for_update(self, user_id: uuid.UUID) -> Wallet:
        # Caller holds WalletLock; populate_existing drops a stale balance from the identity map
        stmt = (
            select(Wallet)
            .where(Wallet.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        wallet = result.scalar_one_or_none()
        if wallet is None:
            raise NotFoundError(f"Wallet not found for user: {user_id}", "WALLET_NOT_FOUND")
        return wallet

    async def _payment_methods(self, wallet_id: uuid.UUID) -> list[PaymentMethod]:
        stmt = (
            select(PaymentMethod)
            .where(PaymentMethod.wallet_id == wallet_id)
            .order_by(PaymentMethod.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _get_payment_method(self, wallet_id: uuid.UUID, method_id: uuid.UUID) -> PaymentMethod:
        method = await self.session.get(PaymentMethod, method_id)
        if method is None or method.wallet_id != wallet_id:
            raise NotFoundError(f"Payment method not found: {method_id}", "PAYMENT_METHOD_NOT_FOUND")
        return method

    async def _unmark_primary(self, wallet_id: uuid.UUID) -> None:
        await self.session.execute(
            update(PaymentMethod)
            .where(PaymentMethod.wallet_id == wallet_id, PaymentMethod.is_primary.is_(True))
            .values(is_primary=False)
        )

    async def get_wallet_status(self, user_id: uuid.UUID) -> WalletStatus:
        wallet = await self.get_wallet(user_id)
        return WalletStatus(wallet=wallet, payment_methods=await self._payment_methods(wallet.id))

    # Lifecycle
    @audited("CREATE", "Wallet")
    async def initialize_wallet(self, user_id: uuid.UUID) -> Wallet:
        """Create the wallet of a fully verified user.

        Raises:
            NotFoundError: Unknown user
            ProfileAccessError: Phone or corporate email not verified
            WalletError: WALLET_ALREADY_EXISTS
        """
        logger.info(f"Initializing wallet for user: {user_id}")

        account = await self.session.get(UserAccount, user_id)
        if account is None:
            raise NotFoundError(f"User not found: {user_id}", "USER_NOT_FOUND")
        if not account.is_fully_verified:
            raise ProfileAccessError(
                "Wallet requires both mobile and email verification",
                bool(account.phone_verified),
                bool(account.email_verified),
                "VERIFICATION_REQUIRED",
            )

        existing = await self.session.execute(select(Wallet.id).where(Wallet.user_id == user_id))
        if existing.first() is not None:
            raise WalletError(f"Wallet already exists for user: {user_id}", "WALLET_ALREADY_EXISTS")

        wallet = Wallet(
            user_id=user_id,
            balance=Decimal("0.00"),
            currency="INR",
            auto_reload_enabled=False,
            bank_account_linked=False,
        )
        self.session.add(wallet)
        await self.session.flush()
        logger.info(f"Wallet {wallet.id} created for user: {user_id}")
        return wallet

    # Payment methods
    @audited("CREATE", "PaymentMethod")
    async def add_payment_method(
        self,
        user_id: uuid.UUID,
        method_type: str,
        identifier: str,
        provider: Optional[str] = None,
        is_primary: bool = False,
    ) -> PaymentMethod:
        """Add a card, bank account or UPI id to the wallet.

        The identifier is stored encrypted; duplicates are detected through
        its keyed fingerprint.
        """
        wallet = await self.get_wallet(user_id)
        parsed, cleaned = validate_payment_identifier(method_type, identifier)
        logger.info(f"Adding payment method for user: {user_id}, type: {parsed.value}")

        digest = fingerprint(cleaned)
        duplicate = await self.session.execute(
            select(PaymentMethod.id).where(
                PaymentMethod.wallet_id == wallet.id,
                PaymentMethod.identifier_fingerprint == digest,
            )
        )
        if duplicate.first() is not None:
            logger.warning(f"Payment method already exists for wallet: {wallet.id}")
            raise WalletError("Payment method already exists", "PAYMENT_METHOD_DUPLICATE")

        if is_primary:
            await self._unmark_primary(wallet.id)

        method = PaymentMethod(
            wallet_id=wallet.id,
            method_type=parsed,
            identifier_encrypted=await self.encryptor.encrypt_field(cleaned),
            identifier_fingerprint=digest,
            masked_identifier=mask_identifier(parsed, cleaned),
            provider=provider,
            is_primary=is_primary,
            is_verified=False,
        )
        self.session.add(method)
        await self.session.flush()
        return method

    async def verify_payment_method(self, user_id: uuid.UUID, method_id: uuid.UUID) -> PaymentMethod:
        """Mark a payment method verified once the payment gateway confirms it."""
        wallet = await self.get_wallet(user_id)
        method = await self._get_payment_method(wallet.id, method_id)
        method.is_verified = True
        self.audit.log_entity_update("PaymentMethod", method.id, user_id, is_verified=True)
        await self.session.flush()
        logger.info(f"Verified payment method {method_id} for user: {user_id}")
        return method

    async def set_primary_payment_method(self, user_id: uuid.UUID, method_id: uuid.UUID) -> PaymentMethod:
        wallet = await self.get_wallet(user_id)
        method = await self._get_payment_method(wallet.id, method_id)
        await self._unmark_primary(wallet.id)
        await self.session.refresh(method)
        method.is_primary = True
        await self.session.flush()
        logger.info(f"Set primary payment method {method_id} for user: {user_id}")
        return method

    async def remove_payment_method(self, user_id: uuid.UUID, method_id: uuid.UUID) -> None:
        wallet = await self.get_wallet(user_id)
        method = await self._get_payment_method(wallet.id, method_id)

        if method.method_type == PaymentMethodType.BANK_ACCOUNT:
            remaining = [
                pm
                for pm in await self._payment_methods(wallet.id)
                if pm.id != method.id and pm.method_type == PaymentMethodType.BANK_ACCOUNT
            ]
            if not remaining:
                wallet.bank_account_linked = False

        await self.session.delete(method)
        self.audit.log_entity_deletion(
            "PaymentMethod", method_id, user_id, method_type=enum_value(method.method_type)
        )
        await self.session.flush()
        logger.info(f"Removed payment method {method_id} for user: {user_id}")

    async def link_bank_account(
        self,
        user_id: uuid.UUID,
        account_number: str,
        bank_name: str,
        ifsc_code: Optional[str] = None,
    ) -> PaymentMethod:
        """Attach a bank account for withdrawals. It starts unverified."""
        method = await self.add_payment_method(
            user_id, PaymentMethodType.BANK_ACCOUNT.value, account_number, provider=bank_name
        )
        wallet = await self.get_wallet(user_id)
        wallet.bank_account_linked = True
        self.audit.log_entity_update(
            "Wallet", wallet.id, user_id, bank_account_linked=True, ifsc_code=ifsc_code or ""
        )
        await self.session.flush()
        logger.info(f"Linked bank account for user: {user_id}")
        return method

    # Auto reload
    async def enable_auto_reload(self, user_id: uuid.UUID, threshold: Amount, amount: Amount) -> Wallet:
        status = await self.get_wallet_status(user_id)
        if not status.has_verified_payment_method:
            raise WalletError(
                "At least one verified payment method required for auto-reload",
                "NO_VERIFIED_PAYMENT_METHOD",
            )

        threshold_value = to_amount(threshold, "INVALID_THRESHOLD")
        if threshold_value <= 0:
            raise WalletError("Auto-reload threshold must be greater than 0", "INVALID_THRESHOLD")
        amount_value = to_amount(amount)
        if amount_value <= 0:
            raise WalletError("Auto-reload amount must be greater than 0", "INVALID_AMOUNT")

        wallet = status.wallet
        wallet.auto_reload_enabled = True
        wallet.auto_reload_threshold = threshold_value
        wallet.auto_reload_amount = amount_value
        self.audit.log_entity_update(
            "Wallet",
            wallet.id,
            user_id,
            auto_reload_enabled=True,
            threshold=str(threshold_value),
            amount=str(amount_value),
        )
        await self.session.flush()
        logger.info(f"Enabled auto-reload for user {user_id} at {threshold_value} (+{amount_value})")
        return wallet

    async def disable_auto_reload(self, user_id: uuid.UUID) -> Wallet:
        wallet = await self.get_wallet(user_id)
        wallet.auto_reload_enabled = False
        wallet.auto_reload_threshold = None
        wallet.auto_reload_amount = None
        self.audit.log_entity_update("Wallet", wallet.id, user_id, auto_reload_enabled=False)
        await self.session.flush()
        logger.info(f"Disabled auto-reload for user: {user_id}")
        return wallet

    async def process_auto_reload(self, user_id: uuid.UUID) -> Optional[WalletTransaction]:
        """Top up the wallet from the primary method when below threshold.

        Returns:
            The AUTO_RELOAD transaction, or None when no reload is due
        """
        async with WalletLock(user_id, operation="auto_reload"):
            wallet = await self._get_wallet_for_update(user_id)
            status = WalletStatus(wallet=wallet, payment_methods=await self._payment_methods(wallet.id))
            if not _should_auto_reload(wallet):
                logger.debug(f"Auto-reload not triggered for user: {user_id}")
                return None

            primary = status.primary_payment_method
            if primary is None or not primary.is_verified:
                logger.warning(f"Auto-reload failed for user {user_id} - no verified primary payment method")
                raise WalletError(
                    "No verified primary payment method for auto-reload", "NO_PRIMARY_PAYMENT_METHOD"
                )

            return await self._apply(
                wallet,
                TransactionType.AUTO_RELOAD,
                wallet.auto_reload_amount,
                description=f"Auto-reload triggered at threshold: {wallet.auto_reload_threshold}",
                payment_method_id=primary.id,
            )

    # Balance operations
    async def _apply(
        self,
        wallet: Wallet,
        transaction_type: TransactionType,
        amount: Decimal,
        description: Optional[str] = None,
        payment_method_id: Optional[uuid.UUID] = None,
        reference_id: Optional[str] = None,
    ) -> WalletTransaction:
        if transaction_type in (TransactionType.WITHDRAWAL, TransactionType.RIDE_PAYMENT):
            new_balance = wallet.balance - amount
        else:
            new_balance = wallet.balance + amount
        wallet.balance = new_balance

        transaction = WalletTransaction(
            wallet_id=wallet.id,
            transaction_type=transaction_type,
            amount=amount,
            balance_after=new_balance,
            status=TransactionStatus.COMPLETED,
            description=description,
            payment_method_id=payment_method_id,
            reference_id=reference_id,
        )
        self.session.add(transaction)
        await self.session.flush()
        # Commit while the caller still holds WalletLock
        await self.session.commit()
        logger.info(
            f"{enum_value(transaction_type)} of {amount} on wallet {wallet.id}, "
            f"balance now {new_balance}"
        )
        return transaction

    @audited("DEPOSIT", "WalletTransaction")
    async def add_funds(
        self,
        user_id: uuid.UUID,
        amount: Amount,
        payment_method_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
    ) -> WalletTransaction:
        """Deposit into the wallet, optionally through a verified payment method."""
        value = to_amount(amount)
        if value <= 0:
            raise WalletError("Deposit amount must be greater than 0", "INVALID_AMOUNT")

        async with WalletLock(user_id, operation="deposit"):
            wallet = await self._get_wallet_for_update(user_id)
            if payment_method_id is not None:
                method = await self._get_payment_method(wallet.id, payment_method_id)
                if not method.is_verified:
                    raise WalletError("Payment method not verified", "PAYMENT_METHOD_NOT_VERIFIED")

            return await self._apply(
                wallet,
                TransactionType.DEPOSIT,
                value,
                description=description or "Wallet deposit",
                payment_method_id=payment_method_id,
            )

    @audited("WITHDRAWAL", "WalletTransaction")
    async def withdraw_funds(
        self,
        user_id: uuid.UUID,
        amount: Amount,
        description: Optional[str] = None,
    ) -> WalletTransaction:
        """Withdraw to the linked bank account.

        Raises:
            WalletError: INVALID_AMOUNT, INSUFFICIENT_BALANCE or BANK_NOT_LINKED
        """
        value = to_amount(amount)
        if value <= 0:
            raise WalletError("Withdrawal amount must be greater than 0", "INVALID_AMOUNT")

        async with WalletLock(user_id, operation="withdraw"):
            wallet = await self._get_wallet_for_update(user_id)
            if wallet.balance < value:
                raise WalletError("Insufficient balance", "INSUFFICIENT_BALANCE")
            if not wallet.bank_account_linked:
                raise WalletError("Bank account must be linked for withdrawals", "BANK_NOT_LINKED")

            return await self._apply(
                wallet,
                TransactionType.WITHDRAWAL,
                value,
                description=description or "Withdrawal to bank account",
            )

    # History
    async def get_transaction_history(
        self,
        user_id: uuid.UUID,
        transaction_type: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[WalletTransaction]:
        wallet = await self.get_wallet(user_id)
        stmt = select(WalletTransaction).where(WalletTransaction.wallet_id == wallet.id)

        if transaction_type:
            try:
                parsed = TransactionType(str(enum_value(transaction_type)).upper())
            except ValueError:
                raise WalletError(
                    f"Invalid transaction type: {transaction_type}", "INVALID_TRANSACTION_TYPE"
                )
            stmt = stmt.where(WalletTransaction.transaction_type == parsed.value)
        if start is not None:
            stmt = stmt.where(WalletTransaction.created_at >= start)
        if end is not None:
            stmt = stmt.where(WalletTransaction.created_at <= end)

        stmt = stmt.order_by(WalletTransaction.created_at.desc()).limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_recent_transactions(self, user_id: uuid.UUID, limit: int = 10) -> list[WalletTransaction]:
        return await self.get_transaction_history(user_id, limit=limit)


def _should_auto_reload(wallet: Wallet) -> bool:
    return bool(
        wallet.auto_reload_enabled
        and wallet.auto_reload_threshold is not None
        and wallet.auto_reload_amount is not None
        and wallet.balance < wallet.auto_reload_threshold
    )
