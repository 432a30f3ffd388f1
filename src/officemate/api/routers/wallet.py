"""Wallet endpoints: payment methods, auto reload, deposits and withdrawals."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from officemate.api.dependencies import CurrentUser, require_full_verification
from officemate.contracts.auth import MessageResponse
from officemate.contracts.wallet import (
    AutoReloadRequest,
    BankAccountRequest,
    FundsRequest,
    PaymentMethodRequest,
    PaymentMethodResponse,
    TransactionResponse,
    WalletResponse,
)
from officemate.db.database import get_db
from officemate.wallet import WalletService, WalletStatus

router = APIRouter(prefix="/wallet", tags=["wallet"])


def _wallet_response(status: WalletStatus) -> WalletResponse:
    response = WalletResponse.model_validate(status.wallet)
    response.payment_methods = [PaymentMethodResponse.model_validate(pm) for pm in status.payment_methods]
    return response


@router.get("", response_model=WalletResponse)
async def get_wallet(user: CurrentUser = Depends(require_full_verification)) -> WalletResponse:
    async with get_db() as session:
        status = await WalletService(session).get_wallet_status(user.user_id)
        return _wallet_response(status)


@router.post("", response_model=WalletResponse, status_code=201)
async def initialize_wallet(user: CurrentUser = Depends(require_full_verification)) -> WalletResponse:
    """Create the wallet. Normally done automatically on email verification."""
    async with get_db() as session:
        service = WalletService(session)
        await service.initialize_wallet(user.user_id)
        return _wallet_response(await service.get_wallet_status(user.user_id))


# Payment methods
@router.post("/payment-methods", response_model=PaymentMethodResponse, status_code=201)
async def add_payment_method(
    request: PaymentMethodRequest, user: CurrentUser = Depends(require_full_verification)
) -> PaymentMethodResponse:
    async with get_db() as session:
        method = await WalletService(session).add_payment_method(
            user.user_id,
            request.method_type,
            request.identifier,
            provider=request.provider,
            is_primary=request.is_primary,
        )
        return PaymentMethodResponse.model_validate(method)


@router.post("/payment-methods/{method_id}/verify", response_model=PaymentMethodResponse)
async def verify_payment_method(
    method_id: uuid.UUID, user: CurrentUser = Depends(require_full_verification)
) -> PaymentMethodResponse:
    async with get_db() as session:
        method = await WalletService(session).verify_payment_method(user.user_id, method_id)
        return PaymentMethodResponse.model_validate(method)


@router.post("/payment-methods/{method_id}/primary", response_model=PaymentMethodResponse)
async def set_primary_payment_method(
    method_id: uuid.UUID, user: CurrentUser = Depends(require_full_verification)
) -> PaymentMethodResponse:
    async with get_db() as session:
        method = await WalletService(session).set_primary_payment_method(user.user_id, method_id)
        return PaymentMethodResponse.model_validate(method)


@router.delete("/payment-methods/{method_id}", response_model=MessageResponse)
async def remove_payment_method(
    method_id: uuid.UUID, user: CurrentUser = Depends(require_full_verification)
) -> MessageResponse:
    async with get_db() as session:
        await WalletService(session).remove_payment_method(user.user_id, method_id)
    return MessageResponse(message="Payment method removed")


@router.post("/bank-account", response_model=PaymentMethodResponse, status_code=201)
async def link_bank_account(
    request: BankAccountRequest, user: CurrentUser = Depends(require_full_verification)
) -> PaymentMethodResponse:
    async with get_db() as session:
        method = await WalletService(session).link_bank_account(
            user.user_id, request.account_number, request.bank_name, request.ifsc_code
        )
        return PaymentMethodResponse.model_validate(method)


# Auto reload
@router.put("/auto-reload", response_model=WalletResponse)
async def enable_auto_reload(
    request: AutoReloadRequest, user: CurrentUser = Depends(require_full_verification)
) -> WalletResponse:
    async with get_db() as session:
        service = WalletService(session)
        await service.enable_auto_reload(user.user_id, request.threshold, request.amount)
        return _wallet_response(await service.get_wallet_status(user.user_id))


@router.delete("/auto-reload", response_model=WalletResponse)
async def disable_auto_reload(user: CurrentUser = Depends(require_full_verification)) -> WalletResponse:
    async with get_db() as session:
        service = WalletService(session)
        await service.disable_auto_reload(user.user_id)
        return _wallet_response(await service.get_wallet_status(user.user_id))


# Funds
@router.post("/deposit", response_model=TransactionResponse, status_code=201)
async def deposit(
    request: FundsRequest, user: CurrentUser = Depends(require_full_verification)
) -> TransactionResponse:
    async with get_db() as session:
        transaction = await WalletService(session).add_funds(
            user.user_id, request.amount, request.payment_method_id, request.description
        )
        return TransactionResponse.model_validate(transaction)


@router.post("/withdraw", response_model=TransactionResponse, status_code=201)
async def withdraw(
    request: FundsRequest, user: CurrentUser = Depends(require_full_verification)
) -> TransactionResponse:
    async with get_db() as session:
        transaction = await WalletService(session).withdraw_funds(
            user.user_id, request.amount, request.description
        )
        return TransactionResponse.model_validate(transaction)


@router.get("/transactions", response_model=list[TransactionResponse])
async def transaction_history(
    transaction_type: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(require_full_verification),
) -> list[TransactionResponse]:
    async with get_db() as session:
        transactions = await WalletService(session).get_transaction_history(
            user.user_id, transaction_type, start, end, limit, offset
        )
        return [TransactionResponse.model_validate(t) for t in transactions]
