"""Wallet request and response contracts.

Payment identifiers are only ever returned masked.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from officemate.db.models import PaymentMethodType, TransactionStatus, TransactionType


class PaymentMethodRequest(BaseModel):
    method_type: PaymentMethodType
    identifier: str = Field(..., min_length=1, max_length=64, description="Card number, account number or UPI id")
    provider: Optional[str] = Field(None, max_length=100)
    is_primary: bool = False


class BankAccountRequest(BaseModel):
    account_number: str = Field(..., min_length=5, max_length=20)
    bank_name: str = Field(..., min_length=1, max_length=100)
    ifsc_code: Optional[str] = Field(None, max_length=11)


class AutoReloadRequest(BaseModel):
    threshold: Decimal = Field(..., description="Reload when balance falls below this")
    amount: Decimal = Field(..., description="Amount added per reload")


class FundsRequest(BaseModel):
    amount: Decimal
    payment_method_id: Optional[uuid.UUID] = None
    description: Optional[str] = Field(None, max_length=255)


class PaymentMethodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    method_type: PaymentMethodType
    masked_identifier: str
    provider: Optional[str] = None
    is_primary: bool
    is_verified: bool
    created_at: Optional[datetime] = None


class WalletResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    balance: Decimal
    currency: str
    auto_reload_enabled: bool
    auto_reload_threshold: Optional[Decimal] = None
    auto_reload_amount: Optional[Decimal] = None
    bank_account_linked: bool
    payment_methods: list[PaymentMethodResponse] = Field(default_factory=list)


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    transaction_type: TransactionType
    amount: Decimal
    balance_after: Decimal
    status: TransactionStatus
    description: Optional[str] = None
    payment_method_id: Optional[uuid.UUID] = None
    reference_id: Optional[str] = None
    created_at: Optional[datetime] = None
