"""
Schemas Pydantic per il registro movimenti e il wallet
Progetto: Export CRM (Gestionale Export Veicoli)
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from crm.models.transaction import TransactionDirection, TransactionType
from crm.schemas.common import Money


class TransactionCreate(BaseModel):
    """Schema per la registrazione manuale di un movimento."""

    direction: TransactionDirection
    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    transaction_date: Optional[date] = None
    description: str = Field(..., min_length=1, max_length=255)
    reference_number: Optional[str] = Field(None, max_length=100)
    customer_id: Optional[uuid.UUID] = None
    vehicle_id: Optional[uuid.UUID] = None
    invoice_id: Optional[uuid.UUID] = None
    cost_item_id: Optional[uuid.UUID] = None
    vendor_id: Optional[uuid.UUID] = None


class TransactionUpdate(BaseModel):
    """Solo riferimento e data sono modificabili."""

    reference_number: Optional[str] = Field(None, max_length=100)
    transaction_date: Optional[date] = None


class TransactionRead(BaseModel):
    id: uuid.UUID
    direction: TransactionDirection
    type: TransactionType
    amount: Money
    currency: str
    transaction_date: date = Field(..., serialization_alias="date")
    description: str
    reference_number: Optional[str] = Field(None, serialization_alias="referenceNumber")
    customer_id: Optional[uuid.UUID] = Field(None, serialization_alias="customerId")
    vehicle_id: Optional[uuid.UUID] = Field(None, serialization_alias="vehicleId")
    invoice_id: Optional[uuid.UUID] = Field(None, serialization_alias="invoiceId")
    cost_item_id: Optional[uuid.UUID] = Field(None, serialization_alias="costItemId")
    vendor_id: Optional[uuid.UUID] = Field(None, serialization_alias="vendorId")
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")

    model_config = ConfigDict(from_attributes=True)


class TransactionList(BaseModel):
    items: list[TransactionRead]
    total: int
    page: int
    per_page: int = Field(..., serialization_alias="perPage")
    total_pages: int = Field(..., serialization_alias="totalPages")


class VendorPaymentCreate(BaseModel):
    """Pagamento a fornitore su un costo."""

    cost_item_id: uuid.UUID
    amount: Optional[Decimal] = Field(None, gt=0, description="Default: importo del costo")
    payment_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    reference_number: Optional[str] = Field(None, max_length=100)


class WalletMovementCreate(BaseModel):
    """Deposito o rimborso sul wallet del cliente."""

    amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    transaction_date: Optional[date] = None
    reference_number: Optional[str] = Field(None, max_length=100)


class WalletSummary(BaseModel):
    """
    Saldo wallet derivato dai movimenti.

    balance = deposits - applied_from_wallet - refunds
    """

    customer_id: Optional[uuid.UUID] = Field(None, serialization_alias="customerId")
    currency: str
    deposits: Money
    applied_from_wallet: Money = Field(..., serialization_alias="appliedFromWallet")
    refunds: Money
    balance: Money
    transaction_count: int = Field(0, serialization_alias="transactionCount")
