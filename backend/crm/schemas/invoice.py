"""
Schemas Pydantic per la Fatturazione di vendita
Progetto: Export CRM (Gestionale Export Veicoli)

Contiene:
- Schemas per InvoiceCharge
- Schemas per Invoice
- Schemas per la registrazione pagamenti e l'uso del wallet
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from crm.core.exceptions import BusinessValidationError
from crm.models.invoice import InvoiceStatus, PaymentStatus
from crm.schemas.common import Money


# -------------------------------------------------------------------
# Schemas per InvoiceCharge
# -------------------------------------------------------------------

class ChargeCreate(BaseModel):
    """Schema per l'aggiunta di una voce in fattura."""

    description: str = Field(..., min_length=1, max_length=500, description="Descrizione della voce")
    charge_type: Optional[str] = Field(
        None,
        max_length=50,
        description="Tipo voce (vehicle, shipping, discount, deposit, ...)",
    )
    amount: Decimal = Field(..., description="Importo (può essere negativo)")


class ChargeUpdate(BaseModel):
    """Schema per la modifica di una voce (campi opzionali)."""

    description: Optional[str] = Field(None, min_length=1, max_length=500)
    charge_type: Optional[str] = Field(None, max_length=50)
    amount: Optional[Decimal] = None


class ChargeRead(BaseModel):
    """Schema per la lettura di una voce."""

    id: uuid.UUID
    description: str
    charge_type: Optional[str] = Field(None, serialization_alias="chargeType")
    amount: Money
    sort_order: int = Field(..., serialization_alias="sortOrder")

    model_config = ConfigDict(from_attributes=True)


# -------------------------------------------------------------------
# Schemas per Invoice
# -------------------------------------------------------------------

class InvoiceCreate(BaseModel):
    """Schema per la creazione di una fattura in bozza."""

    customer_id: uuid.UUID = Field(..., description="UUID del cliente")
    vehicle_id: Optional[uuid.UUID] = Field(None, description="UUID del veicolo venduto")
    due_date: Optional[date] = Field(None, description="Scadenza pagamento")
    tax_enabled: bool = Field(False, description="Applica imposta")
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100, description="Aliquota percentuale")
    notes: Optional[str] = None
    charges: list[ChargeCreate] = Field(default_factory=list, description="Voci iniziali")


class InvoiceTaxUpdate(BaseModel):
    """Schema per la modifica della configurazione imposta."""

    tax_enabled: bool
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)


class InvoiceRead(BaseModel):
    """Schema per la lettura di una fattura."""

    id: uuid.UUID
    invoice_number: str = Field(..., serialization_alias="invoiceNumber")
    customer_id: uuid.UUID = Field(..., serialization_alias="customerId")
    vehicle_id: Optional[uuid.UUID] = Field(None, serialization_alias="vehicleId")
    status: InvoiceStatus
    payment_status: PaymentStatus = Field(..., serialization_alias="paymentStatus")
    paid_at: Optional[datetime] = Field(None, serialization_alias="paidAt")
    is_locked: bool = Field(..., serialization_alias="isLocked")
    tax_enabled: bool = Field(..., serialization_alias="taxEnabled")
    tax_rate: Money = Field(..., serialization_alias="taxRate")
    share_token: Optional[str] = Field(None, serialization_alias="shareToken")
    due_date: Optional[date] = Field(None, serialization_alias="dueDate")
    approved_at: Optional[datetime] = Field(None, serialization_alias="approvedAt")
    finalized_at: Optional[datetime] = Field(None, serialization_alias="finalizedAt")
    notes: Optional[str] = None
    charges: list[ChargeRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class InvoiceList(BaseModel):
    """Schema per la lista paginata delle fatture."""

    items: list[InvoiceRead]
    total: int
    page: int
    per_page: int = Field(..., serialization_alias="perPage")
    total_pages: int = Field(..., serialization_alias="totalPages")


# -------------------------------------------------------------------
# Schemas per Pagamenti
# -------------------------------------------------------------------

class PaymentRequest(BaseModel):
    """
    Schema per la registrazione di un pagamento su fattura.

    Indicare amount_received (importo cumulativo incassato) oppure
    payment_status esplicito. Con via_wallet=True l'importo viene
    prelevato dal wallet del cliente.
    """

    amount_received: Optional[Decimal] = Field(None, description="Importo incassato (cumulativo)")
    payment_status: Optional[PaymentStatus] = Field(None, description="Stato esplicito")
    paid_at: Optional[datetime] = Field(None, description="Data/ora del pagamento")
    via_wallet: bool = Field(False, description="Preleva l'importo dal wallet del cliente")
    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="Valuta (default JPY)")
    reference_number: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def validate_amount_or_status(self) -> "PaymentRequest":
        """Almeno uno tra importo e stato; il wallet richiede un importo positivo."""
        if self.amount_received is None and self.payment_status is None:
            raise BusinessValidationError("Indicare l'importo incassato o lo stato di pagamento")
        if self.via_wallet and (self.amount_received is None or self.amount_received <= 0):
            raise BusinessValidationError("Il prelievo dal wallet richiede un importo positivo")
        return self


class WalletApplicationRequest(BaseModel):
    """Schema per l'applicazione di fondi wallet a una fattura."""

    amount: Decimal = Field(..., gt=0, description="Importo da prelevare dal wallet")
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class PaymentResult(BaseModel):
    """Esito della registrazione pagamento."""

    invoice_id: uuid.UUID = Field(..., serialization_alias="invoiceId")
    payment_status: PaymentStatus = Field(..., serialization_alias="paymentStatus")
    paid_at: Optional[datetime] = Field(None, serialization_alias="paidAt")
    total_amount_with_tax: Money = Field(..., serialization_alias="totalAmountWithTax")
    amount_received: Optional[Money] = Field(None, serialization_alias="amountReceived")
    transaction_ids: list[uuid.UUID] = Field(default_factory=list, serialization_alias="transactionIds")
    wallet_balance: Optional[Money] = Field(None, serialization_alias="walletBalance")
