"""
Schemas Pydantic per il conto economico della fattura
Progetto: Export CRM (Gestionale Export Veicoli)
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from crm.schemas.common import Money


class ProfitMetrics(BaseModel):
    """Metriche derivate: profitto, margine e ROI."""

    total_revenue: Money = Field(..., serialization_alias="totalRevenue")
    total_cost: Money = Field(..., serialization_alias="totalCost")
    profit: Money
    margin: Money
    roi: Money


class CostItemCreate(BaseModel):
    """
    Schema per l'aggiunta di un costo fornitore.

    Descrizione, importo, fornitore e scadenza sono obbligatori.
    """

    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., description="Importo del costo")
    vendor_id: uuid.UUID = Field(..., description="UUID del fornitore")
    category: Optional[str] = Field(None, max_length=100)
    payment_date: Optional[date] = None
    payment_deadline: date = Field(..., description="Scadenza pagamento al fornitore")


class CostItemUpdate(BaseModel):
    """Schema per la modifica di un costo (campi opzionali)."""

    description: Optional[str] = Field(None, min_length=1, max_length=500)
    amount: Optional[Decimal] = None
    vendor_id: Optional[uuid.UUID] = None
    category: Optional[str] = Field(None, max_length=100)
    payment_date: Optional[date] = None
    payment_deadline: Optional[date] = None


class CostItemRead(BaseModel):
    """
    Costo in lettura.

    Le quote di fatture condivise compaiono come voci sintetiche
    in sola lettura (is_shared=True).
    """

    id: uuid.UUID
    description: str
    amount: Money
    vendor_id: Optional[uuid.UUID] = Field(None, serialization_alias="vendorId")
    category: Optional[str] = None
    payment_date: Optional[date] = Field(None, serialization_alias="paymentDate")
    payment_deadline: Optional[date] = Field(None, serialization_alias="paymentDeadline")
    is_shared: bool = Field(False, serialization_alias="isShared")
    shared_invoice_id: Optional[uuid.UUID] = Field(None, serialization_alias="sharedInvoiceId")

    model_config = ConfigDict(from_attributes=True)


class CostBreakdown(BaseModel):
    """Riepilogo costi di una fattura con metriche."""

    invoice_id: uuid.UUID = Field(..., serialization_alias="invoiceId")
    cost_invoice_id: Optional[uuid.UUID] = Field(None, serialization_alias="costInvoiceId")
    metrics: ProfitMetrics
    regular_cost: Money = Field(..., serialization_alias="regularCost")
    shared_cost: Money = Field(..., serialization_alias="sharedCost")
    items: list[CostItemRead]
