"""
Schemas Pydantic per le fatture condivise
Progetto: Export CRM (Gestionale Export Veicoli)
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crm.models.shared_invoice import SharedInvoiceType
from crm.schemas.common import Money


class SharedCostLine(BaseModel):
    """Voce di dettaglio della fattura fornitore (solo informativa)."""

    description: str = Field("", max_length=500)
    amount: Decimal = Field(Decimal("0"))


class SharedInvoiceCreate(BaseModel):
    """Schema per la creazione di una fattura condivisa."""

    type: SharedInvoiceType
    total_amount: Decimal = Field(..., gt=0, description="Totale da ripartire")
    invoice_date: Optional[date] = None
    payment_deadline: date
    vendor_id: uuid.UUID
    vehicle_ids: list[uuid.UUID] = Field(..., description="Veicoli tra cui ripartire il totale")
    cost_lines: list[SharedCostLine] = Field(default_factory=list)


class SharedInvoiceUpdate(BaseModel):
    """
    Schema per la modifica di una fattura condivisa.

    Se vehicle_ids è presente sostituisce l'intero insieme dei veicoli.
    """

    total_amount: Optional[Decimal] = Field(None, gt=0)
    invoice_date: Optional[date] = None
    payment_deadline: Optional[date] = None
    vendor_id: Optional[uuid.UUID] = None
    vehicle_ids: Optional[list[uuid.UUID]] = None
    cost_lines: Optional[list[SharedCostLine]] = None


class SharedInvoiceVehiclesRequest(BaseModel):
    """Veicoli da impostare o aggiungere."""

    vehicle_ids: list[uuid.UUID]

    @field_validator("vehicle_ids")
    @classmethod
    def not_empty(cls, v: list[uuid.UUID]) -> list[uuid.UUID]:
        if not v:
            raise ValueError("Selezionare almeno un veicolo")
        return v


class SharedInvoiceVehicleRead(BaseModel):
    vehicle_id: uuid.UUID = Field(..., serialization_alias="vehicleId")
    allocated_amount: Money = Field(..., serialization_alias="allocatedAmount")

    model_config = ConfigDict(from_attributes=True)


class SharedInvoiceRead(BaseModel):
    """Schema per la lettura di una fattura condivisa con le quote."""

    id: uuid.UUID
    type: SharedInvoiceType
    invoice_number: str = Field(..., serialization_alias="invoiceNumber")
    total_amount: Money = Field(..., serialization_alias="totalAmount")
    invoice_date: Optional[date] = Field(None, serialization_alias="invoiceDate")
    payment_deadline: date = Field(..., serialization_alias="paymentDeadline")
    vendor_id: uuid.UUID = Field(..., serialization_alias="vendorId")
    cost_lines: list[SharedCostLine] = Field(default_factory=list, serialization_alias="costLines")
    vehicles: list[SharedInvoiceVehicleRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class SharedInvoiceList(BaseModel):
    items: list[SharedInvoiceRead]
    total: int
    page: int
    per_page: int = Field(..., serialization_alias="perPage")
    total_pages: int = Field(..., serialization_alias="totalPages")
