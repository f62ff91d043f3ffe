"""
Router FastAPI per il registro movimenti
Progetto: Export CRM (Gestionale Export Veicoli)
"""

import logging
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database import get_db
from crm.core.deps import LedgerUser
from crm.models import TransactionDirection, TransactionType
from crm.schemas.transaction import (
    TransactionCreate,
    TransactionList,
    TransactionRead,
    TransactionUpdate,
    VendorPaymentCreate,
)
from crm.services.transaction_service import TransactionService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanza del service
transaction_service = TransactionService()

# Router con prefix e tag
router = APIRouter(
    prefix="/transactions",
    tags=["Movimenti"],
)


@router.get(
    "/",
    name="movimenti_lista",
    summary="Lista movimenti",
    description="Recupera la lista paginata dei movimenti con eventuali filtri.",
    response_model=TransactionList,
    status_code=status.HTTP_200_OK,
)
async def get_transactions(
    current_user: LedgerUser,
    customer_id: Optional[uuid.UUID] = Query(None, alias="customerId", description="Filtro per cliente"),
    invoice_id: Optional[uuid.UUID] = Query(None, alias="invoiceId", description="Filtro per fattura"),
    direction: Optional[TransactionDirection] = Query(None, description="INCOMING o OUTGOING"),
    transaction_type: Optional[TransactionType] = Query(None, alias="type", description="Tipo movimento"),
    currency: Optional[str] = Query(None, min_length=3, max_length=3, description="Valuta"),
    from_date: Optional[date] = Query(None, alias="from", description="Data inizio (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, alias="to", description="Data fine (YYYY-MM-DD)"),
    page: int = Query(1, ge=1, description="Numero pagina"),
    per_page: int = Query(50, ge=1, le=100, alias="perPage", description="Elementi per pagina"),
    db: AsyncSession = Depends(get_db),
) -> TransactionList:
    return await transaction_service.get_all(
        db=db,
        customer_id=customer_id,
        invoice_id=invoice_id,
        direction=direction,
        transaction_type=transaction_type,
        currency=currency,
        date_from=from_date,
        date_to=to_date,
        page=page,
        per_page=per_page,
    )


@router.post(
    "/",
    name="movimento_crea",
    summary="Registra movimento",
    description="Registra un movimento manuale; se collegato a una fattura ne riallinea lo stato di pagamento.",
    response_model=TransactionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_transaction(
    data: TransactionCreate,
    current_user: LedgerUser,
    db: AsyncSession = Depends(get_db),
) -> TransactionRead:
    return await transaction_service.create(db=db, data=data, user=current_user)


@router.post(
    "/vendor-payments",
    name="movimento_pagamento_fornitore",
    summary="Pagamento fornitore",
    description="Registra il pagamento di un costo e ne imposta la data di pagamento.",
    response_model=TransactionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_vendor_payment(
    data: VendorPaymentCreate,
    current_user: LedgerUser,
    db: AsyncSession = Depends(get_db),
) -> TransactionRead:
    return await transaction_service.record_vendor_payment(db=db, data=data, user=current_user)


@router.get(
    "/{transaction_id}",
    name="movimento_dettaglio",
    summary="Dettaglio movimento",
    response_model=TransactionRead,
    status_code=status.HTTP_200_OK,
)
async def get_transaction(
    current_user: LedgerUser,
    transaction_id: uuid.UUID = Path(..., description="UUID del movimento"),
    db: AsyncSession = Depends(get_db),
) -> TransactionRead:
    return await transaction_service.get(db=db, transaction_id=transaction_id)


@router.patch(
    "/{transaction_id}",
    name="movimento_modifica",
    summary="Modifica movimento",
    description="Sono modificabili solo numero di riferimento e data.",
    response_model=TransactionRead,
    status_code=status.HTTP_200_OK,
)
async def update_transaction(
    data: TransactionUpdate,
    current_user: LedgerUser,
    transaction_id: uuid.UUID = Path(..., description="UUID del movimento"),
    db: AsyncSession = Depends(get_db),
) -> TransactionRead:
    return await transaction_service.update_metadata(
        db=db, transaction_id=transaction_id, data=data, user=current_user
    )
