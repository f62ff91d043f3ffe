"""
Router FastAPI per il wallet clienti
Progetto: Export CRM (Gestionale Export Veicoli)
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database import get_db
from crm.core.deps import CurrentUser
from crm.schemas.transaction import TransactionRead, WalletMovementCreate, WalletSummary
from crm.services.wallet_service import WalletService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanza del service
wallet_service = WalletService()

# Router con prefix e tag
router = APIRouter(
    prefix="/customers",
    tags=["Wallet clienti"],
)


@router.get(
    "/{customer_id}/wallet-balance",
    name="wallet_saldo",
    summary="Saldo wallet",
    description="Saldo wallet ricavato dai movimenti del cliente nella valuta indicata.",
    response_model=WalletSummary,
    status_code=status.HTTP_200_OK,
)
async def get_wallet_balance(
    current_user: CurrentUser,
    customer_id: uuid.UUID = Path(..., description="UUID del cliente"),
    currency: Optional[str] = Query(None, min_length=3, max_length=3, description="Valuta (default JPY)"),
    db: AsyncSession = Depends(get_db),
) -> WalletSummary:
    return await wallet_service.get_summary(db=db, customer_id=customer_id, currency=currency, user=current_user)


@router.post(
    "/{customer_id}/deposits",
    name="wallet_deposito",
    summary="Registra deposito",
    response_model=TransactionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_deposit(
    data: WalletMovementCreate,
    current_user: CurrentUser,
    customer_id: uuid.UUID = Path(..., description="UUID del cliente"),
    db: AsyncSession = Depends(get_db),
) -> TransactionRead:
    return await wallet_service.record_deposit(db=db, customer_id=customer_id, data=data, user=current_user)


@router.post(
    "/{customer_id}/refunds",
    name="wallet_rimborso",
    summary="Registra rimborso",
    description="Rimborsa fondi wallet al cliente; l'importo non può superare il saldo.",
    response_model=TransactionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_refund(
    data: WalletMovementCreate,
    current_user: CurrentUser,
    customer_id: uuid.UUID = Path(..., description="UUID del cliente"),
    db: AsyncSession = Depends(get_db),
) -> TransactionRead:
    return await wallet_service.record_refund(db=db, customer_id=customer_id, data=data, user=current_user)
