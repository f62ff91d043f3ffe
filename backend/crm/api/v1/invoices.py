"""
Router FastAPI per la Fatturazione di vendita
Progetto: Export CRM (Gestionale Export Veicoli)

Definisce gli endpoint API per fatture, voci, flusso di approvazione,
incassi (manuali, webhook, wallet) e conto economico.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database import commit_unit, get_db
from crm.core.deps import CurrentUser, OptionalUser
from crm.models import InvoiceStatus, PaymentStatus
from crm.schemas.cost_invoice import CostBreakdown, CostItemCreate, CostItemRead, CostItemUpdate, ProfitMetrics
from crm.schemas.invoice import (
    ChargeCreate,
    ChargeUpdate,
    InvoiceCreate,
    InvoiceList,
    InvoiceRead,
    InvoiceTaxUpdate,
    PaymentRequest,
    PaymentResult,
    WalletApplicationRequest,
)
from crm.services.cost_invoice_service import CostInvoiceService, compute_profit_metrics
from crm.services.invoice_service import InvoiceService
from crm.services.payment_service import PaymentService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanze dei service
cost_invoice_service = CostInvoiceService()
invoice_service = InvoiceService(cost_invoice_service)
payment_service = PaymentService()

# Router con prefix e tag
router = APIRouter(
    prefix="/invoices",
    tags=["Fatturazione"],
)


# -------------------------------------------------------------------
# Endpoints per Fatture
# -------------------------------------------------------------------

@router.get(
    "/",
    name="fatture_lista",
    summary="Lista fatture",
    description="Recupera la lista paginata delle fatture con eventuali filtri.",
    response_model=InvoiceList,
    status_code=status.HTTP_200_OK,
)
async def get_invoices(
    current_user: CurrentUser,
    customer_id: Optional[uuid.UUID] = Query(None, description="Filtro per UUID cliente"),
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status", description="Filtro per stato"),
    payment_status: Optional[PaymentStatus] = Query(None, alias="paymentStatus", description="Filtro per stato incasso"),
    page: int = Query(1, ge=1, description="Numero pagina"),
    per_page: int = Query(50, ge=1, le=100, alias="perPage", description="Elementi per pagina"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceList:
    """Recupera la lista paginata delle fatture."""
    return await invoice_service.get_all(
        db=db,
        customer_id=customer_id,
        status=status_filter,
        payment_status=payment_status,
        page=page,
        per_page=per_page,
    )


@router.post(
    "/",
    name="fattura_crea",
    summary="Crea fattura",
    description="Crea una fattura in bozza con numerazione INV-YYYY-NNNN.",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice(
    data: InvoiceCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    return await invoice_service.create(db=db, data=data, user=current_user)


@router.get(
    "/share/{share_token}",
    name="fattura_pubblica",
    summary="Fattura pubblica",
    description="Consultazione pubblica della fattura tramite share token.",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def get_shared_invoice(
    share_token: str = Path(..., min_length=8, max_length=64, description="Share token"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    """Non richiede autenticazione: il token è generato all'approvazione."""
    return await invoice_service.get_by_share_token(db=db, share_token=share_token)


@router.get(
    "/{invoice_id}",
    name="fattura_dettaglio",
    summary="Dettaglio fattura",
    description="Recupera i dettagli di una fattura con le voci.",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def get_invoice(
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    return await invoice_service.get(db=db, invoice_id=invoice_id)


# -------------------------------------------------------------------
# Endpoints per Voci e Imposta
# -------------------------------------------------------------------

@router.post(
    "/{invoice_id}/charges",
    name="fattura_voce_aggiungi",
    summary="Aggiungi voce",
    description="Aggiunge una voce in fattura e ricalcola il conto economico.",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_charge(
    data: ChargeCreate,
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    return await invoice_service.add_charge(db=db, invoice_id=invoice_id, data=data, user=current_user)


@router.patch(
    "/{invoice_id}/charges/{charge_id}",
    name="fattura_voce_modifica",
    summary="Modifica voce",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def update_charge(
    data: ChargeUpdate,
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    charge_id: uuid.UUID = Path(..., description="UUID della voce"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    return await invoice_service.update_charge(
        db=db, invoice_id=invoice_id, charge_id=charge_id, data=data, user=current_user
    )


@router.delete(
    "/{invoice_id}/charges/{charge_id}",
    name="fattura_voce_elimina",
    summary="Elimina voce",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def delete_charge(
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    charge_id: uuid.UUID = Path(..., description="UUID della voce"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    return await invoice_service.delete_charge(db=db, invoice_id=invoice_id, charge_id=charge_id, user=current_user)


@router.patch(
    "/{invoice_id}/tax",
    name="fattura_imposta",
    summary="Configura imposta",
    description="Abilita/disabilita l'imposta e imposta l'aliquota (0-100).",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def update_tax(
    data: InvoiceTaxUpdate,
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    return await invoice_service.update_tax(db=db, invoice_id=invoice_id, data=data, user=current_user)


# -------------------------------------------------------------------
# Endpoints per Flusso di approvazione
# -------------------------------------------------------------------

@router.post(
    "/{invoice_id}/submit",
    name="fattura_invia",
    summary="Invia in approvazione",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def submit_invoice(
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    return await invoice_service.submit(db=db, invoice_id=invoice_id, user=current_user)


@router.post(
    "/{invoice_id}/approve",
    name="fattura_approva",
    summary="Approva fattura",
    description="Solo admin. Genera lo share token per la consultazione pubblica.",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def approve_invoice(
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    return await invoice_service.approve(db=db, invoice_id=invoice_id, user=current_user)


@router.post(
    "/{invoice_id}/reject",
    name="fattura_respingi",
    summary="Respingi fattura",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def reject_invoice(
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    return await invoice_service.reject(db=db, invoice_id=invoice_id, user=current_user)


@router.post(
    "/{invoice_id}/finalize",
    name="fattura_finalizza",
    summary="Finalizza fattura",
    description="Solo admin. La fattura viene bloccata.",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def finalize_invoice(
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    return await invoice_service.finalize(db=db, invoice_id=invoice_id, user=current_user)


@router.post(
    "/{invoice_id}/unlock",
    name="fattura_sblocca",
    summary="Sblocca fattura",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def unlock_invoice(
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    return await invoice_service.unlock(db=db, invoice_id=invoice_id, user=current_user)


# -------------------------------------------------------------------
# Endpoints per Incassi
# -------------------------------------------------------------------

@router.patch(
    "/{invoice_id}/payment",
    name="fattura_pagamento",
    summary="Registra pagamento",
    description=(
        "Registra un incasso (importo cumulativo o stato esplicito). "
        "Autenticazione con header X-Webhook-Secret oppure token utente."
    ),
    response_model=PaymentResult,
    status_code=status.HTTP_200_OK,
)
async def apply_payment(
    data: PaymentRequest,
    current_user: OptionalUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    x_webhook_secret: Optional[str] = Header(None, description="Segreto condiviso del webhook di pagamento"),
    db: AsyncSession = Depends(get_db),
) -> PaymentResult:
    return await payment_service.apply_payment(
        db=db,
        invoice_id=invoice_id,
        request=data,
        user=current_user,
        webhook_secret=x_webhook_secret,
    )


@router.post(
    "/{invoice_id}/apply-wallet",
    name="fattura_wallet",
    summary="Applica fondi wallet",
    description="Preleva fondi dal wallet del cliente e li applica alla fattura.",
    response_model=PaymentResult,
    status_code=status.HTTP_200_OK,
)
async def apply_wallet(
    data: WalletApplicationRequest,
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> PaymentResult:
    return await payment_service.apply_from_wallet(
        db=db,
        invoice_id=invoice_id,
        amount=data.amount,
        user=current_user,
        currency=data.currency,
    )


# -------------------------------------------------------------------
# Endpoints per Conto economico
# -------------------------------------------------------------------

@router.get(
    "/{invoice_id}/cost",
    name="fattura_costi",
    summary="Dettaglio costi",
    description="Costi fornitori, quote condivise e metriche di profitto (sola lettura).",
    response_model=CostBreakdown,
    status_code=status.HTTP_200_OK,
)
async def get_cost_breakdown(
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> CostBreakdown:
    return await cost_invoice_service.get_breakdown(db=db, invoice_id=invoice_id)


@router.post(
    "/{invoice_id}/cost/recompute",
    name="fattura_costi_ricalcola",
    summary="Ricalcola conto economico",
    response_model=ProfitMetrics,
    status_code=status.HTTP_200_OK,
)
async def recompute_cost(
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> ProfitMetrics:
    """Forza il ricalcolo del conto economico dallo stato corrente."""
    cost_invoice = await cost_invoice_service.recompute(db=db, invoice_id=invoice_id)
    await commit_unit(db, "ricalcolo conto economico")
    return compute_profit_metrics(cost_invoice.total_revenue, cost_invoice.total_cost)


@router.post(
    "/{invoice_id}/cost/items",
    name="fattura_costo_aggiungi",
    summary="Aggiungi costo",
    response_model=CostItemRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_cost_item(
    data: CostItemCreate,
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> CostItemRead:
    return await cost_invoice_service.add_cost_item(db=db, invoice_id=invoice_id, data=data, user=current_user)


@router.patch(
    "/{invoice_id}/cost/items/{item_id}",
    name="fattura_costo_modifica",
    summary="Modifica costo",
    response_model=CostItemRead,
    status_code=status.HTTP_200_OK,
)
async def update_cost_item(
    data: CostItemUpdate,
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    item_id: uuid.UUID = Path(..., description="UUID del costo"),
    db: AsyncSession = Depends(get_db),
) -> CostItemRead:
    return await cost_invoice_service.update_cost_item(
        db=db, invoice_id=invoice_id, item_id=item_id, data=data, user=current_user
    )


@router.delete(
    "/{invoice_id}/cost/items/{item_id}",
    name="fattura_costo_elimina",
    summary="Elimina costo",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_cost_item(
    current_user: CurrentUser,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    item_id: uuid.UUID = Path(..., description="UUID del costo"),
    db: AsyncSession = Depends(get_db),
) -> None:
    await cost_invoice_service.delete_cost_item(db=db, invoice_id=invoice_id, item_id=item_id, user=current_user)
