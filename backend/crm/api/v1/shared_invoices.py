"""
Router FastAPI per le Fatture condivise
Progetto: Export CRM (Gestionale Export Veicoli)

Fatture di spedizionieri e compagnie container ripartite in parti
uguali sui veicoli collegati.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database import get_db
from crm.core.deps import CurrentUser
from crm.models import SharedInvoiceType
from crm.schemas.shared_invoice import (
    SharedInvoiceCreate,
    SharedInvoiceList,
    SharedInvoiceRead,
    SharedInvoiceUpdate,
    SharedInvoiceVehiclesRequest,
)
from crm.services.shared_invoice_service import SharedInvoiceService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanza del service
shared_invoice_service = SharedInvoiceService()

# Router con prefix e tag
router = APIRouter(
    prefix="/shared-invoices",
    tags=["Fatture condivise"],
)


@router.get(
    "/",
    name="fatture_condivise_lista",
    summary="Lista fatture condivise",
    response_model=SharedInvoiceList,
    status_code=status.HTTP_200_OK,
)
async def get_shared_invoices(
    current_user: CurrentUser,
    invoice_type: Optional[SharedInvoiceType] = Query(None, alias="type", description="FORWARDER o CONTAINER"),
    page: int = Query(1, ge=1, description="Numero pagina"),
    per_page: int = Query(50, ge=1, le=100, alias="perPage", description="Elementi per pagina"),
    db: AsyncSession = Depends(get_db),
) -> SharedInvoiceList:
    return await shared_invoice_service.get_all(
        db=db,
        invoice_type=invoice_type.value if invoice_type else None,
        page=page,
        per_page=per_page,
    )


@router.post(
    "/",
    name="fattura_condivisa_crea",
    summary="Crea fattura condivisa",
    description="Crea la fattura e ripartisce il totale in parti uguali sui veicoli.",
    response_model=SharedInvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_shared_invoice(
    data: SharedInvoiceCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> SharedInvoiceRead:
    return await shared_invoice_service.create(db=db, data=data)


@router.get(
    "/{shared_invoice_id}",
    name="fattura_condivisa_dettaglio",
    summary="Dettaglio fattura condivisa",
    response_model=SharedInvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def get_shared_invoice(
    current_user: CurrentUser,
    shared_invoice_id: uuid.UUID = Path(..., description="UUID della fattura condivisa"),
    db: AsyncSession = Depends(get_db),
) -> SharedInvoiceRead:
    return await shared_invoice_service.get(db=db, shared_invoice_id=shared_invoice_id)


@router.patch(
    "/{shared_invoice_id}",
    name="fattura_condivisa_modifica",
    summary="Modifica fattura condivisa",
    description="Una variazione del totale o dei veicoli riallinea tutte le quote.",
    response_model=SharedInvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def update_shared_invoice(
    data: SharedInvoiceUpdate,
    current_user: CurrentUser,
    shared_invoice_id: uuid.UUID = Path(..., description="UUID della fattura condivisa"),
    db: AsyncSession = Depends(get_db),
) -> SharedInvoiceRead:
    return await shared_invoice_service.update(db=db, shared_invoice_id=shared_invoice_id, data=data)


@router.delete(
    "/{shared_invoice_id}",
    name="fattura_condivisa_elimina",
    summary="Elimina fattura condivisa",
    description="Solo admin. Rimuove le quote e ricalcola i conti economici dei veicoli.",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_shared_invoice(
    current_user: CurrentUser,
    shared_invoice_id: uuid.UUID = Path(..., description="UUID della fattura condivisa"),
    db: AsyncSession = Depends(get_db),
) -> None:
    await shared_invoice_service.delete(db=db, shared_invoice_id=shared_invoice_id, user=current_user)


# -------------------------------------------------------------------
# Endpoints per Veicoli collegati
# -------------------------------------------------------------------

@router.put(
    "/{shared_invoice_id}/vehicles",
    name="fattura_condivisa_veicoli_imposta",
    summary="Sostituisci veicoli",
    response_model=SharedInvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def set_vehicles(
    data: SharedInvoiceVehiclesRequest,
    current_user: CurrentUser,
    shared_invoice_id: uuid.UUID = Path(..., description="UUID della fattura condivisa"),
    db: AsyncSession = Depends(get_db),
) -> SharedInvoiceRead:
    return await shared_invoice_service.set_vehicles(
        db=db, shared_invoice_id=shared_invoice_id, vehicle_ids=data.vehicle_ids
    )


@router.post(
    "/{shared_invoice_id}/vehicles",
    name="fattura_condivisa_veicoli_aggiungi",
    summary="Aggiungi veicoli",
    description="Aggiunge veicoli e riscrive tutte le quote a totale / N.",
    response_model=SharedInvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def add_vehicles(
    data: SharedInvoiceVehiclesRequest,
    current_user: CurrentUser,
    shared_invoice_id: uuid.UUID = Path(..., description="UUID della fattura condivisa"),
    db: AsyncSession = Depends(get_db),
) -> SharedInvoiceRead:
    return await shared_invoice_service.add_vehicles(
        db=db, shared_invoice_id=shared_invoice_id, vehicle_ids=data.vehicle_ids
    )


@router.delete(
    "/{shared_invoice_id}/vehicles/{vehicle_id}",
    name="fattura_condivisa_veicolo_rimuovi",
    summary="Rimuovi veicolo",
    response_model=SharedInvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def remove_vehicle(
    current_user: CurrentUser,
    shared_invoice_id: uuid.UUID = Path(..., description="UUID della fattura condivisa"),
    vehicle_id: uuid.UUID = Path(..., description="UUID del veicolo"),
    db: AsyncSession = Depends(get_db),
) -> SharedInvoiceRead:
    return await shared_invoice_service.remove_vehicle(
        db=db, shared_invoice_id=shared_invoice_id, vehicle_id=vehicle_id
    )
