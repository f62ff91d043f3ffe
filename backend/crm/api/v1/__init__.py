"""
API v1 Routes
Progetto: Export CRM (Gestionale Export Veicoli)

Router versione 1 dell'API.
"""

from fastapi import APIRouter

from crm.api.v1 import customers, invoices, shared_invoices, transactions

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

# Includi i router dei moduli
api_v1_router.include_router(invoices.router)
api_v1_router.include_router(shared_invoices.router)
api_v1_router.include_router(customers.router)
api_v1_router.include_router(transactions.router)

# Esportazione
__all__ = ["api_v1_router"]
