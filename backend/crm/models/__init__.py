"""
Modelli Database SQLAlchemy
Progetto: Export CRM (Gestionale Export Veicoli)

Import centralizzato di tutti i modelli per Alembic e usage generico.
"""

# SQLAlchemy 2.0 Base declarativa
# Importato qui per essere disponibile per tutti i modelli
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


from crm.models.user import User, UserRole
from crm.models.customer import Customer
from crm.models.vehicle import Vehicle
from crm.models.vendor import Vendor, VendorType
from crm.models.invoice import Invoice, InvoiceCharge, InvoiceStatus, PaymentStatus
from crm.models.cost_invoice import CostInvoice, CostItem
from crm.models.shared_invoice import (
    ContainerInvoice,
    SharedInvoice,
    SharedInvoiceType,
    SharedInvoiceVehicle,
)
from crm.models.transaction import Transaction, TransactionDirection, TransactionType

# Esportazione di tutti i modelli per Alembic
__all__ = [
    "Base",
    "User",
    "UserRole",
    "Customer",
    "Vehicle",
    "Vendor",
    "VendorType",
    "Invoice",
    "InvoiceCharge",
    "InvoiceStatus",
    "PaymentStatus",
    "CostInvoice",
    "CostItem",
    "SharedInvoice",
    "SharedInvoiceType",
    "SharedInvoiceVehicle",
    "ContainerInvoice",
    "Transaction",
    "TransactionDirection",
    "TransactionType",
]
