"""
Schemas Pydantic per il progetto Export CRM

Questo modulo contiene tutti gli schemi Pydantic utilizzati per la validazione
e serializzazione delle richieste e risposte API.
"""

from crm.schemas.common import Money
from crm.schemas.token import TokenPayload
from crm.schemas.invoice import (
    ChargeCreate,
    ChargeRead,
    ChargeUpdate,
    InvoiceCreate,
    InvoiceList,
    InvoiceRead,
    InvoiceTaxUpdate,
    PaymentRequest,
    PaymentResult,
    WalletApplicationRequest,
)
from crm.schemas.cost_invoice import (
    CostBreakdown,
    CostItemCreate,
    CostItemRead,
    CostItemUpdate,
    ProfitMetrics,
)
from crm.schemas.shared_invoice import (
    SharedCostLine,
    SharedInvoiceCreate,
    SharedInvoiceList,
    SharedInvoiceRead,
    SharedInvoiceUpdate,
    SharedInvoiceVehiclesRequest,
)
from crm.schemas.transaction import (
    TransactionCreate,
    TransactionList,
    TransactionRead,
    TransactionUpdate,
    VendorPaymentCreate,
    WalletMovementCreate,
    WalletSummary,
)

__all__ = [
    "Money",
    "TokenPayload",
    "ChargeCreate",
    "ChargeRead",
    "ChargeUpdate",
    "InvoiceCreate",
    "InvoiceList",
    "InvoiceRead",
    "InvoiceTaxUpdate",
    "PaymentRequest",
    "PaymentResult",
    "WalletApplicationRequest",
    "CostBreakdown",
    "CostItemCreate",
    "CostItemRead",
    "CostItemUpdate",
    "ProfitMetrics",
    "SharedCostLine",
    "SharedInvoiceCreate",
    "SharedInvoiceList",
    "SharedInvoiceRead",
    "SharedInvoiceUpdate",
    "SharedInvoiceVehiclesRequest",
    "TransactionCreate",
    "TransactionList",
    "TransactionRead",
    "TransactionUpdate",
    "VendorPaymentCreate",
    "WalletMovementCreate",
    "WalletSummary",
]
