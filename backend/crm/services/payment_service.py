"""
Service Layer per gli incassi delle fatture
Progetto: Export CRM (Gestionale Export Veicoli)

Gestisce:
- Determinazione dello stato di pagamento dall'importo incassato
- Registrazione pagamenti (manuali, da webhook o da wallet cliente)
- Riallineamento dello stato dopo movimenti registrati a mano
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crm.core.cache import ResponseCache, get_cache, share_token_key, wallet_key
from crm.core.database import commit_unit
from crm.core.exceptions import ForbiddenError, InsufficientBalanceError, NotFoundError
from crm.core.money import round2, to_decimal
from crm.core.permissions import can_manage_wallet, can_record_payment, ensure
from crm.core.security import verify_webhook_secret
from crm.models import (
    Invoice,
    PaymentStatus,
    Transaction,
    TransactionDirection,
    TransactionType,
)
from crm.models.transaction import invoice_payment_description, wallet_application_description
from crm.schemas.invoice import PaymentRequest, PaymentResult
from crm.services.cost_invoice_service import compute_revenue
from crm.services.ledger import append_entry, incoming_total_for_invoice, normalize_currency
from crm.services.wallet_service import WalletService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Canali di autorizzazione accettati per la registrazione pagamenti
AUTH_WEBHOOK = "webhook"
AUTH_USER = "user"


def resolve_payment_status(amount_received: Any, total_with_tax: Any) -> PaymentStatus:
    """
    Stato di pagamento in funzione dell'importo incassato.

    - incassato >= totale: PAID
    - 0 < incassato < totale: PARTIALLY_PAID
    - incassato <= 0: PENDING

    Il confronto avviene sugli importi arrotondati a 2 decimali,
    senza tolleranza.
    """
    received = round2(amount_received)
    total = round2(total_with_tax)
    if received >= total:
        return PaymentStatus.PAID
    if received > 0:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.PENDING


class PaymentService:
    """
    Service per la registrazione degli incassi.

    Ogni incasso viene registrato come movimento nel registro; lo
    stato della fattura è sempre coerente con l'incassato.
    """

    def __init__(
        self,
        wallet_service: Optional[WalletService] = None,
        cache: Optional[ResponseCache] = None,
    ) -> None:
        self.wallet_service = wallet_service or WalletService(cache)
        self._cache = cache

    @property
    def cache(self) -> ResponseCache:
        return self._cache if self._cache is not None else get_cache()

    def authorize(self, user: Any = None, webhook_secret: Optional[str] = None) -> str:
        """
        Verifica il canale di autorizzazione del pagamento.

        Accetta il segreto condiviso del webhook oppure un utente con
        ruolo admin, manager o accountant. Un segreto presente ma errato
        viene rifiutato anche se l'utente ha un ruolo abilitato.

        Returns:
            str: "webhook" o "user"

        Raises:
            ForbiddenError: segreto errato o nessun canale valido
        """
        if webhook_secret:
            if verify_webhook_secret(webhook_secret):
                return AUTH_WEBHOOK
            raise ForbiddenError("Segreto webhook non valido")
        if can_record_payment(user):
            return AUTH_USER
        raise ForbiddenError("Non hai i permessi per registrare pagamenti")

    async def _get_invoice(self, db: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
        # Lock di riga: i pagamenti concorrenti sulla stessa fattura vengono serializzati
        stmt = (
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .options(selectinload(Invoice.charges))
            .with_for_update()
        )
        result = await db.execute(stmt)
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundError(f"Fattura {invoice_id} non trovata")
        return invoice

    def _total_with_tax(self, invoice: Invoice) -> Decimal:
        return round2(compute_revenue(invoice.charges, invoice.tax_enabled, invoice.tax_rate).revenue)

    def _set_status(
        self,
        invoice: Invoice,
        status: PaymentStatus,
        paid_at: Optional[datetime] = None,
    ) -> None:
        previous = invoice.payment_status
        invoice.payment_status = status.value

        # paid_at non viene mai sovrascritto
        if invoice.paid_at is None:
            if paid_at is not None:
                invoice.paid_at = paid_at
            elif status == PaymentStatus.PAID:
                invoice.paid_at = datetime.now(timezone.utc)

        if previous != status.value:
            logger.info(
                "Fattura %s: stato pagamento %s → %s",
                invoice.invoice_number, previous, status.value,
            )

    async def apply_payment(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        request: PaymentRequest,
        user: Any = None,
        webhook_secret: Optional[str] = None,
    ) -> PaymentResult:
        """
        Registra un pagamento sulla fattura.

        Steps:
        1. Autorizza (segreto webhook o ruolo utente)
        2. Calcola il totale con imposta
        3. Da wallet: verifica il saldo, registra prelievo e incasso
        4. Importo cumulativo: registra solo l'incremento rispetto al già incassato
        5. Stato esplicito: lo applica senza movimenti
        6. Commit unico di movimenti e stato

        Args:
            db: Sessione database
            invoice_id: UUID della fattura
            request: Dati del pagamento
            user: Utente autenticato (opzionale se arriva il segreto webhook)
            webhook_secret: Segreto condiviso del webhook

        Returns:
            PaymentResult: stato risultante e movimenti registrati

        Raises:
            ForbiddenError: canale non autorizzato
            NotFoundError: fattura non trovata
            InsufficientBalanceError: saldo wallet insufficiente
        """
        channel = self.authorize(user, webhook_secret)
        if request.via_wallet:
            ensure(can_manage_wallet(user), "Non hai i permessi per usare il wallet")

        invoice = await self._get_invoice(db, invoice_id)
        total = self._total_with_tax(invoice)
        currency = normalize_currency(request.currency)
        created_by_id = getattr(user, "id", None)

        entries: list[Transaction] = []
        wallet_balance: Optional[Decimal] = None
        amount_received: Optional[Decimal] = None

        if request.via_wallet:
            amount = round2(request.amount_received)
            balance = await self.wallet_service.get_balance(db, invoice.customer_id, currency)
            if balance < amount:
                logger.warning(
                    "Saldo wallet insufficiente per fattura %s: disponibile %s, richiesto %s",
                    invoice.invoice_number, balance, amount,
                )
                raise InsufficientBalanceError(balance, amount, currency)

            previously_received = await incoming_total_for_invoice(db, invoice.id)
            common = dict(
                amount=amount,
                currency=currency,
                reference_number=request.reference_number,
                customer_id=invoice.customer_id,
                vehicle_id=invoice.vehicle_id,
                invoice_id=invoice.id,
                created_by_id=created_by_id,
            )
            entries.append(append_entry(
                db,
                direction=TransactionDirection.OUTGOING,
                type=TransactionType.WALLET_APPLICATION,
                description=wallet_application_description(invoice.invoice_number),
                **common,
            ))
            entries.append(append_entry(
                db,
                direction=TransactionDirection.INCOMING,
                type=TransactionType.PAYMENT,
                description=invoice_payment_description(invoice.invoice_number),
                **common,
            ))
            amount_received = round2(previously_received + amount)
            status = resolve_payment_status(amount_received, total)
            wallet_balance = round2(balance - amount)

        elif request.amount_received is not None:
            amount_received = round2(request.amount_received)
            status = resolve_payment_status(amount_received, total)
            increment = amount_received - await incoming_total_for_invoice(db, invoice.id)
            if increment > 0:
                entries.append(append_entry(
                    db,
                    direction=TransactionDirection.INCOMING,
                    type=TransactionType.PAYMENT,
                    amount=increment,
                    description=invoice_payment_description(invoice.invoice_number),
                    currency=currency,
                    reference_number=request.reference_number,
                    customer_id=invoice.customer_id,
                    vehicle_id=invoice.vehicle_id,
                    invoice_id=invoice.id,
                    created_by_id=created_by_id,
                ))

        else:
            status = PaymentStatus(request.payment_status)

        self._set_status(invoice, status, request.paid_at)
        await commit_unit(db, f"pagamento fattura {invoice.invoice_number}")

        if request.via_wallet:
            await self.cache.invalidate(wallet_key(invoice.customer_id, currency))
        if invoice.share_token:
            await self.cache.invalidate(share_token_key(invoice.share_token))

        logger.info(
            "Pagamento registrato su fattura %s via %s (%d movimenti)",
            invoice.invoice_number, channel, len(entries),
        )
        return PaymentResult(
            invoice_id=invoice.id,
            payment_status=status,
            paid_at=invoice.paid_at,
            total_amount_with_tax=total,
            amount_received=amount_received,
            transaction_ids=[entry.id for entry in entries],
            wallet_balance=wallet_balance,
        )

    async def apply_from_wallet(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        amount: Decimal,
        user: Any,
        currency: Optional[str] = None,
        reference_number: Optional[str] = None,
    ) -> PaymentResult:
        """
        Preleva fondi dal wallet del cliente e li applica alla fattura.

        Raises:
            ForbiddenError: ruolo non abilitato alla gestione del wallet
            InsufficientBalanceError: saldo insufficiente
        """
        ensure(can_manage_wallet(user), "Non hai i permessi per usare il wallet")
        request = PaymentRequest(
            amount_received=to_decimal(amount),
            via_wallet=True,
            currency=currency,
            reference_number=reference_number,
        )
        return await self.apply_payment(db, invoice_id, request, user=user)

    async def recalc_payment_status(self, db: AsyncSession, invoice_id: uuid.UUID) -> PaymentStatus:
        """
        Riallinea lo stato di pagamento al totale incassato nel registro.

        Esegue solo flush: il commit spetta al chiamante.
        """
        invoice = await self._get_invoice(db, invoice_id)
        received = await incoming_total_for_invoice(db, invoice.id)
        status = resolve_payment_status(received, self._total_with_tax(invoice))
        self._set_status(invoice, status)
        await db.flush()
        return status
