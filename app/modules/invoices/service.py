from sqlalchemy.orm import Session
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional
from datetime import date, datetime, timedelta, timezone
from uuid import uuid4
import logging

from app.core.config import settings
from app.common.exceptions import (
    ValidationError, NotFoundError, InvalidStateError, MissingProofError, FiscalGatewayError
)
from app.modules.invoices.models import Invoice, InvoiceStatus, PAYABLE_STATUSES, MAX_AMOUNT
from app.modules.invoices.repository import InvoiceRepository
from app.modules.invoices.exchange import ExchangeRatePolicy, get_exchange_policy
from app.modules.projects.service import find_project
from app.modules.fiscal.gateway import FiscalGateway
from app.modules.fiscal.schemas import FiscalDocumentRequest, FiscalClient

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"description", "due_date", "amount", "proof_file_url", "payment_method"}

_CLEAR_APPROVAL = {"approval_token": None, "approval_origin": None, "approval_started_at": None}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvoiceLifecycleManager:
    """
    Máquina de estados de facturas: creación, edición, cancelación y
    aprobación de pagos con emisión del documento electrónico (SIFEN).

    Es el único componente que invoca al gateway fiscal. La aprobación pasa
    por un marcador ``approving`` escrito con compare-and-swap, lo que
    garantiza que cada factura recibe a lo sumo un CDC aunque lleguen
    aprobaciones concurrentes desde distintos procesos.
    """

    def __init__(
        self,
        db: Session,
        gateway: Optional[FiscalGateway] = None,
        exchange_policy: Optional[ExchangeRatePolicy] = None,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = _utcnow
    ):
        self.db = db
        self.repository = InvoiceRepository(db)
        self.gateway = gateway
        self.exchange_policy = exchange_policy or get_exchange_policy()
        self.today = today
        self.now = now

    # --- Validaciones ---

    def _parse_amount(self, value: Any) -> Decimal:
        if value is None or isinstance(value, bool):
            raise ValidationError("El monto es obligatorio")
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Monto inválido: {value!r}")

        if not amount.is_finite() or amount <= 0:
            raise ValidationError("El monto debe ser un número mayor a 0")
        if amount.as_tuple().exponent < -2:
            raise ValidationError("El monto admite como máximo 2 decimales")
        if amount > MAX_AMOUNT:
            raise ValidationError(f"El monto no puede superar {MAX_AMOUNT}")
        return amount

    def _convert_total(self, amount: Decimal) -> Decimal:
        total_amount = self.exchange_policy.convert(amount)
        if total_amount > MAX_AMOUNT:
            raise ValidationError(
                f"El total en {settings.SETTLEMENT_CURRENCY} ({total_amount}) supera el máximo admitido ({MAX_AMOUNT})"
            )
        return total_amount

    def _parse_due_date(self, value: Any) -> date:
        if isinstance(value, datetime):
            due_date = value.date()
        elif isinstance(value, date):
            due_date = value
        elif isinstance(value, str):
            try:
                value = value.strip()
                if "T" in value:
                    due_date = datetime.fromisoformat(value).date()
                else:
                    due_date = date.fromisoformat(value)
            except ValueError:
                raise ValidationError(f"Fecha de vencimiento inválida: {value!r} (use AAAA-MM-DD)")
        else:
            raise ValidationError("La fecha de vencimiento es obligatoria")

        if due_date < self.today():
            raise ValidationError("La fecha de vencimiento no puede ser anterior a hoy")
        return due_date

    @staticmethod
    def _parse_text(value: Any, field: str, max_length: Optional[int] = None) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValidationError(f"El campo {field} debe ser texto")
        value = value.strip()
        if max_length and len(value) > max_length:
            raise ValidationError(f"El campo {field} admite como máximo {max_length} caracteres")
        return value or None

    # --- Lecturas ---

    def get(self, invoice_id: int) -> Invoice:
        invoice = self.repository.get(invoice_id)
        if not invoice:
            raise NotFoundError(f"La factura {invoice_id} no existe")
        return invoice

    def list(self, status: Optional[InvoiceStatus] = None) -> List[Invoice]:
        return self.repository.list(status)

    # --- Operaciones ---

    def create(self, project_id: Any, amount: Any, description: Optional[str], due_date: Any) -> Invoice:
        """Crear factura en estado pending para un proyecto"""
        try:
            project_id = int(project_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Proyecto inválido: {project_id!r}")

        amount = self._parse_amount(amount)
        due_date = self._parse_due_date(due_date)
        description = self._parse_text(description, "description")

        project = find_project(self.db, project_id)
        if not project:
            raise NotFoundError(f"El proyecto {project_id} no existe")

        total_amount = self._convert_total(amount)
        invoice_number = self.repository.next_invoice_number(settings.INVOICE_NUMBER_PREFIX)

        invoice = Invoice(
            invoice_number=invoice_number,
            project_id=project.id,
            client_id=project.client_id,
            amount=amount,
            total_amount=total_amount,
            currency=settings.INVOICE_CURRENCY,
            status=InvoiceStatus.PENDING,
            due_date=due_date,
            description=description
        )
        invoice = self.repository.add(invoice)

        logger.info(
            f"Invoice {invoice.invoice_number} created for project {project.id}: "
            f"{amount} {settings.INVOICE_CURRENCY} -> {total_amount} {settings.SETTLEMENT_CURRENCY}"
        )
        return invoice

    def update(self, invoice_id: int, patch: Dict[str, Any]) -> Invoice:
        """
        Actualizar campos editables de una factura no terminal.

        No cambia el estado. Un cambio de ``amount`` vuelve a derivar
        ``total_amount`` con la política de cambio en la misma escritura.
        """
        invoice = self.get(invoice_id)
        self.ensure_editable(invoice)

        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Campos no editables: {', '.join(sorted(unknown))}")

        values: Dict[str, Any] = {}
        if "description" in patch:
            values["description"] = self._parse_text(patch["description"], "description")
        if "due_date" in patch:
            values["due_date"] = self._parse_due_date(patch["due_date"])
        if "amount" in patch:
            amount = self._parse_amount(patch["amount"])
            values["amount"] = amount
            values["total_amount"] = self._convert_total(amount)
        if "proof_file_url" in patch:
            values["proof_file_url"] = self._parse_text(patch["proof_file_url"], "proof_file_url", 500)
        if "payment_method" in patch:
            values["payment_method"] = self._parse_text(patch["payment_method"], "payment_method", 100)

        if not values:
            return invoice

        if not self.repository.transition(invoice_id, PAYABLE_STATUSES, values):
            current = self.get(invoice_id)
            raise InvalidStateError(
                f"La factura {current.invoice_number} cambió a '{current.status.value}' y ya no se puede editar",
                current.status.value
            )

        logger.info(f"Invoice {invoice.invoice_number} updated: {', '.join(sorted(values))}")
        return self.get(invoice_id)

    def attach_proof(self, invoice_id: int, proof_reference: str, payment_method: Optional[str] = None) -> Invoice:
        patch = {"proof_file_url": proof_reference}
        if payment_method is not None:
            patch["payment_method"] = payment_method
        return self.update(invoice_id, patch)

    def cancel(self, invoice_id: int, reason: Optional[str] = None) -> Invoice:
        """Anular factura; idempotente si ya está cancelada"""
        invoice = self.get(invoice_id)
        if invoice.status == InvoiceStatus.CANCELLED:
            return invoice
        self.ensure_editable(invoice)

        values: Dict[str, Any] = {"status": InvoiceStatus.CANCELLED}
        reason = self._parse_text(reason, "reason")
        if reason:
            note = f"[CANCELADA] {reason}"
            values["description"] = f"{invoice.description}\n\n{note}" if invoice.description else note

        if not self.repository.transition(invoice_id, PAYABLE_STATUSES, values):
            current = self.get(invoice_id)
            if current.status == InvoiceStatus.CANCELLED:
                return current
            raise InvalidStateError(
                f"La factura {current.invoice_number} está en estado '{current.status.value}' y no se puede cancelar",
                current.status.value
            )

        logger.info(f"Invoice {invoice.invoice_number} cancelled (was {invoice.status.value})")
        return self.get(invoice_id)

    def approve_payment(self, invoice_id: int) -> Invoice:
        """
        Aprobar el pago y emitir el documento electrónico.

        1. Valida estado (pending/overdue) y comprobante.
        2. Marca ``approving`` con compare-and-swap; solo el ganador continúa.
        3. Llama a SIFEN fuera de cualquier transacción abierta.
        4. Éxito: escribe paid + paid_date + CDC + QR en una sola escritura
           condicionada al token. Fallo: revierte al estado de origen.
        """
        if self.gateway is None:
            raise FiscalGatewayError("No hay gateway fiscal configurado")

        invoice = self.get(invoice_id)
        origin = invoice.status
        if origin not in PAYABLE_STATUSES:
            raise InvalidStateError(
                f"La factura {invoice.invoice_number} está en estado '{origin.value}' y no se puede aprobar",
                origin.value
            )
        if not (invoice.proof_file_url or "").strip():
            raise MissingProofError(
                f"La factura {invoice.invoice_number} no tiene comprobante de pago. "
                "Suba el comprobante antes de aprobar."
            )

        request = self._build_fiscal_request(invoice)
        token = uuid4().hex
        origin = self._acquire_approval(invoice, origin, token)

        try:
            document = self.gateway.issue(request)
        except FiscalGatewayError as e:
            self._release_approval(invoice, token, origin)
            logger.warning(
                f"SIFEN failed for invoice {invoice.invoice_number} "
                f"(retryable={e.retryable}): {e.reason}"
            )
            raise
        except Exception as e:
            self._release_approval(invoice, token, origin)
            logger.error(f"Unexpected SIFEN error for invoice {invoice.invoice_number}: {e}", exc_info=True)
            raise FiscalGatewayError("Error inesperado al emitir el documento electrónico", reason=str(e)) from e

        finalized = self.repository.transition(
            invoice_id,
            [InvoiceStatus.APPROVING],
            {
                "status": InvoiceStatus.PAID,
                "paid_date": self.now(),
                "sifen_cdc": document.cdc,
                "sifen_qr": document.qr,
                **_CLEAR_APPROVAL
            },
            token=token
        )
        if not finalized:
            current = self.get(invoice_id)
            logger.warning(
                f"Late SIFEN response for invoice {invoice.invoice_number} discarded "
                f"(CDC {document.cdc}); invoice is now '{current.status.value}'"
            )
            raise InvalidStateError(
                f"La factura {invoice.invoice_number} cambió a '{current.status.value}' "
                "mientras se emitía el documento; la respuesta de SIFEN fue descartada",
                current.status.value
            )

        logger.info(f"Invoice {invoice.invoice_number} approved, CDC {document.cdc}")
        return self.get(invoice_id)

    def mark_overdue(self, today: Optional[date] = None) -> int:
        """Pasa a overdue las facturas pending con vencimiento anterior a hoy"""
        count = self.repository.mark_overdue(today or self.today())
        if count:
            logger.info(f"Marked {count} invoice(s) as overdue")
        return count

    def release_stale_approvals(self, max_age: timedelta) -> int:
        """
        Revierte marcadores ``approving`` abandonados (p. ej. el proceso murió
        entre el marcador y la respuesta de SIFEN).
        """
        released = 0
        for invoice in self.repository.find_stale_approvals(self.now() - max_age):
            origin = InvoiceStatus(invoice.approval_origin or InvoiceStatus.PENDING.value)
            if self.repository.transition(
                invoice.id,
                [InvoiceStatus.APPROVING],
                {"status": origin, **_CLEAR_APPROVAL},
                token=invoice.approval_token
            ):
                released += 1
                logger.warning(
                    f"Released stale approval for invoice {invoice.invoice_number} "
                    f"(started {invoice.approval_started_at}), back to '{origin.value}'"
                )
        return released

    # --- Helpers ---

    def ensure_editable(self, invoice: Invoice):
        """InvalidStateError si la factura es terminal o tiene una aprobación en curso"""
        if invoice.status == InvoiceStatus.APPROVING:
            raise InvalidStateError(
                f"La factura {invoice.invoice_number} tiene una aprobación en curso",
                invoice.status.value
            )
        if invoice.is_terminal:
            raise InvalidStateError(
                f"La factura {invoice.invoice_number} está en estado '{invoice.status.value}' "
                "y no admite cambios",
                invoice.status.value
            )

    def _acquire_approval(self, invoice: Invoice, origin: InvoiceStatus, token: str) -> InvoiceStatus:
        """Compare-and-swap hacia ``approving``; retorna el estado de origen efectivo"""
        def attempt(expected: InvoiceStatus) -> bool:
            return self.repository.transition(
                invoice.id,
                [expected],
                {
                    "status": InvoiceStatus.APPROVING,
                    "approval_token": token,
                    "approval_origin": expected.value,
                    "approval_started_at": self.now()
                }
            )

        if attempt(origin):
            logger.info(f"Approval of invoice {invoice.invoice_number} acquired from '{origin.value}'")
            return origin

        current = self.get(invoice.id)
        # pending -> overdue puede ocurrir entre la lectura y el CAS
        if current.status in PAYABLE_STATUSES and current.status != origin and attempt(current.status):
            logger.info(f"Approval of invoice {invoice.invoice_number} acquired from '{current.status.value}'")
            return current.status

        current = self.get(invoice.id)
        logger.info(
            f"Approval of invoice {invoice.invoice_number} lost the race; status is '{current.status.value}'"
        )
        raise InvalidStateError(
            f"La factura {invoice.invoice_number} ya está siendo aprobada o cambió a '{current.status.value}'",
            current.status.value
        )

    def _release_approval(self, invoice: Invoice, token: str, origin: InvoiceStatus):
        reverted = self.repository.transition(
            invoice.id,
            [InvoiceStatus.APPROVING],
            {"status": origin, **_CLEAR_APPROVAL},
            token=token
        )
        if not reverted:
            logger.warning(f"Could not revert approval marker of invoice {invoice.invoice_number}; token no longer held")

    def _build_fiscal_request(self, invoice: Invoice) -> FiscalDocumentRequest:
        client = invoice.client
        return FiscalDocumentRequest(
            invoice_number=invoice.invoice_number,
            amount=invoice.amount,
            currency=invoice.currency,
            total_amount=invoice.total_amount,
            settlement_currency=settings.SETTLEMENT_CURRENCY,
            due_date=invoice.due_date,
            description=invoice.description,
            client=FiscalClient(name=client.name, ruc=client.ruc, email=client.email)
        )
