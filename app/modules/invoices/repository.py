"""
Persistencia de facturas.

Todas las escrituras que dependen del estado se hacen con un UPDATE
condicional (compare-and-swap sobre ``status``) en la base de datos, de modo
que la exclusión entre aprobaciones concurrentes vale también entre procesos.
"""
from sqlalchemy import update, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional
import logging

from app.modules.invoices.models import Invoice, InvoiceSequence, InvoiceStatus

logger = logging.getLogger(__name__)


class InvoiceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, invoice_id: int) -> Optional[Invoice]:
        """Lee la versión comprometida más reciente (ignora la identity map)"""
        return (
            self.db.query(Invoice)
            .populate_existing()
            .filter(Invoice.id == invoice_id)
            .first()
        )

    def list(self, status: Optional[InvoiceStatus] = None) -> List[Invoice]:
        query = self.db.query(Invoice)
        if status:
            query = query.filter(Invoice.status == status)
        return query.order_by(desc(Invoice.created_at), desc(Invoice.id)).all()

    def add(self, invoice: Invoice) -> Invoice:
        try:
            self.db.add(invoice)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(invoice)
        return invoice

    def next_invoice_number(self, prefix: str) -> str:
        """
        Incrementa la secuencia bajo bloqueo de fila. El commit lo hace
        ``add`` junto con la factura, así número y factura quedan atómicos.
        """
        sequence = self._lock_sequence(prefix)
        if not sequence:
            try:
                self.db.add(InvoiceSequence(prefix=prefix, current_number=0))
                self.db.flush()
            except IntegrityError:
                # Otra transacción creó la fila primero
                self.db.rollback()
                logger.info(f"Invoice sequence '{prefix}' created concurrently, re-reading it")
            sequence = self._lock_sequence(prefix)

        sequence.current_number += 1
        return f"{prefix}{sequence.current_number:06d}"

    def _lock_sequence(self, prefix: str) -> Optional[InvoiceSequence]:
        return (
            self.db.query(InvoiceSequence)
            .filter(InvoiceSequence.prefix == prefix)
            .with_for_update()
            .first()
        )

    def transition(
        self,
        invoice_id: int,
        expected: Iterable[InvoiceStatus],
        values: Dict[str, Any],
        token: Optional[str] = None
    ) -> bool:
        """
        Escritura condicional: aplica ``values`` solo si el estado actual está
        en ``expected`` (y el token de aprobación coincide, si se indica).
        Retorna True si esta llamada ganó.
        """
        stmt = (
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status.in_(list(expected)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if token is not None:
            stmt = stmt.where(Invoice.approval_token == token)

        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result.rowcount == 1

    def mark_overdue(self, today: date) -> int:
        stmt = (
            update(Invoice)
            .where(Invoice.status == InvoiceStatus.PENDING, Invoice.due_date < today)
            .values(status=InvoiceStatus.OVERDUE)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result.rowcount

    def find_stale_approvals(self, started_before: datetime) -> List[Invoice]:
        return (
            self.db.query(Invoice)
            .populate_existing()
            .filter(
                Invoice.status == InvoiceStatus.APPROVING,
                Invoice.approval_started_at < started_before
            )
            .all()
        )
