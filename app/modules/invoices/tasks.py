"""
Tareas periódicas de Celery para el ciclo de vida de facturas
"""
from datetime import timedelta
import logging

from app.core.celery import celery_app
from app.core.config import settings
from app.database.database import SessionLocal
from app.modules.invoices.service import InvoiceLifecycleManager

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def mark_overdue_invoices(self):
    """
    Pasa a 'overdue' las facturas pendientes cuyo vencimiento ya pasó.
    """
    db = SessionLocal()
    try:
        count = InvoiceLifecycleManager(db).mark_overdue()
        return {"status": "success", "marked_overdue": count}
    except Exception as exc:
        logger.error(f"Overdue sweep failed: {str(exc)}")
        raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
    finally:
        db.close()


@celery_app.task
def release_stale_approvals():
    """
    Revierte aprobaciones que quedaron en 'approving' más allá del límite
    (proceso caído entre el marcador y la respuesta de SIFEN).
    """
    db = SessionLocal()
    try:
        released = InvoiceLifecycleManager(db).release_stale_approvals(
            timedelta(seconds=settings.APPROVAL_STALE_AFTER_SECONDS)
        )
        return {"status": "success", "released": released}
    finally:
        db.close()
