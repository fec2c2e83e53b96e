from decimal import Decimal
from typing import Any, Iterable, Mapping

from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.schemas import InvoiceStats


def _field(invoice: Any, name: str, camel_name: str):
    if isinstance(invoice, Mapping):
        return invoice.get(name, invoice.get(camel_name))
    return getattr(invoice, name)


def compute_invoice_stats(invoices: Iterable) -> InvoiceStats:
    """
    Conteos por estado e ingresos (suma de total_amount de las pagadas).

    Acepta modelos ORM o dicts (snake_case o camelCase). Función pura: se
    recalcula en cada llamada y una colección vacía da todo en cero.
    """
    stats = InvoiceStats()
    for invoice in invoices:
        status = InvoiceStatus(_field(invoice, "status", "status"))
        stats.total += 1
        if status == InvoiceStatus.PENDING:
            stats.pending += 1
        elif status == InvoiceStatus.OVERDUE:
            stats.overdue += 1
        elif status == InvoiceStatus.CANCELLED:
            stats.cancelled += 1
        elif status == InvoiceStatus.PAID:
            stats.paid += 1
            stats.revenue += Decimal(str(_field(invoice, "total_amount", "totalAmount") or 0))
    return stats
