"""
Módulo de Facturación (Invoices)

Ciclo de vida de facturas emitidas contra proyectos de clientes:

- Creación en estado pending (monto en USD, total en guaraníes)
- Edición mientras la factura no es terminal
- Carga y revisión de comprobantes de pago
- Aprobación del pago con emisión del documento electrónico SIFEN (CDC + QR)
- Cancelación
- Paso automático a overdue por tarea periódica

Estados: pending -> overdue -> (approving) -> paid | cancelled

Tablas principales:
- invoices: Facturas
- invoice_sequences: Secuencia de numeración
"""

from .models import Invoice, InvoiceSequence, InvoiceStatus
from .schemas import InvoiceCreate, InvoiceUpdate, InvoiceOut, InvoiceStats
from .service import InvoiceLifecycleManager
from .stats import compute_invoice_stats
from .router import router

__all__ = [
    "Invoice", "InvoiceSequence", "InvoiceStatus",
    "InvoiceCreate", "InvoiceUpdate", "InvoiceOut", "InvoiceStats",
    "InvoiceLifecycleManager",
    "compute_invoice_stats",
    "router"
]
