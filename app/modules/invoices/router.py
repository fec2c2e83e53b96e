from fastapi import APIRouter, Depends, status, Query, File, UploadFile, Form
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.config import settings
from app.database.database import get_db
from app.common.exceptions import ValidationError
from app.modules.fiscal.gateway import FiscalGateway, get_fiscal_gateway
from app.modules.files.service import ProofStore, get_proof_store
from app.modules.files.proofs import ProofVerifier
from app.modules.files.schemas import ProofDescription
from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.service import InvoiceLifecycleManager
from app.modules.invoices.stats import compute_invoice_stats
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceCancelRequest, InvoiceOut, InvoiceStats
)

# Router de administración de facturas
router = APIRouter(prefix="/admin/invoices", tags=["Invoices"])


def get_lifecycle_manager(
    db: Session = Depends(get_db),
    gateway: FiscalGateway = Depends(get_fiscal_gateway)
) -> InvoiceLifecycleManager:
    return InvoiceLifecycleManager(db, gateway=gateway)


@router.get("", response_model=List[InvoiceOut])
def list_invoices(
    status: Optional[InvoiceStatus] = Query(None, description="Estado de la factura"),
    manager: InvoiceLifecycleManager = Depends(get_lifecycle_manager)
):
    """
    Listar facturas (más recientes primero) con nombre de proyecto y cliente
    """
    return manager.list(status)


@router.get("/stats", response_model=InvoiceStats)
def get_invoice_stats(manager: InvoiceLifecycleManager = Depends(get_lifecycle_manager)):
    """
    Conteos por estado e ingresos de facturas pagadas (moneda local)
    """
    return compute_invoice_stats(manager.list())


@router.post("", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    manager: InvoiceLifecycleManager = Depends(get_lifecycle_manager)
):
    """
    Crear una factura pendiente para un proyecto

    El total en moneda local se calcula con la tasa de cambio vigente.
    """
    return manager.create(
        project_id=invoice_data.project_id,
        amount=invoice_data.amount,
        description=invoice_data.description,
        due_date=invoice_data.due_date
    )


@router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(invoice_id: int, manager: InvoiceLifecycleManager = Depends(get_lifecycle_manager)):
    return manager.get(invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceOut)
def update_invoice(
    invoice_id: int,
    invoice_update: InvoiceUpdate,
    manager: InvoiceLifecycleManager = Depends(get_lifecycle_manager)
):
    """
    Actualizar una factura (solo pending u overdue)

    Las facturas pagadas o canceladas responden 409.
    """
    return manager.update(invoice_id, invoice_update.model_dump(exclude_unset=True))


@router.post("/{invoice_id}/approve", response_model=InvoiceOut)
def approve_payment(invoice_id: int, manager: InvoiceLifecycleManager = Depends(get_lifecycle_manager)):
    """
    Aprobar el pago y generar la factura electrónica SIFEN

    Requiere comprobante cargado. Si SIFEN falla la factura vuelve a su
    estado anterior y el error indica si conviene reintentar.
    """
    return manager.approve_payment(invoice_id)


@router.post("/{invoice_id}/cancel", response_model=InvoiceOut)
def cancel_invoice(
    invoice_id: int,
    cancel_data: Optional[InvoiceCancelRequest] = None,
    manager: InvoiceLifecycleManager = Depends(get_lifecycle_manager)
):
    """
    Cancelar una factura pendiente o vencida (idempotente)
    """
    return manager.cancel(invoice_id, cancel_data.reason if cancel_data else None)


# --- COMPROBANTES ---

@router.post("/{invoice_id}/proof", response_model=InvoiceOut)
def upload_proof(
    invoice_id: int,
    file: UploadFile = File(..., description="Comprobante de pago (imagen o PDF)"),
    payment_method: Optional[str] = Form(None, alias="paymentMethod", description="Método de pago"),
    manager: InvoiceLifecycleManager = Depends(get_lifecycle_manager),
    store: ProofStore = Depends(get_proof_store)
):
    """
    Subir el comprobante de pago y asociarlo a la factura
    """
    if file.content_type not in settings.ALLOWED_PROOF_TYPES:
        raise ValidationError(
            f"Tipo de archivo no permitido: {file.content_type}. "
            f"Use {', '.join(settings.ALLOWED_PROOF_TYPES)}"
        )

    content = file.file.read()
    if not content:
        raise ValidationError("El comprobante está vacío")
    if len(content) > settings.MAX_PROOF_SIZE:
        raise ValidationError(
            f"El comprobante es demasiado grande (máximo {settings.MAX_PROOF_SIZE // (1024 * 1024)}MB)"
        )

    invoice = manager.get(invoice_id)
    manager.ensure_editable(invoice)

    stored = store.store(invoice_id, file.filename or "comprobante", content, file.content_type)
    return manager.attach_proof(invoice_id, stored.key, payment_method)


@router.get("/{invoice_id}/proof", response_model=ProofDescription)
def describe_proof(
    invoice_id: int,
    manager: InvoiceLifecycleManager = Depends(get_lifecycle_manager),
    store: ProofStore = Depends(get_proof_store)
):
    """
    URL y tipo (pdf o imagen) del comprobante para la revisión
    """
    return ProofVerifier(store).describe(manager.get(invoice_id))
