from pydantic import Field
from decimal import Decimal
from typing import Optional, Union
from datetime import date, datetime
from app.common.schemas import CamelModel
from app.modules.invoices.models import InvoiceStatus


class InvoiceCreate(CamelModel):
    """
    Body de creación. Los tipos son laxos a propósito: la validación de
    negocio (monto positivo, vencimiento >= hoy) la hace el servicio y
    responde 400 con un mensaje legible.
    """
    project_id: int
    description: Optional[str] = None
    amount: Union[str, Decimal, float, int]
    due_date: Union[str, date]


class InvoiceUpdate(CamelModel):
    description: Optional[str] = None
    due_date: Optional[Union[str, date]] = None
    amount: Optional[Union[str, Decimal, float, int]] = None
    proof_file_url: Optional[str] = None
    payment_method: Optional[str] = None


class InvoiceCancelRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


class InvoiceOut(CamelModel):
    id: int
    invoice_number: str
    project_id: int
    project_name: Optional[str] = None
    client_id: int
    client_name: Optional[str] = None
    amount: Decimal
    total_amount: Decimal
    currency: str
    status: InvoiceStatus
    due_date: date
    paid_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    proof_file_url: Optional[str] = None
    payment_method: Optional[str] = None
    sifen_cdc: Optional[str] = Field(None, serialization_alias="sifenCDC")
    sifen_qr: Optional[str] = Field(None, serialization_alias="sifenQR")
    description: Optional[str] = None


class InvoiceStats(CamelModel):
    total: int = 0
    pending: int = 0
    overdue: int = 0
    paid: int = 0
    cancelled: int = 0
    revenue: Decimal = Decimal("0")
