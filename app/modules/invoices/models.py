from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Date, Text, event
from sqlalchemy.orm import relationship
from app.common.mixins import TimestampMixin
from app.core.config import settings
from decimal import Decimal
import enum


class InvoiceStatus(str, enum.Enum):
    PENDING = "pending"      # Emitida, esperando pago
    OVERDUE = "overdue"      # Vencida sin pago; se aprueba igual que pending
    APPROVING = "approving"  # Marcador: aprobación en curso (SIFEN)
    PAID = "paid"            # Pagada, con CDC emitido
    CANCELLED = "cancelled"  # Anulada


PAYABLE_STATUSES = (InvoiceStatus.PENDING, InvoiceStatus.OVERDUE)
TERMINAL_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)

# Numeric(15, 2): 13 dígitos enteros
AMOUNT_PRECISION = 15
AMOUNT_SCALE = 2
MAX_AMOUNT = Decimal(10) ** (AMOUNT_PRECISION - AMOUNT_SCALE) - Decimal(1).scaleb(-AMOUNT_SCALE)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Invoice(Base, TimestampMixin):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_number = Column(String(50), nullable=False, unique=True)

    # References (inmutables)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    # Amounts: amount en moneda de referencia, total_amount en moneda local
    amount = Column(Numeric(AMOUNT_PRECISION, AMOUNT_SCALE), nullable=False)
    total_amount = Column(Numeric(AMOUNT_PRECISION, AMOUNT_SCALE), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    status = Column(
        Enum(InvoiceStatus, name="invoice_status", values_callable=_enum_values),
        nullable=False,
        default=InvoiceStatus.PENDING,
        index=True
    )

    # Dates
    due_date = Column(Date, nullable=False)
    paid_date = Column(DateTime(timezone=True), nullable=True)

    # Payment proof
    proof_file_url = Column(String(500), nullable=True)
    payment_method = Column(String(100), nullable=True)

    # SIFEN: se escriben una sola vez, al aprobar
    sifen_cdc = Column(String(44), nullable=True, unique=True)
    sifen_qr = Column(String(1000), nullable=True)

    description = Column(Text, nullable=True)

    # Approval marker (compare-and-swap token)
    approval_token = Column(String(32), nullable=True)
    approval_origin = Column(String(20), nullable=True)  # Estado al que se revierte
    approval_started_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    project = relationship("Project", lazy="joined")
    client = relationship("Client", lazy="joined")

    @property
    def project_name(self):
        return self.project.name if self.project else None

    @property
    def client_name(self):
        return self.client.name if self.client else None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class InvoiceSequence(Base):
    """Secuencia única de numeración de facturas"""
    __tablename__ = "invoice_sequences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prefix = Column(String(10), nullable=False, unique=True)  # Ej: "F-"
    current_number = Column(Integer, nullable=False, default=0)


@event.listens_for(InvoiceSequence.__table__, "after_create")
def seed_default_sequence(target, connection, **kw):
    """Crea la fila del prefijo configurado junto con la tabla"""
    connection.execute(target.insert().values(prefix=settings.INVOICE_NUMBER_PREFIX, current_number=0))
