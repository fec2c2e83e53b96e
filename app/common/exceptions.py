"""
Excepciones de dominio del ciclo de vida de facturas.

Cada error lleva un ``code`` legible por máquina, un ``message`` legible por
humanos, el status HTTP con el que se expone y si el llamador puede reintentar.
Los mensajes distinguen tres situaciones para el usuario final:

- corregir los datos enviados (validación, comprobante faltante)
- reintentar más tarde (SIFEN no disponible)
- la factura no admite la operación en su estado actual

Jerarquía::

    InvoiceError
    +-- ValidationError
    +-- NotFoundError
    +-- InvalidStateError
    +-- MissingProofError
    +-- ProofStorageError
    +-- FiscalGatewayError
        +-- FiscalValidationError
        +-- FiscalUnavailableError
"""
from typing import Optional, Dict, Any


class InvoiceError(Exception):
    """Base de todos los errores de dominio."""

    code: str = "invoice_error"
    status_code: int = 400
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "retryable": self.retryable}


class ValidationError(InvoiceError):
    """Datos de entrada malformados: el llamador debe corregir y reenviar."""

    code = "validation_error"
    status_code = 400


class NotFoundError(InvoiceError):
    code = "not_found"
    status_code = 404


class InvalidStateError(InvoiceError):
    """La operación no es válida para el estado actual de la factura."""

    code = "invalid_state"
    status_code = 409

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["currentStatus"] = self.current_status
        return payload


class MissingProofError(InvoiceError):
    code = "missing_proof"
    status_code = 422


class FiscalGatewayError(InvoiceError):
    """
    Fallo al emitir el documento electrónico en SIFEN.

    Usada directamente para respuestas malformadas; las subclases distinguen
    rechazo permanente de indisponibilidad transitoria.
    """

    code = "fiscal_gateway_error"
    status_code = 502

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason or message

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["reason"] = self.reason
        return payload


class FiscalValidationError(FiscalGatewayError):
    """SIFEN rechazó el documento: no reintentar sin corregir los datos."""

    code = "fiscal_rejected"


class FiscalUnavailableError(FiscalGatewayError):
    """Timeout o servicio caído: el llamador puede reintentar más tarde."""

    code = "fiscal_unavailable"
    status_code = 503
    retryable = True


class ProofStorageError(InvoiceError):
    """El almacenamiento de comprobantes no está disponible."""

    code = "proof_storage_unavailable"
    status_code = 503
    retryable = True
