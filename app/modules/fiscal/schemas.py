"""
Contrato de request/response con el gateway de SIFEN
"""
from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional
from datetime import date

CDC_LENGTH = 44


class FiscalClient(BaseModel):
    name: str
    ruc: str
    email: Optional[str] = None


class FiscalDocumentRequest(BaseModel):
    invoice_number: str
    amount: Decimal
    currency: str
    total_amount: Decimal
    settlement_currency: str
    due_date: date
    description: Optional[str] = None
    client: FiscalClient


class FiscalDocument(BaseModel):
    """Respuesta exitosa: código de control y link de verificación"""
    cdc: str = Field(..., description="Código de control de 44 dígitos")
    qr: str = Field(..., description="URL de verificación del documento")

    @field_validator("cdc")
    @classmethod
    def validate_cdc(cls, v):
        v = v.strip()
        if len(v) != CDC_LENGTH or not v.isdigit():
            raise ValueError(f"El CDC debe tener {CDC_LENGTH} dígitos")
        return v

    @field_validator("qr")
    @classmethod
    def validate_qr(cls, v):
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("El QR debe ser una URL http(s)")
        return v
