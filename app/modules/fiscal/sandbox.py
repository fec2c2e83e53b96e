"""
Gateway local para desarrollo: genera CDC con la estructura de SIFEN
sin comunicarse con la SET.

Estructura del CDC (44 dígitos)::

    tipo DE (2) | RUC emisor (8) | DV RUC (1) | establecimiento (3)
    | punto de expedición (3) | número (7) | tipo contribuyente (1)
    | fecha emisión AAAAMMDD (8) | tipo emisión (1)
    | código de seguridad (9) | DV (1)
"""
from datetime import date
from typing import Optional
import hashlib
import secrets
import re

from app.common.validators import calculate_mod11_dv, split_ruc
from app.modules.fiscal.gateway import FiscalGateway
from app.modules.fiscal.schemas import FiscalDocumentRequest, FiscalDocument

ELECTRONIC_INVOICE = "01"
LEGAL_ENTITY = "2"
NORMAL_EMISSION = "1"


def generate_cdc(
    issuer_ruc: str,
    establishment: str,
    expedition_point: str,
    document_number: int,
    issue_date: date,
    security_code: Optional[str] = None,
    document_type: str = ELECTRONIC_INVOICE,
    taxpayer_type: str = LEGAL_ENTITY,
) -> str:
    number, ruc_dv = split_ruc(issuer_ruc)
    if ruc_dv is None:
        ruc_dv = calculate_mod11_dv(number)
    security_code = security_code or f"{secrets.randbelow(10 ** 9):09d}"

    body = (
        f"{document_type:0>2}"
        f"{int(number):08d}"
        f"{ruc_dv}"
        f"{establishment:0>3}"
        f"{expedition_point:0>3}"
        f"{document_number % 10 ** 7:07d}"
        f"{taxpayer_type}"
        f"{issue_date:%Y%m%d}"
        f"{NORMAL_EMISSION}"
        f"{security_code}"
    )
    return f"{body}{calculate_mod11_dv(body)}"


def build_qr_url(base_url: str, cdc: str, total_amount, issuer_ruc: str) -> str:
    params = f"nVersion=150&Id={cdc}&dTotGralOpe={total_amount}"
    qr_hash = hashlib.sha256(f"{params}{issuer_ruc}".encode("utf-8")).hexdigest()
    return f"{base_url}?{params}&cHashQR={qr_hash}"


class SandboxSifenGateway(FiscalGateway):

    def __init__(self, issuer_ruc: str, establishment: str, expedition_point: str, qr_base_url: str, clock=date.today):
        self.issuer_ruc = issuer_ruc
        self.establishment = establishment
        self.expedition_point = expedition_point
        self.qr_base_url = qr_base_url
        self.clock = clock

    def issue(self, request: FiscalDocumentRequest) -> FiscalDocument:
        digits = re.sub(r"\D", "", request.invoice_number) or "0"
        cdc = generate_cdc(
            issuer_ruc=self.issuer_ruc,
            establishment=self.establishment,
            expedition_point=self.expedition_point,
            document_number=int(digits),
            issue_date=self.clock(),
        )
        qr = build_qr_url(self.qr_base_url, cdc, request.total_amount, self.issuer_ruc)
        return FiscalDocument(cdc=cdc, qr=qr)
