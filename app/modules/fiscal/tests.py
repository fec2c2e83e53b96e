"""
Tests para el módulo Fiscal (SIFEN)

Cubren:
- Dígito verificador módulo 11 y validación de RUC paraguayo
- Generación de CDC y URL de QR en el gateway sandbox
- Mapeo de respuestas HTTP del gateway a errores de dominio
"""

import pytest
import requests
from datetime import date
from decimal import Decimal

from app.common.exceptions import FiscalGatewayError, FiscalValidationError, FiscalUnavailableError
from app.common.validators import calculate_mod11_dv, split_ruc, validate_paraguay_ruc
from app.modules.fiscal.gateway import HttpSifenGateway
from app.modules.fiscal.sandbox import SandboxSifenGateway, generate_cdc, build_qr_url
from app.modules.fiscal.schemas import FiscalClient, FiscalDocument, FiscalDocumentRequest

VALID_CDC = "01800123450001001000000122025010111234567890"


# ===== FIXTURES =====

@pytest.fixture
def fiscal_request():
    return FiscalDocumentRequest(
        invoice_number="F-000012",
        amount=Decimal("100.00"),
        currency="USD",
        total_amount=Decimal("730000"),
        settlement_currency="PYG",
        due_date=date(2030, 1, 31),
        description="Hito 1",
        client=FiscalClient(name="Constructora Guaraní S.A.", ruc="80012345-0")
    )


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeSession:
    """Sesión requests mínima: retorna una respuesta o lanza una excepción"""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def make_gateway(response=None, error=None):
    session = FakeSession(response, error)
    gateway = HttpSifenGateway("https://sifen.test/documents", api_key="secret", timeout=3, session=session)
    return gateway, session


# ===== TESTS DE VALIDACIONES RUC =====

class TestRucValidation:
    """Tests para RUC paraguayo y DV módulo 11"""

    def test_mod11_dv(self):
        assert calculate_mod11_dv("80012345") == 0
        assert calculate_mod11_dv("") is None

    def test_split_ruc(self):
        assert split_ruc("80012345-0") == ("80012345", 0)
        assert split_ruc("800.123 45") == ("80012345", None)

    @pytest.mark.parametrize("ruc,expected", [
        ("80012345-0", True),
        ("80012345", True),
        ("80012345-3", False),
        ("1234", False),
        ("ABC12345-1", False),
        ("", False),
    ])
    def test_validate_paraguay_ruc(self, ruc, expected):
        assert validate_paraguay_ruc(ruc) is expected


# ===== TESTS DEL GATEWAY SANDBOX =====

class TestSandboxGateway:

    def test_cdc_structure(self):
        cdc = generate_cdc("80012345-0", "1", "1", 12, date(2025, 1, 1), security_code="123456789")

        assert len(cdc) == 44
        assert cdc.isdigit()
        assert cdc.startswith("01" + "80012345" + "0" + "001" + "001" + "0000012")
        assert cdc[25:33] == "20250101"
        assert int(cdc[-1]) == calculate_mod11_dv(cdc[:-1])

    def test_ruc_without_dv_is_completed(self):
        cdc = generate_cdc("80012345", "1", "1", 1, date(2025, 1, 1), security_code="000000001")
        assert cdc[10] == "0"

    def test_qr_url_contains_cdc_and_hash(self):
        qr = build_qr_url("https://ekuatia.set.gov.py/consultas-test/qr", VALID_CDC, Decimal("730000"), "80000000")

        assert qr.startswith("https://ekuatia.set.gov.py/consultas-test/qr?")
        assert f"Id={VALID_CDC}" in qr
        assert "dTotGralOpe=730000" in qr
        assert "cHashQR=" in qr

    def test_issue(self, fiscal_request):
        gateway = SandboxSifenGateway(
            issuer_ruc="80000000",
            establishment="001",
            expedition_point="001",
            qr_base_url="https://ekuatia.set.gov.py/consultas-test/qr",
            clock=lambda: date(2025, 3, 15)
        )

        document = gateway.issue(fiscal_request)

        assert len(document.cdc) == 44
        assert document.cdc[17:24] == "0000012"
        assert document.cdc[25:33] == "20250315"
        assert document.qr.startswith("https://")


# ===== TESTS DEL GATEWAY HTTP =====

class TestHttpSifenGateway:

    def test_success(self, fiscal_request):
        gateway, session = make_gateway(FakeResponse(200, {"cdc": VALID_CDC, "qr": "https://ekuatia.test/qr?Id=1"}))

        document = gateway.issue(fiscal_request)

        assert document == FiscalDocument(cdc=VALID_CDC, qr="https://ekuatia.test/qr?Id=1")
        sent = session.requests[0]
        assert sent["timeout"] == 3
        assert sent["headers"]["Authorization"] == "Bearer secret"
        assert sent["json"]["invoice_number"] == "F-000012"
        assert sent["json"]["client"]["ruc"] == "80012345-0"

    def test_timeout_is_retryable(self, fiscal_request):
        gateway, _ = make_gateway(error=requests.exceptions.Timeout("read timed out"))

        with pytest.raises(FiscalUnavailableError) as exc_info:
            gateway.issue(fiscal_request)

        assert exc_info.value.retryable is True
        assert "timeout" in exc_info.value.reason

    def test_connection_error_is_retryable(self, fiscal_request):
        gateway, _ = make_gateway(error=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(FiscalUnavailableError):
            gateway.issue(fiscal_request)

    @pytest.mark.parametrize("status_code", [400, 409, 422])
    def test_rejection_is_not_retryable(self, fiscal_request, status_code):
        gateway, _ = make_gateway(FakeResponse(status_code, {"message": "RUC del receptor inexistente"}))

        with pytest.raises(FiscalValidationError) as exc_info:
            gateway.issue(fiscal_request)

        assert exc_info.value.retryable is False
        assert exc_info.value.reason == "RUC del receptor inexistente"

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    def test_server_errors_are_retryable(self, fiscal_request, status_code):
        gateway, _ = make_gateway(FakeResponse(status_code, text="Service Unavailable"))

        with pytest.raises(FiscalUnavailableError) as exc_info:
            gateway.issue(fiscal_request)

        assert exc_info.value.reason == "Service Unavailable"

    def test_unexpected_status(self, fiscal_request):
        gateway, _ = make_gateway(FakeResponse(302, text="Found"))

        with pytest.raises(FiscalGatewayError) as exc_info:
            gateway.issue(fiscal_request)

        assert type(exc_info.value) is FiscalGatewayError

    @pytest.mark.parametrize("body", [
        None,
        {"cdc": "123", "qr": "https://ekuatia.test/qr"},
        {"cdc": VALID_CDC, "qr": "no-es-url"},
        {"qr": "https://ekuatia.test/qr"},
    ])
    def test_malformed_response(self, fiscal_request, body):
        gateway, _ = make_gateway(FakeResponse(200, body, text="<html>"))

        with pytest.raises(FiscalGatewayError) as exc_info:
            gateway.issue(fiscal_request)

        assert exc_info.value.retryable is False
        assert not isinstance(exc_info.value, FiscalValidationError)
