"""
Cliente del gateway de facturación electrónica (SIFEN).

El ciclo de vida de facturas solo conoce ``FiscalGateway.issue``; el transporte
concreto se elige por configuración (``SIFEN_MODE``).
"""
from abc import ABC, abstractmethod
from functools import lru_cache
from pydantic import ValidationError as PydanticValidationError
import requests
import logging

from app.core.config import settings
from app.common.exceptions import FiscalGatewayError, FiscalValidationError, FiscalUnavailableError
from app.modules.fiscal.schemas import FiscalDocumentRequest, FiscalDocument

logger = logging.getLogger(__name__)


class FiscalGateway(ABC):
    """Puerto para la emisión de documentos electrónicos."""

    @abstractmethod
    def issue(self, request: FiscalDocumentRequest) -> FiscalDocument:
        """
        Emite el documento de forma síncrona.

        Debe terminar (con éxito o error) dentro de un tiempo acotado y
        lanzar solo subclases de FiscalGatewayError.
        """


class HttpSifenGateway(FiscalGateway):
    """Adaptador HTTP hacia el servicio que firma y envía los DE a la SET"""

    REJECTION_STATUSES = (400, 409, 422)

    def __init__(self, api_url: str, api_key: str = "", timeout: float = 15.0, session=None):
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self):
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def _extract_reason(response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("message") or body.get("detail") or body)
        return str(body)

    def issue(self, request: FiscalDocumentRequest) -> FiscalDocument:
        payload = request.model_dump(mode="json")
        logger.info(f"Sending invoice {request.invoice_number} to SIFEN gateway")

        try:
            response = self.session.post(
                self.api_url, json=payload, headers=self._headers(), timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            raise FiscalUnavailableError(
                "SIFEN no respondió a tiempo. Intente nuevamente más tarde.",
                reason=f"timeout after {self.timeout}s"
            ) from e
        except requests.exceptions.RequestException as e:
            raise FiscalUnavailableError(
                "No se pudo conectar con SIFEN. Intente nuevamente más tarde.",
                reason=str(e)
            ) from e

        if response.status_code in self.REJECTION_STATUSES:
            reason = self._extract_reason(response)
            raise FiscalValidationError(f"SIFEN rechazó el documento: {reason}", reason=reason)

        if response.status_code == 429 or response.status_code >= 500:
            reason = self._extract_reason(response)
            raise FiscalUnavailableError(
                "SIFEN no está disponible. Intente nuevamente más tarde.", reason=reason
            )

        if not 200 <= response.status_code < 300:
            reason = self._extract_reason(response)
            raise FiscalGatewayError(f"Respuesta inesperada de SIFEN (HTTP {response.status_code})", reason=reason)

        try:
            return FiscalDocument.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            logger.error(f"Malformed SIFEN response for invoice {request.invoice_number}: {response.text!r}")
            raise FiscalGatewayError("SIFEN devolvió una respuesta inválida", reason=str(e)) from e


@lru_cache
def get_fiscal_gateway() -> FiscalGateway:
    """Dependencia FastAPI: gateway configurado según SIFEN_MODE"""
    if settings.SIFEN_MODE == "http":
        return HttpSifenGateway(
            api_url=settings.SIFEN_API_URL,
            api_key=settings.SIFEN_API_KEY,
            timeout=settings.SIFEN_TIMEOUT_SECONDS
        )

    from app.modules.fiscal.sandbox import SandboxSifenGateway
    logger.warning("SIFEN_MODE=sandbox: fiscal documents are NOT sent to the SET")
    return SandboxSifenGateway(
        issuer_ruc=settings.SIFEN_ISSUER_RUC,
        establishment=settings.SIFEN_ESTABLISHMENT,
        expedition_point=settings.SIFEN_EXPEDITION_POINT,
        qr_base_url=settings.SIFEN_QR_BASE_URL
    )
