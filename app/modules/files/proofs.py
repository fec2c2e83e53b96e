"""
Resolución de comprobantes para la vista de revisión (solo lectura)
"""
from typing import Optional

from app.common.exceptions import MissingProofError
from app.modules.files.schemas import ProofDescription
from app.modules.files.service import ProofStore

PDF_SUFFIX = ".pdf"


def detect_proof_kind(reference: str) -> str:
    path = reference.split("?", 1)[0].split("#", 1)[0]
    return "pdf" if path.lower().endswith(PDF_SUFFIX) else "image"


class ProofVerifier:
    """
    Traduce ``proof_file_url`` a una URL renderizable y su tipo (pdf o imagen).

    Las URLs absolutas se devuelven tal cual; las claves del store se
    resuelven a URLs firmadas.
    """

    def __init__(self, store: Optional[ProofStore] = None):
        self.store = store

    def resolve_url(self, reference: str) -> str:
        if reference.startswith(("http://", "https://")):
            return reference
        if self.store is not None:
            return self.store.get_download_url(reference)
        return reference if reference.startswith("/") else f"/{reference}"

    def describe(self, invoice) -> ProofDescription:
        reference = (invoice.proof_file_url or "").strip()
        if not reference:
            raise MissingProofError(f"La factura {invoice.invoice_number} no tiene comprobante de pago")
        return ProofDescription(url=self.resolve_url(reference), kind=detect_proof_kind(reference))
