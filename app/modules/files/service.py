"""
MinIO-backed store for payment proofs with presigned download URLs
"""
from abc import ABC, abstractmethod
from minio import Minio
from minio.error import S3Error
from functools import lru_cache
from datetime import datetime, timedelta, timezone
from uuid import uuid4
import io
import re
import logging

from app.core.config import settings
from app.common.exceptions import ProofStorageError
from app.modules.files.schemas import StoredProof

logger = logging.getLogger(__name__)


class ProofStore(ABC):
    """Puerto para el almacenamiento de comprobantes de pago."""

    @abstractmethod
    def store(self, invoice_id: int, filename: str, data: bytes, content_type: str) -> StoredProof:
        """Persiste el archivo y retorna la referencia a guardar en la factura."""

    @abstractmethod
    def get_download_url(self, key: str) -> str:
        """Resuelve una referencia en una URL descargable."""


class MinIOProofStore(ProofStore):
    """Service for handling MinIO operations with presigned URLs"""

    def __init__(self, client: Minio = None, public_client: Minio = None, bucket_name: str = None,
                 expires: timedelta = None):
        self.client = client or Minio(
            settings.minio_endpoint,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_USE_SSL
        )
        # Presigned URLs must be signed for the host the browser will use
        self.public_client = public_client or Minio(
            settings.minio_public_endpoint,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_USE_SSL,
            region="us-east-1"
        )
        self.bucket_name = bucket_name or settings.MINIO_BUCKET_NAME
        self.expires = expires or timedelta(minutes=settings.PROOF_URL_EXPIRE_MINUTES)
        self._bucket_ready = False

    def _ensure_bucket_exists(self):
        """Ensure the bucket exists, create if it doesn't"""
        if self._bucket_ready:
            return
        try:
            if not self.client.bucket_exists(self.bucket_name):
                self.client.make_bucket(self.bucket_name)
                logger.info(f"Created MinIO bucket: {self.bucket_name}")
            self._bucket_ready = True
        except S3Error as e:
            logger.error(f"MinIO bucket setup error: {e}")
            raise ProofStorageError("El almacenamiento de comprobantes no está disponible") from e

    @staticmethod
    def generate_key(invoice_id: int, filename: str) -> str:
        """Structure: invoices/<invoice_id>/yyyy/mm/<uuid>-<filename>"""
        now = datetime.now(timezone.utc)
        safe_name = re.sub(r"[^A-Za-z0-9._-]", "_", filename or "comprobante")
        return f"invoices/{invoice_id}/{now.year}/{now.month:02d}/{uuid4().hex}-{safe_name}"

    def store(self, invoice_id: int, filename: str, data: bytes, content_type: str) -> StoredProof:
        self._ensure_bucket_exists()
        key = self.generate_key(invoice_id, filename)
        try:
            self.client.put_object(
                self.bucket_name,
                key,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type
            )
        except S3Error as e:
            logger.error(f"MinIO upload error for invoice {invoice_id}: {e}")
            raise ProofStorageError("No se pudo guardar el comprobante. Intente nuevamente.") from e

        logger.info(f"Stored proof for invoice {invoice_id} at {key} ({len(data)} bytes)")
        return StoredProof(key=key, content_type=content_type, size=len(data))

    def get_download_url(self, key: str) -> str:
        try:
            return self.public_client.presigned_get_object(
                bucket_name=self.bucket_name,
                object_name=key,
                expires=self.expires
            )
        except S3Error as e:
            logger.error(f"MinIO download URL generation error: {e}")
            raise ProofStorageError("No se pudo generar el enlace del comprobante") from e


@lru_cache
def get_proof_store() -> ProofStore:
    """Dependencia FastAPI; el cliente se crea al primer uso"""
    return MinIOProofStore()
