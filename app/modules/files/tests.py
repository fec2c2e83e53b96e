"""
Tests para comprobantes de pago: almacenamiento en MinIO y resolución
para la vista de revisión.
"""

import pytest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

from minio.error import S3Error

from app.common.exceptions import MissingProofError, ProofStorageError
from app.modules.files.proofs import ProofVerifier, detect_proof_kind
from app.modules.files.service import MinIOProofStore


class FakeS3Error(S3Error):
    def __init__(self):
        Exception.__init__(self, "S3 operation failed; code: AccessDenied")


@pytest.fixture
def minio_client():
    client = MagicMock()
    client.bucket_exists.return_value = True
    client.presigned_get_object.return_value = "https://minio.test/payment-proofs/key?X-Amz-Signature=1"
    return client


@pytest.fixture
def store(minio_client):
    return MinIOProofStore(
        client=minio_client,
        public_client=minio_client,
        bucket_name="payment-proofs",
        expires=timedelta(minutes=30)
    )


# ===== TESTS DEL STORE =====

class TestMinIOProofStore:

    def test_store_uploads_under_invoice_prefix(self, store, minio_client):
        stored = store.store(7, "recibo de pago.png", b"\x89PNG", "image/png")

        assert stored.key.startswith("invoices/7/")
        assert stored.key.endswith("-recibo_de_pago.png")
        assert stored.size == 4
        bucket, key, _ = minio_client.put_object.call_args.args
        assert bucket == "payment-proofs"
        assert key == stored.key
        assert minio_client.put_object.call_args.kwargs["content_type"] == "image/png"

    def test_key_uses_current_utc_month(self, store):
        now = datetime.now(timezone.utc)

        key = store.generate_key(3, "a.pdf")

        assert key.startswith(f"invoices/3/{now.year}/{now.month:02d}/")

    def test_bucket_is_created_once(self, store, minio_client):
        minio_client.bucket_exists.return_value = False

        store.store(1, "a.pdf", b"%PDF", "application/pdf")
        store.store(1, "b.pdf", b"%PDF", "application/pdf")

        minio_client.make_bucket.assert_called_once_with("payment-proofs")

    def test_upload_failure_is_retryable(self, store, minio_client):
        minio_client.put_object.side_effect = FakeS3Error()

        with pytest.raises(ProofStorageError) as exc_info:
            store.store(1, "a.pdf", b"%PDF", "application/pdf")
        assert exc_info.value.retryable is True

    def test_presigned_download_url(self, store, minio_client):
        url = store.get_download_url("invoices/1/a.pdf")

        assert url.startswith("https://minio.test/")
        minio_client.presigned_get_object.assert_called_once_with(
            bucket_name="payment-proofs", object_name="invoices/1/a.pdf", expires=timedelta(minutes=30)
        )


# ===== TESTS DE VERIFICACIÓN =====

class TestProofVerifier:

    @pytest.mark.parametrize("reference,kind", [
        ("invoices/1/factura.pdf", "pdf"),
        ("https://cdn.test/Recibo.PDF?token=1", "pdf"),
        ("invoices/1/recibo.jpg", "image"),
        ("https://cdn.test/download?name=recibo.pdf", "image"),
        ("uploads/captura", "image"),
    ])
    def test_detect_kind(self, reference, kind):
        assert detect_proof_kind(reference) == kind

    def test_absolute_url_is_kept(self):
        verifier = ProofVerifier(MagicMock())
        assert verifier.resolve_url("https://cdn.test/a.png") == "https://cdn.test/a.png"
        verifier.store.get_download_url.assert_not_called()

    def test_key_is_presigned_with_store(self, store):
        assert ProofVerifier(store).resolve_url("invoices/1/a.pdf").startswith("https://minio.test/")

    def test_relative_reference_without_store(self):
        assert ProofVerifier().resolve_url("uploads/a.png") == "/uploads/a.png"
        assert ProofVerifier().resolve_url("/uploads/a.png") == "/uploads/a.png"

    def test_describe(self):
        invoice = SimpleNamespace(invoice_number="F-000001", proof_file_url=" uploads/a.pdf ")

        description = ProofVerifier().describe(invoice)

        assert description.kind == "pdf"
        assert description.url == "/uploads/a.pdf"

    @pytest.mark.parametrize("reference", [None, "", "   "])
    def test_describe_without_proof(self, reference):
        invoice = SimpleNamespace(invoice_number="F-000001", proof_file_url=reference)

        with pytest.raises(MissingProofError):
            ProofVerifier().describe(invoice)
