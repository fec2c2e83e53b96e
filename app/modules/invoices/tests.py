"""
Tests para el módulo de Facturas

Cubren:
- Creación y validaciones (monto, vencimiento, proyecto)
- Edición y cancelación según estado
- Aprobación de pagos con SIFEN: comprobante, fallos del gateway,
  concurrencia (a lo sumo un CDC por factura) y respuestas tardías
- Paso automático a overdue y liberación de aprobaciones abandonadas
- Estadísticas
- Endpoints /admin/invoices
"""

import inspect
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.common.exceptions import (
    ValidationError, NotFoundError, InvalidStateError, MissingProofError,
    FiscalGatewayError, FiscalUnavailableError, FiscalValidationError
)
from app.core.config import settings
from app.modules.invoices.models import Invoice, InvoiceSequence, InvoiceStatus
from app.modules.invoices.router import upload_proof
from app.modules.invoices.repository import InvoiceRepository
from app.modules.invoices.exchange import FixedRateExchangePolicy
from app.modules.invoices.stats import compute_invoice_stats


def _later(minutes=10):
    return lambda: datetime.now(timezone.utc) + timedelta(minutes=minutes)


# ===== TESTS DE CREACIÓN =====

class TestCreateInvoice:

    def test_create_pending_invoice(self, manager, sample_project, tomorrow):
        invoice = manager.create(sample_project.id, "100.00", "Desarrollo fase 1", tomorrow)

        assert invoice.id is not None
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.amount == Decimal("100.00")
        assert invoice.total_amount == Decimal("730000")
        assert invoice.client_id == sample_project.client_id
        assert invoice.due_date == tomorrow
        assert invoice.paid_date is None
        assert invoice.sifen_cdc is None
        assert invoice.sifen_qr is None

    def test_total_uses_injected_policy(self, db_session, make_manager, sample_project, tomorrow):
        manager = make_manager(db_session, exchange_policy=FixedRateExchangePolicy(Decimal("7250.5"), 0))

        invoice = manager.create(sample_project.id, Decimal("10.01"), None, tomorrow)

        # 10.01 * 7250.5 = 72577.505 -> 72578 Gs
        assert invoice.total_amount == Decimal("72578")

    def test_invoice_numbers_are_sequential(self, manager, sample_project, tomorrow):
        first = manager.create(sample_project.id, "10", None, tomorrow)
        second = manager.create(sample_project.id, "20", None, tomorrow)

        assert first.invoice_number == "F-000001"
        assert second.invoice_number == "F-000002"

    def test_due_date_today_is_accepted(self, manager, sample_project):
        invoice = manager.create(sample_project.id, "50", None, date.today().isoformat())
        assert invoice.due_date == date.today()

    @pytest.mark.parametrize("amount", ["0", "-10", "abc", "NaN", "Infinity", "10.001", None, "1e20", "10000000000000"])
    def test_invalid_amount(self, manager, sample_project, tomorrow, amount):
        with pytest.raises(ValidationError):
            manager.create(sample_project.id, amount, None, tomorrow)

    @pytest.mark.parametrize("due_date", [
        "2020-01-01", "31/12/2030", "", None,
        "2030-01-01garbage", "2030-01-01 not a date", "2030-01-01T99:99",
    ])
    def test_invalid_due_date(self, manager, sample_project, due_date):
        with pytest.raises(ValidationError):
            manager.create(sample_project.id, "100", None, due_date)

    def test_due_date_with_time_is_accepted(self, manager, sample_project, tomorrow):
        invoice = manager.create(sample_project.id, "100", None, f"{tomorrow.isoformat()}T10:30:00")
        assert invoice.due_date == tomorrow

    def test_total_over_column_limit(self, manager, sample_project, tomorrow):
        # 2.000.000.000 USD * 7300 no entra en Numeric(15, 2)
        with pytest.raises(ValidationError):
            manager.create(sample_project.id, "2000000000", None, tomorrow)

    def test_default_sequence_exists_with_table(self, db_session):
        sequence = db_session.query(InvoiceSequence).filter(InvoiceSequence.prefix == "F-").one()
        assert sequence.current_number == 0

    def test_sequence_created_concurrently(self, db_session, session_factory, monkeypatch):
        other = session_factory()
        other.add(InvoiceSequence(prefix="R-", current_number=4))
        other.commit()
        other.close()

        repository = InvoiceRepository(db_session)
        real_lock = repository._lock_sequence
        reads = []

        def lock_sequence(prefix):
            # La primera lectura no ve la fila creada por la otra sesión
            reads.append(prefix)
            return None if len(reads) == 1 else real_lock(prefix)

        monkeypatch.setattr(repository, "_lock_sequence", lock_sequence)

        assert repository.next_invoice_number("R-") == "R-000005"

    def test_unknown_project(self, manager, tomorrow):
        with pytest.raises(NotFoundError):
            manager.create(9999, "100", None, tomorrow)

    def test_malformed_project_id(self, manager, tomorrow):
        with pytest.raises(ValidationError):
            manager.create("proyecto-1", "100", None, tomorrow)


# ===== TESTS DE EDICIÓN Y CANCELACIÓN =====

class TestUpdateInvoice:

    def test_update_description_and_due_date(self, manager, pending_invoice, tomorrow):
        new_due = tomorrow + timedelta(days=30)

        invoice = manager.update(pending_invoice.id, {"description": "Hito 1 (ajustado)", "due_date": new_due})

        assert invoice.description == "Hito 1 (ajustado)"
        assert invoice.due_date == new_due
        assert invoice.status == InvoiceStatus.PENDING

    def test_update_amount_rederives_total(self, manager, pending_invoice):
        invoice = manager.update(pending_invoice.id, {"amount": "250.00"})

        assert invoice.amount == Decimal("250.00")
        assert invoice.total_amount == Decimal("1825000")

    def test_update_amount_over_limit_keeps_invoice(self, manager, pending_invoice):
        with pytest.raises(ValidationError):
            manager.update(pending_invoice.id, {"amount": "5000000000"})

        invoice = manager.get(pending_invoice.id)
        assert invoice.amount == Decimal("100.00")
        assert invoice.total_amount == Decimal("730000")

    def test_update_rejects_unknown_fields(self, manager, pending_invoice):
        with pytest.raises(ValidationError):
            manager.update(pending_invoice.id, {"status": "paid"})

    def test_update_unknown_invoice(self, manager):
        with pytest.raises(NotFoundError):
            manager.update(424242, {"description": "x"})

    @pytest.mark.parametrize("patch", [{}, {"description": "x"}, {"proof_file_url": "otro.png"}, {"status": "pending"}])
    def test_update_paid_invoice_fails_regardless_of_patch(self, manager, invoice_with_proof, patch):
        manager.approve_payment(invoice_with_proof.id)

        with pytest.raises(InvalidStateError) as exc_info:
            manager.update(invoice_with_proof.id, patch)
        assert exc_info.value.current_status == "paid"

    def test_update_cancelled_invoice_fails(self, manager, pending_invoice):
        manager.cancel(pending_invoice.id)

        with pytest.raises(InvalidStateError):
            manager.update(pending_invoice.id, {"description": "x"})

    def test_attach_proof_sets_reference_and_method(self, manager, pending_invoice):
        invoice = manager.attach_proof(pending_invoice.id, "invoices/1/recibo.jpg", "Giro Tigo")

        assert invoice.proof_file_url == "invoices/1/recibo.jpg"
        assert invoice.payment_method == "Giro Tigo"


class TestCancelInvoice:

    def test_cancel_pending_invoice(self, manager, pending_invoice):
        invoice = manager.cancel(pending_invoice.id, "Proyecto suspendido")

        assert invoice.status == InvoiceStatus.CANCELLED
        assert "[CANCELADA] Proyecto suspendido" in invoice.description

    def test_cancel_is_idempotent(self, manager, pending_invoice):
        manager.cancel(pending_invoice.id)
        invoice = manager.cancel(pending_invoice.id)

        assert invoice.status == InvoiceStatus.CANCELLED

    def test_cancel_overdue_invoice(self, manager, db_session, pending_invoice, tomorrow):
        manager.mark_overdue(today=tomorrow + timedelta(days=1))

        invoice = manager.cancel(pending_invoice.id)
        assert invoice.status == InvoiceStatus.CANCELLED

    def test_cancel_paid_invoice_fails(self, manager, invoice_with_proof):
        manager.approve_payment(invoice_with_proof.id)

        with pytest.raises(InvalidStateError):
            manager.cancel(invoice_with_proof.id)


# ===== TESTS DE APROBACIÓN =====

class TestApprovePayment:

    def test_approve_issues_fiscal_document(self, manager, gateway, invoice_with_proof):
        invoice = manager.approve_payment(invoice_with_proof.id)

        assert invoice.status == InvoiceStatus.PAID
        assert invoice.paid_date is not None
        assert len(invoice.sifen_cdc) == 44
        assert invoice.sifen_qr.startswith("https://")
        assert invoice.approval_token is None
        assert len(gateway.calls) == 1

        request = gateway.calls[0]
        assert request.invoice_number == invoice.invoice_number
        assert request.client.ruc == "80012345-0"
        assert request.total_amount == Decimal("730000")

    def test_approve_without_proof_fails(self, manager, gateway, pending_invoice):
        with pytest.raises(MissingProofError):
            manager.approve_payment(pending_invoice.id)

        assert manager.get(pending_invoice.id).status == InvoiceStatus.PENDING
        assert gateway.calls == []

    def test_approve_cancelled_invoice_fails(self, manager, invoice_with_proof):
        manager.cancel(invoice_with_proof.id)

        with pytest.raises(InvalidStateError) as exc_info:
            manager.approve_payment(invoice_with_proof.id)
        assert exc_info.value.current_status == "cancelled"

    def test_approve_twice_fails(self, manager, gateway, invoice_with_proof):
        manager.approve_payment(invoice_with_proof.id)

        with pytest.raises(InvalidStateError):
            manager.approve_payment(invoice_with_proof.id)
        assert len(gateway.calls) == 1

    def test_approve_unknown_invoice(self, manager):
        with pytest.raises(NotFoundError):
            manager.approve_payment(31337)

    def test_overdue_invoice_is_approvable(self, manager, invoice_with_proof, tomorrow):
        assert manager.mark_overdue(today=tomorrow + timedelta(days=1)) == 1
        assert manager.get(invoice_with_proof.id).status == InvoiceStatus.OVERDUE

        invoice = manager.approve_payment(invoice_with_proof.id)
        assert invoice.status == InvoiceStatus.PAID

    @pytest.mark.parametrize("error", [
        FiscalUnavailableError("SIFEN no respondió a tiempo", reason="timeout after 15s"),
        FiscalValidationError("SIFEN rechazó el documento", reason="RUC inexistente"),
        FiscalGatewayError("SIFEN devolvió una respuesta inválida"),
    ])
    def test_gateway_failure_reverts_to_pending(self, manager, gateway, invoice_with_proof, error):
        gateway.error = error

        with pytest.raises(FiscalGatewayError) as exc_info:
            manager.approve_payment(invoice_with_proof.id)
        assert exc_info.value is error

        invoice = manager.get(invoice_with_proof.id)
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.sifen_cdc is None
        assert invoice.sifen_qr is None
        assert invoice.paid_date is None
        assert invoice.approval_token is None

    def test_timeout_reverts_overdue_invoice_to_overdue(self, manager, gateway, invoice_with_proof, tomorrow):
        manager.mark_overdue(today=tomorrow + timedelta(days=1))
        gateway.error = FiscalUnavailableError("SIFEN no respondió a tiempo", reason="timeout")

        with pytest.raises(FiscalUnavailableError) as exc_info:
            manager.approve_payment(invoice_with_proof.id)

        assert exc_info.value.retryable is True
        assert manager.get(invoice_with_proof.id).status == InvoiceStatus.OVERDUE

    def test_unexpected_gateway_exception_is_wrapped(self, manager, gateway, invoice_with_proof):
        gateway.error = RuntimeError("socket closed")

        with pytest.raises(FiscalGatewayError) as exc_info:
            manager.approve_payment(invoice_with_proof.id)

        assert "socket closed" in exc_info.value.reason
        assert manager.get(invoice_with_proof.id).status == InvoiceStatus.PENDING

    def test_retry_after_transient_failure_succeeds(self, manager, gateway, invoice_with_proof):
        gateway.error = FiscalUnavailableError("SIFEN caído")
        with pytest.raises(FiscalUnavailableError):
            manager.approve_payment(invoice_with_proof.id)

        gateway.error = None
        invoice = manager.approve_payment(invoice_with_proof.id)
        assert invoice.status == InvoiceStatus.PAID

    def test_second_caller_during_approval_fails(self, session_factory, make_manager, gateway, invoice_with_proof):
        gateway.release.clear()
        first = make_manager(session_factory())
        second = make_manager(session_factory())

        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(first.approve_payment, invoice_with_proof.id)
            assert gateway.entered.wait(timeout=5)

            with pytest.raises(InvalidStateError) as exc_info:
                second.approve_payment(invoice_with_proof.id)
            assert exc_info.value.current_status == "approving"

            gateway.release.set()
            invoice = future.result(timeout=5)

        assert invoice.status == InvoiceStatus.PAID
        assert len(gateway.calls) == 1

    def test_concurrent_approvals_issue_one_document(self, session_factory, make_manager, gateway, invoice_with_proof):
        callers = 4
        barrier = threading.Barrier(callers)

        def approve():
            manager = make_manager(session_factory())
            barrier.wait(timeout=5)
            try:
                return manager.approve_payment(invoice_with_proof.id)
            except InvalidStateError as e:
                return e

        with ThreadPoolExecutor(max_workers=callers) as executor:
            results = list(executor.map(lambda _: approve(), range(callers)))

        successes = [r for r in results if isinstance(r, Invoice)]
        failures = [r for r in results if isinstance(r, InvalidStateError)]
        assert len(successes) == 1
        assert len(failures) == callers - 1
        assert len(gateway.calls) == 1

        final = make_manager(session_factory()).get(invoice_with_proof.id)
        assert final.status == InvoiceStatus.PAID
        assert final.sifen_cdc == successes[0].sifen_cdc

    def test_compare_and_swap_admits_one_winner(self, session_factory, invoice_with_proof):
        first = InvoiceRepository(session_factory())
        second = InvoiceRepository(session_factory())
        values = {"status": InvoiceStatus.APPROVING, "approval_token": "a" * 32}

        assert first.transition(invoice_with_proof.id, [InvoiceStatus.PENDING], values) is True
        assert second.transition(invoice_with_proof.id, [InvoiceStatus.PENDING], values) is False

    def test_late_gateway_success_after_cancel_is_discarded(
        self, session_factory, make_manager, gateway, invoice_with_proof
    ):
        admin = make_manager(session_factory(), now=_later())

        def stale_release_then_cancel(request):
            assert admin.release_stale_approvals(timedelta(0)) == 1
            admin.cancel(invoice_with_proof.id, "Cliente desistió")

        gateway.on_issue = stale_release_then_cancel
        approver = make_manager(session_factory())

        with pytest.raises(InvalidStateError) as exc_info:
            approver.approve_payment(invoice_with_proof.id)
        assert exc_info.value.current_status == "cancelled"

        invoice = approver.get(invoice_with_proof.id)
        assert invoice.status == InvoiceStatus.CANCELLED
        assert invoice.sifen_cdc is None
        assert invoice.paid_date is None

    def test_edit_and_cancel_blocked_while_approving(self, session_factory, make_manager, gateway, invoice_with_proof):
        gateway.release.clear()
        approver = make_manager(session_factory())
        admin = make_manager(session_factory())

        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(approver.approve_payment, invoice_with_proof.id)
            assert gateway.entered.wait(timeout=5)

            with pytest.raises(InvalidStateError):
                admin.update(invoice_with_proof.id, {"amount": "999"})
            with pytest.raises(InvalidStateError):
                admin.cancel(invoice_with_proof.id)

            gateway.release.set()
            assert future.result(timeout=5).status == InvoiceStatus.PAID


# ===== TESTS DE TAREAS PERIÓDICAS =====

class TestSweeps:

    def test_mark_overdue_only_touches_past_due_pending(self, manager, sample_project, tomorrow):
        past_due = manager.create(sample_project.id, "10", None, tomorrow)
        not_due = manager.create(sample_project.id, "10", None, tomorrow + timedelta(days=10))
        cancelled = manager.create(sample_project.id, "10", None, tomorrow)
        manager.cancel(cancelled.id)

        count = manager.mark_overdue(today=tomorrow + timedelta(days=1))

        assert count == 1
        assert manager.get(past_due.id).status == InvoiceStatus.OVERDUE
        assert manager.get(not_due.id).status == InvoiceStatus.PENDING
        assert manager.get(cancelled.id).status == InvoiceStatus.CANCELLED

    def test_release_stale_approval_restores_origin(self, session_factory, make_manager, invoice_with_proof, tomorrow):
        manager = make_manager(session_factory())
        manager.mark_overdue(today=tomorrow + timedelta(days=1))
        InvoiceRepository(session_factory()).transition(
            invoice_with_proof.id,
            [InvoiceStatus.OVERDUE],
            {
                "status": InvoiceStatus.APPROVING,
                "approval_token": "b" * 32,
                "approval_origin": "overdue",
                "approval_started_at": datetime.now(timezone.utc)
            }
        )

        assert make_manager(session_factory()).release_stale_approvals(timedelta(minutes=5)) == 0

        releaser = make_manager(session_factory(), now=_later())
        assert releaser.release_stale_approvals(timedelta(minutes=5)) == 1

        invoice = releaser.get(invoice_with_proof.id)
        assert invoice.status == InvoiceStatus.OVERDUE
        assert invoice.approval_token is None


# ===== TESTS DE ESTADÍSTICAS =====

class TestInvoiceStats:

    def test_stats_over_mixed_statuses(self):
        invoices = [
            {"status": "paid", "totalAmount": 1000},
            {"status": "pending", "totalAmount": 500},
            {"status": "paid", "totalAmount": 2000},
        ]

        stats = compute_invoice_stats(invoices)

        assert stats.total == 3
        assert stats.pending == 1
        assert stats.paid == 2
        assert stats.revenue == Decimal("3000")

    def test_stats_over_models(self):
        invoices = [
            SimpleNamespace(status=InvoiceStatus.OVERDUE, total_amount=Decimal("100")),
            SimpleNamespace(status=InvoiceStatus.CANCELLED, total_amount=Decimal("200")),
            SimpleNamespace(status=InvoiceStatus.PAID, total_amount=Decimal("730000")),
        ]

        stats = compute_invoice_stats(invoices)

        assert (stats.overdue, stats.cancelled, stats.paid) == (1, 1, 1)
        assert stats.revenue == Decimal("730000")

    def test_empty_collection_is_all_zero(self):
        stats = compute_invoice_stats([])

        assert stats.model_dump() == {
            "total": 0, "pending": 0, "overdue": 0, "paid": 0, "cancelled": 0, "revenue": Decimal("0")
        }


# ===== TESTS DE ENDPOINTS =====

class TestInvoiceEndpoints:

    def _create(self, api_client, project_id, **overrides):
        body = {
            "projectId": project_id,
            "description": "Hito 1",
            "amount": "100.00",
            "dueDate": (date.today() + timedelta(days=1)).isoformat(),
        }
        body.update(overrides)
        return api_client.post("/admin/invoices", json=body)

    def test_create_and_list(self, api_client, sample_project):
        response = self._create(api_client, sample_project.id)
        assert response.status_code == 201
        created = response.json()
        assert created["status"] == "pending"
        assert created["invoiceNumber"] == "F-000001"
        assert Decimal(created["totalAmount"]) == Decimal("730000")
        assert created["sifenCDC"] is None

        listed = api_client.get("/admin/invoices").json()
        assert [i["id"] for i in listed] == [created["id"]]
        assert listed[0]["projectName"] == "Portal de clientes"
        assert listed[0]["clientName"] == "Constructora Guaraní S.A."

    def test_create_validation_error_is_400(self, api_client, sample_project):
        response = self._create(api_client, sample_project.id, amount="-5")

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"
        assert response.json()["message"]

    def test_create_missing_field_is_400(self, api_client, sample_project):
        response = api_client.post("/admin/invoices", json={"projectId": sample_project.id})

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_create_unknown_project_is_404(self, api_client, sample_project):
        response = self._create(api_client, 999)
        assert response.status_code == 404

    def test_patch_terminal_invoice_is_409(self, api_client, sample_project):
        invoice = self._create(api_client, sample_project.id).json()
        api_client.post(f"/admin/invoices/{invoice['id']}/cancel", json={"reason": "duplicada"})

        response = api_client.patch(f"/admin/invoices/{invoice['id']}", json={"description": "x"})

        assert response.status_code == 409
        assert response.json()["currentStatus"] == "cancelled"

    def test_approve_without_proof(self, api_client, sample_project):
        invoice = self._create(api_client, sample_project.id).json()

        response = api_client.post(f"/admin/invoices/{invoice['id']}/approve")

        assert response.status_code == 422
        assert response.json()["code"] == "missing_proof"

    def test_upload_proof_then_approve(self, api_client, sample_project, proof_store, gateway):
        invoice = self._create(api_client, sample_project.id).json()

        upload = api_client.post(
            f"/admin/invoices/{invoice['id']}/proof",
            files={"file": ("transferencia.pdf", b"%PDF-1.4 comprobante", "application/pdf")},
            data={"paymentMethod": "Transferencia bancaria"},
        )
        assert upload.status_code == 200
        assert upload.json()["proofFileUrl"] in proof_store.objects
        assert upload.json()["paymentMethod"] == "Transferencia bancaria"

        proof = api_client.get(f"/admin/invoices/{invoice['id']}/proof").json()
        assert proof["kind"] == "pdf"
        assert proof["url"].startswith("https://proofs.test/")

        approved = api_client.post(f"/admin/invoices/{invoice['id']}/approve")
        assert approved.status_code == 200
        assert approved.json()["status"] == "paid"
        assert len(approved.json()["sifenCDC"]) == 44
        assert approved.json()["sifenQR"].startswith("https://")

        stats = api_client.get("/admin/invoices/stats").json()
        assert stats["paid"] == 1
        assert Decimal(stats["revenue"]) == Decimal("730000")

    def test_upload_rejects_unsupported_type(self, api_client, sample_project):
        invoice = self._create(api_client, sample_project.id).json()

        response = api_client.post(
            f"/admin/invoices/{invoice['id']}/proof",
            files={"file": ("nota.txt", b"hola", "text/plain")},
        )
        assert response.status_code == 400

    def test_upload_rejects_empty_file(self, api_client, sample_project, proof_store):
        invoice = self._create(api_client, sample_project.id).json()

        response = api_client.post(
            f"/admin/invoices/{invoice['id']}/proof",
            files={"file": ("recibo.png", b"", "image/png")},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"
        assert proof_store.objects == {}

    def test_upload_rejects_oversized_file(self, api_client, sample_project, proof_store, monkeypatch):
        monkeypatch.setattr(settings, "MAX_PROOF_SIZE", 16)
        invoice = self._create(api_client, sample_project.id).json()

        response = api_client.post(
            f"/admin/invoices/{invoice['id']}/proof",
            files={"file": ("recibo.pdf", b"%PDF-1.4 " + b"x" * 32, "application/pdf")},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"
        assert proof_store.objects == {}
        assert api_client.get(f"/admin/invoices/{invoice['id']}").json()["proofFileUrl"] is None

    def test_upload_runs_in_threadpool(self):
        # Sesión SQLAlchemy y MinIO son bloqueantes: el endpoint debe ser síncrono
        assert not inspect.iscoroutinefunction(upload_proof)

    def test_gateway_unavailable_is_503_and_retryable(self, api_client, sample_project, gateway):
        invoice = self._create(api_client, sample_project.id).json()
        api_client.patch(f"/admin/invoices/{invoice['id']}", json={"proofFileUrl": "uploads/recibo.png"})
        gateway.error = FiscalUnavailableError("SIFEN no respondió a tiempo. Intente nuevamente más tarde.")

        response = api_client.post(f"/admin/invoices/{invoice['id']}/approve")

        assert response.status_code == 503
        assert response.json()["retryable"] is True
        assert api_client.get(f"/admin/invoices/{invoice['id']}").json()["status"] == "pending"


class TestPeriodicTasks:

    @pytest.fixture(autouse=True)
    def task_sessions(self, monkeypatch, session_factory):
        monkeypatch.setattr("app.modules.invoices.tasks.SessionLocal", session_factory)

    def test_mark_overdue_task(self, session_factory, pending_invoice):
        from app.modules.invoices.tasks import mark_overdue_invoices

        InvoiceRepository(session_factory()).transition(
            pending_invoice.id, [InvoiceStatus.PENDING], {"due_date": date.today() - timedelta(days=1)}
        )

        assert mark_overdue_invoices.run() == {"status": "success", "marked_overdue": 1}

    def test_release_stale_approvals_task(self, session_factory, invoice_with_proof):
        from app.modules.invoices.tasks import release_stale_approvals

        InvoiceRepository(session_factory()).transition(
            invoice_with_proof.id,
            [InvoiceStatus.PENDING],
            {
                "status": InvoiceStatus.APPROVING,
                "approval_token": "c" * 32,
                "approval_origin": "pending",
                "approval_started_at": datetime.now(timezone.utc) - timedelta(hours=1)
            }
        )

        assert release_stale_approvals.run() == {"status": "success", "released": 1}
