"""
Fixtures compartidas: base SQLite por test, gateway SIFEN y store de
comprobantes en memoria, y TestClient con dependencias sobrescritas.
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ.setdefault("DATABASE_URL", "sqlite://")

import threading
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.main import app
from app.database.database import Base, build_engine, get_db
from app.modules.fiscal.gateway import FiscalGateway, get_fiscal_gateway
from app.modules.fiscal.schemas import FiscalDocument
from app.modules.files.service import ProofStore, get_proof_store
from app.modules.files.schemas import StoredProof
from app.modules.invoices.exchange import FixedRateExchangePolicy
from app.modules.invoices.service import InvoiceLifecycleManager
from app.modules.projects.models import Client, Project

EXCHANGE_RATE = Decimal("7300")


class FakeFiscalGateway(FiscalGateway):
    """Gateway controlable: registra llamadas, puede fallar o bloquearse"""

    def __init__(self):
        self.calls = []
        self.error = None
        self.on_issue = None
        self.entered = threading.Event()
        self.release = threading.Event()
        self.release.set()
        self._lock = threading.Lock()

    def issue(self, request):
        with self._lock:
            self.calls.append(request)
            sequence = len(self.calls)
        self.entered.set()
        self.release.wait(timeout=5)
        if self.on_issue:
            self.on_issue(request)
        if self.error:
            raise self.error
        cdc = f"{sequence:044d}"
        return FiscalDocument(cdc=cdc, qr=f"https://ekuatia.set.gov.py/consultas-test/qr?Id={cdc}")


class FakeProofStore(ProofStore):
    def __init__(self):
        self.objects = {}

    def store(self, invoice_id, filename, data, content_type):
        key = f"invoices/{invoice_id}/{filename}"
        self.objects[key] = (data, content_type)
        return StoredProof(key=key, content_type=content_type, size=len(data))

    def get_download_url(self, key):
        return f"https://proofs.test/{key}?signature=abc"


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'invoices.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeFiscalGateway()


@pytest.fixture
def proof_store():
    return FakeProofStore()


@pytest.fixture
def exchange_policy():
    return FixedRateExchangePolicy(EXCHANGE_RATE, 0)


@pytest.fixture
def tomorrow():
    return date.today() + timedelta(days=1)


@pytest.fixture
def sample_client(db_session):
    client = Client(name="Constructora Guaraní S.A.", ruc="80012345-0", email="pagos@guarani.com.py")
    db_session.add(client)
    db_session.commit()
    db_session.refresh(client)
    return client


@pytest.fixture
def sample_project(db_session, sample_client):
    project = Project(name="Portal de clientes", client_id=sample_client.id, price=Decimal("1500.00"))
    db_session.add(project)
    db_session.commit()
    db_session.refresh(project)
    return project


@pytest.fixture
def make_manager(gateway, exchange_policy):
    def factory(session, **kwargs):
        kwargs.setdefault("gateway", gateway)
        kwargs.setdefault("exchange_policy", exchange_policy)
        return InvoiceLifecycleManager(session, **kwargs)
    return factory


@pytest.fixture
def manager(db_session, make_manager):
    return make_manager(db_session)


@pytest.fixture
def pending_invoice(manager, sample_project, tomorrow):
    return manager.create(sample_project.id, "100.00", "Hito 1", tomorrow)


@pytest.fixture
def invoice_with_proof(manager, pending_invoice):
    return manager.attach_proof(pending_invoice.id, "invoices/1/transferencia.pdf", "Transferencia")


@pytest.fixture
def api_client(session_factory, gateway, proof_store, exchange_policy, monkeypatch):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(
        "app.modules.invoices.service.get_exchange_policy", lambda: exchange_policy
    )
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fiscal_gateway] = lambda: gateway
    app.dependency_overrides[get_proof_store] = lambda: proof_store
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
