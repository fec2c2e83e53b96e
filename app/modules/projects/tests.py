"""
Tests para el módulo de Proyectos
"""

import importlib.util
from decimal import Decimal
from pathlib import Path

import pytest

from app.common.exceptions import NotFoundError
from app.common.validators import validate_paraguay_ruc
from app.modules.projects import service


class TestProjectService:

    def test_get_project_by_id(self, db_session, sample_project):
        project = service.get_project_by_id(db_session, sample_project.id)

        assert project.name == "Portal de clientes"
        assert project.client_name == "Constructora Guaraní S.A."

    def test_missing_project(self, db_session):
        assert service.find_project(db_session, 404) is None
        with pytest.raises(NotFoundError):
            service.get_project_by_id(db_session, 404)


class TestProjectEndpoints:

    def test_list_projects(self, api_client, sample_project):
        response = api_client.get("/admin/projects")

        assert response.status_code == 200
        projects = response.json()
        assert len(projects) == 1
        assert projects[0]["name"] == "Portal de clientes"
        assert projects[0]["clientId"] == sample_project.client_id
        assert projects[0]["clientName"] == "Constructora Guaraní S.A."
        assert Decimal(projects[0]["price"]) == Decimal("1500.00")

    def test_get_project(self, api_client, sample_project):
        response = api_client.get(f"/admin/projects/{sample_project.id}")

        assert response.status_code == 200
        assert response.json()["id"] == sample_project.id

    def test_get_unknown_project(self, api_client):
        response = api_client.get("/admin/projects/999")

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


# ===== TESTS DEL SEED DE DEMOSTRACIÓN =====

@pytest.fixture
def seed_script():
    path = Path(__file__).resolve().parents[3] / "scripts" / "seed_demo_data.py"
    spec = importlib.util.spec_from_file_location("seed_demo_data", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestSeedDemoData:

    def test_clients_get_valid_ruc(self, db_session, seed_script):
        clients = seed_script.create_clients(db_session)

        assert len(clients) == len(seed_script.CLIENT_NAMES)
        assert all(validate_paraguay_ruc(client.ruc) for client in clients)

    def test_invalid_ruc_is_rejected(self, db_session, seed_script, monkeypatch):
        monkeypatch.setattr(seed_script, "validate_paraguay_ruc", lambda ruc: False)

        with pytest.raises(ValueError):
            seed_script.create_clients(db_session)
