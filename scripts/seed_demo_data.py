"""
Seed script: clientes, proyectos y facturas de demostración.

What it creates:
- Clients (5) con RUC paraguayo válido (DV módulo 11).
- Projects (2 por cliente) con precio de referencia en USD.
- Invoices: una mezcla de pending/overdue/paid/cancelled usando el
  ciclo de vida real (las pagadas se aprueban con el gateway sandbox).

Run inside the API container:
    docker compose exec api python scripts/seed_demo_data.py --invoices 40

Note: This is intended for development environments only.
"""

# Add project root (/code) to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import random
from datetime import date, timedelta
from decimal import Decimal

from app.core.config import settings
from app.database.database import SessionLocal, Base, engine
from app.common.validators import calculate_mod11_dv, validate_paraguay_ruc
from app.modules.projects.models import Client, Project
from app.modules.fiscal.sandbox import SandboxSifenGateway
from app.modules.invoices.service import InvoiceLifecycleManager
from app.modules.invoices.models import PAYABLE_STATUSES

CLIENT_NAMES = [
    "Constructora Guaraní S.A.",
    "Agroganadera del Chaco S.R.L.",
    "Farmacias Itapúa S.A.",
    "Transportes Asunción S.A.",
    "Cooperativa Yerbatera Ltda.",
]

PROJECT_NAMES = ["Portal de clientes", "App móvil", "Integración ERP", "Sitio institucional", "Tablero BI"]


def make_ruc(number: int) -> str:
    digits = str(number)
    return f"{digits}-{calculate_mod11_dv(digits)}"


def create_clients(db):
    clients = []
    for i, name in enumerate(CLIENT_NAMES):
        existing = db.query(Client).filter(Client.name == name).first()
        if existing:
            clients.append(existing)
            continue
        ruc = make_ruc(80010000 + i * 137)
        if not validate_paraguay_ruc(ruc):
            raise ValueError(f"RUC inválido generado para {name}: {ruc}")
        slug = name.split()[0].lower()
        client = Client(name=name, ruc=ruc, email=f"pagos@{slug}.com.py")
        db.add(client)
        clients.append(client)
    db.commit()
    return clients


def create_projects(db, clients):
    projects = []
    for client in clients:
        for name in random.sample(PROJECT_NAMES, 2):
            project = Project(
                name=f"{name} - {client.name.split()[0]}",
                client_id=client.id,
                price=Decimal(random.randrange(800, 12000, 50))
            )
            db.add(project)
            projects.append(project)
    db.commit()
    return projects


def create_invoices(manager, projects, count: int):
    today = date.today()
    summary = {"pending": 0, "overdue": 0, "paid": 0, "cancelled": 0}
    for i in range(count):
        project = random.choice(projects)
        amount = (Decimal(project.price) / random.choice([2, 3, 4])).quantize(Decimal("0.01"))
        invoice = manager.create(
            project.id, amount, f"Hito {i % 4 + 1}", today + timedelta(days=random.randint(0, 45))
        )

        outcome = random.choices(list(summary), weights=[4, 2, 3, 1])[0]
        if outcome == "paid":
            manager.attach_proof(invoice.id, f"https://cdn.example.com/proofs/{invoice.invoice_number}.pdf", "Transferencia")
            manager.approve_payment(invoice.id)
        elif outcome == "cancelled":
            manager.cancel(invoice.id, "Datos de demostración")
        elif outcome == "overdue":
            # Vencimiento en el pasado: se fuerza antes del barrido
            manager.repository.transition(invoice.id, PAYABLE_STATUSES, {"due_date": today - timedelta(days=7)})
        summary[outcome] += 1

        if (i + 1) % 10 == 0:
            print(f"  Invoices created: {i + 1}")

    manager.mark_overdue()
    return summary


def main():
    parser = argparse.ArgumentParser(description="Seed invoice lifecycle demo data")
    parser.add_argument("--invoices", type=int, default=40)
    parser.add_argument("--seed", type=int, default=None, help="Semilla para resultados reproducibles")
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        gateway = SandboxSifenGateway(
            issuer_ruc=settings.SIFEN_ISSUER_RUC,
            establishment=settings.SIFEN_ESTABLISHMENT,
            expedition_point=settings.SIFEN_EXPEDITION_POINT,
            qr_base_url=settings.SIFEN_QR_BASE_URL
        )
        manager = InvoiceLifecycleManager(db, gateway=gateway)

        print("Creating clients...")
        clients = create_clients(db)
        print(f"Clients: {len(clients)}")

        print("Creating projects...")
        projects = create_projects(db, clients)
        print(f"Projects created: {len(projects)}")

        print("Creating invoices...")
        summary = create_invoices(manager, projects, args.invoices)

        print("\nSeed completed.")
        for status, count in summary.items():
            print(f"  {status:<10} {count}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
