from app.database.database import Base
from sqlalchemy import Column, Integer, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from app.common.mixins import TimestampMixin


class Client(Base, TimestampMixin):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    ruc = Column(String(20), nullable=False, index=True)  # Ej: 80012345-0
    email = Column(String(100), nullable=True)

    projects = relationship("Project", back_populates="client")


class Project(Base, TimestampMixin):
    """Proyecto contratado por un cliente; solo lectura para el módulo de facturas"""
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    price = Column(Numeric(15, 2), nullable=False, default=0)  # Precio de referencia (USD)

    client = relationship("Client", back_populates="projects", lazy="joined")

    @property
    def client_name(self):
        return self.client.name if self.client else None
