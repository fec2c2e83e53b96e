from pydantic import Field
from decimal import Decimal
from typing import Optional
from app.common.schemas import CamelModel


class ProjectOut(CamelModel):
    id: int
    name: str
    client_id: int
    client_name: Optional[str] = None
    price: Decimal = Field(..., description="Precio de referencia en la moneda de facturación")
