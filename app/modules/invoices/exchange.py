"""
Política de conversión de moneda de referencia (USD) a moneda local (PYG).

Es la única pieza que conoce tasas y redondeo; el ciclo de vida de facturas
solo invoca ``convert``.
"""
from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP

from app.core.config import settings


class ExchangeRatePolicy(ABC):

    @abstractmethod
    def convert(self, amount: Decimal) -> Decimal:
        """Convierte ``amount`` a la moneda de liquidación."""


class FixedRateExchangePolicy(ExchangeRatePolicy):
    """Tasa fija configurada, redondeo half-up a ``decimals`` decimales"""

    def __init__(self, rate: Decimal, decimals: int = 0):
        rate = Decimal(str(rate))
        if rate <= 0:
            raise ValueError("La tasa de cambio debe ser mayor a 0")
        self.rate = rate
        self.quantum = Decimal(1).scaleb(-decimals)

    def convert(self, amount: Decimal) -> Decimal:
        return (Decimal(amount) * self.rate).quantize(self.quantum, rounding=ROUND_HALF_UP)


def get_exchange_policy() -> ExchangeRatePolicy:
    return FixedRateExchangePolicy(settings.EXCHANGE_RATE, settings.SETTLEMENT_DECIMALS)
