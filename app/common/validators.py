"""
Validadores específicos para Paraguay (RUC y dígito verificador módulo 11)
"""
import re
from typing import Optional


def calculate_mod11_dv(number: str, base_max: int = 11) -> Optional[int]:
    """
    Calcula el dígito verificador módulo 11 usado por la SET.

    Se recorren los dígitos de derecha a izquierda con pesos 2..base_max
    (reiniciando en 2). Si el resto es mayor a 1 el DV es 11 - resto,
    en otro caso es 0. Las letras se convierten a su código ASCII.
    """
    if not number:
        return None

    digits = "".join(str(ord(c)) if not c.isdigit() else c for c in number.upper())
    if not digits.isdigit():
        return None

    total = 0
    weight = 2
    for char in reversed(digits):
        if weight > base_max:
            weight = 2
        total += int(char) * weight
        weight += 1

    remainder = total % 11
    return 11 - remainder if remainder > 1 else 0


def split_ruc(ruc: str):
    """
    Separa un RUC en número y DV.
    Acepta "80012345-6" o "80012345" (sin DV, retorna None).
    """
    cleaned = re.sub(r'[\s\.]', '', ruc or '')
    if '-' in cleaned:
        number, dv = cleaned.split('-', 1)
        return number, int(dv) if dv.isdigit() else None
    return cleaned, None


def validate_paraguay_ruc(ruc: str) -> bool:
    """
    Valida RUC paraguayo.
    - Entre 5 y 8 dígitos antes del guion
    - Si trae DV, debe coincidir con el módulo 11
    """
    number, dv = split_ruc(ruc)
    if not number.isdigit() or not 5 <= len(number) <= 8:
        return False
    if dv is None:
        return '-' not in (ruc or '')
    return calculate_mod11_dv(number) == dv
