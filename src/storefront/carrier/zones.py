"""Mexican shipping zones and postal-code prefix ranges.

Rates are in whole pesos. A zone charges ``base_rate`` for the first
kilogram and ``per_kg_rate`` for every billable kilogram above it.
"""

from dataclasses import dataclass
from decimal import Decimal

# Domestic volumetric divisor: cm^3 per billable kg.
DIM_FACTOR = 5000


@dataclass(frozen=True)
class ShippingZone:
    zone_id: str
    name: str
    base_rate: Decimal
    per_kg_rate: Decimal


METRO = ShippingZone("zona-metro", "Zona Metropolitana", Decimal("79"), Decimal("10"))
CENTRO = ShippingZone("zona-centro", "Zona Centro", Decimal("99"), Decimal("15"))
NORTE = ShippingZone("zona-norte", "Zona Norte", Decimal("149"), Decimal("20"))
SUR = ShippingZone("zona-sur", "Zona Sur", Decimal("149"), Decimal("20"))

ZONES = {zone.zone_id: zone for zone in (METRO, CENTRO, NORTE, SUR)}


def _span(first: int, last: int, zone: ShippingZone) -> dict[str, ShippingZone]:
    return {f"{prefix:02d}": zone for prefix in range(first, last + 1)}


# First two digits of a Mexican postal code identify the state.
PREFIX_ZONES = {
    **_span(1, 16, METRO),  # Ciudad de México
    **_span(20, 20, CENTRO),  # Aguascalientes
    **_span(21, 23, NORTE),  # Baja California, Baja California Sur
    **_span(24, 24, SUR),  # Campeche
    **_span(25, 27, NORTE),  # Coahuila
    **_span(28, 28, SUR),  # Colima
    **_span(29, 30, SUR),  # Chiapas
    **_span(31, 35, NORTE),  # Chihuahua, Durango
    **_span(36, 38, CENTRO),  # Guanajuato
    **_span(39, 41, SUR),  # Guerrero
    **_span(42, 43, CENTRO),  # Hidalgo
    **_span(44, 49, SUR),  # Jalisco
    **_span(50, 57, METRO),  # Estado de México
    **_span(58, 61, SUR),  # Michoacán
    **_span(62, 62, CENTRO),  # Morelos
    **_span(63, 63, SUR),  # Nayarit
    **_span(64, 67, NORTE),  # Nuevo León
    **_span(68, 71, SUR),  # Oaxaca
    **_span(72, 75, CENTRO),  # Puebla
    **_span(76, 76, CENTRO),  # Querétaro
    **_span(77, 77, SUR),  # Quintana Roo
    **_span(78, 79, NORTE),  # San Luis Potosí
    **_span(80, 85, NORTE),  # Sinaloa, Sonora
    **_span(86, 86, SUR),  # Tabasco
    **_span(87, 89, NORTE),  # Tamaulipas
    **_span(90, 90, CENTRO),  # Tlaxcala
    **_span(91, 97, SUR),  # Veracruz, Yucatán
    **_span(98, 99, NORTE),  # Zacatecas
}


def zone_for_postal_code(postal_code: str) -> ShippingZone | None:
    code = (postal_code or "").strip()
    if len(code) != 5 or not code.isdigit():
        return None
    return PREFIX_ZONES.get(code[:2])


def volumetric_weight(length: float, width: float, height: float) -> float:
    return (length * width * height) / DIM_FACTOR


def billable_weight(weight: float, dimensions: dict | None = None) -> float:
    """The greater of actual and volumetric weight (dimensions in cm)."""
    if not dimensions:
        return weight
    volumetric = volumetric_weight(dimensions["length"], dimensions["width"], dimensions["height"])
    return max(weight, volumetric)
