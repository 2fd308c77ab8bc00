"""Default flat tax rates keyed by jurisdiction.

Keys are ``"<COUNTRY>"`` for national rates (VAT/GST) and
``"<COUNTRY>-<STATE>"`` for sub-national sales tax. Rates are base rates
only; city surcharges are not modelled.
"""

from decimal import Decimal

NATIONAL_RATES = {
    "MX": Decimal("0.16"),  # IVA
    "AR": Decimal("0.21"),  # IVA
    "ES": Decimal("0.21"),  # IVA
    "CA": Decimal("0.05"),  # GST
}

US_STATE_RATES = {
    "AL": Decimal("0.04"),
    "AK": Decimal("0"),
    "AZ": Decimal("0.056"),
    "AR": Decimal("0.065"),
    "CA": Decimal("0.0725"),
    "CO": Decimal("0.029"),
    "CT": Decimal("0.0635"),
    "DE": Decimal("0"),
    "FL": Decimal("0.06"),
    "GA": Decimal("0.04"),
    "HI": Decimal("0.04"),
    "ID": Decimal("0.06"),
    "IL": Decimal("0.0625"),
    "IN": Decimal("0.07"),
    "IA": Decimal("0.06"),
    "KS": Decimal("0.065"),
    "KY": Decimal("0.06"),
    "LA": Decimal("0.0445"),
    "ME": Decimal("0.055"),
    "MD": Decimal("0.06"),
    "MA": Decimal("0.0625"),
    "MI": Decimal("0.06"),
    "MN": Decimal("0.06875"),
    "MS": Decimal("0.07"),
    "MO": Decimal("0.04225"),
    "MT": Decimal("0"),
    "NE": Decimal("0.055"),
    "NV": Decimal("0.0685"),
    "NH": Decimal("0"),
    "NJ": Decimal("0.06625"),
    "NM": Decimal("0.05125"),
    "NY": Decimal("0.04"),
    "NC": Decimal("0.0475"),
    "ND": Decimal("0.05"),
    "OH": Decimal("0.0575"),
    "OK": Decimal("0.045"),
    "OR": Decimal("0"),
    "PA": Decimal("0.06"),
    "RI": Decimal("0.07"),
    "SC": Decimal("0.06"),
    "SD": Decimal("0.045"),
    "TN": Decimal("0.07"),
    "TX": Decimal("0.0625"),
    "UT": Decimal("0.0595"),
    "VT": Decimal("0.06"),
    "VA": Decimal("0.053"),
    "WA": Decimal("0.065"),
    "WV": Decimal("0.06"),
    "WI": Decimal("0.05"),
    "WY": Decimal("0.04"),
    "DC": Decimal("0.06"),
}

# Free-text country names seen on checkout forms, mapped to ISO-3166 alpha-2.
COUNTRY_ALIASES = {
    "UNITED STATES": "US",
    "UNITED STATES OF AMERICA": "US",
    "USA": "US",
    "MEXICO": "MX",
    "MÉXICO": "MX",
    "MEX": "MX",
    "ARGENTINA": "AR",
    "SPAIN": "ES",
    "ESPAÑA": "ES",
    "CANADA": "CA",
}


def default_rates() -> dict[str, Decimal]:
    rates = dict(NATIONAL_RATES)
    rates.update({f"US-{state}": rate for state, rate in US_STATE_RATES.items()})
    return rates


def normalize_country(country: str | None) -> str | None:
    if not country or not country.strip():
        return None
    value = country.strip().upper()
    return COUNTRY_ALIASES.get(value, value)
