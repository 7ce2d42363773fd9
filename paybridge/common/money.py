"""Minor-unit conversion shared by checkout and payment options."""

from decimal import ROUND_HALF_UP, Decimal


def to_minor_units(value) -> int:
    """Convert a two-decimal major-unit amount to integer cents, half-up."""

    return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_rate(value) -> str:
    """Tax percentage as the gateway expects it: two decimals, dot separator."""

    return str(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
