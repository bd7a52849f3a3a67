"""
Region-aware VAT calculation.

All money is `Decimal`. The only rounding step is the VAT amount, which is
rounded half-up to cents; totals are plain sums of already-rounded values.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from app.errors import ConfigurationError
from app.schemas import PriceBreakdown, Region

CENTS = Decimal("0.01")

# VAT percentage per region, fixed onto the booking at creation time
VAT_PERCENTAGES: dict[Region, Decimal] = {
    Region.SAUDI_ARABIA: Decimal("15"),
    Region.EGYPT: Decimal("14"),
}

DEFAULT_CURRENCIES: dict[Region, str] = {
    Region.SAUDI_ARABIA: "SAR",
    Region.EGYPT: "EGP",
}


def to_money(value: Decimal | int | str | float) -> Decimal:
    """Coerce to Decimal without passing through binary floating point."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def resolve_region(region: Region | str) -> Region:
    try:
        return Region(region)
    except ValueError:
        raise ConfigurationError(f"No VAT configuration for region {region!r}") from None


def vat_percentage_for(region: Region | str) -> Decimal:
    resolved = resolve_region(region)
    try:
        return VAT_PERCENTAGES[resolved]
    except KeyError:
        raise ConfigurationError(
            f"No VAT configuration for region {resolved.value!r}"
        ) from None


def default_currency_for(region: Region | str) -> str:
    return DEFAULT_CURRENCIES[resolve_region(region)]


def compute_price(base_price: Decimal | int | str, region: Region | str) -> PriceBreakdown:
    """
    Apply the region's VAT to a (possibly already discounted) base price.

    Raises ConfigurationError for a region without a VAT rate and ValueError
    for a negative base price.
    """
    base = to_money(base_price)
    if base < 0:
        raise ValueError("base_price must not be negative")

    resolved = resolve_region(region)
    percentage = vat_percentage_for(resolved)
    vat_amount = quantize_money(base * percentage / Decimal("100"))

    return PriceBreakdown(
        region=resolved,
        base_price=base,
        vat_percentage=percentage,
        vat_amount=vat_amount,
        total=base + vat_amount,
    )
