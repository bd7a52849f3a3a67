from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from app.pricing import quantize_money, to_money
from app.schemas import (
    BookingResponse,
    CommissionSplit,
    FinancialSummary,
    Region,
    RegionRevenue,
)

ZERO = Decimal("0")


def split(paid_amount: Decimal | int | str, commission_rate: Decimal) -> CommissionSplit:
    """Platform commission and provider net earnings for one paid amount."""
    amount = to_money(paid_amount)
    rate = to_money(commission_rate)
    if not ZERO <= rate <= Decimal("1"):
        raise ValueError(f"commission_rate must be between 0 and 1, got {rate}")
    commission = amount * rate
    return CommissionSplit(
        amount=amount,
        rate=rate,
        commission=commission,
        net_earnings=amount - commission,
    )


def growth_percentage(current: Decimal, previous: Decimal) -> Decimal:
    """Period-over-period growth; 0 when there is no previous revenue."""
    if previous == 0:
        return ZERO
    return quantize_money((current - previous) / previous * Decimal("100"))


def _revenue(bookings: Iterable[BookingResponse]) -> Decimal:
    return sum((b.total_amount for b in bookings), ZERO)


def summarize(
    current: list[BookingResponse],
    previous: list[BookingResponse],
    commission_rate: Decimal,
    period_start: datetime,
    period_end: datetime,
) -> FinancialSummary:
    """Revenue, commission and growth over completed bookings."""
    total = split(_revenue(current), commission_rate)

    by_region = []
    for region in Region:
        in_region = [b for b in current if b.region == region]
        region_split = split(_revenue(in_region), commission_rate)
        by_region.append(
            RegionRevenue(
                region=region,
                bookings=len(in_region),
                revenue=region_split.amount,
                commission=region_split.commission,
                net_earnings=region_split.net_earnings,
            )
        )

    previous_revenue = _revenue(previous)
    return FinancialSummary(
        period_start=period_start,
        period_end=period_end,
        commission_rate=total.rate,
        completed_bookings=len(current),
        total_revenue=total.amount,
        total_commission=total.commission,
        provider_net_earnings=total.net_earnings,
        by_region=by_region,
        previous_period_revenue=previous_revenue,
        growth_percentage=growth_percentage(total.amount, previous_revenue),
    )
