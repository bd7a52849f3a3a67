import os
from decimal import Decimal, InvalidOperation

from app.errors import ConfigurationError

db_url = os.environ.get("DB_URL", "sqlite://:memory:")
catalog_ms_url = os.environ.get("CATALOG_MS_URL", "http://localhost:8001")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
ANALYTICS_CACHE_TTL = int(os.environ.get("ANALYTICS_CACHE_TTL", "60"))


def _commission_rate(raw: str) -> Decimal:
    try:
        rate = Decimal(raw)
    except InvalidOperation:
        raise ConfigurationError(
            f"PLATFORM_COMMISSION_RATE is not a number: {raw!r}"
        ) from None
    if not Decimal("0") <= rate <= Decimal("1"):
        raise ConfigurationError(
            f"PLATFORM_COMMISSION_RATE must be between 0 and 1, got {rate}"
        )
    return rate


# Single platform-wide rate for analytics and payouts (fraction, 0.15 == 15%)
PLATFORM_COMMISSION_RATE = _commission_rate(
    os.environ.get("PLATFORM_COMMISSION_RATE", "0.15")
)
