from __future__ import annotations

from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from market.core.config import Settings, settings as default_settings
from market.core.errors import ValidationError

CENT = Decimal("0.01")

BOOST_DURATIONS: dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}


def final_price(base: Decimal, discount_rate: Decimal) -> Decimal:
    """Apply a percent discount; never below zero."""
    if discount_rate <= 0:
        return Decimal(base).quantize(CENT, rounding=ROUND_HALF_UP)
    discounted = base - (base * discount_rate) / 100
    return max(Decimal("0"), discounted).quantize(CENT, rounding=ROUND_HALF_UP)


def deposit_bonus(amount: Decimal, bonus_rate: Decimal) -> Decimal:
    if bonus_rate <= 0:
        return Decimal("0.00")
    return ((amount * bonus_rate) / 100).quantize(CENT, rounding=ROUND_HALF_UP)


def boost_cost(option: str, cfg: Settings | None = None) -> Decimal:
    cfg = cfg or default_settings
    fees = {"24h": cfg.boost_fee_24h, "7d": cfg.boost_fee_7d}
    if option not in fees:
        raise ValidationError(f"Unknown boost option: {option}", details={"options": sorted(fees)})
    return final_price(fees[option], cfg.global_discount_rate)


def listing_fee(cfg: Settings | None = None) -> Decimal:
    cfg = cfg or default_settings
    return final_price(cfg.listing_fee, cfg.global_discount_rate)
