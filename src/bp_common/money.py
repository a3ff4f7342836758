"""Money arithmetic for the brokerage ledger.

Principal, balances and accruals are int cents. Rates are Decimal fractions
(0.02 = 2% per period). Products are computed in Decimal and rounded exactly
once, at persistence, with ROUND_HALF_UP (half away from zero).
"""

from decimal import ROUND_HALF_UP, Decimal

_WHOLE_CENT = Decimal("1")


def to_cents(amount: Decimal) -> int:
    """Round a Decimal cent amount to whole cents, half away from zero."""
    return int(amount.quantize(_WHOLE_CENT, rounding=ROUND_HALF_UP))


def apply_rate(principal_cents: int, rate: Decimal) -> int:
    """principal × rate in cents.

    1000.00 at 2%  -> 2000 cents
    500.00 at 0.5% -> 250 cents
    1.00 at 0.5%   -> 0.5 cent -> 1 cent
    """
    if principal_cents < 0:
        raise ValueError(f"Principal must be non-negative, got {principal_cents}")
    if rate < 0:
        raise ValueError(f"Rate must be non-negative, got {rate}")
    return to_cents(Decimal(principal_cents) * rate)


def cents_to_display(cents: int) -> str:
    """Convert cents to display string: 6500 -> '$65.00', -1200 -> '-$12.00'."""
    if cents < 0:
        abs_cents = -cents
        return f"-${abs_cents // 100:,}.{abs_cents % 100:02d}"
    return f"${cents // 100:,}.{cents % 100:02d}"
