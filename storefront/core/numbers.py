from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value: float) -> int:
    """Round .5 away from zero, as shoppers expect (Python's round() is banker's)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
