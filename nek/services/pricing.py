from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Tuple

from nek.core.config import COUPONS, SHIPPING_RATES, TAX_RATE

CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def shipping_cost(method: str) -> Decimal:
    try:
        return SHIPPING_RATES[method]
    except KeyError:
        raise ValueError(f"Unknown shipping method: {method}")


def coupon_rate(code: Optional[str]) -> Decimal:
    if not code:
        return Decimal("0")
    return COUPONS.get(code.strip().upper(), Decimal("0"))


def coupon_discount(code: Optional[str], subtotal) -> Decimal:
    return money(Decimal(str(subtotal)) * coupon_rate(code))


def validate_coupon(code: Optional[str]) -> dict:
    rate = coupon_rate(code)
    if not rate:
        return {"valid": False, "code": code, "percent": 0}
    return {"valid": True, "code": code.strip().upper(), "percent": int(rate * 100)}


def compute_totals(
    lines: Iterable[Tuple[Decimal, int]],
    shipping_method: str = "standard",
    coupon_code: Optional[str] = None,
) -> dict:
    """Totals for ``(unit_price, quantity)`` lines.

    tax = (subtotal - discount) * TAX_RATE
    total = subtotal - discount + shipping + tax
    """
    # each component is rounded to cents before summing so the stored
    # figures always add up exactly
    subtotal = money(sum((Decimal(str(price)) * qty for price, qty in lines), Decimal("0")))
    discount = coupon_discount(coupon_code, subtotal)
    shipping = money(shipping_cost(shipping_method))
    tax = money((subtotal - discount) * TAX_RATE)
    total = subtotal - discount + shipping + tax
    return {
        "subtotal": subtotal,
        "discount": discount,
        "shipping": shipping,
        "tax": tax,
        "total": total,
    }
