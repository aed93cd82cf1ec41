import asyncio

from config.constants import MONEY_PLACES, NO_SELLER_BUCKET
from utils.errors import ValidationError
from utils.rate_resolver import SHIPPING, TAX, load_rate_tables, pick_rate


def _money(value: float) -> float:
    return round(value, MONEY_PLACES)


def _number(value, name: str) -> float:
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}")
    if number < 0:
        raise ValidationError(f"{name} must be non-negative")
    return number


def validate_pricing_input(country, items, discount=0) -> float:
    if not country or not isinstance(items, list):
        raise ValidationError("country and items are required")
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object")
        _number(item.get("price"), "price")
        _number(item.get("quantity"), "quantity")
    return _number(discount, "discount")


def line_total(item: dict) -> float:
    return float(item.get("price") or 0) * float(item.get("quantity") or 0)


def seller_key(item: dict) -> str:
    seller = item.get("seller")
    return str(seller) if seller else NO_SELLER_BUCKET


def group_by_seller(items: list[dict]) -> dict[str, float]:
    buckets: dict[str, float] = {}
    for item in items:
        key = seller_key(item)
        buckets[key] = buckets.get(key, 0.0) + line_total(item)
    return buckets


def distinct_sellers(items: list[dict]) -> list[str]:
    sellers = []
    for item in items:
        key = seller_key(item)
        if key != NO_SELLER_BUCKET and key not in sellers:
            sellers.append(key)
    return sellers


def scale_for_discount(raw_tax: float, items_subtotal: float, discount: float) -> float:
    effective_subtotal = max(0.0, items_subtotal - discount)
    scale = effective_subtotal / items_subtotal if items_subtotal > 0 else 1
    return _money(raw_tax * scale)


# ======================================================
# TAX
# ======================================================

async def compute_tax(db, country, items: list[dict], discount=0) -> float:
    discount = validate_pricing_input(country, items, discount)

    buckets = group_by_seller(items)
    platform, vendors = await load_rate_tables(db, TAX, distinct_sellers(items))

    raw_tax = 0.0
    for seller, taxable in buckets.items():
        percent = pick_rate(TAX, country, platform, vendors.get(seller))
        raw_tax += taxable * percent / 100

    # rounded once, after scaling
    return scale_for_discount(raw_tax, sum(buckets.values()), discount)


# ======================================================
# SHIPPING
# ======================================================

async def quote_shipping(db, country, items: list[dict]) -> dict:
    validate_pricing_input(country, items)

    sellers = distinct_sellers(items)
    platform, vendors = await load_rate_tables(db, SHIPPING, sellers)

    per_seller = [
        {
            "seller": seller,
            "country": country,
            "rate": pick_rate(SHIPPING, country, platform, vendors.get(seller)),
        }
        for seller in sellers
    ]

    # no attributable seller: charge once, not once per missing seller
    if not per_seller:
        per_seller.append({
            "seller": None,
            "country": country,
            "rate": pick_rate(SHIPPING, country, platform, None),
        })

    return {
        "country": country,
        "per_seller": per_seller,
        "total_shipping": _money(sum(entry["rate"] for entry in per_seller)),
    }


# ======================================================
# ORDER SUMMARY
# ======================================================

async def build_order_summary(db, country, items: list[dict], discount=0) -> dict:
    discount = validate_pricing_input(country, items, discount)

    items_subtotal = _money(sum(line_total(item) for item in items))

    tax, shipping = await asyncio.gather(
        compute_tax(db, country, items, discount),
        quote_shipping(db, country, items),
    )

    total = _money(max(0.0, items_subtotal + shipping["total_shipping"] - discount + tax))

    return {
        "items_subtotal": items_subtotal,
        "shipping": shipping["total_shipping"],
        "discount": _money(discount),
        "tax": tax,
        "total": total,
    }
