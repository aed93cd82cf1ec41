import pytest
from bson import ObjectId

from utils.errors import ValidationError
from utils.pricing import build_order_summary, compute_tax, quote_shipping


@pytest.fixture
async def us_rates(db):
    v1, v2 = ObjectId(), ObjectId()
    await db.tax_settings.insert_many([
        {"owner_type": "platform", "rates": [{"country": "US", "percent": 8}]},
        {"owner_type": "vendor", "owner": v1, "rates": [{"country": "US", "percent": 12}]},
    ])
    return v1, v2


async def test_tax_uses_each_sellers_resolved_percent(db, us_rates):
    v1, v2 = us_rates
    items = [
        {"seller": str(v1), "price": 100, "quantity": 2},
        {"seller": str(v2), "price": 50, "quantity": 3},
    ]

    assert await compute_tax(db, "US", items) == 36.0


async def test_discount_scales_aggregate_tax(db):
    await db.tax_settings.insert_one(
        {"owner_type": "platform", "rates": [{"country": "US", "percent": 10}]}
    )
    items = [{"price": 100, "quantity": 1}]

    assert await compute_tax(db, "US", items, discount=20) == 8.0


async def test_discount_larger_than_subtotal_zeroes_tax(db):
    await db.tax_settings.insert_one(
        {"owner_type": "platform", "rates": [{"country": "US", "percent": 10}]}
    )

    assert await compute_tax(db, "US", [{"price": 10, "quantity": 1}], discount=50) == 0.0


async def test_zero_subtotal_does_not_divide_by_zero(db):
    assert await compute_tax(db, "US", [{"price": 0, "quantity": 4}], discount=5) == 0.0
    assert await compute_tax(db, "US", []) == 0.0


async def test_tax_rounds_once_at_the_end(db):
    sellers = [ObjectId() for _ in range(3)]
    await db.tax_settings.insert_many([
        {"owner_type": "vendor", "owner": s, "rates": [{"country": "US", "percent": 4}]}
        for s in sellers
    ])
    # each seller owes 0.004; rounding per seller would give 0.00
    items = [{"seller": str(s), "price": 0.1, "quantity": 1} for s in sellers]

    assert await compute_tax(db, "US", items) == 0.01


@pytest.mark.parametrize("country,items,discount", [
    ("", [], 0),
    ("US", "not-a-list", 0),
    ("US", [{"price": -1, "quantity": 1}], 0),
    ("US", [{"price": 1, "quantity": -2}], 0),
    ("US", [{"price": 1, "quantity": 1}], -5),
])
async def test_malformed_pricing_input_is_rejected(db, country, items, discount):
    with pytest.raises(ValidationError):
        await compute_tax(db, country, items, discount)


async def test_shipping_charges_once_per_distinct_seller(db):
    v1, v2 = ObjectId(), ObjectId()
    await db.shipping_settings.insert_many([
        {"owner_type": "platform", "rates": [{"country": "US", "rate": 6}]},
        {"owner_type": "vendor", "owner": v1, "rates": [{"country": "US", "rate": 2.5}]},
    ])
    items = [
        {"seller": str(v1), "price": 10, "quantity": 1},
        {"seller": str(v1), "price": 4, "quantity": 2},
        {"seller": str(v2), "price": 8, "quantity": 1},
    ]

    quote = await quote_shipping(db, "US", items)

    assert [entry["seller"] for entry in quote["per_seller"]] == [str(v1), str(v2)]
    assert [entry["rate"] for entry in quote["per_seller"]] == [2.5, 6.0]
    assert quote["total_shipping"] == 8.5


async def test_shipping_without_sellers_returns_single_fallback(db):
    items = [{"price": 10, "quantity": 1}, {"price": 3, "quantity": 2}]

    quote = await quote_shipping(db, "US", items)

    assert quote["per_seller"] == [{"seller": None, "country": "US", "rate": 5.0}]
    assert quote["total_shipping"] == 5.0


async def test_order_summary_totals(db, us_rates):
    v1, _ = us_rates
    items = [{"seller": str(v1), "price": 100, "quantity": 2}]

    summary = await build_order_summary(db, "US", items, discount=50)

    # tax 24.00 scaled by 150/200; one seller at the 5.00 shipping floor
    assert summary == {
        "items_subtotal": 200.0,
        "shipping": 5.0,
        "discount": 50.0,
        "tax": 18.0,
        "total": 173.0,
    }


async def test_compute_and_quote_endpoints(api, db, us_rates):
    v1, v2 = us_rates
    body = {
        "country": "US",
        "items": [
            {"seller": str(v1), "price": 100, "quantity": 2},
            {"seller": str(v2), "price": 50, "quantity": 3},
        ],
    }

    async with api() as client:
        tax = await client.post("/api/taxes/compute", json=body)
        shipping = await client.post("/api/shipping/quote", json=body)
        bad = await client.post("/api/taxes/compute", json={"country": "US", "items": [{"price": -1}]})

    assert tax.status_code == 200
    assert tax.json() == {"country": "US", "total_tax": 36.0}
    assert shipping.json()["total_shipping"] == 10.0
    assert bad.status_code == 400
