import pytest
from bson import ObjectId

from utils.errors import ValidationError
from utils.rate_resolver import (
    SHIPPING,
    TAX,
    get_settings,
    normalize_shipping_rates,
    normalize_tax_rates,
    resolve,
    save_rate_settings,
)
from utils.side_effects import outbox


async def test_vendor_rate_wins_then_platform_then_floor(db):
    vendor = ObjectId()
    await db.tax_settings.insert_many([
        {"owner_type": "platform", "rates": [{"country": "US", "percent": 8}]},
        {"owner_type": "vendor", "owner": vendor, "rates": [{"country": "US", "percent": 12}]},
    ])
    await db.shipping_settings.insert_one(
        {"owner_type": "platform", "rates": [{"country": "US", "rate": 7.5}]}
    )

    assert await resolve(db, "US", vendor) == {"tax_percent": 12.0, "shipping_amount": 7.5}
    assert await resolve(db, "US", ObjectId()) == {"tax_percent": 8.0, "shipping_amount": 7.5}
    assert await resolve(db, "FR", vendor) == {"tax_percent": 0.0, "shipping_amount": 5.0}


async def test_resolve_accepts_string_seller_ids(db):
    vendor = ObjectId()
    await db.shipping_settings.insert_one(
        {"owner_type": "vendor", "owner": vendor, "rates": [{"country": "IN", "rate": 40}]}
    )

    result = await resolve(db, "IN", str(vendor))

    assert result["shipping_amount"] == 40.0


async def test_country_match_is_exact(db):
    await db.tax_settings.insert_one(
        {"owner_type": "platform", "rates": [{"country": "US", "percent": 8}]}
    )

    assert (await resolve(db, "us"))["tax_percent"] == 0.0


async def test_resolve_requires_country(db):
    with pytest.raises(ValidationError):
        await resolve(db, "")


def test_tax_rates_are_clamped_and_invalid_rows_dropped():
    cleaned = normalize_tax_rates([
        {"country": "US", "percent": 150},
        {"country": "DE", "percent": -3},
        {"country": "FR", "percent": "abc"},
        {"percent": 5},
        {"country": "IN", "percent": "18"},
    ])

    assert cleaned == [
        {"country": "US", "percent": 100.0},
        {"country": "DE", "percent": 0.0},
        {"country": "IN", "percent": 18.0},
    ]


def test_tax_rates_that_clean_to_nothing_are_rejected():
    with pytest.raises(ValidationError):
        normalize_tax_rates([{"country": "", "percent": 5}])

    assert normalize_tax_rates([]) == []


def test_negative_shipping_rate_is_rejected():
    with pytest.raises(ValidationError):
        normalize_shipping_rates([{"country": "US", "rate": -1}])


async def test_save_replaces_whole_rate_set_and_audits(db):
    admin = {"_id": ObjectId(), "role": "admin"}

    await save_rate_settings(db, SHIPPING, [{"country": "US", "rate": 5}, {"country": "CA", "rate": 9}], actor=admin)
    await save_rate_settings(db, SHIPPING, [{"country": "MX", "rate": 3}], actor=admin)
    await outbox.drain()

    settings = await get_settings(db, SHIPPING)
    assert settings["rates"] == [{"country": "MX", "rate": 3.0}]
    assert await db.shipping_settings.count_documents({}) == 1

    logs = await db.audit_logs.find({"action": "shipping.upsert"}).sort("created_at", 1).to_list(length=None)
    assert len(logs) == 2
    assert logs[0]["before"] is None
    assert logs[1]["before"] == {"rates_count": 2}
    assert logs[1]["after"]["rates_count"] == 1


async def test_vendor_settings_are_scoped_to_owner(db):
    vendor = {"_id": ObjectId(), "role": "company"}

    await save_rate_settings(db, TAX, [{"country": "US", "percent": 12}], actor=vendor, owner=vendor["_id"])

    assert await get_settings(db, TAX) is None
    own = await get_settings(db, TAX, owner=vendor["_id"])
    assert own["owner"] == vendor["_id"]
    assert own["rates"] == [{"country": "US", "percent": 12.0}]
