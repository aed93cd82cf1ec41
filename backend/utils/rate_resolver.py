import asyncio
import math
from datetime import datetime

from pymongo import ReturnDocument

from config.constants import DEFAULT_SHIPPING_RATE, DEFAULT_TAX_PERCENT
from utils.audit import enqueue_audit
from utils.errors import ValidationError
from utils.guards import as_owner_key

TAX = "tax"
SHIPPING = "shipping"

PLATFORM = "platform"
VENDOR = "vendor"

RATE_KINDS = {
    TAX: {
        "collection": "tax_settings",
        "field": "percent",
        "floor": DEFAULT_TAX_PERCENT,
        "resource_type": "TaxSetting",
        "audit_action": "taxes.upsert",
    },
    SHIPPING: {
        "collection": "shipping_settings",
        "field": "rate",
        "floor": DEFAULT_SHIPPING_RATE,
        "resource_type": "ShippingSetting",
        "audit_action": "shipping.upsert",
    },
}


def _collection(db, kind: str):
    return db[RATE_KINDS[kind]["collection"]]


def _owner_query(owner=None) -> dict:
    if owner is None:
        return {"owner_type": PLATFORM}
    return {"owner_type": VENDOR, "owner": as_owner_key(owner)}


# ======================================================
# LOOKUP
# ======================================================

def find_rate(settings: dict | None, country, field: str):
    for entry in (settings or {}).get("rates", []):
        if str(entry.get("country")) == str(country):
            return entry.get(field)
    return None


def pick_rate(kind: str, country, platform: dict | None, vendor: dict | None) -> float:
    field = RATE_KINDS[kind]["field"]

    vendor_value = find_rate(vendor, country, field)
    if vendor_value is not None:
        return float(vendor_value)

    platform_value = find_rate(platform, country, field)
    if platform_value is not None:
        return float(platform_value)

    return float(RATE_KINDS[kind]["floor"])


async def get_settings(db, kind: str, owner=None) -> dict | None:
    return await _collection(db, kind).find_one(_owner_query(owner))


async def load_rate_tables(db, kind: str, seller_ids) -> tuple[dict | None, dict[str, dict]]:
    """Platform setting plus every listed seller's setting, keyed by seller id string."""
    collection = _collection(db, kind)
    owners = [as_owner_key(s) for s in seller_ids]

    if owners:
        platform, vendor_docs = await asyncio.gather(
            collection.find_one({"owner_type": PLATFORM}),
            collection.find({"owner_type": VENDOR, "owner": {"$in": owners}}).to_list(length=None),
        )
    else:
        platform, vendor_docs = await collection.find_one({"owner_type": PLATFORM}), []

    return platform, {str(doc["owner"]): doc for doc in vendor_docs}


async def resolve(db, country, seller_id=None) -> dict:
    if not country:
        raise ValidationError("country is required")

    sellers = [seller_id] if seller_id else []
    (tax_platform, tax_vendors), (ship_platform, ship_vendors) = await asyncio.gather(
        load_rate_tables(db, TAX, sellers),
        load_rate_tables(db, SHIPPING, sellers),
    )
    key = str(seller_id) if seller_id else None

    return {
        "tax_percent": pick_rate(TAX, country, tax_platform, tax_vendors.get(key)),
        "shipping_amount": pick_rate(SHIPPING, country, ship_platform, ship_vendors.get(key)),
    }


# ======================================================
# SETTINGS UPSERT
# ======================================================

def _to_number(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def normalize_tax_rates(rates: list) -> list[dict]:
    cleaned = []
    for row in rates or []:
        if not isinstance(row, dict) or not row.get("country"):
            continue
        percent = _to_number(row.get("percent"))
        if percent is None:
            continue
        cleaned.append({
            "country": str(row["country"]).strip(),
            "percent": max(0.0, min(100.0, percent)),
        })

    if rates and not cleaned:
        raise ValidationError(
            "No valid tax rates to save. Provide country and percent between 0 and 100 or remove empty rows."
        )
    return cleaned


def normalize_shipping_rates(rates: list) -> list[dict]:
    cleaned = []
    for row in rates or []:
        if not isinstance(row, dict) or not row.get("country"):
            continue
        rate = _to_number(row.get("rate"))
        if rate is None:
            continue
        if rate < 0:
            raise ValidationError(f"Shipping rate for {row['country']} must be non-negative")
        cleaned.append({"country": str(row["country"]).strip(), "rate": rate})

    if rates and not cleaned:
        raise ValidationError(
            "No valid shipping rates to save. Provide country and a non-negative rate or remove empty rows."
        )
    return cleaned


NORMALIZERS = {
    TAX: normalize_tax_rates,
    SHIPPING: normalize_shipping_rates,
}


async def save_rate_settings(db, kind: str, rates: list, *, actor: dict, owner=None, context=None) -> dict:
    """
    Replace the whole rate set for one scope (platform when owner is None).
    """
    cleaned = NORMALIZERS[kind](rates)
    query = _owner_query(owner)
    collection = _collection(db, kind)
    now = datetime.utcnow()

    before = await collection.find_one(query)
    doc = await collection.find_one_and_update(
        query,
        {
            "$set": {"rates": cleaned, "updated_at": now},
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )

    scope = VENDOR if owner is not None else PLATFORM
    enqueue_audit(
        db,
        actor=actor.get("_id"),
        actor_role=actor.get("role"),
        action=RATE_KINDS[kind]["audit_action"],
        resource_type=RATE_KINDS[kind]["resource_type"],
        resource_id=doc["_id"],
        before={"rates_count": len(before.get("rates", []))} if before else None,
        after={"owner_type": scope, "owner": query.get("owner"), "rates_count": len(cleaned)},
        metadata={"owner_type": scope},
        context=context,
    )
    return doc


def empty_settings(owner=None) -> dict:
    settings = {"owner_type": PLATFORM if owner is None else VENDOR, "rates": []}
    if owner is not None:
        settings["owner"] = owner
    return settings
