from fastapi import APIRouter, Depends, Request

from database import get_db
from models.rates import RatesUpdate, ShippingQuoteRequest
from models.user import Permission
from utils.audit import AuditContext
from utils.mongo import serialize_doc
from utils.pricing import quote_shipping
from utils.rate_resolver import SHIPPING, empty_settings, get_settings, save_rate_settings
from utils.security import require_permission, require_role

router = APIRouter(prefix="/api/shipping", tags=["Shipping"])


# ======================================================
# PLATFORM RATES (ADMIN)
# ======================================================

@router.get("/admin")
async def get_platform_shipping(
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    settings = await get_settings(db, SHIPPING)
    return {"settings": serialize_doc(settings) if settings else empty_settings()}


@router.put("/admin")
async def upsert_platform_shipping(
    data: RatesUpdate,
    request: Request,
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    settings = await save_rate_settings(
        db,
        SHIPPING,
        data.rates,
        actor=admin,
        context=AuditContext.from_request(request),
    )
    return {"message": "Shipping rates updated", "settings": serialize_doc(settings)}


# ======================================================
# OWN RATES (VENDOR)
# ======================================================

@router.get("/vendor")
async def get_vendor_shipping(
    vendor=Depends(require_permission(Permission.MANAGE_VENDOR_RATES)),
    db=Depends(get_db),
):
    settings = await get_settings(db, SHIPPING, owner=vendor["_id"])
    if not settings:
        return {"settings": serialize_doc(empty_settings(vendor["_id"]))}
    return {"settings": serialize_doc(settings)}


@router.put("/vendor")
async def upsert_vendor_shipping(
    data: RatesUpdate,
    request: Request,
    vendor=Depends(require_permission(Permission.MANAGE_VENDOR_RATES)),
    db=Depends(get_db),
):
    settings = await save_rate_settings(
        db,
        SHIPPING,
        data.rates,
        actor=vendor,
        owner=vendor["_id"],
        context=AuditContext.from_request(request),
    )
    return {"message": "Shipping rates updated", "settings": serialize_doc(settings)}


# ======================================================
# QUOTE (PUBLIC)
# ======================================================

@router.post("/quote")
async def quote(data: ShippingQuoteRequest, db=Depends(get_db)):
    items = [item.model_dump() for item in data.items]
    return await quote_shipping(db, data.country, items)
