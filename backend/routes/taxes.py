from fastapi import APIRouter, Depends, Request

from database import get_db
from models.rates import RatesUpdate, TaxComputeRequest
from models.user import Permission
from utils.audit import AuditContext
from utils.mongo import serialize_doc
from utils.pricing import compute_tax
from utils.rate_resolver import TAX, empty_settings, get_settings, save_rate_settings
from utils.security import require_permission, require_role

router = APIRouter(prefix="/api/taxes", tags=["Taxes"])


# ======================================================
# PLATFORM RATES (ADMIN)
# ======================================================

@router.get("/admin")
async def get_platform_taxes(
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    settings = await get_settings(db, TAX)
    return {"settings": serialize_doc(settings) if settings else empty_settings()}


@router.put("/admin")
async def upsert_platform_taxes(
    data: RatesUpdate,
    request: Request,
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    settings = await save_rate_settings(
        db,
        TAX,
        data.rates,
        actor=admin,
        context=AuditContext.from_request(request),
    )
    return {"message": "Tax rates updated", "settings": serialize_doc(settings)}


# ======================================================
# OWN RATES (VENDOR)
# ======================================================

@router.get("/vendor")
async def get_vendor_taxes(
    vendor=Depends(require_permission(Permission.MANAGE_VENDOR_RATES)),
    db=Depends(get_db),
):
    settings = await get_settings(db, TAX, owner=vendor["_id"])
    if not settings:
        return {"settings": serialize_doc(empty_settings(vendor["_id"]))}
    return {"settings": serialize_doc(settings)}


@router.put("/vendor")
async def upsert_vendor_taxes(
    data: RatesUpdate,
    request: Request,
    vendor=Depends(require_permission(Permission.MANAGE_VENDOR_RATES)),
    db=Depends(get_db),
):
    settings = await save_rate_settings(
        db,
        TAX,
        data.rates,
        actor=vendor,
        owner=vendor["_id"],
        context=AuditContext.from_request(request),
    )
    return {"message": "Tax rates updated", "settings": serialize_doc(settings)}


# ======================================================
# COMPUTE (PUBLIC)
# ======================================================

@router.post("/compute")
async def compute(data: TaxComputeRequest, db=Depends(get_db)):
    items = [item.model_dump() for item in data.items]
    total_tax = await compute_tax(db, data.country, items, data.discount)
    return {"country": data.country, "total_tax": total_tax}
