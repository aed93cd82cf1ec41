from fastapi import APIRouter, Depends, Query, Request

from config.constants import DEFAULT_ADMIN_PAGE_SIZE
from database import get_db
from models.returns import ReturnCreate, ReturnStatusUpdate
from models.user import Permission
from utils.audit import AuditContext
from utils.mongo import serialize_doc, serialize_docs
from utils.pagination import page_window, pagination_meta
from utils.return_workflow import (
    create_return,
    list_admin_returns,
    list_customer_returns,
    list_vendor_returns,
    transition_return,
)
from utils.security import require_permission, require_role

router = APIRouter(prefix="/api/returns", tags=["Returns"])


# ======================================================
# CUSTOMER
# ======================================================

@router.post("/customer", status_code=201)
async def request_return(
    data: ReturnCreate,
    request: Request,
    customer=Depends(require_role("customer")),
    db=Depends(get_db),
):
    doc = await create_return(
        db,
        customer=customer,
        order_id=data.order_id,
        items=[item.model_dump() for item in data.items],
        notes=data.notes,
        context=AuditContext.from_request(request),
    )
    return {"message": "Return requested", "request": serialize_doc(doc)}


@router.get("/customer/my")
async def my_returns(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    customer=Depends(require_role("customer")),
    db=Depends(get_db),
):
    page, limit, skip = page_window(page, limit)
    rows, total = await list_customer_returns(db, customer.get("email"), skip=skip, limit=limit)

    return {
        "requests": serialize_docs(rows),
        "pagination": pagination_meta(page, limit, total),
    }


# ======================================================
# ADMIN
# ======================================================

@router.get("/admin")
async def all_returns(
    status: str | None = Query(None),
    q: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    page, limit, skip = page_window(page, limit, DEFAULT_ADMIN_PAGE_SIZE)
    rows, total = await list_admin_returns(db, status=status, q=q, skip=skip, limit=limit)

    return {
        "requests": serialize_docs(rows),
        "pagination": pagination_meta(page, limit, total),
    }


@router.patch("/admin/{return_id}")
async def admin_update_return(
    return_id: str,
    data: ReturnStatusUpdate,
    request: Request,
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    doc = await transition_return(
        db,
        actor=admin,
        return_id=return_id,
        status=data.status,
        note=data.note,
        expected_revision=data.expected_revision,
        context=AuditContext.from_request(request),
    )
    return {"message": "Return updated", "request": serialize_doc(doc)}


# ======================================================
# VENDOR
# ======================================================

@router.get("/vendor/my")
async def vendor_returns(
    status: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    vendor=Depends(require_permission(Permission.MANAGE_VENDOR_RETURNS)),
    db=Depends(get_db),
):
    page, limit, skip = page_window(page, limit)
    rows, total = await list_vendor_returns(db, vendor["_id"], status=status, skip=skip, limit=limit)

    return {
        "requests": serialize_docs(rows),
        "pagination": pagination_meta(page, limit, total),
    }


@router.patch("/vendor/{return_id}")
async def vendor_update_return(
    return_id: str,
    data: ReturnStatusUpdate,
    request: Request,
    vendor=Depends(require_permission(Permission.MANAGE_VENDOR_RETURNS)),
    db=Depends(get_db),
):
    doc = await transition_return(
        db,
        actor=vendor,
        return_id=return_id,
        status=data.status,
        note=data.note,
        expected_revision=data.expected_revision,
        context=AuditContext.from_request(request),
    )
    return {"message": "Return updated", "request": serialize_doc(doc)}
