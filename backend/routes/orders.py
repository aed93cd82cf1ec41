from fastapi import APIRouter, Depends, Query, Request

from config.constants import DEFAULT_ADMIN_PAGE_SIZE
from database import get_db
from models.order import OrderCreate, OrderQuoteRequest, OrderStatusUpdate
from models.user import Permission
from utils.audit import AuditContext
from utils.mongo import serialize_doc, serialize_docs
from utils.order_aggregator import (
    assert_can_view_order,
    get_order,
    list_admin_orders,
    list_customer_orders,
    list_vendor_orders,
    place_order,
    update_order_status,
)
from utils.pagination import page_window, pagination_meta
from utils.pricing import build_order_summary
from utils.security import get_current_user, get_optional_user, require_permission, require_role

router = APIRouter(prefix="/api/orders", tags=["Orders"])


# ======================================================
# QUOTE + CREATE ORDER (CHECKOUT)
# ======================================================

@router.post("/quote")
async def quote_order(data: OrderQuoteRequest, db=Depends(get_db)):
    items = [item.model_dump() for item in data.items]
    summary = await build_order_summary(db, data.country, items, data.discount)
    return {"summary": summary}


@router.post("", status_code=201)
async def create_order(data: OrderCreate, db=Depends(get_db)):
    order = await place_order(db, data.model_dump())
    return {"message": "Order placed", "order": serialize_doc(order)}


# ======================================================
# CUSTOMER ORDERS
# ======================================================

@router.get("/my")
async def my_orders(
    email: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user=Depends(get_optional_user),
    db=Depends(get_db),
):
    # signed-in callers always see their own orders; the email parameter
    # only serves guest checkout lookups
    lookup_email = user.get("email") if user else email

    page, limit, skip = page_window(page, limit)
    rows, total = await list_customer_orders(db, lookup_email, skip=skip, limit=limit)

    return {
        "orders": serialize_docs(rows),
        "pagination": pagination_meta(page, limit, total),
    }


# ======================================================
# VENDOR ORDERS
# ======================================================

@router.get("/vendor/my")
async def vendor_orders(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    vendor=Depends(require_permission(Permission.VIEW_VENDOR_ORDERS)),
    db=Depends(get_db),
):
    page, limit, skip = page_window(page, limit)
    rows, total = await list_vendor_orders(db, vendor["_id"], skip=skip, limit=limit)

    return {
        "orders": serialize_docs(rows),
        "pagination": pagination_meta(page, limit, total),
    }


# ======================================================
# ADMIN ORDERS
# ======================================================

@router.get("/admin")
async def admin_orders(
    status: str | None = Query(None),
    q: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    page, limit, skip = page_window(page, limit, DEFAULT_ADMIN_PAGE_SIZE)
    rows, total = await list_admin_orders(db, status=status, q=q, skip=skip, limit=limit)

    return {
        "orders": serialize_docs(rows),
        "pagination": pagination_meta(page, limit, total),
    }


@router.get("/{order_id}")
async def order_detail(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await get_order(db, order_id)
    assert_can_view_order(user, order)
    return {"order": serialize_doc(order)}


# ======================================================
# STATUS (ADMIN)
# ======================================================

@router.patch("/{order_id}/status")
async def change_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    request: Request,
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    order = await update_order_status(
        db,
        order_id=order_id,
        status=data.status,
        admin=admin,
        expected_revision=data.expected_revision,
        context=AuditContext.from_request(request),
    )
    return {"message": "Order status updated", "order": serialize_doc(order)}
