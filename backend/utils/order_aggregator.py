import asyncio
import re
from datetime import datetime

from pymongo import ReturnDocument

from models.order import OrderStatus
from models.user import Role
from utils.audit import enqueue_audit
from utils.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from utils.guards import as_owner_key, parse_object_id
from utils.mongo import revision_filter
from utils.notifications import enqueue_notify
from utils.pricing import build_order_summary
from utils.products import get_products_map

NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


def parse_order_status(value) -> OrderStatus:
    try:
        return OrderStatus(str(value))
    except ValueError:
        raise ValidationError(
            f"Invalid status value. Allowed: {', '.join(s.value for s in OrderStatus)}"
        )


# ======================================================
# PLACEMENT
# ======================================================

async def place_order(db, data: dict) -> dict:
    """
    Prices come from the catalog and every line subtotal is recomputed; the
    client only supplies product ids and quantities.
    """
    requested = data.get("items") or []
    if not requested:
        raise ValidationError("Order must contain at least one item")

    catalog = await get_products_map(db, [item["product_id"] for item in requested])

    lines = []
    for item in requested:
        product = catalog.get(str(parse_object_id(item["product_id"], "product_id")))
        if not product:
            raise NotFoundError("Product not found")
        if product.get("price") is None:
            raise ValidationError("Product price not configured")

        quantity = int(item.get("quantity") or 0)
        if quantity <= 0:
            raise ValidationError("Each item must have a positive quantity")

        price = float(product["price"])
        lines.append({
            "product_id": product["id"],
            "name": product.get("name"),
            "price": price,
            "quantity": quantity,
            "subtotal": round(price * quantity, 2),
            "seller": product.get("seller"),
        })

    summary = await build_order_summary(db, data["country"], lines, data.get("discount", 0))

    now = datetime.utcnow()
    order = {
        "first_name": data["first_name"],
        "last_name": data["last_name"],
        "address": data["address"],
        "city": data["city"],
        "country": data["country"],
        "phone": data["phone"],
        "email": str(data["email"]).strip().lower(),
        "order_notes": data.get("order_notes") or "",
        "items": [{k: v for k, v in line.items() if k != "seller"} for line in lines],
        "summary": summary,
        "payment_method": data["payment_method"],
        "coupon_code": data.get("coupon_code"),
        "status": OrderStatus.PENDING.value,
        "revision": 0,
        "created_at": now,
        "updated_at": now,
    }

    await db.orders.insert_one(order)
    return order


# ======================================================
# CUSTOMER / ADMIN VIEWS
# ======================================================

async def _page(collection, query: dict, *, skip: int, limit: int):
    cursor = collection.find(query).sort(NEWEST_FIRST).skip(skip).limit(limit)
    return await asyncio.gather(
        cursor.to_list(length=limit),
        collection.count_documents(query),
    )


async def list_customer_orders(db, email: str, *, skip: int, limit: int):
    if not email:
        raise ValidationError("Email is required to fetch orders")
    return await _page(db.orders, {"email": email.strip().lower()}, skip=skip, limit=limit)


async def list_admin_orders(db, *, status: str | None = None, q: str | None = None, skip: int, limit: int):
    query: dict = {}
    if status:
        query["status"] = parse_order_status(status).value
    if q:
        query["email"] = {"$regex": re.escape(q), "$options": "i"}
    return await _page(db.orders, query, skip=skip, limit=limit)


async def get_order(db, order_id) -> dict:
    order = await db.orders.find_one({"_id": parse_object_id(order_id, "order_id")})
    if not order:
        raise NotFoundError("Order not found")
    return order


def assert_can_view_order(user: dict, order: dict):
    if user.get("role") == Role.ADMIN.value:
        return
    email = str(user.get("email") or "").lower()
    if not email or email != str(order.get("email") or "").lower():
        raise AuthorizationError("You can only view your own orders")


# ======================================================
# VENDOR VIEW
# ======================================================

def _vendor_lines_pipeline(vendor_id) -> list[dict]:
    return [
        {"$unwind": "$items"},
        {
            "$lookup": {
                "from": "products",
                "localField": "items.product_id",
                "foreignField": "_id",
                "as": "product",
            }
        },
        {"$unwind": "$product"},
        {"$match": {"product.seller_id": as_owner_key(vendor_id)}},
    ]


async def list_vendor_orders(db, vendor_id, *, skip: int, limit: int):
    """
    Vendor-scoped sub-orders: only this vendor's lines of each order, with
    total_for_vendor summed over those lines.
    """
    base = _vendor_lines_pipeline(vendor_id)

    data_pipeline = base + [
        {
            "$group": {
                "_id": "$_id",
                "created_at": {"$first": "$created_at"},
                "status": {"$first": "$status"},
                "payment_method": {"$first": "$payment_method"},
                "customer_email": {"$first": "$email"},
                "items": {
                    "$push": {
                        "product_id": "$items.product_id",
                        "name": "$items.name",
                        "price": "$items.price",
                        "quantity": "$items.quantity",
                        "subtotal": "$items.subtotal",
                    }
                },
                "total_for_vendor": {"$sum": "$items.subtotal"},
            }
        },
        {"$sort": {"created_at": -1, "_id": -1}},
        {"$skip": skip},
        {"$limit": limit},
    ]
    count_pipeline = base + [
        {"$group": {"_id": "$_id"}},
        {"$count": "total"},
    ]

    rows, count = await asyncio.gather(
        db.orders.aggregate(data_pipeline).to_list(length=None),
        db.orders.aggregate(count_pipeline).to_list(length=None),
    )

    for row in rows:
        row["total_for_vendor"] = round(row.get("total_for_vendor") or 0, 2)

    total = count[0]["total"] if count else 0
    return rows, total


async def order_vendor_ids(db, order: dict) -> list:
    catalog = await get_products_map(db, [item["product_id"] for item in order.get("items", [])])
    vendor_ids = []
    for product in catalog.values():
        seller = product.get("seller")
        if seller and seller not in vendor_ids:
            vendor_ids.append(seller)
    return vendor_ids


# ======================================================
# STATUS TRANSITION (ADMIN)
# ======================================================

async def update_order_status(
    db,
    *,
    order_id,
    status,
    admin: dict,
    expected_revision: int | None = None,
    context=None,
) -> dict:
    new_status = parse_order_status(status)
    order = await get_order(db, order_id)

    revision = order.get("revision", 0) if expected_revision is None else expected_revision
    updated = await db.orders.find_one_and_update(
        {"_id": order["_id"], **revision_filter(revision)},
        {
            "$set": {"status": new_status.value, "updated_at": datetime.utcnow()},
            "$inc": {"revision": 1},
        },
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ConflictError("Order was modified by another request; reload and retry")

    enqueue_audit(
        db,
        actor=admin.get("_id"),
        actor_role=admin.get("role"),
        action="orders.status_update",
        resource_type="Order",
        resource_id=order["_id"],
        before={"status": order.get("status")},
        after={"status": new_status.value},
        metadata={"revision": updated["revision"]},
        context=context,
    )

    async def recipients():
        vendor_ids = await order_vendor_ids(db, updated)
        customer = await db.users.find_one({"email": updated["email"]}, {"_id": 1, "email": 1})
        vendors = await db.users.find(
            {"_id": {"$in": vendor_ids}},
            {"_id": 1, "email": 1},
        ).to_list(length=None)
        return ([customer] if customer else []) + vendors

    enqueue_notify(
        db,
        "orders.status_update",
        recipients,
        title="Order status updated",
        message=f"Order {order['_id']} status is now {new_status.value}",
        type="order",
        metadata={"order_id": str(order["_id"]), "status": new_status.value},
        email_subject="Order status updated",
        email_body=f"Order ({order['_id']}) status is now: {new_status.value}.",
    )

    return updated
