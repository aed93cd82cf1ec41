import asyncio
import re
from datetime import datetime

from pymongo import ReturnDocument

from config.env import STRICT_RETURN_TRANSITIONS
from models.returns import ReturnStatus, is_transition_allowed
from models.user import HISTORY_ROLES, Role
from utils.audit import enqueue_audit
from utils.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from utils.guards import as_owner_key, parse_object_id
from utils.mongo import revision_filter
from utils.notifications import enqueue_notify
from utils.products import get_products_map

NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


def parse_return_status(value) -> ReturnStatus:
    try:
        return ReturnStatus(str(value))
    except ValueError:
        raise ValidationError("Invalid status")


def _ordered_quantities(order: dict) -> dict[str, int]:
    quantities: dict[str, int] = {}
    for item in order.get("items", []):
        pid = str(item.get("product_id"))
        quantities[pid] = quantities.get(pid, 0) + int(item.get("quantity") or 0)
    return quantities


def _history_entry(actor: dict, action: str, note: str | None, now: datetime) -> dict:
    return {
        "actor_role": HISTORY_ROLES.get(actor.get("role"), actor.get("role")),
        "actor": actor.get("_id"),
        "action": action,
        "note": note or "",
        "at": now,
    }


# ======================================================
# CREATE (CUSTOMER)
# ======================================================

async def create_return(db, *, customer: dict, order_id, items: list[dict], notes: str = "", context=None) -> dict:
    if not order_id or not isinstance(items, list) or not items:
        raise ValidationError("order_id and items are required")

    order = await db.orders.find_one({"_id": parse_object_id(order_id, "order_id")})
    if not order:
        raise NotFoundError("Order not found")

    email = str(customer.get("email") or "").strip().lower()
    if not email or email != str(order.get("email") or "").strip().lower():
        raise AuthorizationError("You can only return your own orders")

    # --------------------------------------------------
    # QUANTITY BOUNDS (per product, summed over the request)
    # --------------------------------------------------
    ordered = _ordered_quantities(order)
    requested: dict[str, int] = {}
    lines = []

    for item in items:
        try:
            qty = int(item.get("quantity") or 0)
        except (TypeError, ValueError):
            qty = 0

        if not item.get("product_id") or qty <= 0:
            raise ValidationError("Each item must have product_id and positive quantity")

        # same canonical form as the ids stored at checkout
        pid = str(parse_object_id(item["product_id"], "product_id"))
        lines.append((pid, qty, item.get("reason") or ""))

        requested[pid] = requested.get(pid, 0) + qty
        if requested[pid] > ordered.get(pid, 0):
            raise ValidationError("Return quantity exceeds ordered quantity")

    # --------------------------------------------------
    # ENRICH (all or nothing)
    # --------------------------------------------------
    catalog = await get_products_map(db, list(requested))

    enriched = []
    for pid, qty, reason in lines:
        product = catalog.get(pid)
        if not product:
            raise NotFoundError("Product not found")
        enriched.append({
            "product_id": product["id"],
            "name": product.get("name"),
            "quantity": qty,
            "reason": reason,
            "seller": product.get("seller"),
        })

    now = datetime.utcnow()
    doc = {
        "order_id": order["_id"],
        "customer_email": email,
        "items": enriched,
        "status": ReturnStatus.REQUESTED.value,
        "notes": notes or "",
        "history": [_history_entry(customer, ReturnStatus.REQUESTED.value, notes, now)],
        "revision": 0,
        "created_at": now,
        "updated_at": now,
    }
    await db.return_requests.insert_one(doc)

    # --------------------------------------------------
    # SIDE EFFECTS
    # --------------------------------------------------
    enqueue_audit(
        db,
        actor=customer.get("_id"),
        actor_role=customer.get("role"),
        action="returns.create",
        resource_type="ReturnRequest",
        resource_id=doc["_id"],
        before=None,
        after={"status": doc["status"], "order_id": str(order["_id"]), "items": len(enriched)},
        metadata={"order_id": str(order["_id"])},
        context=context,
    )

    seller_ids = []
    for item in enriched:
        if item["seller"] and item["seller"] not in seller_ids:
            seller_ids.append(item["seller"])

    if seller_ids:
        async def sellers():
            return await db.users.find(
                {"_id": {"$in": seller_ids}},
                {"_id": 1, "email": 1},
            ).to_list(length=None)

        enqueue_notify(
            db,
            "returns.create",
            sellers,
            title="New return request",
            message=f"Return requested for order {order['_id']}",
            type="return",
            metadata={"return_id": str(doc["_id"]), "order_id": str(order["_id"])},
            email_subject="New return request",
            email_body=f"A customer requested a return for order {order['_id']}.",
        )

    return doc


# ======================================================
# TRANSITION (VENDOR / ADMIN)
# ======================================================

def assert_vendor_owns_items(vendor: dict, doc: dict):
    vendor_id = str(vendor.get("_id"))
    if not all(str(item.get("seller") or "") == vendor_id for item in doc.get("items", [])):
        raise AuthorizationError("You can only update returns for your own items")


async def transition_return(
    db,
    *,
    actor: dict,
    return_id,
    status,
    note: str = "",
    expected_revision: int | None = None,
    context=None,
) -> dict:
    target = parse_return_status(status)

    role = actor.get("role")
    if role not in (Role.ADMIN.value, Role.COMPANY.value):
        raise AuthorizationError("Only vendors and admins can update returns")

    doc = await db.return_requests.find_one({"_id": parse_object_id(return_id, "return_id")})
    if not doc:
        raise NotFoundError("Return not found")

    # a return spanning several vendors can only be progressed by an admin
    if role == Role.COMPANY.value:
        assert_vendor_owns_items(actor, doc)

    current = doc.get("status")
    try:
        current_status = ReturnStatus(current) if current else None
    except ValueError:
        current_status = None

    if not is_transition_allowed(current_status, target, strict=STRICT_RETURN_TRANSITIONS):
        raise ValidationError(f"Cannot move return from {current} to {target.value}")

    now = datetime.utcnow()
    revision = doc.get("revision", 0) if expected_revision is None else expected_revision

    updated = await db.return_requests.find_one_and_update(
        {"_id": doc["_id"], **revision_filter(revision)},
        {
            "$set": {"status": target.value, "updated_at": now},
            "$push": {"history": _history_entry(actor, target.value, note, now)},
            "$inc": {"revision": 1},
        },
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ConflictError("Return was modified by another request; reload and retry")

    # previous status as recorded by the prior history entry
    history = updated.get("history") or []
    previous = history[-2].get("action") if len(history) > 1 else current

    enqueue_audit(
        db,
        actor=actor.get("_id"),
        actor_role=role,
        action="returns.status_update",
        resource_type="ReturnRequest",
        resource_id=updated["_id"],
        before={"status": previous},
        after={"status": target.value},
        metadata={"by": HISTORY_ROLES.get(role, role), "revision": updated["revision"]},
        context=context,
    )

    async def customer():
        user = await db.users.find_one({"email": updated["customer_email"]}, {"_id": 1, "email": 1})
        return [user] if user else []

    enqueue_notify(
        db,
        "returns.status_update",
        customer,
        title="Return status updated",
        message=f"Your return {updated['_id']} status is now {target.value}",
        type="return",
        metadata={"return_id": str(updated["_id"]), "status": target.value},
        email_subject="Return status updated",
        email_body=f"Your return request ({updated['_id']}) status is now: {target.value}.",
    )

    return updated


# ======================================================
# LISTS
# ======================================================

async def _page(db, query: dict, *, skip: int, limit: int):
    cursor = db.return_requests.find(query).sort(NEWEST_FIRST).skip(skip).limit(limit)
    return await asyncio.gather(
        cursor.to_list(length=limit),
        db.return_requests.count_documents(query),
    )


def _status_filter(status: str | None) -> dict:
    if not status:
        return {}
    # unknown values are ignored rather than rejected
    try:
        return {"status": ReturnStatus(status).value}
    except ValueError:
        return {}


async def list_customer_returns(db, email: str, *, skip: int, limit: int):
    return await _page(db, {"customer_email": str(email or "").strip().lower()}, skip=skip, limit=limit)


async def list_vendor_returns(db, vendor_id, *, status: str | None = None, skip: int, limit: int):
    query = {"items.seller": as_owner_key(vendor_id), **_status_filter(status)}
    return await _page(db, query, skip=skip, limit=limit)


async def list_admin_returns(db, *, status: str | None = None, q: str | None = None, skip: int, limit: int):
    query = _status_filter(status)
    if q:
        query["customer_email"] = {"$regex": re.escape(q), "$options": "i"}
    return await _page(db, query, skip=skip, limit=limit)
