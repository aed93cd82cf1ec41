import asyncio
import csv
import io
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from functools import partial

from fastapi import Request

from utils.guards import as_owner_key
from utils.side_effects import outbox

logger = logging.getLogger(__name__)

AUDIT_CSV_COLUMNS = [
    "created_at",
    "action",
    "resource_type",
    "resource_id",
    "actor",
    "actor_role",
    "ip",
    "correlation_id",
]


@dataclass
class AuditContext:
    ip: str | None = None
    user_agent: str | None = None
    correlation_id: str | None = None

    @classmethod
    def from_request(cls, request: Request | None) -> "AuditContext":
        if request is None:
            return cls()

        forwarded = request.headers.get("x-forwarded-for", "")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
        else:
            ip = request.client.host if request.client else None

        return cls(
            ip=ip,
            user_agent=request.headers.get("user-agent"),
            correlation_id=request.headers.get("x-correlation-id"),
        )


async def log_audit(
    db,
    *,
    actor,
    actor_role: str | None,
    action: str,
    resource_type: str | None = None,
    resource_id=None,
    before: dict | None = None,
    after: dict | None = None,
    metadata: dict | None = None,
    context: AuditContext | None = None,
):
    """
    Append one audit entry. Never raises: audit is diagnostic and must not
    fail the mutation it describes.
    """
    context = context or AuditContext()
    try:
        await db.audit_logs.insert_one({
            "actor": actor,
            "actor_role": actor_role,
            "action": action,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "before": before,
            "after": after,
            "metadata": metadata or {},
            "ip": context.ip,
            "user_agent": context.user_agent,
            "correlation_id": context.correlation_id or str(uuid.uuid4()),
            "created_at": datetime.utcnow(),
        })
    except Exception:
        logger.exception("AUDIT_WRITE_FAILED action=%s resource_id=%s", action, resource_id)


def enqueue_audit(db, **entry) -> None:
    outbox.enqueue(f"audit:{entry.get('action')}", partial(log_audit, db, **entry))


def build_audit_filter(
    *,
    action: str | None = None,
    resource_type: str | None = None,
    actor_role: str | None = None,
    actor: str | None = None,
    resource_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> dict:
    query: dict = {}

    if action:
        query["action"] = action
    if resource_type:
        query["resource_type"] = resource_type
    if actor_role:
        query["actor_role"] = actor_role
    if actor:
        query["actor"] = as_owner_key(actor)
    if resource_id:
        query["resource_id"] = as_owner_key(resource_id)

    if date_from or date_to:
        query["created_at"] = {}
        if date_from:
            query["created_at"]["$gte"] = date_from
        if date_to:
            query["created_at"]["$lte"] = date_to

    return query


async def list_audit_logs(db, query: dict, *, skip: int, limit: int):
    cursor = db.audit_logs.find(query).sort([("created_at", -1), ("_id", -1)]).skip(skip).limit(limit)
    rows, total = await asyncio.gather(cursor.to_list(length=limit), db.audit_logs.count_documents(query))
    return rows, total


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def audit_rows_to_csv(rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(AUDIT_CSV_COLUMNS)
    for row in rows:
        writer.writerow([_cell(row.get(column)) for column in AUDIT_CSV_COLUMNS])
    return buffer.getvalue()
