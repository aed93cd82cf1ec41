from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from config.constants import (
    AUDIT_EXPORT_DEFAULT_LIMIT,
    AUDIT_EXPORT_MAX_LIMIT,
    DEFAULT_ADMIN_PAGE_SIZE,
)
from database import get_db
from utils.audit import audit_rows_to_csv, build_audit_filter, list_audit_logs
from utils.mongo import serialize_docs
from utils.pagination import page_window, pagination_meta
from utils.security import require_role

router = APIRouter(prefix="/api/audit", tags=["Audit"])


def audit_filters(
    action: str | None = Query(None),
    resource_type: str | None = Query(None),
    actor_role: str | None = Query(None),
    actor: str | None = Query(None),
    resource_id: str | None = Query(None),
    date_from: datetime | None = Query(None, alias="from"),
    date_to: datetime | None = Query(None, alias="to"),
) -> dict:
    return build_audit_filter(
        action=action,
        resource_type=resource_type,
        actor_role=actor_role,
        actor=actor,
        resource_id=resource_id,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("")
async def audit_logs(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    query: dict = Depends(audit_filters),
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    page, limit, skip = page_window(page, limit, DEFAULT_ADMIN_PAGE_SIZE)
    rows, total = await list_audit_logs(db, query, skip=skip, limit=limit)

    return {
        "logs": serialize_docs(rows),
        "pagination": pagination_meta(page, limit, total),
    }


@router.get("/export")
async def export_audit_logs(
    limit: int = Query(AUDIT_EXPORT_DEFAULT_LIMIT, ge=1),
    query: dict = Depends(audit_filters),
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    limit = min(limit, AUDIT_EXPORT_MAX_LIMIT)
    rows, _ = await list_audit_logs(db, query, skip=0, limit=limit)

    filename = f"audit-logs-{datetime.utcnow().strftime('%Y%m%d%H%M%S')}.csv"
    return Response(
        content=audit_rows_to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
