import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from database import get_db
from utils.errors import NotFoundError
from utils.live import hub
from utils.mongo import serialize_doc, serialize_docs
from utils.notifications import list_notifications, mark_all_read, mark_read, unread_count
from utils.pagination import page_window, pagination_meta
from utils.security import load_user_from_token, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("/my")
async def my_notifications(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    page, limit, skip = page_window(page, limit)
    rows, total = await list_notifications(db, user["_id"], skip=skip, limit=limit)

    return {
        "notifications": serialize_docs(rows),
        "pagination": pagination_meta(page, limit, total),
    }


@router.get("/unread-count")
async def my_unread_count(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    return {"count": await unread_count(db, user["_id"])}


# declared before /{notification_id}/read so "read-all" is not taken for an id
@router.patch("/read-all")
async def read_all(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    modified = await mark_all_read(db, user["_id"])
    return {"message": "All notifications marked as read", "modified": modified}


@router.patch("/{notification_id}/read")
async def read_one(
    notification_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    doc = await mark_read(db, user["_id"], notification_id)
    if not doc:
        raise NotFoundError("Notification not found")
    return {"notification": serialize_doc(doc)}


# ======================================================
# LIVE (WEBSOCKET)
# ======================================================

@router.websocket("/ws")
async def notifications_socket(
    websocket: WebSocket,
    token: str | None = Query(None),
    db=Depends(get_db),
):
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        user = await load_user_from_token(token, db)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user_id = str(user["_id"])
    await hub.connect(user_id, websocket)
    logger.info("LIVE_CONNECTED user=%s sessions=%s", user_id, hub.session_count(user_id))

    try:
        while True:
            # clients only listen; inbound frames keep the socket alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(user_id, websocket)
