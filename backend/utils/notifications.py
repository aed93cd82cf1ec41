import asyncio
import logging
from datetime import datetime
from functools import partial

from pymongo import ReturnDocument

from utils.guards import parse_object_id
from utils.live import hub
from utils.mailer import send_email_simple
from utils.mongo import serialize_doc
from utils.side_effects import outbox

logger = logging.getLogger(__name__)


async def push_to_user(user_id, event: str, payload: dict):
    try:
        await hub.emit_to_user(str(user_id), event, payload)
    except Exception:
        logger.exception("LIVE_PUSH_FAILED user=%s event=%s", user_id, event)


async def create_notification(
    db,
    *,
    user,
    title: str,
    message: str,
    type: str = "general",
    metadata: dict | None = None,
):
    """
    Persist a notification, then push it to the recipient's live sessions.
    Returns the stored document, or None when skipped or the write failed.
    """
    if not user or not title or not message:
        return None

    doc = {
        "user": user,
        "title": title,
        "message": message,
        "type": type,
        "metadata": metadata or {},
        "read": False,
        "created_at": datetime.utcnow(),
    }

    try:
        await db.notifications.insert_one(doc)
    except Exception:
        logger.exception("NOTIFICATION_WRITE_FAILED user=%s", user)
        return None

    await push_to_user(user, "notifications:new", {"notification": serialize_doc(doc)})
    return doc


async def notify_users(
    db,
    recipients: list[dict],
    *,
    title: str,
    message: str,
    type: str = "general",
    metadata: dict | None = None,
    email_subject: str | None = None,
    email_body: str | None = None,
):
    """Notification plus email for every recipient user document."""
    for recipient in recipients:
        await create_notification(
            db,
            user=recipient["_id"],
            title=title,
            message=message,
            type=type,
            metadata=metadata,
        )
        if email_subject and email_body:
            await send_email_simple(recipient.get("email"), email_subject, email_body)


def enqueue_notify(db, name: str, recipients_loader, **kwargs) -> None:
    """
    Queue a fan-out. Recipients are resolved inside the task so lookup
    failures stay on the side channel.
    """

    async def task():
        recipients = await recipients_loader()
        await notify_users(db, recipients, **kwargs)

    outbox.enqueue(f"notify:{name}", task)


# ======================================================
# RECIPIENT VIEWS
# ======================================================

async def list_notifications(db, user_id, *, skip: int, limit: int):
    query = {"user": user_id}
    cursor = db.notifications.find(query).sort([("created_at", -1), ("_id", -1)]).skip(skip).limit(limit)
    return await asyncio.gather(
        cursor.to_list(length=limit),
        db.notifications.count_documents(query),
    )


async def unread_count(db, user_id) -> int:
    return await db.notifications.count_documents({"user": user_id, "read": False})


async def mark_read(db, user_id, notification_id: str) -> dict | None:
    oid = parse_object_id(notification_id, "notification_id")

    doc = await db.notifications.find_one_and_update(
        {"_id": oid, "user": user_id},
        {"$set": {"read": True}},
        return_document=ReturnDocument.AFTER,
    )
    if doc:
        outbox.enqueue(
            "live:notifications:updated",
            partial(push_to_user, user_id, "notifications:updated", {"type": "single", "id": str(oid)}),
        )
    return doc


async def mark_all_read(db, user_id) -> int:
    result = await db.notifications.update_many(
        {"user": user_id, "read": False},
        {"$set": {"read": True}},
    )
    outbox.enqueue(
        "live:notifications:updated",
        partial(push_to_user, user_id, "notifications:updated", {"type": "all"}),
    )
    return result.modified_count
