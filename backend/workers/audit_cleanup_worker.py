import asyncio
import logging
from datetime import datetime, timedelta

from config.constants import AUDIT_CLEANUP_INTERVAL_SECONDS
from config.env import AUDIT_TTL_DAYS
from database import get_db

logger = logging.getLogger(__name__)


async def purge_expired_audit_logs(db, now: datetime | None = None) -> int:
    cutoff = (now or datetime.utcnow()) - timedelta(days=AUDIT_TTL_DAYS)
    result = await db.audit_logs.delete_many({"created_at": {"$lt": cutoff}})
    return result.deleted_count


async def audit_cleanup_worker():
    db = get_db()

    while True:
        try:
            deleted = await purge_expired_audit_logs(db)
            if deleted:
                logger.info("AUDIT_CLEANUP deleted=%s", deleted)
        except Exception:
            logger.exception("AUDIT_CLEANUP_ERROR")

        await asyncio.sleep(AUDIT_CLEANUP_INTERVAL_SECONDS)
