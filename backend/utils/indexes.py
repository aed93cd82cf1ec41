from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from config.env import NOTIFICATION_TTL_DAYS


def _normalize_key_pairs(keys):
    return [(k, v) for k, v in keys]


async def _create_index_safe(collection, keys, **kwargs):
    """
    Create index safely.
    If Mongo reports IndexOptionsConflict/IndexKeySpecsConflict for same key pattern,
    drop the conflicting index and recreate with desired options.
    """
    desired_key = _normalize_key_pairs(keys)
    desired_name = kwargs.get("name")
    try:
        await collection.create_index(keys, **kwargs)
        return
    except OperationFailure as e:
        if getattr(e, "code", None) not in {85, 86}:
            raise

        conflicting_names = []
        async for idx in collection.list_indexes():
            idx_key = _normalize_key_pairs(list(idx.get("key", {}).items()))
            if idx_key == desired_key:
                idx_name = idx.get("name")
                if idx_name and idx_name != desired_name:
                    conflicting_names.append(idx_name)

        for idx_name in conflicting_names:
            await collection.drop_index(idx_name)

        await collection.create_index(keys, **kwargs)


async def ensure_indexes(db):
    # Rate settings: one document per scope
    for collection in (db.tax_settings, db.shipping_settings):
        await _create_index_safe(
            collection,
            [("owner_type", ASCENDING), ("owner", ASCENDING)],
            name=f"{collection.name}_owner_unique_idx",
            unique=True,
        )

    # Products (catalog joins)
    await _create_index_safe(
        db.products,
        [("seller_id", ASCENDING)],
        name="products_seller_idx",
    )

    # Orders
    await _create_index_safe(
        db.orders,
        [("email", ASCENDING), ("created_at", DESCENDING)],
        name="orders_email_created_at_idx",
    )
    await _create_index_safe(
        db.orders,
        [("status", ASCENDING), ("created_at", DESCENDING)],
        name="orders_status_created_at_idx",
    )

    # Return requests
    await _create_index_safe(
        db.return_requests,
        [("customer_email", ASCENDING), ("created_at", DESCENDING)],
        name="returns_customer_created_at_idx",
    )
    await _create_index_safe(
        db.return_requests,
        [("items.seller", ASCENDING), ("status", ASCENDING), ("created_at", DESCENDING)],
        name="returns_seller_status_created_at_idx",
    )
    await _create_index_safe(
        db.return_requests,
        [("status", ASCENDING), ("created_at", DESCENDING)],
        name="returns_status_created_at_idx",
    )

    # Notifications
    await _create_index_safe(
        db.notifications,
        [("user", ASCENDING), ("read", ASCENDING), ("created_at", DESCENDING)],
        name="notifications_user_read_created_at_idx",
    )
    await _create_index_safe(
        db.notifications,
        [("created_at", ASCENDING)],
        name="notifications_ttl_idx",
        expireAfterSeconds=NOTIFICATION_TTL_DAYS * 24 * 60 * 60,
    )

    # Audit logs (retention handled by the cleanup worker)
    await _create_index_safe(
        db.audit_logs,
        [("created_at", DESCENDING)],
        name="audit_logs_created_at_idx",
    )
    await _create_index_safe(
        db.audit_logs,
        [("action", ASCENDING), ("created_at", DESCENDING)],
        name="audit_logs_action_created_at_idx",
    )
