from utils.indexes import ensure_indexes


async def test_ensure_indexes_is_repeatable(db):
    await ensure_indexes(db)
    await ensure_indexes(db)

    settings = await db.tax_settings.index_information()
    notifications = await db.notifications.index_information()

    assert settings["tax_settings_owner_unique_idx"]["unique"] is True
    assert "notifications_ttl_idx" in notifications
