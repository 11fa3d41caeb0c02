from datetime import datetime, timezone

from pymongo import ReturnDocument

from timeledger.db import OWNER_SETTINGS
from timeledger.models.owner_settings import OwnerSettings
from timeledger.schemas.settings import UpdateSettings
from timeledger.utils.timezone_utils import parse_offset, to_storage

UTC = timezone.utc


async def get_owner_settings(database, owner_id: str) -> OwnerSettings:
    """Stored settings for the owner, or the configured defaults when none were saved."""
    document = await database[OWNER_SETTINGS].find_one({"owner_id": owner_id})
    if not document:
        return OwnerSettings(owner_id=owner_id)
    document.pop("_id", None)
    return OwnerSettings(**document)


async def update_owner_settings(database, owner_id: str, changes: UpdateSettings) -> OwnerSettings:
    """
    Merge `changes` into the owner's settings. Rates already snapshotted on
    existing entries are not touched.
    """
    if changes.timezone_offset is not None:
        parse_offset(changes.timezone_offset)

    current = await get_owner_settings(database, owner_id)
    merged = OwnerSettings(**{
        **current.model_dump(),
        **changes.model_dump(exclude_unset=True, exclude_none=True),
        "updated_at": datetime.now(UTC),
    })

    document = merged.model_dump()
    document["updated_at"] = to_storage(merged.updated_at)
    stored = await database[OWNER_SETTINGS].find_one_and_update(
        {"owner_id": owner_id},
        {"$set": document},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    stored.pop("_id", None)
    return OwnerSettings(**stored)
