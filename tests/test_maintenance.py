from datetime import datetime, timezone

import pytest

from listing_ingest.maintenance import delete_by_source, delete_created_between
from listing_ingest.store import InMemoryListingStore


def _store() -> InMemoryListingStore:
    return InMemoryListingStore(
        [
            {"_id": "1", "source": "euractiv", "createdAt": datetime(2024, 5, 1, 8, tzinfo=timezone.utc)},
            {"_id": "2", "source": "eurobrussels", "createdAt": datetime(2024, 5, 1, 23, tzinfo=timezone.utc)},
            {"_id": "3", "source": "eurobrussels", "createdAt": datetime(2024, 5, 2, 0, tzinfo=timezone.utc)},
        ]
    )


@pytest.mark.asyncio
async def test_delete_by_source():
    store = _store()
    assert await delete_by_source(store, "eurobrussels") == 2
    assert list(store.documents) == ["1"]
    assert await delete_by_source(store, "jobsin") == 0


@pytest.mark.asyncio
async def test_delete_by_source_rejects_empty_name():
    with pytest.raises(ValueError):
        await delete_by_source(_store(), " ")


@pytest.mark.asyncio
async def test_delete_created_between_is_half_open():
    store = _store()
    deleted = await delete_created_between(store, datetime(2024, 5, 1), datetime(2024, 5, 2))
    assert deleted == 2
    assert list(store.documents) == ["3"]


@pytest.mark.asyncio
async def test_delete_created_between_rejects_empty_range():
    with pytest.raises(ValueError):
        await delete_created_between(_store(), datetime(2024, 5, 2), datetime(2024, 5, 1))
