"""Tests for backfilled entries, edits, deletes and bulk operations."""

from datetime import date, datetime, timedelta

import pytest
from pytz import UTC

from tests.conftest import OTHER_OWNER_ID, OWNER_ID
from timeledger.db import TIME_ENTRIES
from timeledger.exceptions import EntryNotFound, InvalidInterval, NotOwner
from timeledger.models.time_entries import PaymentStatus
from timeledger.schemas.settings import UpdateSettings
from timeledger.schemas.time_entry import CreateTimeEntry, EditTimeEntry
from timeledger.utils import entry_utils
from timeledger.utils.entry_utils import (bulk_delete_entries, bulk_update_payment_status, create_entry, delete_entry,
                                          get_entry, list_entries, update_entry)
from timeledger.utils.session_utils import start_session, stop_session
from timeledger.utils.settings_utils import update_owner_settings


async def backfill(database, owner_id, start, end, **kwargs):
    return await create_entry(database, owner_id, CreateTimeEntry(start_time=start, end_time=end, **kwargs))


class TestCreateEntry:

    @pytest.mark.asyncio
    async def test_local_times_are_converted_and_attributed(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 3, 31, 23, 0), datetime(2025, 4, 1, 1, 0))

        assert entry.start_time == datetime(2025, 4, 1, 2, 0, tzinfo=UTC)
        assert entry.end_time == datetime(2025, 4, 1, 4, 0, tzinfo=UTC)
        assert entry.local_date == date(2025, 3, 31)
        assert entry.total_hours == 2.0
        assert entry.total_earned == 100.0

    @pytest.mark.asyncio
    async def test_scenario_ninety_minutes_at_fifty(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 11, 30),
                               hourly_rate=50.0)

        assert entry.total_hours == 1.5
        assert entry.total_earned == 75.0

    @pytest.mark.asyncio
    async def test_aware_times_are_taken_as_instants(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID,
                               datetime(2025, 4, 1, 12, 0, tzinfo=UTC), datetime(2025, 4, 1, 12, 45, tzinfo=UTC))

        assert entry.start_time == datetime(2025, 4, 1, 12, 0, tzinfo=UTC)
        assert entry.local_date == date(2025, 4, 1)
        assert entry.total_hours == 0.75

    @pytest.mark.asyncio
    async def test_end_before_start_is_rejected_before_writing(self, database, owner_settings):
        with pytest.raises(InvalidInterval):
            await backfill(database, OWNER_ID, datetime(2025, 4, 2, 11, 0), datetime(2025, 4, 2, 11, 0))

        assert await database[TIME_ENTRIES].count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_rate_is_a_snapshot(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 12, 0))
        await update_owner_settings(database, OWNER_ID, UpdateSettings(default_hourly_rate=80.0))

        stored = await get_entry(database, OWNER_ID, entry.id)
        assert stored.hourly_rate == 50.0
        assert stored.total_earned == 100.0


class TestUpdateEntry:

    @pytest.mark.asyncio
    async def test_end_time_edit_rederives_totals(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 11, 0))

        updated = await update_entry(database, OWNER_ID, entry.id, EditTimeEntry(end_time=datetime(2025, 4, 2, 12, 30)))

        assert updated.total_hours == 2.5
        assert updated.total_earned == 125.0
        stored = await database[TIME_ENTRIES].find_one({"_id": entry.id})
        assert stored["total_hours"] == 2.5
        assert stored["total_earned"] == 125.0

    @pytest.mark.asyncio
    async def test_rate_edit_rederives_earnings(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 12, 0))

        updated = await update_entry(database, OWNER_ID, entry.id, EditTimeEntry(hourly_rate=30.0))

        assert updated.total_hours == 2.0
        assert updated.total_earned == 60.0

    @pytest.mark.asyncio
    async def test_same_day_start_edit_keeps_local_date(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 3, 31, 22, 0), datetime(2025, 3, 31, 23, 59))

        # 23:30 local is already 2025-04-01 in UTC
        updated = await update_entry(database, OWNER_ID, entry.id, EditTimeEntry(start_time=datetime(2025, 3, 31, 23, 30)))

        assert updated.start_time == datetime(2025, 4, 1, 2, 30, tzinfo=UTC)
        assert updated.local_date == date(2025, 3, 31)

    @pytest.mark.asyncio
    async def test_start_edit_to_another_day_moves_local_date(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 3, 31, 22, 0), datetime(2025, 4, 1, 10, 0))

        updated = await update_entry(database, OWNER_ID, entry.id, EditTimeEntry(start_time=datetime(2025, 4, 1, 8, 0)))

        assert updated.local_date == date(2025, 4, 1)
        assert updated.total_hours == 2.0
        stored = await database[TIME_ENTRIES].find_one({"_id": entry.id})
        assert stored["local_date"] == "2025-04-01"

    @pytest.mark.asyncio
    async def test_invalid_interval_leaves_entry_untouched(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 11, 0))
        before = await database[TIME_ENTRIES].find_one({"_id": entry.id})

        with pytest.raises(InvalidInterval):
            await update_entry(database, OWNER_ID, entry.id, EditTimeEntry(end_time=datetime(2025, 4, 2, 9, 0)))
        with pytest.raises(InvalidInterval):
            await update_entry(database, OWNER_ID, entry.id, EditTimeEntry(start_time=datetime(2025, 4, 2, 11, 0)))

        assert await database[TIME_ENTRIES].find_one({"_id": entry.id}) == before

    @pytest.mark.asyncio
    async def test_totals_stay_consistent_across_edits(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 4, 2, 9, 0), datetime(2025, 4, 2, 10, 0))

        patches = [
            EditTimeEntry(end_time=datetime(2025, 4, 2, 10, 20)),
            EditTimeEntry(hourly_rate=33.33),
            EditTimeEntry(start_time=datetime(2025, 4, 2, 8, 47)),
            EditTimeEntry(notes="client call"),
            EditTimeEntry(payment_status=PaymentStatus.INVOICED_NOT_APPROVED),
        ]
        for patch in patches:
            await update_entry(database, OWNER_ID, entry.id, patch)

        stored = await get_entry(database, OWNER_ID, entry.id)
        expected_hours = (stored.end_time - stored.start_time).total_seconds() / 3600
        assert stored.total_hours == pytest.approx(expected_hours)
        assert stored.total_earned == pytest.approx(expected_hours * 33.33)
        assert stored.notes == "client call"
        assert stored.payment_status == PaymentStatus.INVOICED_NOT_APPROVED

    @pytest.mark.asyncio
    async def test_setting_end_time_closes_open_entry(self, database, owner_settings):
        start = datetime(2025, 4, 2, 12, 0, tzinfo=UTC)
        entry = await start_session(database, OWNER_ID, now=start)

        updated = await update_entry(database, OWNER_ID, entry.id, EditTimeEntry(end_time=start + timedelta(hours=1)))

        assert updated.total_hours == 1.0
        stored = await database[TIME_ENTRIES].find_one({"_id": entry.id})
        assert "active_owner" not in stored
        await start_session(database, OWNER_ID, now=start + timedelta(hours=2))

    @pytest.mark.asyncio
    async def test_notes_edit_on_open_entry_keeps_it_open(self, database, owner_settings):
        entry = await start_session(database, OWNER_ID, now=datetime(2025, 4, 2, 12, 0, tzinfo=UTC))

        updated = await update_entry(database, OWNER_ID, entry.id, EditTimeEntry(notes="pairing"))

        assert updated.end_time is None
        assert updated.total_hours is None
        stored = await database[TIME_ENTRIES].find_one({"_id": entry.id})
        assert stored["active_owner"] == OWNER_ID

    @pytest.mark.asyncio
    async def test_edit_racing_a_stop_does_not_reopen_the_session(self, database, owner_settings, monkeypatch):
        start = datetime(2025, 4, 2, 12, 0, tzinfo=UTC)
        entry = await start_session(database, OWNER_ID, now=start)
        stale = await get_entry(database, OWNER_ID, entry.id)
        await stop_session(database, OWNER_ID, entry.id, now=start + timedelta(hours=2))

        reads = []
        real_get_entry = entry_utils.get_entry

        async def read_before_stop_first(database, owner_id, entry_id):
            reads.append(entry_id)
            if len(reads) == 1:
                return stale
            return await real_get_entry(database, owner_id, entry_id)

        # The edit reads the entry while it is still open; the stop lands before its write.
        monkeypatch.setattr(entry_utils, "get_entry", read_before_stop_first)
        updated = await update_entry(database, OWNER_ID, entry.id, EditTimeEntry(notes="standup"))

        assert len(reads) == 2
        assert updated.notes == "standup"
        assert updated.end_time == start + timedelta(hours=2)
        assert updated.total_hours == 2.0
        stored = await database[TIME_ENTRIES].find_one({"_id": entry.id})
        assert stored["notes"] == "standup"
        assert stored["end_time"] is not None
        assert stored["total_earned"] == 100.0
        assert "active_owner" not in stored

    def test_null_for_required_field_is_rejected(self):
        with pytest.raises(ValueError):
            EditTimeEntry(start_time=None)

    @pytest.mark.asyncio
    async def test_foreign_and_missing_entries(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 11, 0))

        with pytest.raises(NotOwner):
            await update_entry(database, OTHER_OWNER_ID, entry.id, EditTimeEntry(notes="mine now"))
        with pytest.raises(EntryNotFound):
            await update_entry(database, OWNER_ID, 999, EditTimeEntry(notes="nothing"))


class TestDeleteEntry:

    @pytest.mark.asyncio
    async def test_delete(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 11, 0))

        with pytest.raises(NotOwner):
            await delete_entry(database, OTHER_OWNER_ID, entry.id)

        await delete_entry(database, OWNER_ID, entry.id)
        with pytest.raises(EntryNotFound):
            await get_entry(database, OWNER_ID, entry.id)


class TestBulkOperations:

    @pytest.mark.asyncio
    async def test_foreign_entry_fails_alone(self, database, owner_settings):
        first = await backfill(database, OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 11, 0))
        second = await backfill(database, OWNER_ID, datetime(2025, 4, 3, 10, 0), datetime(2025, 4, 3, 11, 0))
        foreign = await backfill(database, OTHER_OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 11, 0),
                                 hourly_rate=10.0)

        result = await bulk_update_payment_status(
            database, OWNER_ID, [first.id, foreign.id, second.id], PaymentStatus.PAID
        )

        assert result.succeeded == [first.id, second.id]
        assert len(result.failed) == 1
        assert result.failed[0].entry_id == foreign.id
        assert result.failed[0].error == "NotOwner"

        assert (await get_entry(database, OWNER_ID, first.id)).payment_status == PaymentStatus.PAID
        assert (await get_entry(database, OWNER_ID, second.id)).payment_status == PaymentStatus.PAID
        assert (await get_entry(database, OTHER_OWNER_ID, foreign.id)).payment_status == PaymentStatus.NOT_PAID

    @pytest.mark.asyncio
    async def test_missing_and_duplicate_ids(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 11, 0))

        result = await bulk_update_payment_status(
            database, OWNER_ID, [entry.id, 404, entry.id], PaymentStatus.INVOICED_APPROVED
        )

        assert result.succeeded == [entry.id]
        assert [(failure.entry_id, failure.error) for failure in result.failed] == [(404, "EntryNotFound")]

    @pytest.mark.asyncio
    async def test_bulk_delete(self, database, owner_settings):
        entry = await backfill(database, OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 11, 0))
        foreign = await backfill(database, OTHER_OWNER_ID, datetime(2025, 4, 2, 10, 0), datetime(2025, 4, 2, 11, 0),
                                 hourly_rate=10.0)

        result = await bulk_delete_entries(database, OWNER_ID, [entry.id, foreign.id])

        assert result.succeeded == [entry.id]
        assert result.failed[0].error == "NotOwner"
        assert await database[TIME_ENTRIES].count_documents({}) == 1


class TestListEntries:

    @pytest.mark.asyncio
    async def test_filters_by_local_date_and_status(self, database, owner_settings):
        late = await backfill(database, OWNER_ID, datetime(2025, 3, 31, 23, 0), datetime(2025, 3, 31, 23, 45))
        early = await backfill(database, OWNER_ID, datetime(2025, 4, 1, 9, 0), datetime(2025, 4, 1, 10, 0),
                               payment_status=PaymentStatus.PAID)
        await backfill(database, OTHER_OWNER_ID, datetime(2025, 4, 1, 9, 0), datetime(2025, 4, 1, 10, 0),
                       hourly_rate=10.0)

        april = await list_entries(database, OWNER_ID, start_date=date(2025, 4, 1), end_date=date(2025, 4, 30))
        assert [entry.id for entry in april] == [early.id]

        march = await list_entries(database, OWNER_ID, end_date=date(2025, 3, 31))
        assert [entry.id for entry in march] == [late.id]

        unpaid = await list_entries(database, OWNER_ID, payment_status=PaymentStatus.NOT_PAID)
        assert [entry.id for entry in unpaid] == [late.id]

        everything = await list_entries(database, OWNER_ID)
        assert [entry.id for entry in everything] == [early.id, late.id]
