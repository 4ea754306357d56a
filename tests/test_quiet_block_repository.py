"""Tests for QuietBlockRepository CRUD, reminder queries and the atomic sent flag."""

import pytest
from datetime import timedelta
from unittest.mock import patch
from sqlalchemy.exc import OperationalError

from quietblocks.database.delivery_attempt_repository import DeliveryAttemptRepository
from quietblocks.database.quiet_block_repository import QuietBlockRepository
from quietblocks.engine.errors import StorageUnavailable
from quietblocks.engine.reminders import DeliveryResult
from quietblocks.models.quiet_block import QuietBlockStatus, ReminderConfig


class TestQuietBlockRepository:
    """CRUD operations."""

    def test_create_and_get(self, block_repository, sample_block, test_user_id):
        created = block_repository.create(sample_block)
        retrieved = block_repository.get_by_id(test_user_id, created.id)

        assert retrieved is not None
        assert retrieved.id == sample_block.id
        assert retrieved.title == "Deep work"
        assert retrieved.status == "scheduled"
        assert retrieved.reminder_config.minutes_before == 15
        assert retrieved.reminder_scheduled_at == sample_block.start_time - timedelta(minutes=15)

    def test_get_is_user_scoped(self, block_repository, sample_block, other_user_id):
        block_repository.create(sample_block)
        assert block_repository.get_by_id(other_user_id, sample_block.id) is None

    def test_get_nonexistent(self, block_repository, test_user_id):
        assert block_repository.get_by_id(test_user_id, "nonexistent-id") is None

    def test_list_sorted_by_start(self, block_repository, make_block, day, test_user_id):
        late = make_block(day + timedelta(hours=14), day + timedelta(hours=15), title="Late")
        early = make_block(day + timedelta(hours=8), day + timedelta(hours=9), title="Early")
        block_repository.create(late)
        block_repository.create(early)

        titles = [b.title for b in block_repository.list_for_user(test_user_id)]
        assert titles == ["Early", "Late"]

    def test_list_filters(self, block_repository, make_block, day, test_user_id):
        a = make_block(day + timedelta(hours=8), day + timedelta(hours=9), tags=["writing"])
        b = make_block(day + timedelta(hours=10), day + timedelta(hours=11), status=QuietBlockStatus.CANCELLED)
        c = make_block(day + timedelta(days=1, hours=8), day + timedelta(days=1, hours=9), tags=["reading"])
        for block in (a, b, c):
            block_repository.create(block)

        by_status = block_repository.list_for_user(test_user_id, statuses=[QuietBlockStatus.CANCELLED])
        assert [x.id for x in by_status] == [b.id]

        by_day = block_repository.list_for_user(test_user_id, start_from=day, start_to=day + timedelta(hours=23))
        assert {x.id for x in by_day} == {a.id, b.id}

        by_tag = block_repository.list_for_user(test_user_id, tags=["reading"])
        assert [x.id for x in by_tag] == [c.id]

        paged = block_repository.list_for_user(test_user_id, limit=1, offset=1)
        assert [x.id for x in paged] == [b.id]

    def test_soft_delete_hides_block(self, block_repository, sample_block, test_user_id, early_now):
        block_repository.create(sample_block)

        deleted = block_repository.soft_delete(test_user_id, sample_block.id, early_now)

        assert deleted.is_deleted is True
        assert deleted.status == "cancelled"
        assert deleted.deleted_at == early_now
        assert block_repository.get_by_id(test_user_id, sample_block.id) is None
        assert block_repository.get_by_id(test_user_id, sample_block.id, include_deleted=True) is not None
        assert block_repository.list_for_user(test_user_id) == []

    def test_soft_delete_missing_returns_none(self, block_repository, test_user_id, early_now):
        assert block_repository.soft_delete(test_user_id, "missing", early_now) is None

    def test_update(self, block_repository, sample_block, test_user_id):
        block_repository.create(sample_block)
        changed = sample_block.model_copy(update={"title": "Renamed", "tags": ["a", "b"]})

        updated = block_repository.update(changed)

        assert updated.title == "Renamed"
        assert block_repository.get_by_id(test_user_id, sample_block.id).tags == ["a", "b"]

    def test_stats(self, block_repository, make_block, day, test_user_id):
        block_repository.create(make_block(day + timedelta(hours=8), day + timedelta(hours=9)))
        block_repository.create(make_block(day + timedelta(hours=10), day + timedelta(hours=10, minutes=30),
                                           status=QuietBlockStatus.COMPLETED))

        stats = block_repository.stats_for_user(test_user_id)

        assert stats["scheduled"] == 1
        assert stats["completed"] == 1
        assert stats["active"] == 0
        assert stats["total"] == 2
        assert stats["total_minutes"] == 90


class TestReminderQueries:
    """Candidate scan and the compare-and-set sent flag."""

    def test_candidates_within_window(self, block_repository, make_block, day):
        now = day + timedelta(hours=9)
        due = make_block(now + timedelta(minutes=14), now + timedelta(minutes=74))
        far = make_block(now + timedelta(hours=3), now + timedelta(hours=4))
        sent = make_block(now + timedelta(minutes=15), now + timedelta(minutes=75), reminder_sent=True)
        deleted = make_block(now + timedelta(minutes=16), now + timedelta(minutes=76), is_deleted=True)
        for block in (due, far, sent, deleted):
            block_repository.create(block)

        candidates = block_repository.get_reminder_candidates(
            now, now - timedelta(minutes=5), now + timedelta(minutes=5)
        )

        assert [c.id for c in candidates] == [due.id]

    def test_long_offset_block_is_found(self, block_repository, make_block, day):
        now = day + timedelta(hours=9)
        start = now + timedelta(hours=2)
        block = make_block(
            start,
            start + timedelta(hours=1),
            reminder_config=ReminderConfig(minutes_before=120),
        )
        block_repository.create(block)

        candidates = block_repository.get_reminder_candidates(
            now, now - timedelta(minutes=5), now + timedelta(minutes=5)
        )
        assert [c.id for c in candidates] == [block.id]

    def test_mark_reminder_sent_only_once(self, block_repository, sample_block, test_user_id, early_now):
        block_repository.create(sample_block)

        assert block_repository.mark_reminder_sent(sample_block.id, early_now) is True
        assert block_repository.mark_reminder_sent(sample_block.id, early_now) is False

        stored = block_repository.get_by_id(test_user_id, sample_block.id)
        assert stored.reminder_sent is True
        assert stored.reminder_sent_at == early_now

    def test_two_sessions_race_for_the_flag(self, db_session, block_repository, sample_block, early_now):
        block_repository.create(sample_block)
        other = QuietBlockRepository(db_session)

        results = [
            block_repository.mark_reminder_sent(sample_block.id, early_now),
            other.mark_reminder_sent(sample_block.id, early_now),
        ]
        assert sorted(results) == [False, True]

    def test_read_failure_is_storage_unavailable(self, block_repository, early_now):
        error = OperationalError("SELECT", {}, Exception("disk I/O error"))
        with patch.object(block_repository.db, "query", side_effect=error):
            with pytest.raises(StorageUnavailable):
                block_repository.get_reminder_candidates(early_now, early_now, early_now)

    def test_sweep_candidates_and_apply(self, block_repository, make_block, day, test_user_id):
        started = make_block(day + timedelta(hours=8), day + timedelta(hours=10))
        future = make_block(day + timedelta(hours=14), day + timedelta(hours=15))
        block_repository.create(started)
        block_repository.create(future)
        now = day + timedelta(hours=9)

        candidates = block_repository.get_sweep_candidates(now)
        assert [c.id for c in candidates] == [started.id]

        assert block_repository.apply_status_changes([(started.id, "active")], now) == 1
        assert block_repository.get_by_id(test_user_id, started.id).status == "active"


class TestDeliveryAttemptRepository:
    """Delivery attempts are numbered per block."""

    def test_attempt_numbers_increase(self, db_session, block_repository, sample_block, early_now):
        block_repository.create(sample_block)
        attempts = DeliveryAttemptRepository(db_session)

        first = attempts.record(sample_block, "test@example.com", DeliveryResult(False, error="bounce"), early_now)
        second = attempts.record(sample_block, "test@example.com", DeliveryResult(True, message_id="m-1"), early_now)

        assert (first.attempt_number, first.status, first.error) == (1, "failed", "bounce")
        assert (second.attempt_number, second.status, second.provider_message_id) == (2, "sent", "m-1")
        assert [a.attempt_number for a in attempts.list_for_block(sample_block.id)] == [1, 2]
