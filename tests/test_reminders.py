"""Tests for the reminder scheduler against in-memory store and notifier doubles."""

import pytest
from datetime import timedelta

from quietblocks.engine.errors import StorageUnavailable
from quietblocks.engine.reminders import DeliveryResult, ReminderScheduler, is_due
from quietblocks.models.quiet_block import QuietBlockStatus, ReminderConfig
from quietblocks.models.user import User


class FakeStore:
    """Block store double with the same candidate rules and CAS semantics as the repository."""

    def __init__(self, blocks=()):
        self.blocks = {b.id: b for b in blocks}
        self.fail_reads = False
        self.fail_marks = False
        self.lose_race = set()

    def get_reminder_candidates(self, now, window_start, window_end):
        if self.fail_reads:
            raise StorageUnavailable("Cannot read quiet blocks: OperationalError")
        candidates = [
            b for b in self.blocks.values()
            if not b.reminder_sent
            and not b.is_deleted
            and b.status == QuietBlockStatus.SCHEDULED.value
            and b.start_time > now
            and window_start <= b.reminder_scheduled_at <= window_end
        ]
        return sorted(candidates, key=lambda b: (b.start_time, b.id))

    def mark_reminder_sent(self, block_id, sent_at):
        if self.fail_marks:
            raise RuntimeError("database is locked")
        if block_id in self.lose_race:
            return False
        block = self.blocks[block_id]
        if block.reminder_sent:
            return False
        self.blocks[block_id] = block.model_copy(update={"reminder_sent": True, "reminder_sent_at": sent_at})
        return True


class FakeUsers:
    def __init__(self, users=()):
        self.users = {u.id: u for u in users}

    def get(self, user_id):
        return self.users.get(user_id)


class FakeAttempts:
    def __init__(self):
        self.records = []

    def record(self, block, recipient, result, attempted_at):
        self.records.append((block.id, recipient, result.success))


@pytest.fixture
def now(day):
    return day + timedelta(hours=9)


@pytest.fixture
def user(test_user_id, now):
    return User(id=test_user_id, email="test@example.com", name="Test User", created_at=now, updated_at=now)


@pytest.fixture
def due_block(make_block, now):
    """Starts in 14 minutes with a 15 minute reminder: one minute into its window."""
    start = now + timedelta(minutes=14)
    return make_block(start, start + timedelta(hours=1), title="Write report")


@pytest.fixture
def make_scheduler(user, fake_notifier):
    def _make(store, **kwargs):
        kwargs.setdefault("users", FakeUsers([user]))
        kwargs.setdefault("notifier", fake_notifier)
        kwargs.setdefault("display_timezone", "UTC")
        return ReminderScheduler(store=store, **kwargs)
    return _make


class TestIsDue:
    """Due-window decision for a single block."""

    def test_start_in_fourteen_minutes_is_due(self, due_block, now):
        assert is_due(due_block, now, timedelta(minutes=5)) is True

    def test_start_in_twenty_minutes_is_not_due(self, make_block, now):
        block = make_block(now + timedelta(minutes=20), now + timedelta(minutes=80))
        assert is_due(block, now, timedelta(minutes=5)) is False

    def test_exact_reminder_instant_is_due(self, make_block, now):
        block = make_block(now + timedelta(minutes=15), now + timedelta(minutes=75))
        assert is_due(block, now, timedelta(minutes=5)) is True

    def test_window_closes_after_tolerance(self, make_block, now):
        block = make_block(now + timedelta(minutes=9), now + timedelta(minutes=69))
        # reminder_time = now - 6m, outside a 5 minute tolerance
        assert is_due(block, now, timedelta(minutes=5)) is False
        assert is_due(block, now, timedelta(minutes=6)) is True

    def test_sent_reminder_is_not_due(self, due_block, now):
        block = due_block.model_copy(update={"reminder_sent": True})
        assert is_due(block, now, timedelta(minutes=5)) is False

    def test_deleted_block_is_not_due(self, due_block, now):
        block = due_block.model_copy(update={"is_deleted": True})
        assert is_due(block, now, timedelta(minutes=5)) is False

    @pytest.mark.parametrize("status", ["active", "completed", "cancelled"])
    def test_only_scheduled_blocks_are_due(self, due_block, now, status):
        block = due_block.model_copy(update={"status": status})
        assert is_due(block, now, timedelta(minutes=5)) is False

    def test_disabled_reminder_is_not_due(self, due_block, now):
        block = due_block.model_copy(update={"reminder_config": ReminderConfig(enabled=False)})
        assert is_due(block, now, timedelta(minutes=5)) is False

    def test_email_disabled_is_not_due(self, due_block, now):
        block = due_block.model_copy(update={"reminder_config": ReminderConfig(email_enabled=False)})
        assert is_due(block, now, timedelta(minutes=5)) is False


class TestReminderRun:
    """One trigger tick end to end."""

    def test_sends_due_reminder_and_marks_it(self, make_scheduler, due_block, fake_notifier, now):
        store = FakeStore([due_block])
        summary = make_scheduler(store).run(now=now)

        assert (summary.checked, summary.due, summary.sent, summary.failed, summary.skipped) == (1, 1, 1, 0, 0)
        assert store.blocks[due_block.id].reminder_sent is True
        assert store.blocks[due_block.id].reminder_sent_at == now
        assert len(fake_notifier.sent) == 1

    def test_message_contents(self, make_scheduler, due_block, fake_notifier, now):
        make_scheduler(FakeStore([due_block]), dashboard_url="https://example.com/dashboard").run(now=now)

        message = fake_notifier.sent[0]
        assert message.block_id == due_block.id
        assert message.recipient_email == "test@example.com"
        assert message.recipient_name == "Test User"
        assert message.block_title == "Write report"
        assert message.minutes_until_start == 14
        assert message.duration_minutes == 60
        assert message.start_display == "Monday, January 07, 2030 at 09:14 AM UTC"
        assert message.dashboard_url == "https://example.com/dashboard"

    def test_notification_email_preferred(self, make_scheduler, due_block, fake_notifier, now, user):
        other = user.model_copy(update={"notification_email": "alerts@example.com"})
        make_scheduler(FakeStore([due_block]), users=FakeUsers([other])).run(now=now)
        assert fake_notifier.sent[0].recipient_email == "alerts@example.com"

    def test_user_timezone_used_for_display(self, make_scheduler, due_block, fake_notifier, now, user):
        other = user.model_copy(update={"timezone": "Asia/Kolkata"})
        make_scheduler(FakeStore([due_block]), users=FakeUsers([other])).run(now=now)
        assert fake_notifier.sent[0].start_display == "Monday, January 07, 2030 at 02:44 PM IST"

    def test_second_run_sends_nothing(self, make_scheduler, due_block, fake_notifier, now):
        store = FakeStore([due_block])
        scheduler = make_scheduler(store)

        scheduler.run(now=now)
        second = scheduler.run(now=now + timedelta(minutes=1))

        assert second.sent == 0
        assert second.checked == 0
        assert len(fake_notifier.sent) == 1

    def test_not_yet_due_block_is_checked_but_not_sent(self, make_scheduler, make_block, fake_notifier, now):
        later = make_block(now + timedelta(minutes=20), now + timedelta(minutes=80))
        summary = make_scheduler(FakeStore([later])).run(now=now)

        assert summary.checked == 1
        assert summary.due == 0
        assert fake_notifier.sent == []

    def test_dispatch_failure_leaves_reminder_pending(self, make_scheduler, due_block, fake_notifier, now):
        store = FakeStore([due_block])
        fake_notifier.fail_for.add(due_block.id)

        summary = make_scheduler(store).run(now=now)

        assert summary.failed == 1
        assert summary.sent == 0
        assert store.blocks[due_block.id].reminder_sent is False
        assert summary.results[0]["status"] == "failed"
        assert summary.results[0]["error"] == "mailbox unavailable"

        # Retried on the next tick inside the window
        fake_notifier.fail_for.clear()
        retry = make_scheduler(store).run(now=now + timedelta(minutes=1))
        assert retry.sent == 1
        assert store.blocks[due_block.id].reminder_sent is True

    def test_notifier_exception_counts_as_failure(self, make_scheduler, due_block, now):
        class ExplodingNotifier:
            def send_reminder(self, message):
                raise ConnectionError("smtp down")

        store = FakeStore([due_block])
        summary = make_scheduler(store, notifier=ExplodingNotifier()).run(now=now)

        assert summary.failed == 1
        assert store.blocks[due_block.id].reminder_sent is False

    def test_one_failure_does_not_abort_others(self, make_scheduler, make_block, fake_notifier, now):
        first = make_block(now + timedelta(minutes=14), now + timedelta(minutes=74))
        second = make_block(now + timedelta(minutes=15), now + timedelta(minutes=75))
        fake_notifier.fail_for.add(first.id)

        summary = make_scheduler(FakeStore([first, second])).run(now=now)

        assert summary.failed == 1
        assert summary.sent == 1

    def test_lost_race_counts_as_skipped(self, make_scheduler, due_block, now):
        store = FakeStore([due_block])
        store.lose_race.add(due_block.id)

        summary = make_scheduler(store).run(now=now)

        assert summary.skipped == 1
        assert summary.sent == 0

    def test_unmarked_send_is_reported(self, make_scheduler, due_block, now):
        store = FakeStore([due_block])
        store.fail_marks = True

        summary = make_scheduler(store).run(now=now)

        assert summary.failed == 1
        assert summary.results[0]["status"] == "unmarked"

    def test_missing_user_is_isolated(self, make_scheduler, due_block, fake_notifier, now):
        summary = make_scheduler(FakeStore([due_block]), users=FakeUsers()).run(now=now)

        assert summary.failed == 1
        assert summary.results[0]["status"] == "error"
        assert fake_notifier.sent == []

    def test_user_lookup_error_does_not_stop_other_blocks(self, make_scheduler, due_block, make_block, user, fake_notifier, now):
        class FlakyUsers(FakeUsers):
            def get(self, user_id):
                if user_id == "flaky-user":
                    raise RuntimeError("connection reset")
                return super().get(user_id)

        start = now + timedelta(minutes=13)
        broken = make_block(start, start + timedelta(hours=1), user_id="flaky-user")
        store = FakeStore([broken, due_block])

        summary = make_scheduler(store, users=FlakyUsers([user])).run(now=now)

        assert (summary.due, summary.sent, summary.failed) == (2, 1, 1)
        errors = [r for r in summary.results if r["status"] == "error"]
        assert errors[0]["block_id"] == broken.id
        assert "connection reset" in errors[0]["error"]
        assert [m.block_id for m in fake_notifier.sent] == [due_block.id]
        assert store.blocks[broken.id].reminder_sent is False
        assert store.blocks[due_block.id].reminder_sent is True

    def test_storage_unavailable_aborts_run(self, make_scheduler, due_block, fake_notifier, now):
        store = FakeStore([due_block])
        store.fail_reads = True

        with pytest.raises(StorageUnavailable):
            make_scheduler(store).run(now=now)
        assert fake_notifier.sent == []

    def test_deleted_and_cancelled_blocks_never_sent(self, make_scheduler, make_block, fake_notifier, now):
        start = now + timedelta(minutes=14)
        deleted = make_block(start, start + timedelta(hours=1), is_deleted=True)
        cancelled = make_block(start, start + timedelta(hours=1), status=QuietBlockStatus.CANCELLED)

        summary = make_scheduler(FakeStore([deleted, cancelled])).run(now=now)

        assert summary.sent == 0
        assert fake_notifier.sent == []

    def test_poll_interval_hint_widens_window(self, make_scheduler, make_block, fake_notifier, now):
        # reminder_time = now - 8m, beyond the 5 minute default tolerance
        block = make_block(now + timedelta(minutes=7), now + timedelta(minutes=67))
        store = FakeStore([block])

        assert make_scheduler(store).run(now=now).sent == 0
        assert make_scheduler(store).run(now=now, poll_interval_hint=timedelta(minutes=10)).sent == 1

    def test_parallel_dispatch(self, make_scheduler, make_block, fake_notifier, now):
        blocks = [make_block(now + timedelta(minutes=14 - i), now + timedelta(minutes=74 - i)) for i in range(4)]
        store = FakeStore(blocks)

        summary = make_scheduler(store, max_workers=4).run(now=now)

        assert summary.sent == 4
        assert all(b.reminder_sent for b in store.blocks.values())

    def test_attempts_recorded(self, make_scheduler, due_block, fake_notifier, now):
        attempts = FakeAttempts()
        fake_notifier.fail_for.add(due_block.id)
        store = FakeStore([due_block])

        make_scheduler(store, attempts=attempts).run(now=now)
        fake_notifier.fail_for.clear()
        make_scheduler(store, attempts=attempts).run(now=now + timedelta(minutes=1))

        assert attempts.records == [
            (due_block.id, "test@example.com", False),
            (due_block.id, "test@example.com", True),
        ]

    def test_preview_has_no_side_effects(self, make_scheduler, due_block, make_block, fake_notifier, now):
        later = make_block(now + timedelta(minutes=20), now + timedelta(minutes=80))
        store = FakeStore([due_block, later])

        decisions = make_scheduler(store).preview(now=now)

        assert [d.due for d in decisions] == [True, False]
        assert fake_notifier.sent == []
        assert store.blocks[due_block.id].reminder_sent is False

    def test_summary_to_dict(self, make_scheduler, due_block, now):
        data = make_scheduler(FakeStore([due_block])).run(now=now).to_dict()
        assert data["timestamp"] == now.isoformat()
        assert data["sent"] == 1
        assert data["results"][0]["block_id"] == due_block.id
