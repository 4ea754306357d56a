"""Reminder scheduler for quiet blocks.

Invoked once per external trigger tick. Each run:

1. fetches pending candidates from the block store,
2. keeps the ones whose reminder window contains ``now``,
3. dispatches each due reminder through the notifier,
4. flips ``reminder_sent`` with a conditional write only after a confirmed send,
5. returns counts for observability.

Per-block failures never abort the run; only a store that cannot be read
(``StorageUnavailable``) does, before any flag is written.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol, Tuple
from zoneinfo import ZoneInfo

from quietblocks.engine.display import format_datetime, get_display_timezone
from quietblocks.engine.errors import DispatchFailed, NotFound
from quietblocks.engine.intervals import duration_minutes
from quietblocks.models.constants import (
    DEFAULT_REMINDER_LOOKAHEAD_MINUTES,
    DEFAULT_REMINDER_TOLERANCE_MINUTES,
)
from quietblocks.models.quiet_block import QuietBlock, QuietBlockStatus
from quietblocks.models.time_utils import utc_now
from quietblocks.models.user import User

logger = logging.getLogger(__name__)


class ReminderMessage:
    """Everything a notifier needs to render one reminder."""

    def __init__(
        self,
        block_id: str,
        recipient_email: str,
        block_title: str,
        start_time: datetime,
        end_time: datetime,
        start_display: str,
        end_display: str,
        duration_minutes: int,
        minutes_until_start: int,
        recipient_name: Optional[str] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
        dashboard_url: Optional[str] = None,
    ):
        self.block_id = block_id
        self.recipient_email = recipient_email
        self.recipient_name = recipient_name
        self.block_title = block_title
        self.start_time = start_time
        self.end_time = end_time
        self.start_display = start_display
        self.end_display = end_display
        self.duration_minutes = duration_minutes
        self.minutes_until_start = minutes_until_start
        self.description = description
        self.location = location
        self.dashboard_url = dashboard_url


class DeliveryResult:
    """Notifier outcome."""

    def __init__(self, success: bool, error: Optional[str] = None, message_id: Optional[str] = None):
        self.success = success
        self.error = error
        self.message_id = message_id


class Notifier(Protocol):
    def send_reminder(self, message: ReminderMessage) -> DeliveryResult: ...


class BlockStore(Protocol):
    def get_reminder_candidates(
        self, now: datetime, window_start: datetime, window_end: datetime
    ) -> List[QuietBlock]: ...

    def mark_reminder_sent(self, block_id: str, sent_at: datetime) -> bool: ...


class UserLookup(Protocol):
    def get(self, user_id: str) -> Optional[User]: ...


class AttemptLog(Protocol):
    def record(
        self, block: QuietBlock, recipient: str, result: DeliveryResult, attempted_at: datetime
    ) -> object: ...


def is_due(block: QuietBlock, now: datetime, tolerance: timedelta) -> bool:
    """Whether a block's reminder must fire at ``now``.

    Due iff the reminder is still pending, the block is scheduled and not
    deleted, email reminders are enabled, and
    ``reminder_time <= now <= reminder_time + tolerance``.
    """
    if block.reminder_sent or block.is_deleted:
        return False
    status = block.status.value if hasattr(block.status, "value") else block.status
    if status != QuietBlockStatus.SCHEDULED.value:
        return False
    config = block.reminder_config
    if not (config.enabled and config.email_enabled):
        return False
    reminder_time = block.reminder_time
    return reminder_time <= now <= reminder_time + tolerance


def minutes_until(start_time: datetime, now: datetime) -> int:
    return round((start_time - now).total_seconds() / 60)


class ReminderDecision:
    """Side-effect-free view of one candidate, used for previews."""

    def __init__(self, block: QuietBlock, now: datetime, due: bool):
        self.block_id = block.id
        self.title = block.title
        self.start_time = block.start_time
        self.reminder_time = block.reminder_time
        self.minutes_until_start = minutes_until(block.start_time, now)
        self.due = due

    def to_dict(self) -> dict:
        return {
            "block_id": self.block_id,
            "title": self.title,
            "start_time": self.start_time.isoformat(),
            "reminder_time": self.reminder_time.isoformat(),
            "minutes_until_start": self.minutes_until_start,
            "due": self.due,
        }


class ReminderRunSummary:
    """Aggregate outcome of one scheduler invocation."""

    def __init__(self, now: datetime):
        self.now = now
        self.checked = 0
        self.due = 0
        self.sent = 0
        self.failed = 0
        self.skipped = 0
        self.results: List[Dict] = []

    def add(self, block: QuietBlock, status: str, **extra) -> None:
        entry = {"block_id": block.id, "title": block.title, "status": status}
        entry.update(extra)
        self.results.append(entry)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.now.isoformat(),
            "checked": self.checked,
            "due": self.due,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": self.results,
        }


class ReminderScheduler:
    """Decides and dispatches due reminders.

    Store reads and writes stay on the calling thread; only notifier calls
    fan out to the worker pool, so a non-thread-safe session is fine.
    """

    def __init__(
        self,
        store: BlockStore,
        users: UserLookup,
        notifier: Notifier,
        attempts: Optional[AttemptLog] = None,
        tolerance: timedelta = timedelta(minutes=DEFAULT_REMINDER_TOLERANCE_MINUTES),
        lookahead: timedelta = timedelta(minutes=DEFAULT_REMINDER_LOOKAHEAD_MINUTES),
        display_timezone: Optional[str] = None,
        dashboard_url: Optional[str] = None,
        max_workers: int = 1,
    ):
        self.store = store
        self.users = users
        self.notifier = notifier
        self.attempts = attempts
        self.tolerance = tolerance
        self.lookahead = lookahead
        self.display_timezone = display_timezone
        self.dashboard_url = dashboard_url
        self.max_workers = max(1, max_workers)

    def _effective_tolerance(self, poll_interval_hint: Optional[timedelta]) -> timedelta:
        # The window must stay open for at least one poll gap or ticks can skip it.
        if poll_interval_hint is not None and poll_interval_hint > self.tolerance:
            return poll_interval_hint
        return self.tolerance

    def fetch_candidates(self, now: datetime, tolerance: timedelta) -> List[QuietBlock]:
        """Pending blocks whose reminder instant is near ``now``. Raises StorageUnavailable."""
        return self.store.get_reminder_candidates(now, now - tolerance, now + self.lookahead)

    def preview(self, now: Optional[datetime] = None, poll_interval_hint: Optional[timedelta] = None) -> List[ReminderDecision]:
        """Due decisions for every candidate without dispatching anything."""
        now = now or utc_now()
        tolerance = self._effective_tolerance(poll_interval_hint)
        candidates = self.fetch_candidates(now, tolerance)
        return [ReminderDecision(b, now, is_due(b, now, tolerance)) for b in candidates]

    def _build_message(self, block: QuietBlock, now: datetime) -> ReminderMessage:
        user = self.users.get(block.user_id)
        if user is None:
            raise NotFound(f"User {block.user_id} not found for quiet block {block.id}")
        tz: ZoneInfo = get_display_timezone(
            user.timezone or self.display_timezone
        )
        return ReminderMessage(
            block_id=block.id,
            recipient_email=user.reminder_email,
            recipient_name=user.name,
            block_title=block.title,
            start_time=block.start_time,
            end_time=block.end_time,
            start_display=format_datetime(block.start_time, tz),
            end_display=format_datetime(block.end_time, tz),
            duration_minutes=duration_minutes(block.start_time, block.end_time),
            minutes_until_start=minutes_until(block.start_time, now),
            description=block.description,
            location=block.location,
            dashboard_url=self.dashboard_url,
        )

    def _dispatch(self, message: ReminderMessage) -> DeliveryResult:
        try:
            return self.notifier.send_reminder(message)
        except Exception as e:
            logger.error(f"Notifier raised for block {message.block_id}: {type(e).__name__}: {str(e)}")
            return DeliveryResult(success=False, error=f"{type(e).__name__}: {str(e)}")

    def _record_attempt(self, block: QuietBlock, recipient: str, result: DeliveryResult, now: datetime) -> None:
        if self.attempts is None:
            return
        try:
            self.attempts.record(block, recipient, result, now)
        except Exception as e:
            # Audit is best-effort; it must not change the block's reminder state.
            logger.error(f"Failed to record delivery attempt for block {block.id}: {type(e).__name__}: {str(e)}")

    def _settle(
        self,
        summary: ReminderRunSummary,
        block: QuietBlock,
        message: ReminderMessage,
        result: DeliveryResult,
        now: datetime,
    ) -> None:
        self._record_attempt(block, message.recipient_email, result, now)
        if not result.success:
            error = DispatchFailed(block.id, result.error)
            logger.warning(error.message)
            summary.failed += 1
            summary.add(block, "failed", error=error.reason, minutes_until_start=message.minutes_until_start)
            return

        try:
            marked = self.store.mark_reminder_sent(block.id, now)
        except Exception as e:
            # Delivered but not recorded: the next tick may send a duplicate.
            logger.error(f"Reminder for block {block.id} sent but not marked: {type(e).__name__}: {str(e)}")
            summary.failed += 1
            summary.add(block, "unmarked", error=str(e), message_id=result.message_id)
            return

        if not marked:
            logger.info(f"Reminder flag for block {block.id} already set by a concurrent run")
            summary.skipped += 1
            summary.add(block, "skipped", message_id=result.message_id)
            return

        logger.info(f"Reminder sent for block {block.id} ({message.minutes_until_start} min before start)")
        summary.sent += 1
        summary.add(
            block,
            "sent",
            message_id=result.message_id,
            minutes_until_start=message.minutes_until_start,
        )

    def run(self, now: Optional[datetime] = None, poll_interval_hint: Optional[timedelta] = None) -> ReminderRunSummary:
        """Process one trigger tick.

        Args:
            now: Evaluation instant (naive UTC); defaults to the current time
            poll_interval_hint: Expected gap between ticks; widens the tolerance

        Returns:
            ReminderRunSummary with checked/due/sent/failed/skipped counts

        Raises:
            StorageUnavailable: If candidates cannot be fetched
        """
        now = now or utc_now()
        tolerance = self._effective_tolerance(poll_interval_hint)
        summary = ReminderRunSummary(now)

        logger.info(f"Reminder check at {now.isoformat()} (tolerance {tolerance}, lookahead {self.lookahead})")
        candidates = self.fetch_candidates(now, tolerance)
        summary.checked = len(candidates)

        due_blocks = [b for b in candidates if is_due(b, now, tolerance)]
        summary.due = len(due_blocks)

        prepared: List[Tuple[QuietBlock, ReminderMessage]] = []
        for block in due_blocks:
            try:
                prepared.append((block, self._build_message(block, now)))
            except NotFound as e:
                logger.error(e.message)
                summary.failed += 1
                summary.add(block, "error", error=e.message)
            except Exception as e:
                error = f"{type(e).__name__}: {str(e)}"
                logger.error(f"Failed to prepare reminder for block {block.id}: {error}")
                summary.failed += 1
                summary.add(block, "error", error=error)

        if self.max_workers > 1 and len(prepared) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(lambda item: self._dispatch(item[1]), prepared))
        else:
            results = [self._dispatch(message) for _, message in prepared]

        for (block, message), result in zip(prepared, results):
            self._settle(summary, block, message, result, now)

        logger.info(
            f"Reminder check complete: checked={summary.checked} due={summary.due} "
            f"sent={summary.sent} failed={summary.failed} skipped={summary.skipped}"
        )
        return summary
