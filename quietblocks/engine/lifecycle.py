"""Quiet block lifecycle: allowed status transitions and the time-based sweep."""

from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Tuple

from quietblocks.engine.errors import InvalidTransition
from quietblocks.models.quiet_block import QuietBlock, QuietBlockStatus


SCHEDULED = QuietBlockStatus.SCHEDULED.value
ACTIVE = QuietBlockStatus.ACTIVE.value
COMPLETED = QuietBlockStatus.COMPLETED.value
CANCELLED = QuietBlockStatus.CANCELLED.value

# Completed and cancelled are terminal
ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    SCHEDULED: frozenset({ACTIVE, COMPLETED, CANCELLED}),
    ACTIVE: frozenset({COMPLETED, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}
TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED})


def _value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def can_transition(current, target) -> bool:
    current, target = _value(current), _value(target)
    if current == target:
        return current not in TERMINAL_STATUSES
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current, target) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(f"Cannot change quiet block status from {_value(current)} to {_value(target)}")


def sweep_status(block: QuietBlock, now: datetime) -> str:
    """Status a block should have at ``now`` based on its times alone."""
    status = _value(block.status)
    if block.is_deleted or status in TERMINAL_STATUSES:
        return status
    if now >= block.end_time:
        return COMPLETED
    if status == SCHEDULED and now >= block.start_time:
        return ACTIVE
    return status


def sweep_statuses(blocks: Iterable[QuietBlock], now: datetime) -> List[Tuple[str, str]]:
    """Return (block_id, new_status) for every block whose status is stale."""
    changes = []
    for block in blocks:
        new_status = sweep_status(block, now)
        if new_status != _value(block.status):
            changes.append((block.id, new_status))
    return changes
