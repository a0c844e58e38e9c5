"""Reminder status rules.

Status is decided by a small table rather than nested conditionals::

    explicit status | already completed | due date set | result
    ----------------+-------------------+--------------+------------------------
    yes             | -                 | -            | explicit status
    no              | yes               | -            | keep (completed)
    no              | no                | yes          | overdue if due < now
                    |                   |              | else pending
    no              | no                | no           | keep

Creation is the "not completed, due date set" row with no prior status.
"""

from datetime import datetime
from typing import Optional

from models import ReminderStatus


def status_for_due_date(due_date: datetime, now: datetime) -> ReminderStatus:
    return ReminderStatus.overdue if due_date < now else ReminderStatus.pending


def decide_status(
    *,
    current: Optional[ReminderStatus],
    explicit: Optional[ReminderStatus],
    due_date: Optional[datetime],
    now: datetime,
) -> Optional[ReminderStatus]:
    """Return the status to store, or ``current`` when nothing changes.

    ``current`` is ``None`` when the reminder is being created; ``due_date`` is
    the new due date when the caller supplied one.
    """
    if explicit is not None:
        return explicit
    if current == ReminderStatus.completed:
        return current
    if due_date is not None:
        return status_for_due_date(due_date, now)
    return current


def can_complete(status: ReminderStatus) -> bool:
    return status in (ReminderStatus.pending, ReminderStatus.overdue)
