"""Recency grouping for the history list.

Boundaries are calendar-day aligned in local time: "today" starts at local
midnight and "yesterday" is the whole previous calendar day, so a
conversation from 23:50 last night is "yesterday" at 00:10. Days are stepped
with calendar arithmetic rather than fixed 24-hour offsets, which keeps the
boundaries on midnight across DST changes.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta

from .models import Conversation, GroupedHistory

LAST_WEEK_DAYS = 7


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def group_conversations(
    conversations: Iterable[Conversation],
    now: datetime | None = None,
) -> GroupedHistory:
    """Bucket conversations by ``updated_at``.

    Args:
        conversations: Conversations in display order (kept within each group)
        now: Reference time as a naive local datetime (defaults to now)

    Returns:
        GroupedHistory with today / yesterday / last_week / older
    """
    current = now or datetime.now()
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
    today_start = _to_ms(midnight)
    yesterday_start = _to_ms(midnight - timedelta(days=1))
    week_start = _to_ms(midnight - timedelta(days=LAST_WEEK_DAYS))

    grouped = GroupedHistory()
    for conversation in conversations:
        updated = conversation.updated_at
        if updated >= today_start:
            grouped.today.append(conversation)
        elif updated >= yesterday_start:
            grouped.yesterday.append(conversation)
        elif updated >= week_start:
            grouped.last_week.append(conversation)
        else:
            grouped.older.append(conversation)
    return grouped
