# support_console/aggregator.py
from typing import Dict, Iterable, List

from support_console.schemas import HUMAN, DiscussionSummary, MessageRow


def aggregate_discussions(rows: Iterable[MessageRow]) -> List[DiscussionSummary]:
    """
    Group message rows into conversation summaries.

    ``rows`` must be the complete message set, ascending by ``created_at``.
    The scan is rebuilt from scratch on every call, so the unread count and
    handoff flag only reflect the rows passed in:

    - ``last_message`` is replaced only by a strictly newer row
    - ``unread_count`` counts unread rows sent by the customer
    - ``assigned_to_agent`` follows the last row scanned for the key

    Returns summaries with the most recently active conversation first.
    """
    discussions: Dict[str, DiscussionSummary] = {}

    for row in rows:
        summary = discussions.get(row.session_id)
        if summary is None:
            summary = DiscussionSummary(
                session_id=row.session_id,
                client_name=row.client_name,
                client_phone=row.session_id,
            )
            discussions[row.session_id] = summary

        summary.messages.append(row)

        if summary.last_message is None or row.created_at > summary.last_message.created_at:
            summary.last_message = row

        if row.type == HUMAN and not row.read:
            summary.unread_count += 1

        summary.assigned_to_agent = row.assigned_to_agent

    return sorted(
        discussions.values(),
        key=lambda discussion: discussion.last_message.created_at,
        reverse=True,
    )
