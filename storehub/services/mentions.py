"""
Comment mentions.
@name tokens are free text; matching them to staff ids is an autocomplete
convenience. The server only trusts the explicit mentionedUsers list.
"""
import re
from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from ..models.models import JobLog, JobLogComment, Notification


logger = structlog.get_logger(__name__)

MENTION_KIND = "joblog_mention"


def _staff_fields(member: Any) -> Tuple[Optional[int], Optional[str]]:
    if isinstance(member, dict):
        return member.get("id"), member.get("name")
    return getattr(member, "id", None), getattr(member, "name", None)


def mention_search_term(body: str, cursor: Optional[int] = None) -> Optional[str]:
    """
    Text typed after the last '@' before the cursor, or None when the cursor
    is not inside a mention.
    """
    cursor = len(body) if cursor is None else cursor
    at = body.rfind("@", 0, cursor)
    if at < 0:
        return None
    return body[at + 1:cursor].strip()


def insert_mention(body: str, cursor: int, name: str) -> Tuple[str, int]:
    """Replace the partial mention before the cursor with '@name '."""
    at = body.rfind("@", 0, cursor)
    if at < 0:
        at = cursor
    before, after = body[:at], body[cursor:]
    updated = f"{before}@{name} {after}"
    return updated, len(before) + len(name) + 2


def resolve_mentions(body: str, staff: Iterable[Any]) -> List[int]:
    """Staff ids whose name follows an '@' in the body, in order of appearance."""
    members = [(sid, name) for sid, name in map(_staff_fields, staff) if sid is not None and name]
    # Longest names first so "Ann Lee" wins over "Ann"
    members.sort(key=lambda item: len(item[1]), reverse=True)
    found = []
    taken = set()
    for sid, name in members:
        pattern = re.compile(r"@" + re.escape(name) + r"(?!\w)", re.IGNORECASE)
        for match in pattern.finditer(body):
            span = range(match.start(), match.end())
            if any(pos in taken for pos in span):
                continue
            taken.update(span)
            found.append((match.start(), sid))
    ordered: List[int] = []
    for _, sid in sorted(found):
        if sid not in ordered:
            ordered.append(sid)
    return ordered


def notify_mentions(db: Session, comment: JobLogComment, job: JobLog, user_ids: Iterable[int]) -> List[Notification]:
    """One notification per mentioned user, skipping the author."""
    created = []
    for user_id in user_ids:
        if comment.user_id is not None and user_id == comment.user_id:
            continue
        note = Notification(
            user_id=user_id,
            kind=MENTION_KIND,
            payload_json={
                "joblog_id": job.id,
                "comment_id": comment.id,
                "author": comment.author_name,
                "store_id": job.store_id,
            },
            created_at=datetime.utcnow(),
        )
        db.add(note)
        created.append(note)
    if created:
        logger.info("joblog_mentions_notified", joblog_id=job.id, comment_id=comment.id, count=len(created))
    return created
