"""
Notification fan-out and the per-user read model.

A notification is created unread and can only ever move to read; nothing is
deleted or expired.
"""

import logging
from typing import List, Optional

import config
import repository
from errors import NotFound, PersistenceError
from schemas import Notification, NotificationType
from store import EntityStore

logger = logging.getLogger(__name__)


def notify_user(store: EntityStore, user_id: str, type: NotificationType, message: str, link: str = "") -> str:
    notification = repository.create_notification(
        store,
        Notification(user_id=user_id, type=type, message=message, link=link, read=False),
    )
    logger.info("Notified %s (%s)", user_id, type)
    return notification.id


def notify_team(store: EntityStore, team_id: str, type: NotificationType, message: str, link: str = "") -> List[str]:
    """Create one identical notification per team member.

    Every member is attempted even if some writes fail; successful writes are kept.
    When any write failed a PersistenceError is raised afterwards, listing which
    members were and were not notified.
    """
    team = repository.get_team(store, team_id)
    if team is None:
        raise NotFound("Team", team_id)

    created: List[str] = []
    failed: List[str] = []
    for member_id in team.member_ids:
        try:
            created.append(notify_user(store, member_id, type, message, link))
        except PersistenceError:
            logger.exception("Notification to %s in team %s failed", member_id, team_id)
            failed.append(member_id)

    if failed:
        error = PersistenceError(f"Failed to notify {len(failed)} of {len(team.member_ids)} team members")
        error.details.update({"created": created, "failed": failed})
        raise error
    return created


# ----------------------- Read model -----------------------

def list_notifications(store: EntityStore, user_id: str, limit: Optional[int] = None) -> List[Notification]:
    if limit is None:
        limit = config.NOTIFICATION_LIMIT
    return repository.list_notifications(store, user_id)[:limit]


def unread_count(store: EntityStore, user_id: str) -> int:
    return sum(1 for n in list_notifications(store, user_id) if not n.read)


def mark_read(store: EntityStore, notification_id: str) -> None:
    if repository.get_notification(store, notification_id) is None:
        raise NotFound("Notification", notification_id)
    repository.update_notification(store, notification_id, {"read": True})
