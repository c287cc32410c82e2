"""
Team and student-group roster management.

Teams own their membership: ``Team.member_ids`` is the only stored copy, and a
user's team list is derived from it on read. Adding or removing a member writes
the team first and then notifies the student; a failed notification is logged
and does not undo the membership change.
"""

import logging
import math
import random
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import notifications
import repository
from errors import CapacityExceeded, PersistenceError, ValidationError
from schemas import Project, StudentGroup, Team, UpdateTeamSettings, User
from store import EntityStore

logger = logging.getLogger(__name__)


@dataclass
class MembershipChange:
    team: Team
    # None when the membership write succeeded but the notification did not
    notification_id: Optional[str] = None


def _project_name(store: EntityStore, team: Team) -> str:
    project = repository.get_project(store, team.project_id)
    return project.name if project else team.name


def _notify_quietly(store: EntityStore, user_id: str, type: str, message: str, link: str) -> Optional[str]:
    try:
        return notifications.notify_user(store, user_id, type, message, link)
    except PersistenceError:
        logger.exception("Membership saved but %s notification to %s failed", type, user_id)
        return None


# ----------------------- Teams -----------------------

def create_team(store: EntityStore, project: Project, name: str = "", max_members: Optional[int] = None) -> Team:
    if max_members is not None and max_members < 1:
        raise ValidationError("Team size must be at least 1", field="max_members")

    team = repository.create_team(store, Team(
        name=name.strip() or f"{project.name} Team",
        project_id=project.id,
        member_ids=[],
        leader_id="",
        max_members=max_members,
    ))
    repository.update_project(store, project.id, {"team_id": team.id})
    project.team_id = team.id
    logger.info("Created team %s for project %s", team.id, project.id)
    return team


def update_team_settings(store: EntityStore, team: Team, settings: UpdateTeamSettings) -> Team:
    fields = settings.model_dump(exclude_none=True)
    if not fields:
        return team
    repository.update_team(store, team.id, fields)
    logger.info("Updated team %s settings: %s", team.id, sorted(fields))
    return team.model_copy(update=fields)


def update_team_size(store: EntityStore, team: Team, max_members: int) -> Team:
    return update_team_settings(store, team, UpdateTeamSettings(max_members=max_members))


def add_member(store: EntityStore, team: Team, student_id: str) -> MembershipChange:
    """Append a student to the team and tell them about it.

    Raises NotFound for an unknown student and CapacityExceeded when the team
    already holds ``max_members``; either way the roster is untouched. The same student added twice is listed twice.
    """
    if not student_id:
        raise ValidationError("Student is required", field="student_id")
    repository.require_user(store, student_id)
    if team.max_members and len(team.member_ids) >= team.max_members:
        raise CapacityExceeded(team.id, team.max_members)

    member_ids = team.member_ids + [student_id]
    repository.update_team(store, team.id, {"member_ids": member_ids})
    team = team.model_copy(update={"member_ids": member_ids})
    logger.info("Added %s to team %s (%d members)", student_id, team.id, len(member_ids))

    project_name = _project_name(store, team)
    notification_id = _notify_quietly(
        store,
        student_id,
        "team_added",
        f'You have been added to the team for project "{project_name}"',
        f"/projects/{team.project_id}",
    )
    return MembershipChange(team=team, notification_id=notification_id)


def add_members(store: EntityStore, team: Team, student_ids: Iterable[str]) -> Team:
    """Add students one at a time.

    There is no batch atomicity: if a later student fails (capacity or store
    error) the earlier ones stay added and the error propagates.
    """
    for student_id in student_ids:
        team = add_member(store, team, student_id).team
    return team


def remove_member(store: EntityStore, team: Team, student_id: str) -> MembershipChange:
    """Drop every occurrence of the student from the team.

    The student is only notified when they still resolve to a user record.
    """
    if student_id not in team.member_ids:
        raise ValidationError("Student is not a member of this team", field="student_id")
    member_ids = [m for m in team.member_ids if m != student_id]
    fields = {"member_ids": member_ids}
    if team.leader_id and team.leader_id == student_id:
        # leadership is cleared, not handed to anyone else
        fields["leader_id"] = ""

    repository.update_team(store, team.id, fields)
    team = team.model_copy(update=fields)
    logger.info("Removed %s from team %s", student_id, team.id)

    notification_id = None
    if repository.get_user(store, student_id) is not None:
        notification_id = _notify_quietly(
            store,
            student_id,
            "team_removed",
            f'You have been removed from the team for project "{_project_name(store, team)}"',
            "/dashboard",
        )
    return MembershipChange(team=team, notification_id=notification_id)


def set_leader(store: EntityStore, team: Team, student_id: str) -> Team:
    """Toggle leadership: naming the current leader again clears it."""
    if student_id not in team.member_ids:
        raise ValidationError("Team leader must be a member of the team", field="student_id")

    leader_id = "" if team.leader_id == student_id else student_id
    repository.update_team(store, team.id, {"leader_id": leader_id})
    logger.info("Team %s leader is now %r", team.id, leader_id)
    return team.model_copy(update={"leader_id": leader_id})


def teams_for_user(store: EntityStore, user_id: str) -> List[Team]:
    return [t for t in repository.list_teams(store) if user_id in t.member_ids]


# ----------------------- Student groups -----------------------

def create_group(store: EntityStore, name: str, student_ids: Sequence[str], teacher_id: str) -> StudentGroup:
    if not name or not name.strip():
        raise ValidationError("Please enter a group name", field="name")
    if not teacher_id:
        raise ValidationError("Please select a teacher", field="teacher_id")

    group = repository.create_group(store, StudentGroup(
        name=name.strip(),
        student_ids=list(dict.fromkeys(student_ids)),
        assigned_teacher_id=teacher_id,
    ))
    logger.info("Created group %s with %d students", group.id, len(group.student_ids))
    return group


def update_group(store: EntityStore, group: StudentGroup, name: Optional[str] = None,
                 student_ids: Optional[Sequence[str]] = None, teacher_id: Optional[str] = None) -> StudentGroup:
    fields = {}
    if name is not None:
        if not name.strip():
            raise ValidationError("Please enter a group name", field="name")
        fields["name"] = name.strip()
    if student_ids is not None:
        fields["student_ids"] = list(dict.fromkeys(student_ids))
    if teacher_id is not None:
        if not teacher_id:
            raise ValidationError("Please select a teacher", field="teacher_id")
        fields["assigned_teacher_id"] = teacher_id
    if fields:
        repository.update_group(store, group.id, fields)
    return group.model_copy(update=fields)


def delete_group(store: EntityStore, group_id: str) -> None:
    repository.delete_group(store, group_id)
    logger.info("Deleted group %s", group_id)


def unassigned_students(students: Iterable[User], groups: Iterable[StudentGroup]) -> List[User]:
    assigned = {sid for g in groups for sid in g.student_ids}
    return [s for s in students if s.id not in assigned]


def partition(items: Sequence, group_size: int, rng: Optional[random.Random] = None) -> List[list]:
    """Shuffle uniformly and cut into ceil(n / group_size) contiguous chunks.

    Every chunk holds ``group_size`` items except possibly the last.
    """
    if group_size < 1:
        raise ValidationError("Group size must be at least 1", field="group_size")
    pool = list(items)
    (rng or random).shuffle(pool)
    count = math.ceil(len(pool) / group_size)
    return [pool[i * group_size:(i + 1) * group_size] for i in range(count)]


def auto_partition(store: EntityStore, students: Sequence[User], group_size: int, teacher_id: str,
                   rng: Optional[random.Random] = None) -> List[StudentGroup]:
    """Spread every student not yet in a group across new groups for one teacher.

    Groups are named ``Group <n>`` continuing from the current group count. No
    notifications are sent.
    """
    if not teacher_id:
        raise ValidationError("Please select a teacher", field="teacher_id")

    existing = repository.list_groups(store)
    pool = unassigned_students(students, existing)
    chunks = partition([s.id for s in pool], group_size, rng)

    created = []
    for offset, chunk in enumerate(chunks, start=1):
        created.append(repository.create_group(store, StudentGroup(
            name=f"Group {len(existing) + offset}",
            student_ids=chunk,
            assigned_teacher_id=teacher_id,
        )))
    logger.info("Auto-partitioned %d students into %d groups for teacher %s",
                len(pool), len(created), teacher_id)
    return created
