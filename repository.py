"""
Typed accessors over the entity store, one small group per record family.
Reads return pydantic models; lists are ordered here, after the fetch.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

from errors import NotFound
from schemas import (
    Comment,
    CopyrightPatent,
    Meeting,
    Notification,
    ProgressLog,
    Project,
    ResearchPaper,
    Sprint,
    StudentGroup,
    Task,
    Team,
    User,
)
from store import EntityStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def now() -> datetime:
    return datetime.now(timezone.utc)


def collection_of(model: Type[BaseModel]) -> str:
    return model.__name__.lower()


def _find(store: EntityStore, model: Type[M], entity_id: str) -> Optional[M]:
    if not entity_id:
        return None
    doc = store.get(collection_of(model), entity_id)
    return model.model_validate(doc) if doc else None


def _require(store: EntityStore, model: Type[M], entity_id: str) -> M:
    entity = _find(store, model, entity_id)
    if entity is None:
        raise NotFound(model.__name__, entity_id)
    return entity


def _list(store: EntityStore, model: Type[M], **filters: Any) -> List[M]:
    return [model.model_validate(d) for d in store.query(collection_of(model), filters or None)]


def _create(store: EntityStore, entity: M) -> M:
    if "created_at" in type(entity).model_fields and entity.created_at is None:
        entity.created_at = now()
    if "updated_at" in type(entity).model_fields and entity.updated_at is None:
        entity.updated_at = entity.created_at
    entity.id = store.create(collection_of(type(entity)), entity.model_dump(exclude={"id"}))
    logger.debug("Created %s %s", collection_of(type(entity)), entity.id)
    return entity


def _update(store: EntityStore, model: Type[BaseModel], entity_id: str, fields: Dict[str, Any]) -> None:
    if "updated_at" in model.model_fields:
        fields = {**fields, "updated_at": now()}
    store.update(collection_of(model), entity_id, fields)


def _newest_first(items: List[M], attr: str = "created_at") -> List[M]:
    return sorted(items, key=lambda e: getattr(e, attr) or _EPOCH, reverse=True)


# ----------------------- Users -----------------------

def get_user(store: EntityStore, user_id: str) -> Optional[User]:
    user = _find(store, User, user_id)
    if user is not None:
        user.team_ids = team_ids_for_user(store, user.id)
        user.assigned_teacher_ids = teacher_ids_for_student(store, user.id)
    return user


def require_user(store: EntityStore, user_id: str) -> User:
    user = get_user(store, user_id)
    if user is None:
        raise NotFound("User", user_id)
    return user


def find_user_by_email(store: EntityStore, email: str) -> Optional[User]:
    matches = _list(store, User, email=email)
    return get_user(store, matches[0].id) if matches else None


def list_users(store: EntityStore, role: Optional[str] = None) -> List[User]:
    if role:
        return _list(store, User, role=role)
    return _list(store, User)


def list_students(store: EntityStore) -> List[User]:
    return list_users(store, "student")


def list_teachers(store: EntityStore) -> List[User]:
    return list_users(store, "teacher")


def create_user(store: EntityStore, user: User) -> User:
    # membership indexes are derived, never stored
    user.team_ids = []
    user.assigned_teacher_ids = []
    return _create(store, user)


def update_user(store: EntityStore, user_id: str, fields: Dict[str, Any]) -> None:
    fields = {k: v for k, v in fields.items() if k not in ("team_ids", "assigned_teacher_ids")}
    _update(store, User, user_id, fields)


def team_ids_for_user(store: EntityStore, user_id: str) -> List[str]:
    return [t.id for t in list_teams(store) if user_id in t.member_ids]


def teacher_ids_for_student(store: EntityStore, student_id: str) -> List[str]:
    ids: List[str] = []
    for group in list_groups(store):
        if student_id in group.student_ids and group.assigned_teacher_id not in ids:
            ids.append(group.assigned_teacher_id)
    return ids


# ----------------------- Projects -----------------------

def get_project(store: EntityStore, project_id: str) -> Optional[Project]:
    return _find(store, Project, project_id)


def require_project(store: EntityStore, project_id: str) -> Project:
    return _require(store, Project, project_id)


def list_projects(store: EntityStore, teacher_id: Optional[str] = None) -> List[Project]:
    if teacher_id:
        return _newest_first(_list(store, Project, teacher_id=teacher_id))
    return _newest_first(_list(store, Project))


def projects_by_team(store: EntityStore, team_id: str) -> List[Project]:
    return _newest_first(_list(store, Project, team_id=team_id))


def create_project(store: EntityStore, project: Project) -> Project:
    return _create(store, project)


def update_project(store: EntityStore, project_id: str, fields: Dict[str, Any]) -> None:
    _update(store, Project, project_id, fields)


def delete_project(store: EntityStore, project_id: str) -> None:
    store.delete(collection_of(Project), project_id)


# ----------------------- Teams -----------------------

def get_team(store: EntityStore, team_id: str) -> Optional[Team]:
    return _find(store, Team, team_id)


def require_team(store: EntityStore, team_id: str) -> Team:
    return _require(store, Team, team_id)


def list_teams(store: EntityStore) -> List[Team]:
    return _list(store, Team)


def create_team(store: EntityStore, team: Team) -> Team:
    return _create(store, team)


def update_team(store: EntityStore, team_id: str, fields: Dict[str, Any]) -> None:
    _update(store, Team, team_id, fields)


def team_members(store: EntityStore, team: Team) -> List[User]:
    members = []
    for member_id in team.member_ids:
        user = _find(store, User, member_id)
        if user:
            members.append(user)
    return members


# ----------------------- Student groups -----------------------

def get_group(store: EntityStore, group_id: str) -> Optional[StudentGroup]:
    return _find(store, StudentGroup, group_id)


def list_groups(store: EntityStore) -> List[StudentGroup]:
    return _list(store, StudentGroup)


def create_group(store: EntityStore, group: StudentGroup) -> StudentGroup:
    return _create(store, group)


def update_group(store: EntityStore, group_id: str, fields: Dict[str, Any]) -> None:
    _update(store, StudentGroup, group_id, fields)


def delete_group(store: EntityStore, group_id: str) -> None:
    store.delete(collection_of(StudentGroup), group_id)


# ----------------------- Sprints & tasks -----------------------

def list_sprints(store: EntityStore, project_id: str) -> List[Sprint]:
    return sorted(_list(store, Sprint, project_id=project_id), key=lambda s: s.sprint_number)


def get_sprint(store: EntityStore, sprint_id: str) -> Optional[Sprint]:
    return _find(store, Sprint, sprint_id)


def require_sprint(store: EntityStore, sprint_id: str) -> Sprint:
    return _require(store, Sprint, sprint_id)


def create_sprint(store: EntityStore, sprint: Sprint) -> Sprint:
    return _create(store, sprint)


def update_sprint(store: EntityStore, sprint_id: str, fields: Dict[str, Any]) -> None:
    _update(store, Sprint, sprint_id, fields)


def get_task(store: EntityStore, task_id: str) -> Optional[Task]:
    return _find(store, Task, task_id)


def require_task(store: EntityStore, task_id: str) -> Task:
    return _require(store, Task, task_id)


def list_tasks(store: EntityStore, sprint_id: str) -> List[Task]:
    return sorted(_list(store, Task, sprint_id=sprint_id), key=lambda t: t.task_number)


def list_tasks_by_project(store: EntityStore, project_id: str) -> List[Task]:
    return _newest_first(_list(store, Task, project_id=project_id))


def create_task(store: EntityStore, task: Task) -> Task:
    return _create(store, task)


def update_task(store: EntityStore, task_id: str, fields: Dict[str, Any]) -> None:
    _update(store, Task, task_id, fields)


def delete_task(store: EntityStore, task_id: str) -> None:
    store.delete(collection_of(Task), task_id)


# ----------------------- Progress logs -----------------------

def list_progress_logs(store: EntityStore, project_id: str) -> List[ProgressLog]:
    return _newest_first(_list(store, ProgressLog, project_id=project_id))


def create_progress_log(store: EntityStore, log: ProgressLog) -> ProgressLog:
    return _create(store, log)


# ----------------------- Meetings, comments, research -----------------------

def get_meeting(store: EntityStore, meeting_id: str) -> Optional[Meeting]:
    return _find(store, Meeting, meeting_id)


def require_meeting(store: EntityStore, meeting_id: str) -> Meeting:
    return _require(store, Meeting, meeting_id)


def list_meetings(store: EntityStore, project_id: str) -> List[Meeting]:
    return _newest_first(_list(store, Meeting, project_id=project_id), attr="date")


def create_meeting(store: EntityStore, meeting: Meeting) -> Meeting:
    return _create(store, meeting)


def update_meeting(store: EntityStore, meeting_id: str, fields: Dict[str, Any]) -> None:
    _update(store, Meeting, meeting_id, fields)


def list_comments(store: EntityStore, project_id: str) -> List[Comment]:
    return _newest_first(_list(store, Comment, project_id=project_id))


def create_comment(store: EntityStore, comment: Comment) -> Comment:
    return _create(store, comment)


def list_research_papers(store: EntityStore, project_id: str) -> List[ResearchPaper]:
    return _newest_first(_list(store, ResearchPaper, project_id=project_id))


def create_research_paper(store: EntityStore, paper: ResearchPaper) -> ResearchPaper:
    return _create(store, paper)


def list_copyright_patents(store: EntityStore, project_id: str) -> List[CopyrightPatent]:
    return _newest_first(_list(store, CopyrightPatent, project_id=project_id))


def create_copyright_patent(store: EntityStore, record: CopyrightPatent) -> CopyrightPatent:
    return _create(store, record)


# ----------------------- Notifications -----------------------

def get_notification(store: EntityStore, notification_id: str) -> Optional[Notification]:
    return _find(store, Notification, notification_id)


def list_notifications(store: EntityStore, user_id: str) -> List[Notification]:
    return _newest_first(_list(store, Notification, user_id=user_id))


def create_notification(store: EntityStore, notification: Notification) -> Notification:
    return _create(store, notification)


def update_notification(store: EntityStore, notification_id: str, fields: Dict[str, Any]) -> None:
    _update(store, Notification, notification_id, fields)
