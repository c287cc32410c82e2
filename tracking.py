"""
Project workflow: projects, sprints, tasks, progress logs, meetings, comments,
research output and team announcements.

Students and teachers can both edit project work; admins only look. Project
set-up, evaluation and announcements are teacher actions.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

import notifications
import repository
from blob_store import BlobStore, attachment_path
from errors import ValidationError
from schemas import (
    ActionItem,
    Comment,
    CopyrightPatent,
    Meeting,
    ProgressLog,
    Project,
    ResearchPaper,
    Session,
    Sprint,
    Task,
    UpdateProjectFields,
    UpdateTaskPercent,
    UpdateTaskStatus,
)
from store import EntityStore

logger = logging.getLogger(__name__)

EDITOR_ROLES = ("student", "teacher")


# ----------------------- Projects -----------------------

def create_project(store: EntityStore, session: Session, project: Project) -> Project:
    session.require_role("teacher")
    if not project.name.strip():
        raise ValidationError("Project name is required", field="name")
    project.teacher_id = session.user_id
    project = repository.create_project(store, project)
    logger.info("Project %s created by %s", project.id, session.user_id)
    return project


def update_project(store: EntityStore, session: Session, project_id: str, command: UpdateProjectFields) -> Project:
    session.require_role(*EDITOR_ROLES)
    project = repository.require_project(store, project_id)
    fields = command.model_dump(exclude_none=True)
    if fields:
        repository.update_project(store, project_id, fields)
    return project.model_copy(update=fields)


def delete_project(store: EntityStore, session: Session, project_id: str) -> None:
    session.require_role("teacher")
    repository.require_project(store, project_id)
    repository.delete_project(store, project_id)
    logger.info("Project %s deleted by %s", project_id, session.user_id)


def projects_for(store: EntityStore, session: Session) -> List[Project]:
    """Projects visible on the caller's dashboard."""
    if session.role == "teacher":
        return repository.list_projects(store, teacher_id=session.user_id)
    if session.role == "student":
        projects = []
        for team_id in repository.team_ids_for_user(store, session.user_id):
            projects.extend(repository.projects_by_team(store, team_id))
        return projects
    return repository.list_projects(store)


# ----------------------- Sprints -----------------------

def create_sprint(store: EntityStore, session: Session, project_id: str, name: str,
                  start_date: Optional[datetime], end_date: Optional[datetime]) -> Sprint:
    session.require_role(*EDITOR_ROLES)
    if not name or not start_date or not end_date:
        raise ValidationError("Sprint name, start date and end date are required")
    # naive values are local time, so mixed inputs still compare
    if end_date.astimezone() < start_date.astimezone():
        raise ValidationError("Sprint cannot end before it starts", field="end_date")
    repository.require_project(store, project_id)

    # numbers are never reused; sprints are not deleted
    number = len(repository.list_sprints(store, project_id)) + 1
    sprint = repository.create_sprint(store, Sprint(
        project_id=project_id,
        sprint_number=number,
        name=name,
        start_date=start_date,
        end_date=end_date,
    ))
    logger.info("Sprint %d (%s) added to project %s", number, sprint.id, project_id)
    return sprint


# ----------------------- Tasks -----------------------

def split_sub_tasks(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def create_task(store: EntityStore, session: Session, sprint_id: str, title: str, deadline: Optional[datetime],
                assigned_to: Sequence[str] = (), sub_tasks: Sequence[str] = (), status: str = "not_started",
                percent_complete: int = 0, assigned_date: Optional[datetime] = None) -> Task:
    session.require_role(*EDITOR_ROLES)
    if not title or not title.strip():
        raise ValidationError("Task title is required", field="title")
    if deadline is None:
        raise ValidationError("Task deadline is required", field="deadline")
    sprint = repository.require_sprint(store, sprint_id)

    number = len(repository.list_tasks(store, sprint_id)) + 1
    task = Task(
        sprint_id=sprint_id,
        project_id=sprint.project_id,
        task_number=number,
        title=title.strip(),
        sub_tasks=[s.strip() for s in sub_tasks if s.strip()],
        status=status,
        assigned_to=list(assigned_to),
        assigned_date=assigned_date or repository.now(),
        deadline=deadline,
        percent_complete=percent_complete,
    )
    if task.status == "completed":
        task.percent_complete = 100
        task.completion_date = repository.now()
    task = repository.create_task(store, task)
    logger.info("Task %d (%s) added to sprint %s", number, task.id, sprint_id)
    return task


def status_change(task: Task, status: str, at: datetime) -> dict:
    """Fields written when a task moves to ``status``.

    Starting work stamps ``start_date`` once; completing stamps
    ``completion_date`` and forces ``percent_complete`` to 100. Other statuses
    leave the percentage alone.
    """
    fields = {"status": status}
    if status == "in_progress" and task.start_date is None:
        fields["start_date"] = at
    if status == "completed":
        fields["completion_date"] = at
        fields["percent_complete"] = 100
    return fields


def update_task_status(store: EntityStore, session: Session, task_id: str, command: UpdateTaskStatus) -> Task:
    session.require_role(*EDITOR_ROLES)
    task = repository.require_task(store, task_id)
    fields = status_change(task, command.status, repository.now())
    repository.update_task(store, task_id, fields)
    logger.info("Task %s -> %s by %s", task_id, command.status, session.user_id)
    return task.model_copy(update=fields)


def update_task_percent(store: EntityStore, session: Session, task_id: str, command: UpdateTaskPercent) -> Task:
    session.require_role(*EDITOR_ROLES)
    task = repository.require_task(store, task_id)
    repository.update_task(store, task_id, {"percent_complete": command.percent_complete})
    return task.model_copy(update={"percent_complete": command.percent_complete})


def delete_task(store: EntityStore, session: Session, task_id: str) -> None:
    session.require_role(*EDITOR_ROLES)
    repository.require_task(store, task_id)
    repository.delete_task(store, task_id)
    logger.info("Task %s deleted by %s", task_id, session.user_id)


# ----------------------- Progress logs -----------------------

def log_progress(store: EntityStore, blobs: BlobStore, session: Session, project_id: str, task_id: str,
                 description: str, percent_complete: int, next_steps: str = "",
                 attachments: Iterable[Tuple[str, bytes]] = ()) -> ProgressLog:
    """Record a progress update on a task.

    Attachments are uploaded first, then the log is written, then the task's
    percentage is moved to the reported value. The log itself is never edited
    afterwards.
    """
    session.require_role(*EDITOR_ROLES)
    if not task_id:
        raise ValidationError("Please choose a task to update", field="task_id")
    if not description or not description.strip():
        raise ValidationError("Progress description is required", field="description")
    if not 0 <= percent_complete <= 100:
        raise ValidationError("Completion must be between 0 and 100", field="percent_complete")
    task = repository.require_task(store, task_id)
    if task.project_id != project_id:
        raise ValidationError("Task does not belong to this project", field="task_id")

    file_urls = [blobs.put(data, attachment_path(project_id, filename)) for filename, data in attachments]

    log = repository.create_progress_log(store, ProgressLog(
        project_id=project_id,
        task_id=task_id,
        user_id=session.user_id,
        description=description.strip(),
        percent_complete=percent_complete,
        next_steps=next_steps,
        file_urls=file_urls,
    ))
    repository.update_task(store, task_id, {"percent_complete": percent_complete})
    logger.info("Progress %s logged on task %s (%d%%, %d files)", log.id, task_id, percent_complete, len(file_urls))
    return log


# ----------------------- Meetings -----------------------

def create_meeting(store: EntityStore, session: Session, project_id: str, date: datetime,
                   attendee_ids: Sequence[str] = (), agenda_points: Sequence[str] = (),
                   action_items: Sequence[ActionItem] = ()) -> Meeting:
    session.require_role(*EDITOR_ROLES)
    if date is None:
        raise ValidationError("Meeting date is required", field="date")
    repository.require_project(store, project_id)
    meeting = repository.create_meeting(store, Meeting(
        project_id=project_id,
        date=date,
        attendee_ids=list(attendee_ids),
        agenda_points=[p for p in agenda_points if p.strip()],
        action_items=list(action_items),
    ))
    logger.info("Meeting %s logged for project %s", meeting.id, project_id)
    return meeting


def update_action_item_status(store: EntityStore, session: Session, meeting_id: str, index: int, status: str) -> Meeting:
    session.require_role(*EDITOR_ROLES)
    meeting = repository.require_meeting(store, meeting_id)
    if not 0 <= index < len(meeting.action_items):
        raise ValidationError(f"Meeting has no action item {index}", field="index")

    items = list(meeting.action_items)
    items[index] = ActionItem.model_validate({**items[index].model_dump(), "status": status})
    repository.update_meeting(store, meeting_id, {"action_items": [i.model_dump() for i in items]})
    return meeting.model_copy(update={"action_items": items})


# ----------------------- Comments & research -----------------------

def add_comment(store: EntityStore, session: Session, project_id: str, content: str,
                task_id: Optional[str] = None, progress_log_id: Optional[str] = None) -> Comment:
    if not content or not content.strip():
        raise ValidationError("Comment cannot be empty", field="content")
    repository.require_project(store, project_id)
    return repository.create_comment(store, Comment(
        project_id=project_id,
        task_id=task_id,
        progress_log_id=progress_log_id,
        user_id=session.user_id,
        content=content.strip(),
    ))


def add_research_paper(store: EntityStore, session: Session, paper: ResearchPaper) -> ResearchPaper:
    session.require_role(*EDITOR_ROLES)
    if not paper.title.strip():
        raise ValidationError("Paper title is required", field="title")
    repository.require_project(store, paper.project_id)
    return repository.create_research_paper(store, paper)


def add_copyright_patent(store: EntityStore, session: Session, record: CopyrightPatent) -> CopyrightPatent:
    session.require_role(*EDITOR_ROLES)
    if not record.title.strip():
        raise ValidationError("Title is required", field="title")
    repository.require_project(store, record.project_id)
    return repository.create_copyright_patent(store, record)


# ----------------------- Announcements -----------------------

def announce(store: EntityStore, session: Session, project_id: str, message: str) -> List[str]:
    session.require_role("teacher")
    if not message or not message.strip():
        raise ValidationError("Announcement cannot be empty", field="message")
    project = repository.require_project(store, project_id)
    if not project.team_id:
        raise ValidationError("Project has no team yet", field="project_id")
    return notifications.notify_team(store, project.team_id, "comment", message.strip(), f"/projects/{project.id}")
