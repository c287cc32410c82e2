import logging
from datetime import datetime, timezone
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import Base64Bytes, BaseModel, Field

import config
import evaluation
import notifications
import progress
import repository
import roster
import tracking
from blob_store import BlobStore, LocalBlobStore
from database import db
from errors import (
    AuthorizationError,
    CapacityExceeded,
    NotFound,
    PBLError,
    PersistenceError,
    ValidationError,
)
from logging_config import setup_logging
from schemas import (
    ActionItem,
    CopyrightPatent,
    CustomField,
    ProjectStatus,
    Project,
    ResearchPaper,
    Session,
    TaskStatus,
    UpdateEvaluation,
    UpdateProjectFields,
    UpdateTaskPercent,
    UpdateTaskStatus,
    UpdateTeamSettings,
)
from store import EntityStore, MongoEntityStore

setup_logging()
logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

app = FastAPI(title="Project-Based Learning Tracker API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    ValidationError: 400,
    AuthorizationError: 403,
    NotFound: 404,
    CapacityExceeded: 409,
    PersistenceError: 503,
}


@app.exception_handler(PBLError)
async def tracker_error_handler(request: Request, exc: PBLError):
    status_code = next((code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code, "details": exc.details},
    )


# ----------------------- Dependencies -----------------------

def get_store() -> EntityStore:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return MongoEntityStore(db)


def get_blob_store() -> BlobStore:
    return LocalBlobStore()


def get_current_session(token: str = Depends(oauth2_scheme), store: EntityStore = Depends(get_store)) -> Session:
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        user_id: Optional[str] = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid token")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = repository.get_user(store, user_id)
    if user is None and payload.get("email"):
        user = repository.find_user_by_email(store, payload["email"])
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return Session(user_id=user.id, email=user.email, role=user.role)


# ----------------------- Schemas -----------------------
class CreateProjectIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    domain: str = ""
    sdg: str = ""
    status: ProjectStatus = "planning"
    cabin_location: str = ""
    tech_transfer_status: str = ""
    achievements: str = ""
    github_link: str = ""
    custom_fields: List[CustomField] = []


class CreateTeamIn(BaseModel):
    name: str = ""
    max_members: Optional[int] = Field(4, ge=1)


class AddMembersIn(BaseModel):
    student_ids: List[str] = Field(..., min_length=1)


class LeaderIn(BaseModel):
    student_id: str


class CreateGroupIn(BaseModel):
    name: str
    student_ids: List[str] = []
    teacher_id: str = ""


class AutoPartitionIn(BaseModel):
    group_size: int = Field(4, ge=1)
    teacher_id: str = ""


class CreateSprintIn(BaseModel):
    name: str
    start_date: datetime
    end_date: datetime


class CreateTaskIn(BaseModel):
    title: str
    deadline: datetime
    sub_tasks: str = ""  # one per line
    assigned_to: List[str] = []
    assigned_date: Optional[datetime] = None
    status: TaskStatus = "not_started"
    percent_complete: int = Field(0, ge=0, le=100)


class AttachmentIn(BaseModel):
    filename: str
    content: Base64Bytes


class ProgressIn(BaseModel):
    task_id: str
    description: str
    percent_complete: int = Field(0, ge=0, le=100)
    next_steps: str = ""
    attachments: List[AttachmentIn] = []


class MeetingIn(BaseModel):
    date: datetime
    attendee_ids: List[str] = []
    agenda_points: List[str] = []
    action_items: List[ActionItem] = []


class ActionItemStatusIn(BaseModel):
    status: TaskStatus


class CommentIn(BaseModel):
    content: str
    task_id: Optional[str] = None
    progress_log_id: Optional[str] = None


class ResearchPaperIn(BaseModel):
    title: str
    authors: List[str] = []
    link: str = ""
    status: Literal["submitted", "accepted", "published"] = "submitted"
    details: str = ""
    doi: Optional[str] = None


class CopyrightPatentIn(BaseModel):
    type: Literal["copyright", "patent"]
    title: str
    application_number: str = ""
    status: Literal["pending", "approved", "rejected"] = "pending"
    document_url: Optional[str] = None


class AnnouncementIn(BaseModel):
    message: str


# ----------------------- Health -----------------------
@app.get("/")
def read_root():
    return {"message": "Project-Based Learning Tracker API running"}


@app.get("/health")
def health():
    return {"ok": True, "database": db is not None, "time": datetime.now(timezone.utc).isoformat()}


# ----------------------- Projects -----------------------
@app.post("/projects", response_model=Project)
def create_project(payload: CreateProjectIn, session: Session = Depends(get_current_session),
                   store: EntityStore = Depends(get_store)):
    return tracking.create_project(store, session, Project(**payload.model_dump()))


@app.get("/projects")
def list_projects(sort: Literal["recent", "progress", "name"] = "recent",
                  session: Session = Depends(get_current_session), store: EntityStore = Depends(get_store)):
    return {"items": progress.sort_projects(tracking.projects_for(store, session), sort)}


@app.get("/projects/{project_id}", response_model=Project)
def get_project(project_id: str, session: Session = Depends(get_current_session),
                store: EntityStore = Depends(get_store)):
    return repository.require_project(store, project_id)


@app.put("/projects/{project_id}", response_model=Project)
def update_project(project_id: str, payload: UpdateProjectFields, session: Session = Depends(get_current_session),
                   store: EntityStore = Depends(get_store)):
    return tracking.update_project(store, session, project_id, payload)


@app.delete("/projects/{project_id}")
def delete_project(project_id: str, session: Session = Depends(get_current_session),
                   store: EntityStore = Depends(get_store)):
    tracking.delete_project(store, session, project_id)
    return {"status": "deleted"}


@app.put("/projects/{project_id}/evaluation")
def update_evaluation(project_id: str, payload: UpdateEvaluation, session: Session = Depends(get_current_session),
                      store: EntityStore = Depends(get_store)):
    return evaluation.update_evaluation(store, session, project_id, payload)


@app.post("/projects/{project_id}/announcements")
def send_announcement(project_id: str, payload: AnnouncementIn, session: Session = Depends(get_current_session),
                      store: EntityStore = Depends(get_store)):
    ids = tracking.announce(store, session, project_id, payload.message)
    return {"notified": len(ids)}


# ----------------------- Teams -----------------------
@app.post("/projects/{project_id}/team")
def create_team(project_id: str, payload: CreateTeamIn, session: Session = Depends(get_current_session),
                store: EntityStore = Depends(get_store)):
    session.require_role("teacher")
    project = repository.require_project(store, project_id)
    if project.team_id:
        raise ValidationError("Project already has a team", field="project_id")
    return roster.create_team(store, project, payload.name, payload.max_members)


@app.put("/teams/{team_id}")
def update_team(team_id: str, payload: UpdateTeamSettings, session: Session = Depends(get_current_session),
                store: EntityStore = Depends(get_store)):
    session.require_role("teacher")
    return roster.update_team_settings(store, repository.require_team(store, team_id), payload)


@app.post("/teams/{team_id}/members")
def add_members(team_id: str, payload: AddMembersIn, session: Session = Depends(get_current_session),
                store: EntityStore = Depends(get_store)):
    session.require_role("teacher")
    team = repository.require_team(store, team_id)
    if len(payload.student_ids) == 1:
        return roster.add_member(store, team, payload.student_ids[0]).team
    return roster.add_members(store, team, payload.student_ids)


@app.delete("/teams/{team_id}/members/{student_id}")
def remove_member(team_id: str, student_id: str, session: Session = Depends(get_current_session),
                  store: EntityStore = Depends(get_store)):
    session.require_role("teacher")
    return roster.remove_member(store, repository.require_team(store, team_id), student_id).team


@app.post("/teams/{team_id}/leader")
def set_leader(team_id: str, payload: LeaderIn, session: Session = Depends(get_current_session),
               store: EntityStore = Depends(get_store)):
    session.require_role("teacher")
    return roster.set_leader(store, repository.require_team(store, team_id), payload.student_id)


@app.get("/teams/{team_id}/stats")
def team_stats(team_id: str, session: Session = Depends(get_current_session),
               store: EntityStore = Depends(get_store)):
    team = repository.require_team(store, team_id)
    tasks = repository.list_tasks_by_project(store, team.project_id)
    return {
        "team": team,
        "members": progress.team_member_stats(tasks, team.member_ids),
    }


# ----------------------- Student groups -----------------------
@app.get("/groups")
def list_groups(session: Session = Depends(get_current_session), store: EntityStore = Depends(get_store)):
    groups = repository.list_groups(store)
    unassigned = roster.unassigned_students(repository.list_students(store), groups)
    return {"items": groups, "unassigned": [s.id for s in unassigned]}


@app.post("/groups")
def create_group(payload: CreateGroupIn, session: Session = Depends(get_current_session),
                 store: EntityStore = Depends(get_store)):
    session.require_role("admin")
    return roster.create_group(store, payload.name, payload.student_ids, payload.teacher_id)


@app.delete("/groups/{group_id}")
def delete_group(group_id: str, session: Session = Depends(get_current_session),
                 store: EntityStore = Depends(get_store)):
    session.require_role("admin")
    roster.delete_group(store, group_id)
    return {"status": "deleted"}


@app.post("/groups/auto-partition")
def auto_partition(payload: AutoPartitionIn, session: Session = Depends(get_current_session),
                   store: EntityStore = Depends(get_store)):
    session.require_role("admin")
    groups = roster.auto_partition(store, repository.list_students(store), payload.group_size, payload.teacher_id)
    return {"items": groups, "created": len(groups)}


# ----------------------- Sprints & Tasks -----------------------
@app.get("/projects/{project_id}/sprints")
def list_sprints(project_id: str, session: Session = Depends(get_current_session),
                 store: EntityStore = Depends(get_store)):
    sprints = repository.list_sprints(store, project_id)
    by_sprint = progress.group_tasks_by_sprint(repository.list_tasks_by_project(store, project_id))
    return {"items": [
        {"sprint": s, "tasks": by_sprint.get(s.id, []),
         "completion": progress.sprint_completion(by_sprint.get(s.id, []), s.id)}
        for s in sprints
    ]}


@app.post("/projects/{project_id}/sprints")
def create_sprint(project_id: str, payload: CreateSprintIn, session: Session = Depends(get_current_session),
                  store: EntityStore = Depends(get_store)):
    return tracking.create_sprint(store, session, project_id, payload.name, payload.start_date, payload.end_date)


@app.post("/sprints/{sprint_id}/tasks")
def create_task(sprint_id: str, payload: CreateTaskIn, session: Session = Depends(get_current_session),
                store: EntityStore = Depends(get_store)):
    return tracking.create_task(
        store, session, sprint_id,
        title=payload.title,
        deadline=payload.deadline,
        assigned_to=payload.assigned_to,
        sub_tasks=tracking.split_sub_tasks(payload.sub_tasks),
        status=payload.status,
        percent_complete=payload.percent_complete,
        assigned_date=payload.assigned_date,
    )


@app.put("/tasks/{task_id}/status")
def update_task_status(task_id: str, payload: UpdateTaskStatus, session: Session = Depends(get_current_session),
                       store: EntityStore = Depends(get_store)):
    return tracking.update_task_status(store, session, task_id, payload)


@app.put("/tasks/{task_id}/percent")
def update_task_percent(task_id: str, payload: UpdateTaskPercent, session: Session = Depends(get_current_session),
                        store: EntityStore = Depends(get_store)):
    return tracking.update_task_percent(store, session, task_id, payload)


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str, session: Session = Depends(get_current_session),
                store: EntityStore = Depends(get_store)):
    tracking.delete_task(store, session, task_id)
    return {"status": "deleted"}


# ----------------------- Progress -----------------------
@app.get("/projects/{project_id}/progress")
def list_progress(project_id: str, session: Session = Depends(get_current_session),
                  store: EntityStore = Depends(get_store)):
    return {"items": repository.list_progress_logs(store, project_id)}


@app.post("/projects/{project_id}/progress")
def log_progress(project_id: str, payload: ProgressIn, session: Session = Depends(get_current_session),
                 store: EntityStore = Depends(get_store), blobs: BlobStore = Depends(get_blob_store)):
    return tracking.log_progress(
        store, blobs, session, project_id,
        task_id=payload.task_id,
        description=payload.description,
        percent_complete=payload.percent_complete,
        next_steps=payload.next_steps,
        attachments=[(a.filename, a.content) for a in payload.attachments],
    )


# ----------------------- Meetings, Comments, Research -----------------------
@app.get("/projects/{project_id}/meetings")
def list_meetings(project_id: str, session: Session = Depends(get_current_session),
                  store: EntityStore = Depends(get_store)):
    return {"items": repository.list_meetings(store, project_id)}


@app.post("/projects/{project_id}/meetings")
def create_meeting(project_id: str, payload: MeetingIn, session: Session = Depends(get_current_session),
                   store: EntityStore = Depends(get_store)):
    return tracking.create_meeting(store, session, project_id, payload.date, payload.attendee_ids,
                                   payload.agenda_points, payload.action_items)


@app.put("/meetings/{meeting_id}/action-items/{index}")
def update_action_item(meeting_id: str, index: int, payload: ActionItemStatusIn,
                       session: Session = Depends(get_current_session), store: EntityStore = Depends(get_store)):
    return tracking.update_action_item_status(store, session, meeting_id, index, payload.status)


@app.get("/projects/{project_id}/comments")
def list_comments(project_id: str, session: Session = Depends(get_current_session),
                  store: EntityStore = Depends(get_store)):
    return {"items": repository.list_comments(store, project_id)}


@app.post("/projects/{project_id}/comments")
def add_comment(project_id: str, payload: CommentIn, session: Session = Depends(get_current_session),
                store: EntityStore = Depends(get_store)):
    return tracking.add_comment(store, session, project_id, payload.content, payload.task_id, payload.progress_log_id)


@app.get("/projects/{project_id}/research")
def list_research(project_id: str, session: Session = Depends(get_current_session),
                  store: EntityStore = Depends(get_store)):
    return {
        "papers": repository.list_research_papers(store, project_id),
        "copyright_patents": repository.list_copyright_patents(store, project_id),
    }


@app.post("/projects/{project_id}/papers")
def add_paper(project_id: str, payload: ResearchPaperIn, session: Session = Depends(get_current_session),
              store: EntityStore = Depends(get_store)):
    return tracking.add_research_paper(store, session, ResearchPaper(project_id=project_id, **payload.model_dump()))


@app.post("/projects/{project_id}/patents")
def add_copyright_patent(project_id: str, payload: CopyrightPatentIn, session: Session = Depends(get_current_session),
                         store: EntityStore = Depends(get_store)):
    return tracking.add_copyright_patent(
        store, session, CopyrightPatent(project_id=project_id, **payload.model_dump()))


# ----------------------- Analytics -----------------------
@app.get("/projects/{project_id}/analytics")
def project_analytics(project_id: str, window_days: int = config.ACTIVITY_WINDOW_DAYS,
                      session: Session = Depends(get_current_session), store: EntityStore = Depends(get_store)):
    project = repository.require_project(store, project_id)
    sprints = repository.list_sprints(store, project_id)
    tasks = repository.list_tasks_by_project(store, project_id)
    logs = repository.list_progress_logs(store, project_id)
    team = repository.get_team(store, project.team_id)
    days = progress.trend_days(window_days)
    return {
        "status_histogram": progress.status_histogram(tasks),
        "sprint_progress": [{"label": label, "completion": pct}
                            for label, pct in progress.sprint_progress_series(sprints, tasks)],
        "activity": [{"day": d.isoformat(), "count": c}
                     for d, c in zip(days, progress.daily_activity_trend(logs, window_days, days[-1] if days else None))],
        "members": progress.team_member_stats(tasks, team.member_ids) if team else {},
    }


@app.get("/dashboard")
def dashboard(session: Session = Depends(get_current_session), store: EntityStore = Depends(get_store)):
    projects = tracking.projects_for(store, session)
    tasks = [t for p in projects for t in repository.list_tasks_by_project(store, p.id)]
    summary = progress.dashboard_summary(projects, tasks)
    if session.role == "student":
        summary["my_tasks"] = progress.member_stats(tasks, session.user_id)
    return {
        "summary": summary,
        "project_status": progress.project_status_histogram(projects),
        "task_status": progress.status_histogram(tasks),
    }


# ----------------------- Notifications -----------------------
@app.get("/notifications")
def list_notifications(session: Session = Depends(get_current_session), store: EntityStore = Depends(get_store)):
    return {"items": notifications.list_notifications(store, session.user_id)}


@app.get("/notifications/unread-count")
def unread_count(session: Session = Depends(get_current_session), store: EntityStore = Depends(get_store)):
    return {"unread": notifications.unread_count(store, session.user_id)}


@app.post("/notifications/{notification_id}/read")
def mark_read(notification_id: str, session: Session = Depends(get_current_session),
              store: EntityStore = Depends(get_store)):
    notification = repository.get_notification(store, notification_id)
    if notification is None or notification.user_id != session.user_id:
        raise NotFound("Notification", notification_id)
    notifications.mark_read(store, notification_id)
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
