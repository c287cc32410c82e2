"""
Database Schemas for the Project-Based Learning tracker (MongoDB via Pydantic models)
Each Pydantic model represents a collection; collection name is the lowercase of class name.
Documents come back from the store with their key under ``id``.
"""

from datetime import datetime
from typing import List, Literal, Optional, Union, get_args

from pydantic import BaseModel, EmailStr, Field

from errors import AuthorizationError

UserRole = Literal["student", "teacher", "admin"]

# Order matters: charts map legend colours by position
TaskStatus = Literal["not_started", "in_progress", "review", "blocked", "completed"]
TASK_STATUSES = get_args(TaskStatus)

ProjectStatus = Literal["planning", "active", "on_hold", "completed"]
PROJECT_STATUSES = get_args(ProjectStatus)

NotificationType = Literal["team_added", "team_removed", "comment", "task_update", "meeting"]


# Core Users
class User(BaseModel):
    id: str = ""
    email: Optional[EmailStr] = None
    display_name: str = ""
    photo_url: Optional[str] = None
    role: UserRole = "student"
    # Derived on read from Team.member_ids / StudentGroup.student_ids, never written
    team_ids: List[str] = Field(default_factory=list)
    assigned_teacher_ids: List[str] = Field(default_factory=list)
    enrollment_number: Optional[str] = None
    contact_number: Optional[str] = None
    personal_email: Optional[str] = None
    college_email: Optional[str] = None
    cabin_no: Optional[str] = None
    group_notifications_enabled: bool = True
    parent_name: Optional[str] = None
    parent_contact: Optional[str] = None
    technical_skills: List[str] = Field(default_factory=list)
    non_technical_skills: List[str] = Field(default_factory=list)
    project_role: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StudentGroup(BaseModel):
    id: str = ""
    name: str
    student_ids: List[str] = Field(default_factory=list)
    assigned_teacher_id: str
    created_at: Optional[datetime] = None


# Projects
class CustomField(BaseModel):
    id: str
    name: str
    value: Union[bool, float, str]
    type: Literal["text", "number", "date", "boolean"] = "text"


class ProjectEvaluation(BaseModel):
    review1_marks: float = 0
    review2_marks: float = 0
    review3_marks: float = 0
    final_marks: float = 0
    total_score: float = 0
    feedback: str = ""
    updated_at: Optional[datetime] = None


class Project(BaseModel):
    id: str = ""
    name: str
    description: str = ""
    domain: str = ""
    sdg: str = ""
    # Teacher-entered; never recomputed from tasks
    percent_complete: int = 0
    status: ProjectStatus = "planning"
    cabin_location: str = ""
    tech_transfer_status: str = ""
    achievements: str = ""
    github_link: str = ""
    team_id: str = ""
    teacher_id: str = ""
    custom_fields: List[CustomField] = Field(default_factory=list)
    evaluation: Optional[ProjectEvaluation] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Team(BaseModel):
    id: str = ""
    name: str
    project_id: str
    member_ids: List[str] = Field(default_factory=list)  # join order
    leader_id: str = ""
    max_members: Optional[int] = None
    created_at: Optional[datetime] = None


class Notification(BaseModel):
    id: str = ""
    user_id: str
    type: NotificationType
    message: str
    link: str = ""
    read: bool = False
    created_at: Optional[datetime] = None


# Sprints & Tasks
class Sprint(BaseModel):
    id: str = ""
    project_id: str
    sprint_number: int
    name: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: TaskStatus = "not_started"
    percent_complete: int = 0
    created_at: Optional[datetime] = None


class Task(BaseModel):
    id: str = ""
    sprint_id: str
    project_id: str
    task_number: int
    title: str
    sub_tasks: List[str] = Field(default_factory=list)
    status: TaskStatus = "not_started"
    assigned_to: List[str] = Field(default_factory=list)
    assigned_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    start_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    # Independent of status except that completing forces 100
    percent_complete: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProgressLog(BaseModel):
    id: str = ""
    project_id: str
    task_id: str
    user_id: str
    description: str
    percent_complete: int = 0
    next_steps: str = ""
    file_urls: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None


# Meetings & discussion
class ActionItem(BaseModel):
    description: str
    assigned_to: str = ""
    status: TaskStatus = "not_started"
    due_date: Optional[datetime] = None


class Meeting(BaseModel):
    id: str = ""
    project_id: str
    date: datetime
    attendee_ids: List[str] = Field(default_factory=list)
    agenda_points: List[str] = Field(default_factory=list)
    action_items: List[ActionItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class Comment(BaseModel):
    id: str = ""
    project_id: str
    task_id: Optional[str] = None
    progress_log_id: Optional[str] = None
    user_id: str
    content: str
    created_at: Optional[datetime] = None


# Research output
class ResearchPaper(BaseModel):
    id: str = ""
    project_id: str
    title: str
    authors: List[str] = Field(default_factory=list)
    link: str = ""
    status: Literal["submitted", "accepted", "published"] = "submitted"
    details: str = ""
    doi: Optional[str] = None
    created_at: Optional[datetime] = None


class CopyrightPatent(BaseModel):
    id: str = ""
    project_id: str
    type: Literal["copyright", "patent"]
    title: str
    application_number: str = ""
    status: Literal["pending", "approved", "rejected"] = "pending"
    document_url: Optional[str] = None
    created_at: Optional[datetime] = None


# ----------------------- Session -----------------------
class Session(BaseModel):
    """The authenticated actor, passed explicitly into every operation."""
    user_id: str
    email: Optional[str] = None
    role: UserRole = "student"

    def require_role(self, *roles: str) -> None:
        if self.role not in roles:
            raise AuthorizationError(f"Only {' or '.join(roles)} users may do this")


# ----------------------- Commands -----------------------
class UpdateEvaluation(BaseModel):
    review1: float = Field(0, ge=0)
    review2: float = Field(0, ge=0)
    review3: float = Field(0, ge=0)
    final: float = Field(0, ge=0)
    feedback: str = ""


class UpdateTaskStatus(BaseModel):
    status: TaskStatus


class UpdateTaskPercent(BaseModel):
    percent_complete: int = Field(..., ge=0, le=100)


class UpdateProjectFields(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    domain: Optional[str] = None
    sdg: Optional[str] = None
    percent_complete: Optional[int] = Field(None, ge=0, le=100)
    status: Optional[ProjectStatus] = None
    cabin_location: Optional[str] = None
    tech_transfer_status: Optional[str] = None
    achievements: Optional[str] = None
    github_link: Optional[str] = None
    custom_fields: Optional[List[CustomField]] = None


class UpdateTeamSettings(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    max_members: Optional[int] = Field(None, ge=1)
