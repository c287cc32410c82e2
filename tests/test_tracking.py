"""
Unit Tests for Project Workflow
Tests for: projects, sprints, tasks, progress logs, meetings, comments, announcements
"""
from datetime import datetime, timedelta, timezone

import pytest

import repository
import roster
import tracking
from blob_store import LocalBlobStore
from errors import AuthorizationError, NotFound, ValidationError
from schemas import ActionItem, Project, ResearchPaper, Session, UpdateProjectFields, UpdateTaskPercent, UpdateTaskStatus

START = datetime(2024, 1, 8, tzinfo=timezone.utc)


@pytest.fixture
def sprint(store, teacher_session, project):
    return tracking.create_sprint(store, teacher_session, project.id, "Research", START, START + timedelta(days=14))


@pytest.fixture
def task(store, student_session, sprint):
    return tracking.create_task(store, student_session, sprint.id, "Survey sensors", START + timedelta(days=7),
                                assigned_to=[student_session.user_id])


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStore(str(tmp_path), "/uploads")


class TestProjects:
    """Test project lifecycle"""

    def test_create_sets_teacher(self, store, teacher_session):
        """Test new projects belong to the creating teacher"""
        project = tracking.create_project(store, teacher_session, Project(name="Drone Mapping"))

        assert project.teacher_id == teacher_session.user_id
        assert project.status == "planning"
        assert tracking.projects_for(store, teacher_session)[0].id == project.id

    def test_student_cannot_create(self, store, student_session):
        """Test students are refused"""
        with pytest.raises(AuthorizationError):
            tracking.create_project(store, student_session, Project(name="Nope"))

    def test_update_and_delete(self, store, teacher_session, project):
        """Test fields are patched and the project can be removed"""
        updated = tracking.update_project(store, teacher_session, project.id,
                                          UpdateProjectFields(percent_complete=40, status="on_hold"))
        assert updated.percent_complete == 40
        assert repository.get_project(store, project.id).status == "on_hold"

        tracking.delete_project(store, teacher_session, project.id)
        assert repository.get_project(store, project.id) is None

    def test_student_sees_team_projects(self, store, project, students):
        """Test a student's projects come from their teams"""
        team = roster.create_team(store, project, "Crew")
        roster.add_member(store, team, students[0].id)
        session = Session(user_id=students[0].id, role="student")

        assert [p.id for p in tracking.projects_for(store, session)] == [project.id]


class TestSprintsAndTasks:
    """Test sprint numbering and task status rules"""

    def test_sprint_numbers_increment(self, store, teacher_session, project, sprint):
        """Test second sprint is number 2 and listing is ordered"""
        second = tracking.create_sprint(store, teacher_session, project.id, "Build", START, START + timedelta(days=7))

        assert sprint.sprint_number == 1
        assert second.sprint_number == 2
        assert [s.id for s in repository.list_sprints(store, project.id)] == [sprint.id, second.id]

    def test_sprint_requires_dates(self, store, teacher_session, project):
        """Test missing dates fail validation"""
        with pytest.raises(ValidationError):
            tracking.create_sprint(store, teacher_session, project.id, "Build", None, START)

    def test_mixed_naive_and_aware_dates(self, store, teacher_session, project):
        """Test a naive start and a UTC end compare as local time instead of erroring"""
        start = datetime(2024, 3, 1)
        end = datetime(2024, 3, 10, tzinfo=timezone.utc)

        sprint = tracking.create_sprint(store, teacher_session, project.id, "Mixed", start, end)

        assert sprint.sprint_number == 1
        with pytest.raises(ValidationError) as exc_info:
            tracking.create_sprint(store, teacher_session, project.id, "Backwards", datetime(2024, 3, 20), end)
        assert exc_info.value.details["field"] == "end_date"

    def test_admin_cannot_edit(self, store, admin, project):
        """Test admins only view project work"""
        session = Session(user_id=admin.id, role="admin")
        with pytest.raises(AuthorizationError):
            tracking.create_sprint(store, session, project.id, "Build", START, START)

    def test_task_numbers_and_project_link(self, store, student_session, sprint, task):
        """Test tasks number within their sprint and carry the project id"""
        second = tracking.create_task(store, student_session, sprint.id, "Order parts", START,
                                      sub_tasks=tracking.split_sub_tasks("quote\n\n  order  \n"))

        assert task.task_number == 1
        assert second.task_number == 2
        assert second.project_id == sprint.project_id
        assert second.sub_tasks == ["quote", "order"]

    def test_task_requires_deadline(self, store, student_session, sprint):
        """Test task without deadline fails"""
        with pytest.raises(ValidationError):
            tracking.create_task(store, student_session, sprint.id, "No deadline", None)

    def test_start_stamps_start_date_once(self, store, student_session, task):
        """Test moving to in_progress sets start_date only the first time"""
        started = tracking.update_task_status(store, student_session, task.id, UpdateTaskStatus(status="in_progress"))
        first_start = repository.get_task(store, task.id).start_date
        assert started.start_date is not None

        tracking.update_task_status(store, student_session, task.id, UpdateTaskStatus(status="review"))
        tracking.update_task_status(store, student_session, task.id, UpdateTaskStatus(status="in_progress"))

        assert repository.get_task(store, task.id).start_date == first_start

    def test_completing_forces_full_percent(self, store, student_session, task):
        """Test completed status forces 100% and stamps completion_date"""
        tracking.update_task_percent(store, student_session, task.id, UpdateTaskPercent(percent_complete=30))

        done = tracking.update_task_status(store, student_session, task.id, UpdateTaskStatus(status="completed"))

        stored = repository.get_task(store, task.id)
        assert done.percent_complete == 100
        assert stored.percent_complete == 100
        assert stored.completion_date is not None

    def test_other_statuses_keep_percent(self, store, student_session, task):
        """Test blocked leaves percent_complete alone"""
        tracking.update_task_percent(store, student_session, task.id, UpdateTaskPercent(percent_complete=30))
        tracking.update_task_status(store, student_session, task.id, UpdateTaskStatus(status="blocked"))
        assert repository.get_task(store, task.id).percent_complete == 30

    def test_delete_task(self, store, student_session, task):
        """Test task removal"""
        tracking.delete_task(store, student_session, task.id)
        with pytest.raises(NotFound):
            tracking.delete_task(store, student_session, task.id)


class TestProgressLogs:
    """Test logging progress"""

    def test_log_with_attachment(self, store, blobs, student_session, project, task, tmp_path):
        """Test attachment upload, log creation and task percentage update"""
        log = tracking.log_progress(store, blobs, student_session, project.id, task.id, "Wired the sensor",
                                    45, next_steps="Calibrate", attachments=[("wiring.png", b"\x89PNG")])

        assert log.user_id == student_session.user_id
        assert len(log.file_urls) == 1
        url = log.file_urls[0]
        assert url.startswith(f"/uploads/projects/{project.id}/") and url.endswith(".png")
        stored_file = tmp_path / url[len("/uploads/"):]
        assert stored_file.read_bytes() == b"\x89PNG"
        assert repository.get_task(store, task.id).percent_complete == 45
        assert repository.list_progress_logs(store, project.id)[0].id == log.id

    def test_description_required(self, store, blobs, student_session, project, task):
        """Test empty description fails before any write"""
        with pytest.raises(ValidationError):
            tracking.log_progress(store, blobs, student_session, project.id, task.id, "  ", 10)
        assert repository.list_progress_logs(store, project.id) == []

    def test_task_must_belong_to_project(self, store, blobs, student_session, task):
        """Test a task from another project is refused"""
        with pytest.raises(ValidationError):
            tracking.log_progress(store, blobs, student_session, "other-project", task.id, "work", 10)


class TestMeetingsAndDiscussion:
    """Test meetings, comments, research and announcements"""

    def test_action_item_status(self, store, student_session, project):
        """Test one action item changes and the rest stay"""
        meeting = tracking.create_meeting(
            store, student_session, project.id, START,
            agenda_points=["Demo", ""],
            action_items=[ActionItem(description="Buy parts"), ActionItem(description="Write report")],
        )

        updated = tracking.update_action_item_status(store, student_session, meeting.id, 1, "completed")

        stored = repository.get_meeting(store, meeting.id)
        assert meeting.agenda_points == ["Demo"]
        assert [i.status for i in updated.action_items] == ["not_started", "completed"]
        assert [i.status for i in stored.action_items] == ["not_started", "completed"]

    def test_action_item_index_checked(self, store, student_session, project):
        """Test out-of-range index fails"""
        meeting = tracking.create_meeting(store, student_session, project.id, START)
        with pytest.raises(ValidationError):
            tracking.update_action_item_status(store, student_session, meeting.id, 0, "completed")

    def test_meetings_newest_first(self, store, student_session, project):
        """Test meetings list by meeting date descending"""
        older = tracking.create_meeting(store, student_session, project.id, START)
        newer = tracking.create_meeting(store, student_session, project.id, START + timedelta(days=3))
        assert [m.id for m in repository.list_meetings(store, project.id)] == [newer.id, older.id]

    def test_comment(self, store, student_session, project):
        """Test comments are stored against the author"""
        comment = tracking.add_comment(store, student_session, project.id, "  Looks good  ")
        assert comment.content == "Looks good"
        assert repository.list_comments(store, project.id)[0].user_id == student_session.user_id

    def test_research_paper(self, store, student_session, project):
        """Test research papers are listed per project"""
        tracking.add_research_paper(store, student_session, ResearchPaper(project_id=project.id, title="Soil moisture"))
        assert repository.list_research_papers(store, project.id)[0].title == "Soil moisture"

    def test_announcement_reaches_team(self, store, teacher_session, project, students):
        """Test teacher announcement notifies every team member"""
        team = roster.create_team(store, project, "Crew")
        roster.add_members(store, team, [s.id for s in students[:3]])

        ids = tracking.announce(store, teacher_session, project.id, "Review on Monday")

        assert len(ids) == 3
        note = [n for n in repository.list_notifications(store, students[1].id) if n.type == "comment"][0]
        assert note.message == "Review on Monday"

    def test_announcement_needs_team(self, store, teacher_session, project):
        """Test project without team cannot be announced to"""
        with pytest.raises(ValidationError):
            tracking.announce(store, teacher_session, project.id, "hello")
