"""
Progress aggregation over fetched snapshots.

Everything here is read-only and deterministic: the functions take lists of
tasks, projects or logs that the caller already loaded, never touch the store,
and return zero-valued results for empty input instead of raising.

Percentages are rounded half-up so that 12.5 becomes 13, matching what the
dashboards have always displayed.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from schemas import PROJECT_STATUSES, TASK_STATUSES, ProgressLog, Project, Sprint, Task


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class MemberStats:
    completed: int
    total: int
    percentage: int


def member_stats(tasks: Iterable[Task], member_id: str) -> MemberStats:
    """Completion of the tasks assigned to one member.

    ``total`` counts tasks whose ``assigned_to`` contains the member and
    ``completed`` those of them with status ``completed``. The percentage is 0
    when the member has no tasks.
    """
    assigned = [t for t in tasks if member_id in t.assigned_to]
    completed = sum(1 for t in assigned if t.status == "completed")
    total = len(assigned)
    percentage = round_half_up(completed / total * 100) if total else 0
    return MemberStats(completed=completed, total=total, percentage=percentage)


def team_member_stats(tasks: Sequence[Task], member_ids: Iterable[str]) -> Dict[str, MemberStats]:
    return {member_id: member_stats(tasks, member_id) for member_id in member_ids}


def sprint_completion(tasks: Iterable[Task], sprint_id: str) -> int:
    """Mean ``percent_complete`` of the sprint's tasks, 0 for an empty sprint."""
    values = [t.percent_complete for t in tasks if t.sprint_id == sprint_id]
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def project_average_progress(projects: Sequence[Project]) -> int:
    """Mean of the teacher-entered ``percent_complete`` of each project.

    Task data is deliberately ignored here; the stored project figure is the
    authoritative one.
    """
    if not projects:
        return 0
    return round_half_up(sum(p.percent_complete for p in projects) / len(projects))


def status_histogram(tasks: Iterable[Task]) -> Dict[str, int]:
    """Task counts keyed by status, always in not_started, in_progress, review,
    blocked, completed order and always with all five keys."""
    counts = {status: 0 for status in TASK_STATUSES}
    for task in tasks:
        counts[task.status] += 1
    return counts


def project_status_histogram(projects: Iterable[Project]) -> Dict[str, int]:
    counts = {status: 0 for status in PROJECT_STATUSES}
    for project in projects:
        counts[project.status] += 1
    return counts


def _local_day(instant: datetime) -> date:
    # Naive timestamps are taken as already local
    if instant.tzinfo is not None:
        instant = instant.astimezone()
    return instant.date()


def trend_days(window_days: int, today: Optional[date] = None) -> List[date]:
    today = today or date.today()
    return [today - timedelta(days=offset) for offset in range(window_days - 1, -1, -1)]


def daily_activity_trend(logs: Iterable[ProgressLog], window_days: int, today: Optional[date] = None) -> List[int]:
    """Progress-log count per calendar day for the last ``window_days`` days.

    The window ends today (inclusive) and is returned oldest first. Days are
    local to this process; timestamps are not normalised to UTC.
    """
    days = trend_days(window_days, today)
    counts = {day: 0 for day in days}
    for log in logs:
        if log.created_at is None:
            continue
        day = _local_day(log.created_at)
        if day in counts:
            counts[day] += 1
    return [counts[day] for day in days]


def group_tasks_by_sprint(tasks: Iterable[Task]) -> Dict[str, List[Task]]:
    grouped: Dict[str, List[Task]] = {}
    for task in tasks:
        grouped.setdefault(task.sprint_id, []).append(task)
    for sprint_tasks in grouped.values():
        sprint_tasks.sort(key=lambda t: t.task_number)
    return grouped


def sprint_progress_series(sprints: Sequence[Sprint], tasks: Sequence[Task]) -> List[Tuple[str, int]]:
    return [(f"Sprint {s.sprint_number}", sprint_completion(tasks, s.id)) for s in sprints]


def dashboard_summary(projects: Sequence[Project], tasks: Sequence[Task]) -> Dict[str, int]:
    return {
        "total_projects": len(projects),
        "active_projects": sum(1 for p in projects if p.status == "active"),
        "completed_projects": sum(1 for p in projects if p.status == "completed"),
        "average_progress": project_average_progress(projects),
        "total_tasks": len(tasks),
        "completed_tasks": sum(1 for t in tasks if t.status == "completed"),
        "blocked_tasks": sum(1 for t in tasks if t.status == "blocked"),
    }


def sort_projects(projects: Iterable[Project], by: str = "recent") -> List[Project]:
    projects = list(projects)
    if by == "progress":
        return sorted(projects, key=lambda p: p.percent_complete, reverse=True)
    if by == "name":
        return sorted(projects, key=lambda p: p.name.lower())
    return sorted(projects, key=lambda p: p.created_at.timestamp() if p.created_at else 0, reverse=True)
