# core.py
from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from config import DEFAULT_CLIENT, default_tasks_data, task_colors

logger = logging.getLogger(__name__)


STATUS_UPCOMING = "upcoming"
STATUS_IN_PROGRESS = "in-progress"
STATUS_COMPLETED = "completed"
TASK_STATUSES = (STATUS_UPCOMING, STATUS_IN_PROGRESS, STATUS_COMPLETED)

MILESTONE_TYPES = ("delivery", "inspection", "progress", "completion")

DEADLINE_NONE = "none"
DEADLINE_WARNING = "warning"
DEADLINE_OVERDUE = "overdue"
DEADLINE_WARNING_DAYS = 2

BUCKET_COMPLETED = "completed"
BUCKET_IN_PROGRESS = "in-progress"
BUCKET_NOT_STARTED = "not-started"

MIN_TIMELINE_DAYS = 365
LOOKAHEAD_DAYS = 60
VISIBLE_DAYS = 21
SCROLL_STEP_DAYS = 7
PRINT_BUFFER_DAYS = 7

ALL_TASKS_COMPLETED = "All tasks completed"
SAVE_FAILED_MESSAGE = "Failed to save project. Your changes are kept locally, please try again."


# =========================
# Errors
# =========================
class ValidationError(ValueError):
    """Missing or malformed user input, rejected before any mutation."""


class StoreError(RuntimeError):
    """The project store could not persist a change."""


# =========================
# Clock
# =========================
class Clock:
    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return normalize_date(self.now())


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now()


class FixedClock(Clock):
    """Clock frozen at a given moment; accepts a date or a datetime."""

    def __init__(self, value: Any) -> None:
        if isinstance(value, datetime):
            self.value = value
        elif isinstance(value, date):
            self.value = datetime(value.year, value.month, value.day)
        else:
            raise TypeError("FixedClock expects a date or datetime")

    def now(self) -> datetime:
        return self.value

    def advance(self, days: int = 0, **kwargs: Any) -> None:
        self.value = self.value + timedelta(days=days, **kwargs)


# =========================
# Date / offset basics
# =========================
def normalize_date(x: Any) -> date:
    """Local-midnight calendar date of a date or datetime."""
    if isinstance(x, datetime):
        if x.tzinfo is not None:
            x = x.astimezone()
        return x.date()
    if isinstance(x, date):
        return x
    raise TypeError(f"Expected date or datetime, got {type(x).__name__}")


def to_offset(value: Any, start_date: Any) -> int:
    return (normalize_date(value) - normalize_date(start_date)).days


def from_offset(offset: int, start_date: Any) -> date:
    return normalize_date(start_date) + timedelta(days=int(offset))


def days_elapsed(start_date: Any, now: Any) -> int:
    """Day offset of *now*; negative while the project has not started."""
    return to_offset(now, start_date)


def today_index(elapsed: int) -> int:
    return max(0, int(elapsed))


def _iso(d: date) -> str:
    return d.isoformat()


def utc_stamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _parse_date(x: Any) -> Optional[date]:
    if x is None:
        return None
    if isinstance(x, (date, datetime)):
        return normalize_date(x)
    if isinstance(x, str):
        s = x.strip()
        if not s:
            return None
        try:
            return date.fromisoformat(s[:10])
        except ValueError:
            return None
    return None


def _as_int(x: Any) -> Optional[int]:
    if x is None or isinstance(x, bool):
        return None
    try:
        return int(x)
    except (TypeError, ValueError):
        return None


def _clean_offsets(xs: Any) -> List[int]:
    if not isinstance(xs, (list, tuple, set, frozenset)):
        return []
    out = set()
    for x in xs:
        v = _as_int(x)
        if v is not None:
            out.add(v)
    return sorted(out)


def _new_id() -> str:
    return str(uuid.uuid4())


# =========================
# Data model
# =========================
@dataclass
class Task:
    id: str
    name: str
    status: str = STATUS_UPCOMING
    marked_days: List[int] = field(default_factory=list)
    color: str = "green"
    notes: str = ""
    deadline: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "marked_days": list(self.marked_days or []),
            "color": self.color,
            "notes": self.notes,
            "deadline": self.deadline,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Task":
        if not isinstance(d, dict):
            raise TypeError("Task.from_dict expects dict")

        raw_marked = d.get("marked_days")
        if raw_marked is None:
            raw_marked = d.get("markedDays")
        marked = _clean_offsets(raw_marked or [])

        status = str(d.get("status") or "")
        if status not in TASK_STATUSES:
            status = ""

        return Task(
            id=str(d.get("id") or ""),
            name=str(d.get("name") or ""),
            status=derive_status(marked, status),
            marked_days=marked,
            color=str(d.get("color") or "green"),
            notes=str(d.get("notes") or ""),
            deadline=_as_int(d.get("deadline")),
        )


@dataclass
class Milestone:
    id: str
    label: str
    day: int
    type: str = "progress"

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "day": int(self.day), "type": self.type}

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Milestone":
        if not isinstance(d, dict):
            raise TypeError("Milestone.from_dict expects dict")
        day = _as_int(d.get("day"))
        if day is None:
            raise ValueError("Milestone without a day offset")
        mtype = str(d.get("type") or "progress")
        if mtype not in MILESTONE_TYPES:
            mtype = "progress"
        return Milestone(
            id=str(d.get("id") or ""),
            label=str(d.get("label") or ""),
            day=day,
            type=mtype,
        )


@dataclass
class Project:
    id: str
    name: str
    client: str
    scale: str
    start_date: date
    tasks: List[Task] = field(default_factory=list)
    milestones: List[Milestone] = field(default_factory=list)
    holidays: List[int] = field(default_factory=list)

    owner_id: str = ""
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "client": self.client,
            "scale": self.scale,
            "start_date": _iso(self.start_date),
            "tasks": [t.to_dict() for t in (self.tasks or [])],
            "milestones": [m.to_dict() for m in (self.milestones or [])],
            "holidays": list(self.holidays or []),
            "owner_id": self.owner_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Project":
        # Hard guard: must be dict
        if not isinstance(d, dict):
            raise TypeError("Project.from_dict expects dict")

        start = _parse_date(d.get("start_date")) or _parse_date(d.get("startDate")) or date.today()

        tasks: List[Task] = []
        for tr in d.get("tasks") or []:
            if isinstance(tr, dict):
                tasks.append(Task.from_dict(tr))

        milestones: List[Milestone] = []
        for mr in d.get("milestones") or []:
            if not isinstance(mr, dict):
                continue
            try:
                milestones.append(Milestone.from_dict(mr))
            except ValueError:
                continue

        return Project(
            id=str(d.get("id") or d.get("_id") or ""),
            name=str(d.get("name") or ""),
            client=str(d.get("client") or ""),
            scale=str(d.get("scale") or ""),
            start_date=start,
            tasks=tasks,
            milestones=milestones,
            holidays=_clean_offsets(d.get("holidays") or []),
            owner_id=str(d.get("owner_id") or d.get("user") or ""),
            created_at=str(d.get("created_at") or ""),
            updated_at=str(d.get("updated_at") or ""),
        )


# =========================
# Constructors
# =========================
def validate_project_fields(name: str, client: str, scale: str) -> None:
    if not (name or "").strip():
        raise ValidationError("Project name is required.")
    if not (client or "").strip():
        raise ValidationError("Client name is required.")
    if not (scale or "").strip():
        raise ValidationError("Scale is required.")


def template_tasks() -> List[Task]:
    return [
        Task(id=str(t["id"]), name=str(t["name"]), color=str(t["color"]))
        for t in default_tasks_data
    ]


def new_project(
    name: str,
    client: str = DEFAULT_CLIENT,
    scale: str = "",
    start_date: Optional[date] = None,
    use_template: bool = True,
    owner_id: str = "",
) -> Project:
    validate_project_fields(name, client, scale)
    return Project(
        id=_new_id(),
        name=name.strip(),
        client=client.strip(),
        scale=scale.strip(),
        start_date=normalize_date(start_date) if start_date is not None else date.today(),
        tasks=template_tasks() if use_template else [],
        owner_id=str(owner_id or ""),
    )


def new_task(name: str, color: str = "green", task_id: Optional[str] = None) -> Task:
    if not (name or "").strip():
        raise ValidationError("Task name is required.")
    return Task(id=task_id or _new_id(), name=name.strip(), color=str(color or "green"))


def new_milestone(label: str, day: int, mtype: str = "progress") -> Milestone:
    if not (label or "").strip():
        raise ValidationError("Milestone label is required.")
    if mtype not in MILESTONE_TYPES:
        raise ValidationError(f"Unknown milestone type: {mtype}")
    offset = _as_int(day)
    if offset is None:
        raise ValidationError("Milestone date is required.")
    return Milestone(id=_new_id(), label=label.strip(), day=offset, type=mtype)


# =========================
# Task model
# =========================
def derive_status(marked_days: Sequence[int], current: str = "") -> str:
    """Completed is sticky; otherwise the marked set decides."""
    if current == STATUS_COMPLETED:
        return STATUS_COMPLETED
    return STATUS_IN_PROGRESS if marked_days else STATUS_UPCOMING


def toggle_mark(task: Task, offset: int, holidays: Iterable[int]) -> Task:
    offset = int(offset)
    if offset in set(holidays or []):
        return task
    marked = set(task.marked_days or [])
    marked ^= {offset}
    marked_days = sorted(marked)
    return replace(task, marked_days=marked_days, status=derive_status(marked_days, task.status))


def mark_complete(task: Task) -> Task:
    return replace(task, status=STATUS_COMPLETED)


def reopen_task(task: Task) -> Task:
    return replace(task, status=derive_status(task.marked_days))


def clear_days(task: Task) -> Task:
    return replace(task, marked_days=[], status=STATUS_UPCOMING)


def set_deadline(task: Task, offset: Optional[int]) -> Task:
    return replace(task, deadline=None if offset is None else int(offset))


def set_notes(task: Task, notes: str) -> Task:
    return replace(task, notes=str(notes or ""))


def clear_notes(task: Task) -> Task:
    return replace(task, notes="")


def set_color(task: Task, color: str) -> Task:
    return replace(task, color=str(color or "green"))


def rename_task(task: Task, name: str) -> Task:
    if not (name or "").strip():
        raise ValidationError("Task name is required.")
    return replace(task, name=name.strip())


def deadline_status(task: Task, today_offset: int) -> str:
    if task.deadline is None or task.status == STATUS_COMPLETED:
        return DEADLINE_NONE
    left = task.deadline - int(today_offset)
    if left < 0:
        return DEADLINE_OVERDUE
    if left <= DEADLINE_WARNING_DAYS:
        return DEADLINE_WARNING
    return DEADLINE_NONE


def task_span(task: Task) -> Optional[tuple[int, int, int]]:
    """(first, last, count) of marked offsets, or None when nothing is marked."""
    if not task.marked_days:
        return None
    return task.marked_days[0], task.marked_days[-1], len(task.marked_days)


def task_color_hex(color: str) -> str:
    return task_colors.get(color) or next(iter(task_colors.values()))


# =========================
# Milestones / holidays
# =========================
def add_milestone(milestones: List[Milestone], label: str, day: int, mtype: str = "progress") -> List[Milestone]:
    return list(milestones or []) + [new_milestone(label, day, mtype)]


def remove_milestone(milestones: List[Milestone], milestone_id: str) -> List[Milestone]:
    return [m for m in (milestones or []) if m.id != milestone_id]


def milestones_on(milestones: List[Milestone], day: int) -> List[Milestone]:
    return [m for m in (milestones or []) if m.day == day]


def milestone_at(milestones: List[Milestone], day: int) -> Optional[Milestone]:
    return next((m for m in (milestones or []) if m.day == day), None)


def add_holiday(holidays: List[int], offset: int) -> List[int]:
    offset = int(offset)
    if offset in (holidays or []):
        return sorted(holidays)
    return sorted(list(holidays or []) + [offset])


def remove_holiday(holidays: List[int], offset: int) -> List[int]:
    return [h for h in (holidays or []) if h != int(offset)]


def is_holiday(holidays: Iterable[int], offset: int) -> bool:
    return int(offset) in set(holidays or [])


# =========================
# Timeline windows
# =========================
@dataclass(frozen=True)
class DayWindow:
    """Inclusive range of day offsets."""

    first: int
    last: int

    def __len__(self) -> int:
        return max(0, self.last - self.first + 1)

    def offsets(self) -> range:
        return range(self.first, self.last + 1)

    def contains(self, offset: int) -> bool:
        return self.first <= offset <= self.last


def timeline_length(elapsed: int) -> int:
    return max(MIN_TIMELINE_DAYS, int(elapsed) + LOOKAHEAD_DAYS)


def clamp_view_start(view_start: int, total_days: int) -> int:
    upper = max(0, int(total_days) - VISIBLE_DAYS)
    return max(0, min(int(view_start), upper))


def scroll_view(view_start: int, direction: str, total_days: int) -> int:
    step = -SCROLL_STEP_DAYS if direction == "left" else SCROLL_STEP_DAYS
    return clamp_view_start(int(view_start) + step, total_days)


def interactive_window(project: Project, view_start: int, today: Any) -> DayWindow:
    total = timeline_length(days_elapsed(project.start_date, today))
    first = clamp_view_start(view_start, total)
    last = min(first + VISIBLE_DAYS, total) - 1
    return DayWindow(first, last)


def max_referenced_offset(project: Project, elapsed: int) -> int:
    max_day = 0
    for t in project.tasks or []:
        if t.marked_days:
            max_day = max(max_day, max(t.marked_days))
        if t.deadline is not None:
            max_day = max(max_day, t.deadline)
    for m in project.milestones or []:
        max_day = max(max_day, m.day)
    if project.holidays:
        max_day = max(max_day, max(project.holidays))
    # cover "today" while the project is running
    return max(max_day, int(elapsed))


def print_window(project: Project, today: Any) -> DayWindow:
    elapsed = days_elapsed(project.start_date, today)
    return DayWindow(0, max_referenced_offset(project, elapsed) + PRINT_BUFFER_DAYS)


def day_columns(project: Project, window: DayWindow, today: Any) -> List[Dict[str, Any]]:
    """Column headers shared by the grid and the print layout."""
    t_idx = today_index(days_elapsed(project.start_date, today))
    holidays = set(project.holidays or [])
    out: List[Dict[str, Any]] = []
    for offset in window.offsets():
        d = from_offset(offset, project.start_date)
        out.append(
            {
                "offset": offset,
                "date": d,
                "label": f"{d.strftime('%b')} {d.day}",
                "weekday": d.strftime("%a"),
                "is_sunday": d.weekday() == 6,
                "is_today": offset == t_idx,
                "is_holiday": offset in holidays,
                "milestone": milestone_at(project.milestones, offset),
                "milestone_count": len(milestones_on(project.milestones, offset)),
            }
        )
    return out


def task_cells(project: Project, task: Task, window: DayWindow) -> List[Dict[str, Any]]:
    holidays = set(project.holidays or [])
    marked = set(task.marked_days or [])
    out: List[Dict[str, Any]] = []
    for offset in window.offsets():
        holiday = offset in holidays
        out.append(
            {
                "offset": offset,
                "marked": offset in marked and not holiday,
                "holiday": holiday,
                "deadline": task.deadline == offset,
                "clickable": not holiday,
            }
        )
    return out


# =========================
# Progress
# =========================
_STATUS_WEIGHT = {STATUS_COMPLETED: 1.0, STATUS_IN_PROGRESS: 0.5}


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def progress_percent(tasks: Sequence[Task]) -> int:
    tasks = list(tasks or [])
    if not tasks:
        return 0
    weight = sum(_STATUS_WEIGHT.get(t.status, 0.0) for t in tasks)
    return min(100, _round_half_up(weight / len(tasks) * 100))


def project_status_bucket(tasks: Sequence[Task]) -> str:
    tasks = list(tasks or [])
    if all(t.status == STATUS_COMPLETED for t in tasks):
        return BUCKET_COMPLETED
    if any(t.status in (STATUS_IN_PROGRESS, STATUS_COMPLETED) for t in tasks):
        return BUCKET_IN_PROGRESS
    return BUCKET_NOT_STARTED


def current_task_label(tasks: Sequence[Task]) -> str:
    for wanted in (STATUS_IN_PROGRESS, STATUS_UPCOMING):
        for t in tasks or []:
            if t.status == wanted:
                return t.name
    return ALL_TASKS_COMPLETED


# =========================
# Project patches
# =========================
PATCHABLE_FIELDS = ("name", "client", "scale", "start_date", "tasks", "milestones", "holidays")
_PATCH_ALIASES = {"startDate": "start_date"}


def _encode(value: Any) -> Any:
    if isinstance(value, (Task, Milestone)):
        return value.to_dict()
    if isinstance(value, (date, datetime)):
        return _iso(normalize_date(value))
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def apply_project_patch(project: Project, patch: Dict[str, Any]) -> Project:
    """Merge *patch* into a copy of *project* and re-derive task status."""
    data = project.to_dict()
    for key, value in (patch or {}).items():
        name = _PATCH_ALIASES.get(key, key)
        if name not in PATCHABLE_FIELDS:
            raise ValidationError(f"Field cannot be changed: {key}")
        data[name] = _encode(value)
    return Project.from_dict(data)


@dataclass
class UpdateResult:
    project: Project
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def update_project(
    project: Project,
    patch: Dict[str, Any],
    save: Optional[Callable[[Project], Optional[Project]]] = None,
) -> UpdateResult:
    """Apply *patch* and hand the result to *save*.

    A failed save keeps the optimistic project and reports a message; there
    is no rollback to the last stored state.
    """
    updated = apply_project_patch(project, patch)
    if save is None:
        return UpdateResult(updated)
    try:
        saved = save(updated)
    except StoreError as e:
        logger.warning("Saving project %s failed: %s", updated.id, e)
        return UpdateResult(updated, SAVE_FAILED_MESSAGE)
    if saved is None:
        logger.warning("Project %s no longer exists in the store", updated.id)
        return UpdateResult(updated, SAVE_FAILED_MESSAGE)
    return UpdateResult(saved)


def _map_tasks(project: Project, task_id: str, fn: Callable[[Task], Task]) -> List[Task]:
    return [fn(t) if t.id == task_id else t for t in project.tasks or []]


def patch_toggle_day(project: Project, task_id: str, offset: int) -> Dict[str, Any]:
    return {"tasks": _map_tasks(project, task_id, lambda t: toggle_mark(t, offset, project.holidays))}


def patch_task(project: Project, task_id: str, fn: Callable[..., Task], *args: Any) -> Dict[str, Any]:
    """Patch that runs a task-level operation on one task, e.g. set_notes."""
    return {"tasks": _map_tasks(project, task_id, lambda t: fn(t, *args))}


def patch_add_task(project: Project, name: str, color: str = "green") -> Dict[str, Any]:
    return {"tasks": list(project.tasks or []) + [new_task(name, color)]}


def patch_delete_task(project: Project, task_id: str) -> Dict[str, Any]:
    return {"tasks": [t for t in project.tasks or [] if t.id != task_id]}


def _offset_from_start(project: Project, when: Any, what: str) -> int:
    """*when* is a calendar date (converted against the current start) or an offset."""
    if isinstance(when, (date, datetime)):
        offset: Optional[int] = to_offset(when, project.start_date)
    else:
        offset = _as_int(when)
    if offset is None:
        raise ValidationError(f"{what} date is required.")
    if offset < 0:
        raise ValidationError(f"{what} date cannot be before the project start.")
    return offset


def patch_set_deadline(project: Project, task_id: str, when: Any) -> Dict[str, Any]:
    offset = None if when is None else _offset_from_start(project, when, "Deadline")
    return patch_task(project, task_id, set_deadline, offset)


def patch_add_milestone(project: Project, label: str, when: Any, mtype: str = "progress") -> Dict[str, Any]:
    day = _offset_from_start(project, when, "Milestone")
    return {"milestones": add_milestone(project.milestones, label, day, mtype)}


def patch_delete_milestone(project: Project, milestone_id: str) -> Dict[str, Any]:
    return {"milestones": remove_milestone(project.milestones, milestone_id)}


def patch_add_holiday(project: Project, when: Any) -> Dict[str, Any]:
    return {"holidays": add_holiday(project.holidays, _offset_from_start(project, when, "Holiday"))}


def patch_remove_holiday(project: Project, offset: int) -> Dict[str, Any]:
    return {"holidays": remove_holiday(project.holidays, offset)}


def patch_settings(name: str, client: str, scale: str, start_date: Any) -> Dict[str, Any]:
    validate_project_fields(name, client, scale)
    return {
        "name": name.strip(),
        "client": client.strip(),
        "scale": scale.strip(),
        "start_date": normalize_date(start_date),
    }


def rebase_start_date(project: Project, new_start: Any) -> Dict[str, Any]:
    """Move the start date while keeping every mark on its calendar date.

    Offsets that would land before the new start are dropped.
    """
    delta = to_offset(project.start_date, new_start)

    def shift(xs: Iterable[int]) -> List[int]:
        return sorted({x + delta for x in xs if x + delta >= 0})

    tasks = []
    for t in project.tasks or []:
        deadline = None
        if t.deadline is not None and t.deadline + delta >= 0:
            deadline = t.deadline + delta
        tasks.append(replace(t, marked_days=shift(t.marked_days), deadline=deadline))

    milestones = [replace(m, day=m.day + delta) for m in project.milestones or [] if m.day + delta >= 0]

    return {
        "start_date": normalize_date(new_start),
        "tasks": tasks,
        "milestones": milestones,
        "holidays": shift(project.holidays or []),
    }


# =========================
# Dashboard helpers
# =========================
def search_projects(projects: List[Project], query: str) -> List[Project]:
    q = (query or "").strip().lower()
    if not q:
        return list(projects or [])
    return [
        p
        for p in projects or []
        if q in (p.name or "").lower() or q in (p.client or "").lower() or q in (p.scale or "").lower()
    ]


def days_counter_label(elapsed: int) -> str:
    if elapsed >= 0:
        return f"Day {elapsed + 1}"
    return f"{abs(elapsed)} days to start"


def project_summary(project: Project, today: Any) -> Dict[str, Any]:
    elapsed = days_elapsed(project.start_date, today)
    t_idx = today_index(elapsed)
    alerts = [deadline_status(t, t_idx) for t in project.tasks or []]
    return {
        "id": project.id,
        "name": project.name,
        "client": project.client,
        "scale": project.scale,
        "start_date": project.start_date,
        "days_elapsed": elapsed,
        "day_label": days_counter_label(elapsed),
        "progress": progress_percent(project.tasks),
        "status": project_status_bucket(project.tasks),
        "current_task": current_task_label(project.tasks),
        "tasks": len(project.tasks or []),
        "milestones": len(project.milestones or []),
        "overdue": alerts.count(DEADLINE_OVERDUE),
        "warning": alerts.count(DEADLINE_WARNING),
    }
