"""
Unit tests for the core module.

Tests cover:
- day offset conversion and the clock
- task marking, status and deadlines
- milestones and holidays
- interactive and print windows
- progress aggregation
- project patches and the update path
"""

from datetime import date, datetime, timedelta

import pytest

from core import (
    ALL_TASKS_COMPLETED,
    SAVE_FAILED_MESSAGE,
    DayWindow,
    FixedClock,
    Milestone,
    Project,
    StoreError,
    Task,
    ValidationError,
    add_holiday,
    add_milestone,
    apply_project_patch,
    clamp_view_start,
    clear_days,
    current_task_label,
    day_columns,
    days_counter_label,
    days_elapsed,
    deadline_status,
    from_offset,
    interactive_window,
    mark_complete,
    max_referenced_offset,
    milestone_at,
    milestones_on,
    new_milestone,
    new_project,
    new_task,
    patch_add_holiday,
    patch_add_milestone,
    patch_add_task,
    patch_delete_task,
    patch_set_deadline,
    patch_settings,
    patch_task,
    patch_toggle_day,
    print_window,
    progress_percent,
    project_status_bucket,
    rebase_start_date,
    remove_holiday,
    reopen_task,
    scroll_view,
    search_projects,
    set_deadline,
    set_notes,
    task_cells,
    timeline_length,
    to_offset,
    today_index,
    toggle_mark,
    update_project,
)

START = date(2025, 1, 20)  # Monday


def _task(status="upcoming", marked=None, deadline=None, task_id="t1", name="Task"):
    return Task(id=task_id, name=name, status=status, marked_days=list(marked or []), deadline=deadline)


def _project(**kw):
    defaults = dict(id="p1", name="Villa", client="Private Client", scale="1:50", start_date=START)
    defaults.update(kw)
    return Project(**defaults)


class TestOffsets:
    """Tests for date <-> day offset conversion."""

    @pytest.mark.parametrize(
        "value",
        [
            date(2025, 1, 20),
            date(2025, 3, 1),
            date(2024, 12, 25),
            datetime(2025, 2, 2, 23, 59, 59),
            datetime(2025, 1, 21, 0, 0, 1),
        ],
    )
    def test_round_trip_is_midnight_date(self, value):
        """from_offset(to_offset(d, s), s) gives d normalized to midnight."""
        expected = value.date() if isinstance(value, datetime) else value
        assert from_offset(to_offset(value, START), START) == expected

    def test_time_of_day_is_ignored(self):
        """Late evening and early morning of the same day share an offset."""
        assert to_offset(datetime(2025, 1, 25, 0, 5), START) == 5
        assert to_offset(datetime(2025, 1, 25, 23, 55), START) == 5

    def test_start_datetime_is_normalized(self):
        """A start with a time component still counts whole days."""
        start = datetime(2025, 1, 20, 18, 30)
        assert to_offset(datetime(2025, 1, 21, 9, 0), start) == 1

    def test_days_elapsed_negative_before_start(self):
        """A project starting in 10 days has elapsed -10."""
        assert days_elapsed(START + timedelta(days=10), START) == -10

    def test_today_index_never_negative(self):
        """today_index clamps a not-yet-started project to offset 0."""
        assert today_index(days_elapsed(START + timedelta(days=10), START)) == 0
        assert today_index(4) == 4

    def test_fixed_clock(self):
        """FixedClock accepts a date and can be advanced."""
        clock = FixedClock(START)
        assert clock.today() == START
        clock.advance(days=3)
        assert clock.today() == START + timedelta(days=3)

    def test_fixed_clock_rejects_other_types(self):
        with pytest.raises(TypeError):
            FixedClock("2025-01-20")


class TestToggleMark:
    """Tests for toggle_mark and derived status."""

    def test_mark_sets_in_progress(self):
        task = toggle_mark(_task(), 3, [])
        assert task.marked_days == [3]
        assert task.status == "in-progress"

    def test_unmark_last_day_returns_to_upcoming(self):
        task = toggle_mark(_task(status="in-progress", marked=[3]), 3, [])
        assert task.marked_days == []
        assert task.status == "upcoming"

    def test_marked_days_stay_sorted_and_unique(self):
        task = _task()
        for offset in (9, 2, 5):
            task = toggle_mark(task, offset, [])
        assert task.marked_days == [2, 5, 9]

    def test_double_toggle_restores_marked_set(self):
        """Applying the same toggle twice gives back the original set."""
        original = _task(status="in-progress", marked=[1, 4])
        twice = toggle_mark(toggle_mark(original, 7, []), 7, [])
        assert twice.marked_days == original.marked_days

    def test_holiday_blocks_marking(self):
        """Marking a holiday offset leaves the task untouched."""
        original = _task(status="in-progress", marked=[1])
        assert toggle_mark(original, 5, [5]) == original

    def test_holiday_blocks_unmarking(self):
        original = _task(status="in-progress", marked=[5])
        assert toggle_mark(original, 5, [5]).marked_days == [5]

    def test_does_not_mutate_input(self):
        original = _task()
        toggle_mark(original, 2, [])
        assert original.marked_days == []

    def test_completed_is_sticky(self):
        """Marking or unmarking days never demotes a completed task."""
        task = _task(status="completed", marked=[1])
        task = toggle_mark(task, 2, [])
        assert task.status == "completed"
        task = toggle_mark(toggle_mark(task, 1, []), 2, [])
        assert task.marked_days == []
        assert task.status == "completed"

    def test_reopen_derives_from_marks(self):
        assert reopen_task(_task(status="completed", marked=[1])).status == "in-progress"
        assert reopen_task(_task(status="completed")).status == "upcoming"

    def test_clear_days_resets_status(self):
        task = clear_days(_task(status="completed", marked=[1, 2]))
        assert task.marked_days == []
        assert task.status == "upcoming"

    def test_setters_have_no_side_effects(self):
        task = _task(status="in-progress", marked=[1])
        assert set_notes(task, "glue").status == "in-progress"
        assert set_deadline(task, 9).marked_days == [1]
        assert set_deadline(set_deadline(task, 9), None).deadline is None


class TestDeadlineStatus:
    """Tests for deadline_status."""

    def test_no_deadline(self):
        assert deadline_status(_task(), 5) == "none"

    def test_completed_task_has_no_alert(self):
        assert deadline_status(_task(status="completed", deadline=1), 5) == "none"

    def test_overdue(self):
        assert deadline_status(_task(deadline=4), 5) == "overdue"

    @pytest.mark.parametrize("deadline", [5, 6, 7])
    def test_warning_within_two_days(self, deadline):
        assert deadline_status(_task(deadline=deadline), 5) == "warning"

    def test_far_deadline(self):
        assert deadline_status(_task(deadline=8), 5) == "none"

    def test_deadline_on_day_zero_counts(self):
        """Offset 0 is a real deadline, not a missing one."""
        assert deadline_status(_task(deadline=0), 0) == "warning"
        assert deadline_status(_task(deadline=0), 1) == "overdue"


class TestRegistry:
    """Tests for milestones and holidays."""

    def test_milestones_may_share_a_day(self):
        ms = add_milestone([], "Site visit", 10, "inspection")
        ms = add_milestone(ms, "Handover", 10, "delivery")
        assert len(ms) == 2
        assert milestone_at(ms, 10).label == "Site visit"
        assert [m.label for m in milestones_on(ms, 10)] == ["Site visit", "Handover"]
        assert milestone_at(ms, 11) is None

    def test_milestone_validation(self):
        with pytest.raises(ValidationError):
            new_milestone("  ", 3)
        with pytest.raises(ValidationError):
            new_milestone("Review", 3, "party")

    def test_add_holiday_dedups_and_sorts(self):
        hs = add_holiday([], 12)
        hs = add_holiday(hs, 3)
        hs = add_holiday(hs, 12)
        assert hs == [3, 12]

    def test_remove_holiday(self):
        assert remove_holiday([3, 12], 3) == [12]
        assert remove_holiday([3, 12], 99) == [3, 12]

    def test_removed_holiday_can_be_marked_again(self):
        project = _project(tasks=[_task()], holidays=[4])
        project = apply_project_patch(project, {"holidays": remove_holiday(project.holidays, 4)})
        project = apply_project_patch(project, patch_toggle_day(project, "t1", 4))
        assert project.tasks[0].marked_days == [4]


class TestWindows:
    """Tests for the interactive and print windows."""

    def test_timeline_length(self):
        assert timeline_length(0) == 365
        assert timeline_length(-20) == 365
        assert timeline_length(400) == 460

    def test_scroll_clamps_at_end(self):
        """Scrolling right repeatedly stops at 365 - 21 = 344."""
        view = 0
        for _ in range(100):
            view = scroll_view(view, "right", 365)
            assert view <= 344
        assert view == 344

    def test_scroll_clamps_at_start(self):
        assert scroll_view(3, "left", 365) == 0
        assert scroll_view(14, "left", 365) == 7

    def test_clamp_short_timeline(self):
        assert clamp_view_start(50, 10) == 0

    def test_interactive_window_is_21_days(self):
        project = _project()
        window = interactive_window(project, 7, START)
        assert (window.first, window.last) == (7, 27)
        assert len(window) == 21

    def test_interactive_window_clamps_view(self):
        window = interactive_window(_project(), 1000, START)
        assert window == DayWindow(344, 364)

    def test_print_window_reference_case(self):
        """Holiday 40 dominates milestone 10, deadline 20, marks 5-7 and today 15."""
        project = _project(
            tasks=[_task(status="in-progress", marked=[5, 6, 7], deadline=20)],
            milestones=[Milestone(id="m1", label="Check", day=10)],
            holidays=[40],
        )
        today = START + timedelta(days=15)
        assert max_referenced_offset(project, days_elapsed(START, today)) == 40
        window = print_window(project, today)
        assert (window.first, window.last) == (0, 47)
        assert len(window) == 48

    def test_print_window_covers_today(self):
        window = print_window(_project(), START + timedelta(days=100))
        assert window == DayWindow(0, 107)

    def test_print_window_empty_project_not_started(self):
        window = print_window(_project(), START - timedelta(days=10))
        assert window == DayWindow(0, 7)

    def test_day_columns_flags(self):
        project = _project(
            milestones=[Milestone(id="a", label="First", day=2), Milestone(id="b", label="Second", day=2)],
            holidays=[3],
        )
        cols = day_columns(project, DayWindow(0, 6), START + timedelta(days=1))
        assert [c["offset"] for c in cols] == list(range(7))
        assert cols[1]["is_today"] and not cols[0]["is_today"]
        assert cols[2]["milestone"].label == "First"
        assert cols[2]["milestone_count"] == 2
        assert cols[3]["is_holiday"]
        assert cols[6]["is_sunday"]  # 2025-01-26
        assert cols[0]["label"] == "Jan 20"

    def test_advancing_clock_moves_today_and_deadline_flags(self):
        """Recomputing with a later clock moves the today column without touching data."""
        clock = FixedClock(datetime(2025, 1, 21, 23, 59))
        project = _project(tasks=[_task(deadline=3)])
        window = DayWindow(0, 6)

        def today_offsets():
            return [c["offset"] for c in day_columns(project, window, clock.today()) if c["is_today"]]

        def alert():
            return deadline_status(project.tasks[0], today_index(days_elapsed(START, clock.now())))

        assert today_offsets() == [1]
        assert alert() == "warning"
        clock.advance(minutes=2)
        assert today_offsets() == [2]
        clock.advance(days=2)
        assert today_offsets() == [4]
        assert alert() == "overdue"
        assert project.tasks[0].deadline == 3

    def test_today_marker_on_day_zero_before_start(self):
        cols = day_columns(_project(), DayWindow(0, 2), START - timedelta(days=10))
        assert [c["is_today"] for c in cols] == [True, False, False]

    def test_task_cells_hide_marks_under_holiday(self):
        project = _project(holidays=[2])
        task = _task(status="in-progress", marked=[1, 2], deadline=3)
        cells = task_cells(project, task, DayWindow(0, 3))
        assert [c["marked"] for c in cells] == [False, True, False, False]
        assert [c["clickable"] for c in cells] == [True, True, False, True]
        assert cells[3]["deadline"]


class TestProgress:
    """Tests for progress aggregation."""

    def test_all_completed(self):
        assert progress_percent([_task(status="completed"), _task(status="completed")]) == 100

    def test_all_upcoming(self):
        assert progress_percent([_task(), _task()]) == 0

    def test_one_of_two_in_progress(self):
        assert progress_percent([_task(status="in-progress", marked=[0]), _task()]) == 25

    def test_no_tasks(self):
        assert progress_percent([]) == 0

    def test_rounds_half_up(self):
        """0.5 / 4 = 12.5 % rounds to 13."""
        tasks = [_task(status="in-progress", marked=[0])] + [_task() for _ in range(3)]
        assert progress_percent(tasks) == 13

    def test_status_bucket(self):
        assert project_status_bucket([_task(status="completed")]) == "completed"
        assert project_status_bucket([]) == "completed"
        assert project_status_bucket([_task(status="completed"), _task()]) == "in-progress"
        assert project_status_bucket([_task(status="in-progress", marked=[1]), _task()]) == "in-progress"
        assert project_status_bucket([_task(), _task()]) == "not-started"

    def test_current_task_label(self):
        tasks = [
            _task(name="A", status="completed"),
            _task(name="B"),
            _task(name="C", status="in-progress", marked=[1]),
        ]
        assert current_task_label(tasks) == "C"
        assert current_task_label(tasks[:2]) == "B"
        assert current_task_label(tasks[:1]) == ALL_TASKS_COMPLETED

    def test_template_scenario(self):
        """Project starting today, 'Editing' marked on 0-2: 7 % overall."""
        clock = FixedClock(datetime(2025, 1, 20, 10, 30))
        project = new_project("Villa", "Private Client", "1:50", clock.today())
        editing = next(t for t in project.tasks if t.name.startswith("Editing"))
        for offset in (0, 1, 2):
            project = apply_project_patch(project, patch_toggle_day(project, editing.id, offset))

        editing = next(t for t in project.tasks if t.id == editing.id)
        t_idx = today_index(days_elapsed(project.start_date, clock.now()))
        assert editing.marked_days == [0, 1, 2]
        assert editing.status == "in-progress"
        assert deadline_status(editing, t_idx) == "none"
        assert len(project.tasks) == 7
        assert progress_percent(project.tasks) == 7


class TestProjectPatch:
    """Tests for apply_project_patch, update_project and patch builders."""

    def test_patch_is_pure(self):
        project = _project(tasks=[_task()])
        updated = apply_project_patch(project, {"name": "Tower"})
        assert updated.name == "Tower"
        assert project.name == "Villa"

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            apply_project_patch(_project(), {"owner_id": "someone"})

    def test_start_date_alias_and_datetime(self):
        updated = apply_project_patch(_project(), {"startDate": datetime(2025, 2, 1, 15, 0)})
        assert updated.start_date == date(2025, 2, 1)

    def test_status_rederived_on_patch(self):
        updated = apply_project_patch(_project(), {"tasks": [_task(status="upcoming", marked=[2])]})
        assert updated.tasks[0].status == "in-progress"

    def test_start_change_keeps_offsets(self):
        """Offsets are relative: moving the start moves every marked date."""
        project = _project(tasks=[_task(status="in-progress", marked=[2])])
        moved = apply_project_patch(project, {"start_date": START + timedelta(days=5)})
        assert moved.tasks[0].marked_days == [2]
        assert from_offset(2, moved.start_date) == START + timedelta(days=7)

    def test_rebase_keeps_calendar_dates(self):
        project = _project(
            tasks=[_task(status="in-progress", marked=[1, 6], deadline=8)],
            milestones=[Milestone(id="m", label="Review", day=2)],
            holidays=[3, 9],
        )
        new_start = START + timedelta(days=2)
        moved = apply_project_patch(project, rebase_start_date(project, new_start))
        assert moved.start_date == new_start
        assert moved.tasks[0].marked_days == [4]
        assert moved.tasks[0].deadline == 6
        assert [m.day for m in moved.milestones] == [0]
        assert moved.holidays == [1, 7]
        assert from_offset(4, new_start) == from_offset(6, START)

    def test_toggle_unknown_task_is_noop(self):
        project = _project(tasks=[_task()])
        assert apply_project_patch(project, patch_toggle_day(project, "missing", 1)).tasks == project.tasks

    def test_toggle_holiday_is_noop(self):
        project = _project(tasks=[_task()], holidays=[1])
        assert apply_project_patch(project, patch_toggle_day(project, "t1", 1)).tasks[0].marked_days == []

    def test_add_and_delete_task(self):
        project = _project()
        project = apply_project_patch(project, patch_add_task(project, "Electrical", "purple"))
        assert [t.name for t in project.tasks] == ["Electrical"]
        project = apply_project_patch(project, patch_delete_task(project, project.tasks[0].id))
        assert project.tasks == []

    def test_add_task_requires_name(self):
        with pytest.raises(ValidationError):
            patch_add_task(_project(), "   ")

    def test_patch_task_runs_operation(self):
        project = _project(tasks=[_task()])
        project = apply_project_patch(project, patch_task(project, "t1", mark_complete))
        assert project.tasks[0].status == "completed"

    def test_calendar_dates_become_offsets(self):
        project = _project()
        project = apply_project_patch(project, patch_add_holiday(project, START + timedelta(days=4)))
        project = apply_project_patch(project, patch_add_milestone(project, "Delivery", START + timedelta(days=9), "delivery"))
        assert project.holidays == [4]
        assert project.milestones[0].day == 9

    def test_dates_before_start_are_rejected(self):
        """Nothing can be placed left of day 0, where no view could show it."""
        project = _project(tasks=[_task()])
        before = START - timedelta(days=1)
        with pytest.raises(ValidationError):
            patch_add_holiday(project, before)
        with pytest.raises(ValidationError):
            patch_add_milestone(project, "Kickoff", before)
        with pytest.raises(ValidationError):
            patch_set_deadline(project, "t1", before)
        with pytest.raises(ValidationError):
            patch_add_holiday(project, -3)

    def test_start_date_itself_is_accepted(self):
        project = _project(tasks=[_task()])
        project = apply_project_patch(project, patch_add_holiday(project, START))
        project = apply_project_patch(project, patch_set_deadline(project, "t1", START))
        assert project.holidays == [0]
        assert project.tasks[0].deadline == 0
        assert print_window(project, START) == DayWindow(0, 7)

    def test_set_deadline_by_date_and_clear(self):
        project = _project(tasks=[_task()])
        project = apply_project_patch(project, patch_set_deadline(project, "t1", START + timedelta(days=12)))
        assert project.tasks[0].deadline == 12
        project = apply_project_patch(project, patch_set_deadline(project, "t1", None))
        assert project.tasks[0].deadline is None

    def test_settings_validation(self):
        with pytest.raises(ValidationError):
            patch_settings("Villa", "", "1:50", START)
        assert patch_settings(" Villa ", "Client", "1:50", START)["name"] == "Villa"

    def test_update_without_store(self):
        result = update_project(_project(), {"scale": "1:100"})
        assert result.ok
        assert result.project.scale == "1:100"

    def test_update_keeps_optimistic_state_on_failure(self):
        def failing_save(_project):
            raise StoreError("disk full")

        result = update_project(_project(), {"scale": "1:100"}, save=failing_save)
        assert not result.ok
        assert result.error == SAVE_FAILED_MESSAGE
        assert result.project.scale == "1:100"

    def test_update_reports_missing_project(self):
        result = update_project(_project(), {"scale": "1:100"}, save=lambda _p: None)
        assert result.error == SAVE_FAILED_MESSAGE
        assert result.project.scale == "1:100"

    def test_update_returns_saved_project(self):
        def save(p):
            p.updated_at = "stamp"
            return p

        result = update_project(_project(), {"scale": "1:100"}, save=save)
        assert result.ok
        assert result.project.updated_at == "stamp"


class TestConstructors:
    """Tests for constructors and serialization."""

    def test_new_project_template(self):
        project = new_project("Villa", "Private Client", "1:50", START)
        assert len(project.tasks) == 7
        assert all(t.status == "upcoming" for t in project.tasks)
        assert project.tasks[0].name == "Information Received"

    def test_new_project_empty(self):
        assert new_project("Villa", "Client", "1:50", START, use_template=False).tasks == []

    @pytest.mark.parametrize("fields", [("", "C", "1:50"), ("N", " ", "1:50"), ("N", "C", "")])
    def test_new_project_requires_fields(self, fields):
        with pytest.raises(ValidationError):
            new_project(*fields, start_date=START)

    def test_new_task_strips_name(self):
        assert new_task("  Landscaping ").name == "Landscaping"

    def test_task_from_legacy_dict(self):
        task = Task.from_dict({"id": "1", "name": "x", "status": "weird", "markedDays": [3, 1, 3, "2"]})
        assert task.marked_days == [1, 2, 3]
        assert task.status == "in-progress"

    def test_project_dict_round_trip(self):
        project = _project(
            tasks=[_task(status="completed", marked=[1], deadline=4)],
            milestones=[Milestone(id="m", label="Review", day=2, type="inspection")],
            holidays=[5],
        )
        assert Project.from_dict(project.to_dict()) == project


class TestDashboardHelpers:
    """Tests for search and labels."""

    def test_search_matches_name_client_scale(self):
        projects = [_project(id="a", name="Villa"), _project(id="b", name="Tower", client="ACME", scale="1:200")]
        assert [p.id for p in search_projects(projects, "acme")] == ["b"]
        assert [p.id for p in search_projects(projects, "1:50")] == ["a"]
        assert len(search_projects(projects, "")) == 2

    def test_days_counter_label(self):
        assert days_counter_label(0) == "Day 1"
        assert days_counter_label(-3) == "3 days to start"
