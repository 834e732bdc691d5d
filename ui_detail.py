# ui_detail.py
from __future__ import annotations

import streamlit as st

from config import task_colors
from core import (
    DEADLINE_OVERDUE,
    DEADLINE_WARNING,
    STATUS_COMPLETED,
    Project,
    ValidationError,
    clear_days,
    clear_notes,
    days_elapsed,
    deadline_status,
    from_offset,
    mark_complete,
    patch_delete_task,
    patch_set_deadline,
    patch_task,
    rename_task,
    reopen_task,
    set_color,
    set_notes,
    task_span,
    today_index,
)

STATUS_ICON = {"completed": "✅", "in-progress": "🕒", "upcoming": "◯"}


def _fmt(d) -> str:
    return f"{d.strftime('%b')} {d.day}"


def render(ctx: dict, project: Project) -> None:
    task = next((t for t in project.tasks if t.id == st.session_state.selected_task), None)
    if task is None:
        st.session_state.selected_task = None
        return

    apply_update = ctx["apply_update"]
    today = ctx["clock"].today()
    t_idx = today_index(days_elapsed(project.start_date, today))

    with ctx["safe_container"](border=True):
        top_l, top_r = st.columns([6, 4])
        with top_l:
            st.markdown(f"### {STATUS_ICON.get(task.status, '')} {task.name}")
            span = task_span(task)
            if span:
                first, last, count = span
                st.caption(
                    f"{_fmt(from_offset(first, project.start_date))} - {_fmt(from_offset(last, project.start_date))}"
                    f" ({count} days marked)"
                )
            else:
                st.caption("Click on timeline cells to mark days for this task")

            alert = deadline_status(task, t_idx)
            if alert == DEADLINE_OVERDUE:
                st.error("Task is overdue!")
            elif alert == DEADLINE_WARNING:
                st.warning("Deadline approaching!")

        with top_r:
            st.metric("Days marked", len(task.marked_days))
            b1, b2 = st.columns(2)
            if b1.button("Clear days", key=f"det_clear_{task.id}", disabled=not task.marked_days):
                apply_update(patch_task(project, task.id, clear_days))
            if task.status == STATUS_COMPLETED:
                if b2.button("Reopen", key=f"det_reopen_{task.id}"):
                    apply_update(patch_task(project, task.id, reopen_task))
            elif b2.button("Mark complete", key=f"det_done_{task.id}"):
                apply_update(patch_task(project, task.id, mark_complete))

        st.markdown("---")
        notes = st.text_area("Notes", value=task.notes, placeholder="Add notes for this task...", key=f"det_notes_{task.id}")
        n1, n2, _ = st.columns([1, 1, 6])
        if n1.button("Save notes", key=f"det_notes_save_{task.id}", disabled=notes == task.notes):
            apply_update(patch_task(project, task.id, set_notes, notes))
        if n2.button("Clear notes", key=f"det_notes_clear_{task.id}", disabled=not task.notes):
            apply_update(patch_task(project, task.id, clear_notes))

        st.markdown("---")
        d1, d2, d3 = st.columns([3, 1, 1])
        current = from_offset(task.deadline, project.start_date) if task.deadline is not None else max(today, project.start_date)
        picked = d1.date_input("Deadline", value=current, min_value=project.start_date, key=f"det_deadline_{task.id}")
        if d2.button("Set deadline", key=f"det_deadline_set_{task.id}"):
            try:
                patch = patch_set_deadline(project, task.id, picked)
            except ValidationError as e:
                st.warning(str(e))
            else:
                apply_update(patch)
        if d3.button("Clear", key=f"det_deadline_clear_{task.id}", disabled=task.deadline is None):
            apply_update(patch_set_deadline(project, task.id, None))

        with st.expander("Edit task", expanded=False):
            name = st.text_input("Task name", value=task.name, key=f"det_name_{task.id}")
            colors = list(task_colors.keys())
            color = st.selectbox(
                "Color",
                options=colors,
                index=colors.index(task.color) if task.color in colors else 0,
                key=f"det_color_{task.id}",
            )
            e1, e2 = st.columns(2)
            if e1.button("Save", key=f"det_edit_save_{task.id}"):
                try:
                    renamed = rename_task(task, name)
                except ValidationError as e:
                    st.warning(str(e))
                else:
                    apply_update(patch_task(project, task.id, lambda _t: set_color(renamed, color)))
            with e2.popover("🗑️ Delete task"):
                confirm = st.checkbox("I confirm", key=f"det_del_confirm_{task.id}")
                if st.button("Delete now", key=f"det_del_{task.id}", disabled=not confirm):
                    st.session_state.selected_task = None
                    apply_update(patch_delete_task(project, task.id))
