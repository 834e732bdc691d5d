# ui_timeline.py
from __future__ import annotations

from typing import Any, Dict

import streamlit as st

from config import CLOCK_REFRESH_S, task_colors
from core import (
    DEADLINE_OVERDUE,
    DEADLINE_WARNING,
    MILESTONE_TYPES,
    Project,
    ValidationError,
    day_columns,
    days_counter_label,
    days_elapsed,
    deadline_status,
    from_offset,
    interactive_window,
    patch_add_holiday,
    patch_add_milestone,
    patch_add_task,
    patch_delete_milestone,
    patch_remove_holiday,
    patch_settings,
    patch_toggle_day,
    progress_percent,
    rebase_start_date,
    scroll_view,
    task_cells,
    timeline_length,
    today_index,
)

COLOR_EMOJI = {
    "green": "🟩",
    "blue": "🟦",
    "yellow": "🟨",
    "red": "🟥",
    "purple": "🟪",
    "orange": "🟧",
    "cyan": "🩵",
}

MILESTONE_EMOJI = {
    "delivery": "🚚",
    "inspection": "🔍",
    "progress": "🚩",
    "completion": "🏁",
}


def _header(ctx: dict) -> None:
    project = ctx["current_project"]()
    if project is None:
        return
    today = ctx["clock"].today()
    elapsed = days_elapsed(project.start_date, today)

    st.markdown(f"## {project.name or 'No Project Name'}")
    c1, c2, c3, c4 = st.columns([3, 2, 2, 3])
    c1.caption(f"Client: {project.client}")
    c2.caption(f"Scale: {project.scale or '-'}")
    c3.caption(f"Start: {project.start_date.strftime('%b')} {project.start_date.day}")
    label = days_counter_label(elapsed)
    if elapsed < 0:
        c4.markdown(f"<span style='color:#ef4444;font-weight:700'>{label}</span>", unsafe_allow_html=True)
    else:
        c4.markdown(f"**{label}**")

    pct = progress_percent(project.tasks)
    st.progress(pct / 100.0, text=f"Overall progress {pct}%")


def _render_settings(ctx: dict, project: Project) -> None:
    with st.expander("⚙️ Project settings", expanded=False):
        with st.form(f"settings_{project.id}"):
            name = st.text_input("Project name", value=project.name)
            client = st.text_input("Client name", value=project.client)
            scale = st.text_input("Scale", value=project.scale)
            start = st.date_input("Start date", value=project.start_date)
            keep_dates = st.checkbox(
                "Keep marked days, milestones and holidays on their calendar dates",
                value=False,
                help="Off: everything stays at the same day number and moves with the start date.",
            )
            submitted = st.form_submit_button("Save settings")
        if submitted:
            try:
                patch = patch_settings(name, client, scale, start)
            except ValidationError as e:
                st.warning(str(e))
                return
            if keep_dates and start != project.start_date:
                patch.update(rebase_start_date(project, start))
            ctx["apply_update"](patch)


def _render_add_forms(ctx: dict, project: Project) -> None:
    today = ctx["clock"].today()
    c1, c2, c3 = st.columns(3)

    with c1.popover("➕ Add task", use_container_width=True):
        name = st.text_input("Task name", key="add_task_name")
        color = st.selectbox(
            "Color",
            options=list(task_colors.keys()),
            format_func=lambda c: f"{COLOR_EMOJI.get(c, '')} {c.title()}",
            key="add_task_color",
        )
        if st.button("Add task", key="add_task_do"):
            try:
                patch = patch_add_task(project, name, color)
            except ValidationError as e:
                st.warning(str(e))
            else:
                ctx["apply_update"](patch)

    with c2.popover("🚩 Add milestone", use_container_width=True):
        label = st.text_input("Label", key="add_ms_label")
        when = st.date_input("Date", value=max(today, project.start_date), min_value=project.start_date, key="add_ms_date")
        mtype = st.selectbox("Type", options=list(MILESTONE_TYPES), index=2, key="add_ms_type")
        if st.button("Add milestone", key="add_ms_do"):
            try:
                patch = patch_add_milestone(project, label, when, mtype)
            except ValidationError as e:
                st.warning(str(e))
            else:
                ctx["apply_update"](patch)

    with c3.popover("☕ Holidays", use_container_width=True):
        when = st.date_input(
            "Holiday date", value=max(today, project.start_date), min_value=project.start_date, key="add_hol_date"
        )
        if st.button("Set holiday", key="add_hol_do"):
            try:
                patch = patch_add_holiday(project, when)
            except ValidationError as e:
                st.warning(str(e))
            else:
                ctx["apply_update"](patch)
        if project.holidays:
            st.markdown("**Current holidays**")
            for offset in project.holidays:
                d = from_offset(offset, project.start_date)
                h1, h2 = st.columns([4, 1])
                h1.caption(f"{d.strftime('%a, %b')} {d.day} (day {offset + 1})")
                if h2.button("✕", key=f"hol_rm_{offset}"):
                    ctx["apply_update"](patch_remove_holiday(project, offset))


def _column_header(col: Dict[str, Any]) -> str:
    mark = ""
    if col["is_today"]:
        mark = "📍"
    elif col["is_holiday"]:
        mark = "☕"
    elif col["milestone"] is not None:
        mark = MILESTONE_EMOJI.get(col["milestone"].type, "🚩")
    day = f"**{col['date'].day}**" if not col["is_sunday"] else f"*{col['date'].day}*"
    return f"{col['weekday'][:2]}  \n{day}  \n{mark}"


def _cell_label(task_color: str, cell: Dict[str, Any]) -> str:
    if cell["holiday"]:
        return "☕"
    if cell["marked"]:
        return COLOR_EMOJI.get(task_color, "🟩")
    if cell["deadline"]:
        return "⚑"
    return "·"


def _render_grid(ctx: dict) -> None:
    project = ctx["current_project"]()
    if project is None or not project.tasks:
        return
    today = ctx["clock"].today()
    elapsed = days_elapsed(project.start_date, today)
    total = timeline_length(elapsed)

    nav_l, nav_mid, nav_r = st.columns([1, 6, 1])
    if nav_l.button("◀ 7 days", key="grid_left", use_container_width=True):
        st.session_state.view_start = scroll_view(st.session_state.view_start, "left", total)
        st.rerun()
    if nav_r.button("7 days ▶", key="grid_right", use_container_width=True):
        st.session_state.view_start = scroll_view(st.session_state.view_start, "right", total)
        st.rerun()

    window = interactive_window(project, st.session_state.view_start, today)
    st.session_state.view_start = window.first
    cols = day_columns(project, window, today)
    first, last = cols[0]["date"], cols[-1]["date"]
    nav_mid.caption(
        f"{first.strftime('%b')} {first.day} – {last.strftime('%b')} {last.day} · "
        f"days {window.first + 1}–{window.last + 1} of {total}"
    )
    if nav_mid.button("Jump to today", key="grid_today"):
        st.session_state.view_start = max(0, today_index(elapsed) - 3)
        st.rerun()

    widths = [4] + [1] * len(window)
    head = st.columns(widths)
    head[0].markdown("**Task**")
    for i, col in enumerate(cols):
        head[i + 1].markdown(_column_header(col))

    t_idx = today_index(elapsed)
    for task in project.tasks:
        row = st.columns(widths)
        alert = deadline_status(task, t_idx)
        flag = " ❗" if alert == DEADLINE_OVERDUE else (" ⚠️" if alert == DEADLINE_WARNING else "")
        note = " 💬" if task.notes else ""
        selected = st.session_state.selected_task == task.id
        if row[0].button(
            f"{COLOR_EMOJI.get(task.color, '')} {task.name}{flag}{note}",
            key=f"task_sel_{task.id}",
            type="primary" if selected else "secondary",
            use_container_width=True,
        ):
            st.session_state.selected_task = None if selected else task.id
            st.rerun()
        for i, cell in enumerate(task_cells(project, task, window)):
            if row[i + 1].button(
                _cell_label(task.color, cell),
                key=f"cell_{task.id}_{cell['offset']}",
                disabled=not cell["clickable"],
            ):
                ctx["apply_update"](patch_toggle_day(project, task.id, cell["offset"]))

    ms = [c for c in cols if c["milestone_count"]]
    if ms:
        st.caption(
            " · ".join(
                f"{MILESTONE_EMOJI.get(c['milestone'].type, '🚩')} {c['milestone'].label} ({c['label']})"
                + (f" +{c['milestone_count'] - 1}" if c["milestone_count"] > 1 else "")
                for c in ms
            )
        )


if hasattr(st, "fragment"):
    # periodic "now" refresh of the header and the today column; stored data is untouched
    _header = st.fragment(run_every=CLOCK_REFRESH_S)(_header)
    _render_grid = st.fragment(run_every=CLOCK_REFRESH_S)(_render_grid)


def _render_milestones(ctx: dict, project: Project) -> None:
    if not project.milestones:
        return
    with st.expander(f"Milestones ({len(project.milestones)})", expanded=False):
        for m in sorted(project.milestones, key=lambda x: x.day):
            d = from_offset(m.day, project.start_date)
            c1, c2 = st.columns([8, 1])
            c1.markdown(f"{MILESTONE_EMOJI.get(m.type, '🚩')} **{m.label}** · {m.type} · {d.strftime('%a, %b')} {d.day}")
            if c2.button("✕", key=f"ms_rm_{m.id}"):
                ctx["apply_update"](patch_delete_milestone(project, m.id))


def render(ctx: dict) -> None:
    project = ctx["current_project"]()

    top_l, top_r = st.columns([6, 2])
    with top_l:
        _header(ctx)
    with top_r:
        if st.button("🖨️ Print view", key="tl_print", use_container_width=True):
            ctx["go"]("PRINT")
        if st.button("↩️ Dashboard", key="tl_back", use_container_width=True):
            ctx["go"]("DASHBOARD")

    if st.session_state.save_error:
        st.error(st.session_state.save_error)

    _render_settings(ctx, project)
    _render_add_forms(ctx, project)

    st.markdown("---")
    if not project.tasks:
        st.info("No tasks yet. Add one to start marking days.")
    else:
        _render_grid(ctx)

    _render_milestones(ctx, project)

    if st.session_state.selected_task:
        from ui_detail import render as render_detail

        render_detail(ctx, project)
