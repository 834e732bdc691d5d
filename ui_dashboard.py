# ui_dashboard.py
from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from config import DEFAULT_CLIENT, status_colors, status_labels
from core import ValidationError, new_project, project_summary, search_projects


def _status_badge(status: str) -> str:
    color = status_colors.get(status, "#9ca3af")
    label = status_labels.get(status, status)
    return f"<span style='background:{color};color:white;border-radius:6px;padding:2px 8px;font-size:12px'>{label}</span>"


def _progress_figure(rows: List[Dict[str, Any]]):
    rows = sorted(rows, key=lambda r: r["progress"])
    fig = go.Figure()
    fig.add_trace(
        go.Bar(
            x=[r["progress"] for r in rows],
            y=[r["name"] for r in rows],
            orientation="h",
            marker_color=[status_colors.get(r["status"], "#9ca3af") for r in rows],
            hovertext=[f"{r['client']} · {r['current_task']}" for r in rows],
            hoverinfo="text+x",
        )
    )
    fig.update_layout(
        xaxis=dict(range=[0, 100], title="Progress %"),
        margin=dict(l=40, r=20, t=30, b=40),
        height=max(220, 40 * len(rows) + 80),
    )
    return fig


def _render_new_project(ctx: dict) -> None:
    today = ctx["clock"].today()
    with st.expander("➕ New project", expanded=not ctx["projects"]):
        with st.form("new_project_form"):
            name = st.text_input("Project name", placeholder="e.g., LACASA - DUBAI LIVING VILLA")
            client = st.text_input("Client name", value=DEFAULT_CLIENT)
            scale = st.text_input("Scale", placeholder="e.g., 1:50")
            start = st.date_input("Start date", value=today)
            use_template = st.checkbox("Start from the default task list", value=True)
            submitted = st.form_submit_button("Create project")
        if submitted:
            try:
                project = new_project(name, client, scale, start, use_template=use_template)
            except ValidationError as e:
                st.warning(str(e))
                return
            ctx["create_project"](project)


def _render_card(ctx: dict, r: Dict[str, Any]) -> None:
    with ctx["safe_container"](border=True):
        st.markdown(f"**{r['name']}**  \n{r['client']} · Scale {r['scale'] or '-'}")
        st.markdown(_status_badge(r["status"]), unsafe_allow_html=True)
        st.progress(r["progress"] / 100.0, text=f"{r['progress']}%")
        st.caption(f"Current: {r['current_task']}")
        st.caption(f"Start {r['start_date'].strftime('%b %d, %Y')} · {r['day_label']}")
        if r["overdue"] or r["warning"]:
            st.caption(f"⚠️ {r['overdue']} overdue · {r['warning']} due soon")
        c1, c2 = st.columns(2)
        if c1.button("Open", key=f"dash_open_{r['id']}", use_container_width=True):
            ctx["open_project"](r["id"])
        with c2.popover("🗑️", use_container_width=True):
            st.error("Deleting removes the project and all of its tasks.")
            confirm = st.checkbox("I confirm", key=f"dash_del_confirm_{r['id']}")
            if st.button("Delete now", key=f"dash_del_{r['id']}", disabled=not confirm):
                ctx["delete_project"](r["id"])


def render(ctx: dict) -> None:
    today = ctx["clock"].today()
    user = ctx["user"]

    st.title("Project Dashboard")
    st.caption(f"Welcome, {user.username}.")

    _render_new_project(ctx)

    projects = ctx["projects"]
    if not projects:
        st.info("No projects yet. Create your first one above.")
        return

    c1, c2 = st.columns([6, 2])
    query = c1.text_input("Search", placeholder="Name, client or scale…", key="dash_search")
    with c2:
        view = ctx["segmented"]("View", ["Grid", "List"], "Grid", key="dash_view")

    shown = search_projects(projects, query)
    rows = [project_summary(p, today) for p in shown]

    k1, k2, k3 = st.columns(3)
    k1.metric("Projects", len(rows))
    k2.metric("In progress", sum(1 for r in rows if r["status"] == "in-progress"))
    k3.metric("Completed", sum(1 for r in rows if r["status"] == "completed"))

    if not rows:
        st.caption("No project matches the search.")
        return

    if view == "List":
        df = pd.DataFrame(
            [
                {
                    "Project": r["name"],
                    "Client": r["client"],
                    "Scale": r["scale"],
                    "Start": r["start_date"].isoformat(),
                    "Days": r["day_label"],
                    "Status": status_labels.get(r["status"], r["status"]),
                    "Current task": r["current_task"],
                    "Progress %": r["progress"],
                }
                for r in rows
            ]
        )
        st.dataframe(df, use_container_width=True, hide_index=True)
        labels = [f"{r['name']} · {r['client']}" for r in rows]
        pick = st.selectbox("Open project", options=labels, key="dash_pick")
        if st.button("Open selected", key="dash_open_selected"):
            ctx["open_project"](rows[labels.index(pick)]["id"])
    else:
        cols = st.columns(3)
        for i, r in enumerate(rows):
            with cols[i % 3]:
                _render_card(ctx, r)

    with st.expander("Progress overview", expanded=False):
        st.plotly_chart(_progress_figure(rows), use_container_width=True)
