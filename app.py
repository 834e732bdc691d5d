# app.py
from __future__ import annotations

import logging
from typing import Any, Optional

import streamlit as st

from auth import AuthService, Session
from config import LOG_LEVEL, PROJECTS_FILE, USERS_FILE
from core import (
    Clock,
    Project,
    StoreError,
    SystemClock,
    ValidationError,
    update_project,
)
from storage import ProjectStore

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("timeline")


# =========================
# Config / CSS
# =========================
st.set_page_config(page_title="Project Control", layout="wide")

st.markdown(
    """
<style>
.block-container { padding-top: 1.2rem; padding-bottom: 2rem; }
h1, h2, h3 { letter-spacing: -0.02em; }
.kpi { font-size: 22px; font-weight: 700; letter-spacing: -0.02em; }
.kpi-label { font-size: 12px; opacity: .65; }
hr { opacity: .25; }
</style>
""",
    unsafe_allow_html=True,
)

store = ProjectStore(PROJECTS_FILE)
auth = AuthService(USERS_FILE)


# =========================
# Session init
# =========================
if "clock" not in st.session_state:
    st.session_state.clock = SystemClock()
if "token" not in st.session_state:
    st.session_state.token = None
if "user" not in st.session_state:
    st.session_state.user = None
if "projects" not in st.session_state:
    st.session_state.projects = []
if "page" not in st.session_state:
    st.session_state.page = "LOGIN"
if "open_project" not in st.session_state:
    st.session_state.open_project = None
if "view_start" not in st.session_state:
    st.session_state.view_start = 0
if "selected_task" not in st.session_state:
    st.session_state.selected_task = None
if "save_error" not in st.session_state:
    st.session_state.save_error = None

clock: Clock = st.session_state.clock


# =========================
# Auth / projects
# =========================
def reload_projects() -> None:
    user: Optional[Session] = st.session_state.user
    st.session_state.projects = store.list(user.user_id) if user else []


def sign_in(session: Session) -> None:
    st.session_state.token = session.token
    st.session_state.user = session
    st.session_state.page = "DASHBOARD"
    reload_projects()
    st.rerun()


def sign_out() -> None:
    if st.session_state.token:
        auth.logout(st.session_state.token)
    st.session_state.token = None
    st.session_state.user = None
    st.session_state.projects = []
    st.session_state.open_project = None
    st.session_state.page = "LOGIN"
    st.rerun()


# Token is re-verified on every run, like a bearer header per request.
if st.session_state.token:
    verified = auth.verify_token(st.session_state.token)
    if verified is None:
        logger.info("Session token expired")
        st.session_state.token = None
        st.session_state.user = None
        st.session_state.page = "LOGIN"
    else:
        st.session_state.user = verified
elif st.session_state.page != "LOGIN":
    st.session_state.page = "LOGIN"


def current_project() -> Optional[Project]:
    pid = st.session_state.open_project
    return next((p for p in st.session_state.projects if p.id == pid), None)


def _replace_local(project: Project) -> None:
    st.session_state.projects = [project if p.id == project.id else p for p in st.session_state.projects]


def _save(project: Project) -> Optional[Project]:
    return store.save(st.session_state.user.user_id, project)


def apply_update(patch: dict[str, Any]) -> None:
    """Single mutation path for the open project: merge, keep locally, persist."""
    project = current_project()
    if project is None:
        return
    try:
        result = update_project(project, patch, save=_save)
    except ValidationError as e:
        st.session_state.save_error = str(e)
        st.rerun()
    _replace_local(result.project)
    st.session_state.save_error = result.error
    st.rerun()


def create_project(project: Project) -> None:
    try:
        saved = store.create(st.session_state.user.user_id, project)
    except StoreError as e:
        logger.warning("Creating project failed: %s", e)
        st.error("Failed to create project. Please try again.")
        return
    st.session_state.projects = list(st.session_state.projects) + [saved]
    open_project(saved.id)


def delete_project(project_id: str) -> None:
    try:
        store.delete(st.session_state.user.user_id, project_id)
    except StoreError as e:
        logger.warning("Deleting project failed: %s", e)
        st.error("Failed to delete project. Please try again.")
        return
    st.session_state.projects = [p for p in st.session_state.projects if p.id != project_id]
    if st.session_state.open_project == project_id:
        st.session_state.open_project = None
        st.session_state.page = "DASHBOARD"
    st.rerun()


def open_project(project_id: str) -> None:
    st.session_state.open_project = project_id
    st.session_state.view_start = 0
    st.session_state.selected_task = None
    st.session_state.save_error = None
    st.session_state.page = "TIMELINE"
    st.rerun()


def go(page: str) -> None:
    st.session_state.page = page
    st.rerun()


# =========================
# UI helpers
# =========================
def safe_container(border: bool = False):
    try:
        return st.container(border=border)
    except TypeError:
        return st.container()


def segmented(label: str, options: list[str], default: str, key: Optional[str] = None):
    if hasattr(st, "segmented_control"):
        return st.segmented_control(label, options, default=default, key=key)
    return st.radio(label, options, index=options.index(default), horizontal=True, key=key)


# =========================
# Sidebar
# =========================
if st.session_state.user is not None:
    st.sidebar.markdown("### Project Control")
    st.sidebar.caption(f"Signed in as **{st.session_state.user.username}**")

    if st.sidebar.button("Dashboard", key="nav_dashboard", use_container_width=True):
        go("DASHBOARD")
    if current_project() is not None:
        if st.sidebar.button("Timeline", key="nav_timeline", use_container_width=True):
            go("TIMELINE")
        if st.sidebar.button("Print view", key="nav_print", use_container_width=True):
            go("PRINT")

    st.sidebar.markdown("---")
    if st.sidebar.button("Logout", key="nav_logout", use_container_width=True):
        sign_out()


# =========================
# Context for pages
# =========================
ctx = {
    "clock": clock,
    "auth": auth,
    "store": store,
    "user": st.session_state.user,
    "sign_in": sign_in,
    "sign_out": sign_out,
    "projects": st.session_state.projects,
    "current_project": current_project,
    "apply_update": apply_update,
    "create_project": create_project,
    "delete_project": delete_project,
    "open_project": open_project,
    "reload_projects": reload_projects,
    "go": go,
    "safe_container": safe_container,
    "segmented": segmented,
}

page = st.session_state.page


# =========================
# Routing
# =========================
if page == "LOGIN":
    from ui_login import render

    render(ctx)

elif page == "DASHBOARD":
    from ui_dashboard import render

    render(ctx)

elif page == "TIMELINE" and current_project() is not None:
    from ui_timeline import render

    render(ctx)

elif page == "PRINT" and current_project() is not None:
    from ui_print import render

    render(ctx)

else:
    st.session_state.page = "DASHBOARD" if st.session_state.user else "LOGIN"
    st.rerun()
