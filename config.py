# config.py
from __future__ import annotations

import collections
import os
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent

# Data directory for internet deployments:
# - default: app folder (works locally)
# - optional: TIMELINE_DATA_DIR pointing to a writable path (e.g. a mounted volume)
DATA_DIR = Path(os.getenv("TIMELINE_DATA_DIR", str(APP_DIR))).resolve()

PROJECTS_FILE = DATA_DIR / "projects.json"
USERS_FILE = DATA_DIR / "users.json"

LOG_LEVEL = os.getenv("TIMELINE_LOG_LEVEL", "INFO").upper()

TOKEN_TTL_DAYS = int(os.getenv("TIMELINE_TOKEN_TTL_DAYS", "30"))

# clock refresh for the "today" marker, seconds
CLOCK_REFRESH_S = 60


# --- Default Data ---

DEFAULT_CLIENT = "Private Client"

# Template for a new project. Ids are per-project, so plain numbers are fine.
default_tasks_data = [
    {"id": "1", "name": "Information Received", "color": "green"},
    {"id": "2", "name": "Editing (Computer Works)", "color": "blue"},
    {"id": "3", "name": "Laser Cutting & 3D Printing", "color": "yellow"},
    {"id": "4", "name": "Fabrication & Assembly", "color": "orange"},
    {"id": "5", "name": "Electrical", "color": "purple"},
    {"id": "6", "name": "Landscaping", "color": "cyan"},
    {"id": "7", "name": "Delivery & Shipping", "color": "red"},
]

task_colors = collections.OrderedDict([
    ("green", "#10b981"),
    ("blue", "#3b82f6"),
    ("yellow", "#f59e0b"),
    ("red", "#ef4444"),
    ("purple", "#a855f7"),
    ("orange", "#f97316"),
    ("cyan", "#06b6d4"),
])

milestone_colors = {
    "delivery": "#3b82f6",
    "inspection": "#f59e0b",
    "progress": "#10b981",
    "completion": "#a855f7",
}

status_colors = {
    "completed": "#10b981",
    "in-progress": "#f59e0b",
    "not-started": "#9ca3af",
}

status_labels = {
    "completed": "Completed",
    "in-progress": "In Progress",
    "not-started": "Not Started",
}

HOLIDAY_COLOR = "#fde68a"
TODAY_COLOR = "#2563eb"
SUNDAY_COLOR = "#f3f4f6"
