# ui_print.py
from __future__ import annotations

import io
from typing import Any, Dict, List

import matplotlib.pyplot as plt
import pandas as pd
import streamlit as st
from matplotlib.patches import Patch, Rectangle

from config import HOLIDAY_COLOR, SUNDAY_COLOR, TODAY_COLOR, milestone_colors
from core import (
    Project,
    day_columns,
    days_counter_label,
    days_elapsed,
    deadline_status,
    from_offset,
    print_window,
    progress_percent,
    task_cells,
    task_color_hex,
    task_span,
    today_index,
)


def build_print_figure(project: Project, today: Any):
    """Landscape grid over the full print window: one row per task, one column per day."""
    window = print_window(project, today)
    cols = day_columns(project, window, today)
    n_days = len(window)
    n_tasks = max(1, len(project.tasks))

    fig_w = min(max(11.0, 0.28 * n_days + 4.0), 60.0)
    fig_h = max(3.5, 0.45 * n_tasks + 2.2)
    fig, ax = plt.subplots(figsize=(fig_w, fig_h))

    # column backgrounds
    for i, col in enumerate(cols):
        if col["is_holiday"]:
            ax.add_patch(Rectangle((i, 0), 1, n_tasks, facecolor=HOLIDAY_COLOR, hatch="///", edgecolor="#d1d5db", linewidth=0))
        elif col["is_sunday"]:
            ax.add_patch(Rectangle((i, 0), 1, n_tasks, facecolor=SUNDAY_COLOR, linewidth=0))

    # marked days
    for row, task in enumerate(project.tasks):
        y = n_tasks - row - 1
        color = task_color_hex(task.color)
        for i, cell in enumerate(task_cells(project, task, window)):
            if cell["marked"]:
                ax.add_patch(Rectangle((i + 0.08, y + 0.15), 0.84, 0.7, facecolor=color, linewidth=0))
            if cell["deadline"]:
                ax.plot(i + 0.5, y + 0.5, marker="v", color="#ef4444", markersize=7)

    # today + milestones
    for i, col in enumerate(cols):
        if col["is_today"]:
            ax.add_patch(Rectangle((i, 0), 1, n_tasks, fill=False, edgecolor=TODAY_COLOR, linewidth=1.6))
        m = col["milestone"]
        if m is not None:
            ax.plot(i + 0.5, n_tasks + 0.35, marker="D", color=milestone_colors.get(m.type, "#6b7280"), markersize=7, clip_on=False)
            ax.text(i + 0.5, n_tasks + 0.75, m.label, ha="center", va="bottom", fontsize=7, rotation=30, clip_on=False)

    ax.set_xlim(0, n_days)
    ax.set_ylim(0, n_tasks)
    ax.set_xticks([i + 0.5 for i in range(n_days)])
    ax.set_xticklabels([f"{c['weekday'][:2]}\n{c['date'].day}" for c in cols], fontsize=6)
    ax.set_yticks([n_tasks - r - 0.5 for r in range(len(project.tasks))])
    ax.set_yticklabels([t.name for t in project.tasks], fontsize=8)
    ax.set_xticks(range(n_days + 1), minor=True)
    ax.set_yticks(range(n_tasks + 1), minor=True)
    ax.grid(which="minor", color="#e5e7eb", linewidth=0.5)
    ax.tick_params(which="minor", length=0)

    first, last = cols[0]["date"], cols[-1]["date"]
    ax.set_title(
        f"{project.name} · {project.client} · Scale {project.scale or '-'}\n"
        f"{first.isoformat()} → {last.isoformat()} · Progress {progress_percent(project.tasks)}%",
        fontsize=10,
        pad=28 if project.milestones else 10,
    )

    legend = [Patch(facecolor=HOLIDAY_COLOR, hatch="///", label="Holiday"), Patch(fill=False, edgecolor=TODAY_COLOR, label="Today")]
    legend += [Patch(facecolor=c, label=t.title()) for t, c in milestone_colors.items()]
    ax.legend(handles=legend, loc="upper center", bbox_to_anchor=(0.5, -0.12), ncol=len(legend), fontsize=7, frameon=False)

    fig.tight_layout()
    return fig


def task_table(project: Project, today: Any) -> pd.DataFrame:
    t_idx = today_index(days_elapsed(project.start_date, today))
    rows: List[Dict[str, Any]] = []
    for t in project.tasks:
        span = task_span(t)
        rows.append(
            {
                "Task": t.name,
                "Status": t.status,
                "Days marked": span[2] if span else 0,
                "First": from_offset(span[0], project.start_date).isoformat() if span else "",
                "Last": from_offset(span[1], project.start_date).isoformat() if span else "",
                "Deadline": from_offset(t.deadline, project.start_date).isoformat() if t.deadline is not None else "",
                "Alert": deadline_status(t, t_idx),
                "Notes": t.notes,
            }
        )
    return pd.DataFrame(rows)


def _export(fig, fmt: str) -> bytes:
    buf = io.BytesIO()
    fig.savefig(buf, format=fmt, dpi=160, bbox_inches="tight")
    return buf.getvalue()


def render(ctx: dict) -> None:
    project = ctx["current_project"]()
    today = ctx["clock"].today()
    elapsed = days_elapsed(project.start_date, today)
    window = print_window(project, today)

    c1, c2 = st.columns([6, 2])
    c1.title("Print view")
    if c2.button("↩️ Timeline", key="print_back", use_container_width=True):
        ctx["go"]("TIMELINE")

    st.caption(
        f"{project.name} · Client: {project.client} · Start {project.start_date.isoformat()} · "
        f"{days_counter_label(elapsed)} · {len(window)} days shown"
    )

    fig = build_print_figure(project, today)
    st.pyplot(fig, use_container_width=True)

    d1, d2, _ = st.columns([1, 1, 4])
    fname = (project.name or "timeline").strip().replace(" ", "_")
    d1.download_button("⬇️ PDF", data=_export(fig, "pdf"), file_name=f"{fname}.pdf", mime="application/pdf")
    d2.download_button("⬇️ PNG", data=_export(fig, "png"), file_name=f"{fname}.png", mime="image/png")
    plt.close(fig)

    st.dataframe(task_table(project, today), use_container_width=True, hide_index=True)
