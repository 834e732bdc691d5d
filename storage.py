# storage.py
from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from core import PATCHABLE_FIELDS, Project, StoreError, apply_project_patch, utc_stamp

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


# =========================
# Atomic JSON writes
# =========================
def _acquire_lock(lock_path: Path, timeout_s: float = 5.0, poll_s: float = 0.05) -> int:
    start = time.monotonic()
    while True:
        try:
            fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_RDWR)
            os.write(fd, str(os.getpid()).encode("utf-8", errors="ignore"))
            return fd
        except FileExistsError:
            if (time.monotonic() - start) >= timeout_s:
                raise TimeoutError(f"Could not acquire lock: {lock_path}")
            time.sleep(poll_s)


def _release_lock(fd: int, lock_path: Path) -> None:
    try:
        os.close(fd)
    finally:
        if lock_path.exists():
            lock_path.unlink()


def _lock_path(path: Path) -> Path:
    return path.with_suffix(path.suffix + ".lock")


@contextmanager
def file_lock(path: Path) -> Iterator[None]:
    """Hold the lock file of *path* for a whole read-modify-write."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lock_path = _lock_path(path)
    fd = _acquire_lock(lock_path)
    try:
        yield
    finally:
        _release_lock(fd, lock_path)


def atomic_write_json(path: Path, payload: Any, locked: bool = False) -> None:
    """Replace *path* in one step. Pass ``locked=True`` from inside ``file_lock``."""
    if not locked:
        with file_lock(path):
            atomic_write_json(path, payload, locked=True)
        return

    folder = path.parent
    folder.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix="timeline_", suffix=".tmp", dir=str(folder))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, str(path))
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def read_json(path: Path) -> Any:
    """Parsed file content, or None when missing or unreadable."""
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8", errors="replace"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return None


def records_from(raw: Any, key: str) -> List[Dict[str, Any]]:
    if isinstance(raw, list):
        data = raw
    elif isinstance(raw, dict):
        data = raw.get(key) or raw.get("data") or raw.get("items") or []
        if not isinstance(data, list):
            data = []
    else:
        data = []
    return [d for d in data if isinstance(d, dict)]


# =========================
# Project store
# =========================
class ProjectStore:
    """JSON file holding every user's projects.

    Ownership is checked here: a caller only ever sees and touches projects
    whose ``owner_id`` matches its user id.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def _load_all(self) -> List[Project]:
        out: List[Project] = []
        for d in records_from(read_json(self.path), "projects"):
            try:
                p = Project.from_dict(d)
            except (TypeError, ValueError):
                continue
            if not p.id.strip():
                continue
            out.append(p)
        return out

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            with file_lock(self.path):
                yield
        except OSError as e:
            raise StoreError(f"Could not lock {self.path}: {e}") from e

    def _save_all(self, projects: List[Project]) -> None:
        # caller holds self._locked()
        payload = {"schema_version": SCHEMA_VERSION, "projects": [p.to_dict() for p in projects]}
        try:
            atomic_write_json(self.path, payload, locked=True)
        except OSError as e:
            raise StoreError(f"Could not write {self.path}: {e}") from e

    def list(self, user_id: str) -> List[Project]:
        return [p for p in self._load_all() if p.owner_id == user_id]

    def get(self, user_id: str, project_id: str) -> Optional[Project]:
        return next((p for p in self.list(user_id) if p.id == project_id), None)

    def create(self, user_id: str, project: Project) -> Project:
        if not user_id:
            raise StoreError("Cannot create a project without an owner")
        with self._locked():
            projects = self._load_all()
            stamp = utc_stamp()
            project.owner_id = user_id
            project.created_at = project.created_at or stamp
            project.updated_at = stamp
            projects.append(project)
            self._save_all(projects)
        logger.info("Created project %s for user %s", project.id, user_id)
        return project

    def update(self, user_id: str, project_id: str, patch: Dict[str, Any]) -> Optional[Project]:
        with self._locked():
            projects = self._load_all()
            for i, p in enumerate(projects):
                if p.id != project_id or p.owner_id != user_id:
                    continue
                updated = apply_project_patch(p, patch)
                updated.updated_at = utc_stamp()
                projects[i] = updated
                self._save_all(projects)
                logger.debug("Updated project %s (%s)", project_id, ", ".join(sorted(patch or {})))
                return updated
        return None

    def save(self, user_id: str, project: Project) -> Optional[Project]:
        """Write *project* wholesale; embedded lists are replaced, not diffed."""
        patch = {k: getattr(project, k) for k in PATCHABLE_FIELDS}
        return self.update(user_id, project.id, patch)

    def delete(self, user_id: str, project_id: str) -> bool:
        with self._locked():
            projects = self._load_all()
            keep = [p for p in projects if not (p.id == project_id and p.owner_id == user_id)]
            if len(keep) == len(projects):
                return False
            self._save_all(keep)
        logger.info("Deleted project %s for user %s", project_id, user_id)
        return True
