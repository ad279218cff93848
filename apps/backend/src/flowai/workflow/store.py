"""File based workflow storage: one JSON document per workflow."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from pydantic import ValidationError

from .schema import Workflow

try:  # pragma: no cover - platform-dependent import
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX
    fcntl = None

logger = logging.getLogger(__name__)


def _atomic_write(path: Path, content: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


class WorkflowStore:
    """Stores workflows as ``<id>.json`` files under ``base_dir``.

    The store owns list-level identity, ordering and durability. Callers only
    ever hand it whole ``Workflow`` values.
    """

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock_path = base_dir / ".workflows.lock"
        self._thread_lock = threading.RLock()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._thread_lock:
            with self._lock_path.open("a+", encoding="utf-8") as lock_file:
                if fcntl is not None:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    if fcntl is not None:
                        fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _path(self, workflow_id: str) -> Path:
        return self.base_dir / f"{workflow_id}.json"

    def save(self, workflow: Workflow) -> str:
        """Insert or replace a workflow and return its ID."""
        with self._locked():
            _atomic_write(self._path(workflow.id), workflow.model_dump_json(by_alias=True, indent=2))
        return workflow.id

    def load(self, workflow_id: str) -> Optional[Workflow]:
        """Load a workflow by ID."""
        with self._locked():
            filepath = self._path(workflow_id)
            if not filepath.exists():
                return None
            return Workflow.model_validate(json.loads(filepath.read_text()))

    def list_all(self) -> list[Workflow]:
        """List all workflows, newest first. Unreadable files are skipped."""
        with self._locked():
            workflows: list[Workflow] = []
            for filepath in self.base_dir.glob("*.json"):
                try:
                    workflows.append(Workflow.model_validate(json.loads(filepath.read_text())))
                except (ValueError, ValidationError) as e:
                    logger.warning("Skipping unreadable workflow file %s: %s", filepath.name, e)

            workflows.sort(key=lambda wf: wf.created_at, reverse=True)
            return workflows

    def delete(self, workflow_id: str) -> bool:
        """Delete a workflow. Returns True if it existed."""
        with self._locked():
            filepath = self._path(workflow_id)
            if filepath.exists():
                filepath.unlink()
                return True
            return False
