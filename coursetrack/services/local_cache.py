"""Durable client-side progress cache.

The cache mirrors what a browser keeps in localStorage for a course:

    course-{course_id}-completed   JSON list of completed lesson ids
    course-{course_id}-code        JSON object assignment_id -> code

It is scoped to one client agent (one LocalStore per agent) and is
never authoritative over the enrollment record.  It exists so progress
shown in the UI survives offline periods and failed remote writes.

The API is synchronous on purpose: the orchestrator reads and writes it
between awaits, so a check-and-add on the completed set cannot be
interleaved with another handler.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from coursetrack.models.progress import LocalCacheEntry

logger = logging.getLogger(__name__)


class LocalStore(Protocol):
    def read(self, key: str) -> str | None: ...
    def write(self, key: str, value: str) -> None: ...


class InMemoryLocalStore:
    """Non-durable store for tests."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def read(self, key: str) -> str | None:
        return self._data.get(key)

    def write(self, key: str, value: str) -> None:
        self._data[key] = value


class FileLocalStore:
    """One JSON document per client agent, replaced atomically on each write."""

    def __init__(self, directory: str | Path, agent_id: str) -> None:
        self._path = Path(directory) / f"{agent_id}.json"
        self._data: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def read(self, key: str) -> str | None:
        return self._load().get(key)

    def write(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=".tmp-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _load(self) -> dict[str, str]:
        if self._data is None:
            try:
                raw = self._path.read_text(encoding="utf-8")
            except FileNotFoundError:
                self._data = {}
            else:
                try:
                    loaded = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Corrupt local cache at %s, starting empty", self._path)
                    loaded = {}
                self._data = loaded if isinstance(loaded, dict) else {}
        return self._data


def _completed_key(course_id: str) -> str:
    return f"course-{course_id}-completed"


def _code_key(course_id: str) -> str:
    return f"course-{course_id}-code"


class LocalProgressCache:
    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def get(self, course_id: str) -> LocalCacheEntry:
        return LocalCacheEntry(
            course_id=course_id,
            completed_lessons=frozenset(self._completed_list(course_id)),
            saved_code=self._saved_code(course_id),
        )

    def mark_complete(self, course_id: str, lesson_id: str) -> bool:
        """Add a lesson; False means it was already complete."""
        completed = self._completed_list(course_id)
        if lesson_id in completed:
            return False
        completed.append(lesson_id)
        self._store.write(_completed_key(course_id), json.dumps(completed))
        return True

    def merge_completed(
        self, course_id: str, lesson_ids: Iterable[str]
    ) -> frozenset[str]:
        """Union lesson_ids into the cached set and return the result."""
        completed = self._completed_list(course_id)
        missing = [l for l in sorted(set(lesson_ids)) if l not in completed]
        if missing:
            completed.extend(missing)
            self._store.write(_completed_key(course_id), json.dumps(completed))
        return frozenset(completed)

    def save_code(self, course_id: str, assignment_id: str, code: str) -> None:
        saved = self._saved_code(course_id)
        saved[assignment_id] = code
        self._store.write(_code_key(course_id), json.dumps(saved))

    def _completed_list(self, course_id: str) -> list[str]:
        loaded = self._read_json(_completed_key(course_id))
        if not isinstance(loaded, list):
            return []
        return [str(l) for l in loaded]

    def _saved_code(self, course_id: str) -> dict[str, str]:
        loaded = self._read_json(_code_key(course_id))
        if not isinstance(loaded, dict):
            return {}
        return {str(k): str(v) for k, v in loaded.items()}

    def _read_json(self, key: str) -> object:
        raw = self._store.read(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable local cache key=%s", key)
            return None
