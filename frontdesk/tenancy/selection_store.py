"""Durable storage for the active-business selection, keyed by device and user."""

from __future__ import annotations

import json
import os
import pathlib
import tempfile
from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)


def selection_scope(client_id: str, user_id: str) -> str:
    """Storage key for one user on one device."""
    return f"{client_id}:{user_id}"


class SelectionStore(ABC):
    """Synchronous key/value store for persisted business ids.

    Writes are synchronous so the in-memory selection and its persisted copy
    never disagree across an await.
    """

    @abstractmethod
    def get(self, scope: str) -> str | None:
        """Return the persisted business id for a scope."""

    @abstractmethod
    def set(self, scope: str, business_id: str) -> None:
        """Persist a business id, overwriting any previous value."""

    @abstractmethod
    def delete(self, scope: str) -> None:
        """Forget the selection for a scope."""


class InMemorySelectionStore(SelectionStore):
    """Process-local store; survives page loads but not restarts."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, scope: str) -> str | None:
        return self._values.get(scope)

    def set(self, scope: str, business_id: str) -> None:
        self._values[scope] = business_id

    def delete(self, scope: str) -> None:
        self._values.pop(scope, None)


class JsonFileSelectionStore(SelectionStore):
    """Store backed by a single JSON file, replaced atomically on each write."""

    def __init__(self, path: pathlib.Path) -> None:
        self._path = path.expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._values = self._read()

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("selection_store_unreadable", path=str(self._path), error=str(exc))
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _flush(self) -> None:
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".selection-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._values, fh)
            os.replace(tmp, self._path)
        except OSError:
            pathlib.Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, scope: str) -> str | None:
        return self._values.get(scope)

    def set(self, scope: str, business_id: str) -> None:
        self._values[scope] = business_id
        self._flush()

    def delete(self, scope: str) -> None:
        if self._values.pop(scope, None) is not None:
            self._flush()


def create_selection_store(path: str | None) -> SelectionStore:
    """Factory: file-backed store when a path is configured, otherwise in-memory."""
    if path:
        return JsonFileSelectionStore(pathlib.Path(path))
    return InMemorySelectionStore()
