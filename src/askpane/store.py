"""Conversation session storage for ask requests and answers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime
import json
import logging
import os
from pathlib import Path
import threading
from typing import Any
from uuid import uuid4

from .exceptions import StoreError

LOGGER = logging.getLogger(__name__)

VALID_ROLES = frozenset({"user", "assistant", "system"})


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _new_session_id() -> str:
    return f"{datetime.now(UTC).strftime('%Y%m%d-%H%M%S')}-{uuid4().hex[:8]}"


class ConversationStore(ABC):
    """Sessions keyed by kind (``"ask"``, ``"listen"``), one active per kind."""

    @abstractmethod
    def get_or_create_active_session(self, kind: str) -> str:
        """Return the active session id for ``kind``, creating one if needed."""

    @abstractmethod
    def append_message(self, session_id: str, role: str, text: str) -> None:
        """Append one message to ``session_id``."""

    @abstractmethod
    def end_session(self, kind: str) -> None:
        """Mark the active session of ``kind`` as finished."""

    @abstractmethod
    def load_session(self, session_id: str) -> dict[str, Any]:
        """Return the stored payload for ``session_id``."""

    @staticmethod
    def _normalize_message(role: str, text: str) -> dict[str, str]:
        normalized_role = role.strip().lower()
        if normalized_role not in VALID_ROLES:
            raise StoreError(f"Unsupported message role {role!r}.")
        return {"role": normalized_role, "content": text, "created_at": _now()}


class InMemoryConversationStore(ConversationStore):
    """Process-local store used when persistence is disabled and in tests."""

    def __init__(self) -> None:
        self._sessions: dict[str, dict[str, Any]] = {}
        self._active: dict[str, str] = {}
        self._lock = threading.Lock()

    def get_or_create_active_session(self, kind: str) -> str:
        with self._lock:
            session_id = self._active.get(kind)
            if session_id is None:
                session_id = _new_session_id()
                self._sessions[session_id] = {
                    "id": session_id,
                    "kind": kind,
                    "created_at": _now(),
                    "ended_at": None,
                    "messages": [],
                }
                self._active[kind] = session_id
            return session_id

    def append_message(self, session_id: str, role: str, text: str) -> None:
        message = self._normalize_message(role, text)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise StoreError(f"Unknown session {session_id!r}.")
            session["messages"].append(message)

    def end_session(self, kind: str) -> None:
        with self._lock:
            session_id = self._active.pop(kind, None)
            if session_id is not None:
                self._sessions[session_id]["ended_at"] = _now()

    def load_session(self, session_id: str) -> dict[str, Any]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise StoreError(f"Unknown session {session_id!r}.")
            return json.loads(json.dumps(session))


class JsonConversationStore(ConversationStore):
    """One JSON file per session plus an ``index.json`` of active sessions."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()
        self.index_path = self.directory / "index.json"
        self._lock = threading.Lock()

    def _enforce_permissions(self, path: Path, mode: int = 0o600) -> None:
        """Set POSIX permissions on a file or directory; silently ignores failures."""
        if os.name != "posix":
            return
        try:
            path.chmod(mode)
        except OSError:
            pass

    def _ensure_paths(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._enforce_permissions(self.directory, 0o700)
        if not self.index_path.exists():
            self._write_json(self.index_path, {"active": {}})

    def _write_json(self, path: Path, payload: dict[str, Any]) -> None:
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        tmp_path.replace(path)
        self._enforce_permissions(path)

    def _read_json(self, path: Path) -> dict[str, Any]:
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise StoreError(f"Stored payload at {path} is invalid.")
        return payload

    def _session_path(self, session_id: str) -> Path:
        if not session_id or "/" in session_id or session_id.startswith("."):
            raise StoreError(f"Invalid session id {session_id!r}.")
        return self.directory / f"{session_id}.json"

    def _read_active(self) -> dict[str, str]:
        try:
            active = self._read_json(self.index_path).get("active", {})
        except (OSError, ValueError) as exc:
            LOGGER.warning(
                "store.index.unreadable",
                extra={"event": "store.index.unreadable", "error": str(exc)},
            )
            return {}
        if not isinstance(active, dict):
            return {}
        return {str(k): str(v) for k, v in active.items() if isinstance(v, str)}

    def get_or_create_active_session(self, kind: str) -> str:
        with self._lock:
            try:
                self._ensure_paths()
                active = self._read_active()
                session_id = active.get(kind)
                if session_id and self._session_path(session_id).exists():
                    return session_id

                session_id = _new_session_id()
                self._write_json(
                    self._session_path(session_id),
                    {
                        "id": session_id,
                        "kind": kind,
                        "created_at": _now(),
                        "ended_at": None,
                        "messages": [],
                    },
                )
                active[kind] = session_id
                self._write_json(self.index_path, {"active": active})
            except OSError as exc:
                raise StoreError(f"Unable to open session for {kind!r}: {exc}") from exc
            LOGGER.info(
                "store.session.created",
                extra={
                    "event": "store.session.created",
                    "kind": kind,
                    "session_id": session_id,
                },
            )
            return session_id

    def append_message(self, session_id: str, role: str, text: str) -> None:
        message = self._normalize_message(role, text)
        with self._lock:
            path = self._session_path(session_id)
            try:
                payload = self._read_json(path)
                messages = payload.setdefault("messages", [])
                if not isinstance(messages, list):
                    raise StoreError(f"Session {session_id!r} has no message list.")
                messages.append(message)
                self._write_json(path, payload)
            except (OSError, ValueError) as exc:
                raise StoreError(
                    f"Unable to append to session {session_id!r}: {exc}"
                ) from exc

    def end_session(self, kind: str) -> None:
        with self._lock:
            try:
                self._ensure_paths()
                active = self._read_active()
                session_id = active.pop(kind, None)
                if session_id is None:
                    return
                path = self._session_path(session_id)
                if path.exists():
                    payload = self._read_json(path)
                    payload["ended_at"] = _now()
                    self._write_json(path, payload)
                self._write_json(self.index_path, {"active": active})
            except (OSError, ValueError) as exc:
                raise StoreError(f"Unable to end session for {kind!r}: {exc}") from exc

    def load_session(self, session_id: str) -> dict[str, Any]:
        path = self._session_path(session_id)
        try:
            return self._read_json(path)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Unable to load session {session_id!r}: {exc}") from exc


def build_store(persistence_config: dict[str, Any]) -> ConversationStore:
    """Return the store selected by the ``[persistence]`` config section."""
    if not persistence_config.get("enabled", False):
        return InMemoryConversationStore()
    return JsonConversationStore(str(persistence_config["directory"]))
