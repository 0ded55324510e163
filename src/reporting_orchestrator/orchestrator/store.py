"""JSON-file backed persistence for execution contexts and completed reports.

The workflow engine treats this as a key-addressed record store: read matching,
insert, update in place and upsert by predicate. A context is checkpointed after
every step, so a crashed or delayed run can be reconstructed from the file alone.

Writes are serialised by a lock within one process. At most one live execution
per context id is assumed; the store does not arbitrate between executors.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from reporting_orchestrator.orchestrator.workflow.context import ExecutionContext
from reporting_orchestrator.orchestrator.workflow.errors import StaleContextError

logger = logging.getLogger(__name__)

ContextPredicate = Callable[[ExecutionContext], bool]
ContextMutator = Callable[[ExecutionContext], ExecutionContext]


def _by_id(context_id: str) -> ContextPredicate:
    return lambda c: c.id == context_id


def _read_json_list(path: Path) -> list[Any]:
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("State file is not valid JSON; treating as empty", extra={"path": str(path)})
        return []
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning(
            "State file has unexpected shape; treating as empty", extra={"path": str(path)}
        )
        return []
    return raw


def _write_json_list(path: Path, payload: list[Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    tmp.replace(path)


@dataclass
class ContextStore:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> list[ExecutionContext]:
        contexts: list[ExecutionContext] = []
        for item in _read_json_list(self.path):
            try:
                contexts.append(ExecutionContext.model_validate(item))
            except ValidationError:
                logger.warning(
                    "Skipping unreadable execution context",
                    extra={"path": str(self.path), "context_id": _raw_id(item)},
                )
        return contexts

    def _save_unlocked(self, contexts: list[ExecutionContext]) -> None:
        _write_json_list(self.path, [c.model_dump(mode="json", by_alias=True) for c in contexts])

    def list(self) -> list[ExecutionContext]:
        with self._lock:
            return self._load_unlocked()

    def find(self, predicate: ContextPredicate) -> list[ExecutionContext]:
        with self._lock:
            return [c for c in self._load_unlocked() if predicate(c)]

    def get(self, context_id: str) -> ExecutionContext | None:
        found = self.find(_by_id(context_id))
        return found[0] if found else None

    def insert(self, context: ExecutionContext) -> ExecutionContext:
        with self._lock:
            contexts = self._load_unlocked()
            stored = context.model_copy(update={"updated_at": datetime.now(tz=UTC)})
            contexts.append(stored)
            self._save_unlocked(contexts)
            return stored

    def upsert(
        self, context: ExecutionContext, match: ContextPredicate | None = None
    ) -> ExecutionContext:
        """Replace the first context matching ``match`` (default: same id), else append."""

        predicate = match or _by_id(context.id)
        with self._lock:
            contexts = self._load_unlocked()
            stored = context.model_copy(update={"updated_at": datetime.now(tz=UTC)})
            for idx, existing in enumerate(contexts):
                if predicate(existing):
                    contexts[idx] = stored
                    break
            else:
                contexts.append(stored)
            self._save_unlocked(contexts)
            return stored

    def update(self, match: ContextPredicate, mutator: ContextMutator) -> int:
        """Apply ``mutator`` to every matching context; return how many were updated."""

        with self._lock:
            contexts = self._load_unlocked()
            updated = 0
            for idx, existing in enumerate(contexts):
                if not match(existing):
                    continue
                changed = mutator(existing)
                contexts[idx] = changed.model_copy(update={"updated_at": datetime.now(tz=UTC)})
                updated += 1
            if updated:
                self._save_unlocked(contexts)
            return updated

    def checkpoint(self, context: ExecutionContext) -> None:
        """Persist ``context`` without discarding an externally set cancellation flag.

        The stored cancellation flag is the source of truth: an external actor may
        have set it since the executor last read the context.

        Raises:
            StaleContextError: The stored copy is already past ``context.current_step``.
        """

        with self._lock:
            contexts = self._load_unlocked()
            for idx, existing in enumerate(contexts):
                if existing.id != context.id:
                    continue
                if existing.current_step > context.current_step:
                    logger.warning(
                        "Refusing to checkpoint a stale context",
                        extra={
                            "context_id": context.id,
                            "step": context.current_step,
                            "stored_step": existing.current_step,
                        },
                    )
                    raise StaleContextError(
                        f"Context {context.id} is at step {existing.current_step}; "
                        f"refusing to rewind it to step {context.current_step}"
                    )
                if existing.cancel_token and not context.cancel_token:
                    context.cancel_token = True
                contexts[idx] = context.model_copy(update={"updated_at": datetime.now(tz=UTC)})
                break
            else:
                contexts.append(context.model_copy(update={"updated_at": datetime.now(tz=UTC)}))
            self._save_unlocked(contexts)

    def is_cancelled(self, context_id: str) -> bool:
        stored = self.get(context_id)
        return bool(stored is not None and stored.cancel_token)

    def set_cancelled(self, context_id: str) -> bool:
        """Raise the cancellation flag for ``context_id``; False if no such context."""

        def _cancel(c: ExecutionContext) -> ExecutionContext:
            return c.model_copy(update={"cancel_token": True})

        return self.update(_by_id(context_id), _cancel) > 0


def _raw_id(item: object) -> str | None:
    if isinstance(item, dict):
        value = item.get("id")
        return value if isinstance(value, str) else None
    return None


@dataclass
class CompletedReportStore:
    """Append-only collection of reporting bundles whose workflow completed."""

    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def list(self) -> list[dict[str, Any]]:
        with self._lock:
            return [item for item in _read_json_list(self.path) if isinstance(item, dict)]

    def insert(self, bundle: dict[str, Any], *, context_id: str | None = None) -> dict[str, Any]:
        record = {
            "context_id": context_id,
            "completed_at": datetime.now(tz=UTC).isoformat(),
            "bundle": bundle,
        }
        with self._lock:
            items = _read_json_list(self.path)
            items.append(record)
            _write_json_list(self.path, items)
        return record
