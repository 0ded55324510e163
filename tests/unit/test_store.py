"""Unit tests for the JSON-file context and report stores."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from reporting_orchestrator.orchestrator.store import CompletedReportStore, ContextStore
from reporting_orchestrator.orchestrator.workflow.context import ExecutionContext, WorkflowState
from reporting_orchestrator.orchestrator.workflow.errors import StaleContextError
from reporting_orchestrator.orchestrator.workflow.initializer import initialize_context
from reporting_orchestrator.orchestrator.workflow.plan import Plan


def _context(plan: Plan, patient: dict[str, Any]) -> ExecutionContext:
    return initialize_context(plan, patient)


def test_missing_file_is_empty(tmp_path: Path) -> None:
    store = ContextStore(tmp_path / "nested" / "contexts.json")

    assert store.list() == []
    assert store.get("anything") is None


def test_insert_and_get_roundtrip(
    context_store: ContextStore, counter_plan: Plan, patient: dict[str, Any]
) -> None:
    context = _context(counter_plan, patient)

    context_store.insert(context)
    loaded = context_store.get(context.id)

    assert loaded is not None
    assert loaded.id == context.id
    assert loaded.action_sequence == ["A", "B", "C", "D"]
    assert loaded.patient == patient
    assert context_store.path.exists()


def test_find_filters_by_predicate(
    context_store: ContextStore, counter_plan: Plan, patient: dict[str, Any]
) -> None:
    first = _context(counter_plan, patient)
    second = _context(counter_plan, patient)
    second.state = WorkflowState.RUNNING
    context_store.insert(first)
    context_store.insert(second)

    running = context_store.find(lambda c: c.state == WorkflowState.RUNNING)

    assert [c.id for c in running] == [second.id]


def test_upsert_replaces_or_appends(
    context_store: ContextStore, counter_plan: Plan, patient: dict[str, Any]
) -> None:
    context = _context(counter_plan, patient)
    context_store.upsert(context)

    context.current_step = 2
    context_store.upsert(context)

    assert len(context_store.list()) == 1
    stored = context_store.get(context.id)
    assert stored is not None and stored.current_step == 2


def test_update_returns_match_count(
    context_store: ContextStore, counter_plan: Plan, patient: dict[str, Any]
) -> None:
    contexts = [_context(counter_plan, patient) for _ in range(3)]
    for context in contexts:
        context_store.insert(context)

    updated = context_store.update(
        lambda c: c.id != contexts[0].id,
        lambda c: c.model_copy(update={"flags": {"valid": True}}),
    )

    assert updated == 2
    assert context_store.update(lambda c: False, lambda c: c) == 0
    flags = {c.id: c.flags for c in context_store.list()}
    assert flags[contexts[0].id] == {}
    assert flags[contexts[1].id] == {"valid": True}


def test_checkpoint_keeps_external_cancellation(
    context_store: ContextStore, counter_plan: Plan, patient: dict[str, Any]
) -> None:
    context = _context(counter_plan, patient)
    context_store.checkpoint(context)
    assert context_store.set_cancelled(context.id)

    context.current_step = 1
    context_store.checkpoint(context)

    assert context.cancel_token is True
    assert context_store.is_cancelled(context.id)
    stored = context_store.get(context.id)
    assert stored is not None and stored.current_step == 1


def test_checkpoint_refuses_to_rewind_a_context(
    context_store: ContextStore, counter_plan: Plan, patient: dict[str, Any]
) -> None:
    context = _context(counter_plan, patient)
    context.current_step = 3
    context_store.checkpoint(context)
    stale = context.model_copy(update={"current_step": 0})

    with pytest.raises(StaleContextError):
        context_store.checkpoint(stale)

    stored = context_store.get(context.id)
    assert stored is not None and stored.current_step == 3


def test_set_cancelled_unknown_context(context_store: ContextStore) -> None:
    assert context_store.set_cancelled("missing") is False
    assert context_store.is_cancelled("missing") is False


def test_corrupt_file_is_treated_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "contexts.json"
    path.write_text("{not json", encoding="utf-8")

    assert ContextStore(path).list() == []


def test_unreadable_entries_are_skipped(
    tmp_path: Path, counter_plan: Plan, patient: dict[str, Any]
) -> None:
    path = tmp_path / "contexts.json"
    good = _context(counter_plan, patient)
    path.write_text(
        json.dumps([{"id": "broken"}, good.model_dump(mode="json", by_alias=True)]),
        encoding="utf-8",
    )

    assert [c.id for c in ContextStore(path).list()] == [good.id]


def test_completed_reports_are_appended(tmp_path: Path) -> None:
    store = CompletedReportStore(tmp_path / "completed_reports.json")
    bundle = {"resourceType": "Bundle", "type": "message", "entry": []}

    store.insert(bundle, context_id="ctx-1")
    store.insert(bundle)

    records = store.list()
    assert [r["context_id"] for r in records] == ["ctx-1", None]
    assert records[0]["bundle"] == bundle
    assert "completed_at" in records[0]
