"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from reporting_orchestrator.orchestrator.store import ContextStore
from reporting_orchestrator.orchestrator.workflow.context import ExecutionContext
from reporting_orchestrator.orchestrator.workflow.executor import WorkflowExecutor
from reporting_orchestrator.orchestrator.workflow.plan import Plan, action_for_code
from reporting_orchestrator.orchestrator.workflow.registry import ActionRegistry
from reporting_orchestrator.orchestrator.workflow.scheduler import ResumeCallback

COUNTER_PROFILE = "http://example.org/fhir/StructureDefinition/counter-reporting-bundle"


class RecordingScheduler:
    """Delay scheduler that records resumptions instead of starting timers."""

    def __init__(self) -> None:
        self.scheduled: list[tuple[int, ResumeCallback]] = []

    def schedule(self, delay_ms: int, callback: ResumeCallback) -> None:
        self.scheduled.append((delay_ms, callback))

    @property
    def delays(self) -> list[int]:
        return [ms for ms, _cb in self.scheduled]

    async def run_pending(self) -> list[Any]:
        """Fire every recorded resumption, including ones scheduled while firing."""

        results = []
        while self.scheduled:
            _ms, callback = self.scheduled.pop(0)
            results.append(await callback())
        return results


def init_counter(context: ExecutionContext) -> None:
    context.variables["counter"] = 0


def increment_counter(context: ExecutionContext) -> None:
    context.variables["counter"] += 1


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Provide a temporary state directory."""
    state_dir = tmp_path / "workflow_state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def counter_profile() -> str:
    return COUNTER_PROFILE


@pytest.fixture
def create_report_action() -> dict[str, Any]:
    """A create-report action declaring the counter bundle profile."""
    return action_for_code(
        "report",
        "create-report",
        output=[{"type": "Bundle", "profile": [COUNTER_PROFILE]}],
    )


@pytest.fixture
def make_plan() -> Callable[..., Plan]:
    """Build a Plan from PlanDefinition action JSON."""

    def _make(*actions: dict[str, Any], plan_id: str = "test-plan") -> Plan:
        return Plan.model_validate(
            {"resourceType": "PlanDefinition", "id": plan_id, "action": list(actions)}
        )

    return _make


@pytest.fixture
def counter_plan(make_plan: Callable[..., Plan]) -> Plan:
    """Plan [A(init-counter), B(increment-counter), C(increment-counter), D(create-report)]."""
    return make_plan(
        action_for_code("A", "init-counter"),
        action_for_code("B", "increment-counter"),
        action_for_code("C", "increment-counter"),
        action_for_code(
            "D",
            "create-report",
            output=[{"type": "Bundle", "profile": [COUNTER_PROFILE]}],
        ),
        plan_id="counter-plan",
    )


@pytest.fixture
def counter_registry() -> ActionRegistry:
    """Registry with the counter actions under the counter profile."""
    registry = ActionRegistry()
    registry.register_profile(
        COUNTER_PROFILE,
        {"init-counter": init_counter, "increment-counter": increment_counter},
    )
    return registry


@pytest.fixture
def patient() -> dict[str, Any]:
    return {"resourceType": "Patient", "id": "p1", "name": [{"family": "Doe"}]}


@pytest.fixture
def context_store(temp_state_dir: Path) -> ContextStore:
    return ContextStore(temp_state_dir / "contexts.json")


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def executor(
    context_store: ContextStore,
    counter_registry: ActionRegistry,
    scheduler: RecordingScheduler,
) -> WorkflowExecutor:
    return WorkflowExecutor(store=context_store, registry=counter_registry, scheduler=scheduler)
