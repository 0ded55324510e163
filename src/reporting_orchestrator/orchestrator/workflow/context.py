"""Execution context and the run state machine.

The context is the complete persisted state of one reporting workflow run.
Everything needed to resume lives on it; runtime collaborators such as HTTP
clients are attached separately and never serialised.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, PrivateAttr

from .errors import IllegalTransitionError
from .plan import Plan, PlanAction

if TYPE_CHECKING:
    from reporting_orchestrator.orchestrator.clients import ReportingClients


class WorkflowState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DELAYING = "delaying"
    COMPLETED = "completed"
    EXITED_EARLY = "exited_early"
    CANCELLED = "cancelled"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[WorkflowState, set[WorkflowState]] = {
    WorkflowState.PENDING: {WorkflowState.RUNNING, WorkflowState.CANCELLED},
    WorkflowState.RUNNING: {
        WorkflowState.DELAYING,
        WorkflowState.COMPLETED,
        WorkflowState.EXITED_EARLY,
        WorkflowState.CANCELLED,
        WorkflowState.FAILED,
    },
    WorkflowState.DELAYING: {WorkflowState.RUNNING, WorkflowState.CANCELLED},
    # A failed step is retried by resuming the run.
    WorkflowState.FAILED: {WorkflowState.RUNNING, WorkflowState.CANCELLED},
    WorkflowState.COMPLETED: set(),
    WorkflowState.EXITED_EARLY: set(),
    WorkflowState.CANCELLED: set(),
}

TERMINAL_STATES: frozenset[WorkflowState] = frozenset(
    {WorkflowState.COMPLETED, WorkflowState.EXITED_EARLY, WorkflowState.CANCELLED}
)


def transition(*, current: WorkflowState, to: WorkflowState) -> WorkflowState:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class ExecutionContext(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    plan: Plan

    trigger: dict[str, Any] | None = None
    patient: dict[str, Any] | None = None
    encounter: dict[str, Any] | None = None
    records: list[dict[str, Any]] = Field(default_factory=list)

    action_sequence: list[str] = Field(default_factory=list)
    current_step: int = Field(default=0, ge=0)
    profile: str | None = Field(
        default=None, description="Report bundle profile fixed when the run starts"
    )
    state: WorkflowState = WorkflowState.PENDING
    resume_at: datetime | None = Field(
        default=None, description="When a delaying run may continue"
    )

    flags: dict[str, bool] = Field(default_factory=dict)
    # Free-form values actions hand to later actions.
    variables: dict[str, Any] = Field(default_factory=dict)
    content_bundle: dict[str, Any] | None = None
    reporting_bundle: dict[str, Any] | None = None

    cancel_token: bool = False
    exit_status: str | int | None = None
    action: PlanAction | None = None
    last_error: str | None = None

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    _clients: Any = PrivateAttr(default=None)

    @property
    def clients(self) -> ReportingClients | None:
        return self._clients

    def attach_clients(self, clients: ReportingClients | None) -> None:
        self._clients = clients

    @property
    def current_node(self) -> str | None:
        if self.current_step < len(self.action_sequence):
            return self.action_sequence[self.current_step]
        return None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def move_to(self, state: WorkflowState) -> None:
        self.state = transition(current=self.state, to=state)
