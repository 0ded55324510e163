"""Workflow executor: steps a persisted execution context through its sequence.

One step at a time:

1. checkpoint the context;
2. read the node at ``current_step``;
3. delay node: advance, checkpoint, schedule a resumption and yield;
   a resumption only continues the run from the step it was scheduled for;
4. action node: mark it active and re-read the cancellation flag from the store;
5. resolve the implementation for (profile, code); a miss is logged and skipped;
6. run it, awaiting it if it returns an awaitable;
7. checkpoint again;
8. stop if the action set an exit status;
9. otherwise advance, completing when the sequence is exhausted.

Errors raised by actions are contained here. Plan configuration errors are
raised from :meth:`WorkflowExecutor.start` before any action runs.
"""

from __future__ import annotations

import inspect
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from .context import ExecutionContext, WorkflowState
from .errors import ContextNotFoundError
from .graph import parse_delay_node
from .profile import find_profile
from .registry import ActionCallable, ActionRegistry
from .scheduler import DelayScheduler

if TYPE_CHECKING:
    from reporting_orchestrator.orchestrator.clients import ReportingClients
    from reporting_orchestrator.orchestrator.store import ContextStore

logger = logging.getLogger(__name__)


class WorkflowExecutor:
    def __init__(
        self,
        *,
        store: ContextStore,
        registry: ActionRegistry,
        scheduler: DelayScheduler,
        clients: ReportingClients | None = None,
        halt_on_action_error: bool = True,
    ) -> None:
        self._store = store
        self._registry = registry
        self._scheduler = scheduler
        self._clients = clients
        self._halt_on_action_error = halt_on_action_error

    async def start(self, context: ExecutionContext) -> ExecutionContext:
        """Run ``context`` until it completes, exits, is cancelled, fails or delays.

        Raises:
            PlanConfigurationError: The plan has no usable report profile.
            StaleContextError: ``context`` is behind the copy in the store.
        """

        profile = context.profile or find_profile(context.plan)
        context.profile = profile

        if context.is_terminal:
            logger.info(
                "Workflow already finished",
                extra={"context_id": context.id, "state": context.state.value},
            )
            return context

        if context.state != WorkflowState.RUNNING:
            context.move_to(WorkflowState.RUNNING)
        context.resume_at = None
        context.attach_clients(self._clients)

        logger.info(
            "Running workflow",
            extra={
                "context_id": context.id,
                "plan_id": context.plan.id,
                "profile": context.profile,
                "step": context.current_step,
                "steps": len(context.action_sequence),
            },
        )
        return await self._run(context, profile)

    async def resume(self, context_id: str) -> ExecutionContext:
        """Reload ``context_id`` from the store and continue it.

        A run still inside its delay window is rescheduled for the remaining time
        instead of continuing early.
        """

        context = self._load(context_id)
        if context.state == WorkflowState.DELAYING and context.resume_at is not None:
            remaining = context.resume_at - datetime.now(tz=UTC)
            if remaining > timedelta(0):
                remaining_ms = int(remaining.total_seconds() * 1000)
                self._schedule_resumption(context.id, context.current_step, remaining_ms)
                return context
        return await self.start(context)

    async def _continue_after_delay(self, context_id: str, step: int) -> ExecutionContext:
        context = self._load(context_id)
        # A timer belongs to the delay that ended at ``step``; any other timer is stale.
        if context.state != WorkflowState.DELAYING or context.current_step != step:
            logger.info(
                "Skipping stale resumption",
                extra={
                    "context_id": context_id,
                    "state": context.state.value,
                    "step": context.current_step,
                    "scheduled_step": step,
                },
            )
            return context
        return await self.start(context)

    def _load(self, context_id: str) -> ExecutionContext:
        context = self._store.get(context_id)
        if context is None:
            raise ContextNotFoundError(context_id)
        return context

    def _schedule_resumption(self, context_id: str, step: int, delay_ms: int) -> None:
        self._scheduler.schedule(
            delay_ms, lambda: self._continue_after_delay(context_id, step)
        )
        logger.info(
            "Workflow delayed",
            extra={"context_id": context_id, "step": step, "delay_ms": delay_ms},
        )

    async def _run(self, context: ExecutionContext, profile: str) -> ExecutionContext:
        while True:
            node = context.current_node
            if node is None:
                return self._finish(context, WorkflowState.COMPLETED)

            self._store.checkpoint(context)

            delay_ms = parse_delay_node(node)
            if delay_ms is not None:
                context.current_step += 1
                context.action = None
                context.resume_at = datetime.now(tz=UTC) + timedelta(milliseconds=delay_ms)
                context.move_to(WorkflowState.DELAYING)
                self._store.checkpoint(context)
                self._schedule_resumption(context.id, context.current_step, delay_ms)
                return context

            action = context.plan.get_action(node)
            context.action = action
            if self._store.is_cancelled(context.id):
                context.cancel_token = True
                logger.info(
                    "Workflow cancelled",
                    extra={"context_id": context.id, "step": context.current_step, "node": node},
                )
                return self._finish(context, WorkflowState.CANCELLED)

            code = action.action_code if action is not None else None
            implementation = self._registry.lookup(profile, code)
            logger.info(
                "Executing workflow step",
                extra={
                    "context_id": context.id,
                    "step": context.current_step,
                    "node": node,
                    "code": code,
                },
            )
            if implementation is None:
                logger.warning(
                    "No implementation registered for action; skipping",
                    extra={
                        "context_id": context.id,
                        "node": node,
                        "code": code,
                        "profile": profile,
                    },
                )
            else:
                succeeded = await self._dispatch(context, implementation, node, code)
                if not succeeded and self._halt_on_action_error:
                    return self._finish(context, WorkflowState.FAILED)

            self._store.checkpoint(context)

            if context.exit_status is not None:
                logger.info(
                    "Workflow exited early",
                    extra={
                        "context_id": context.id,
                        "node": node,
                        "exit_status": context.exit_status,
                    },
                )
                return self._finish(context, WorkflowState.EXITED_EARLY)

            context.current_step += 1

    async def _dispatch(
        self,
        context: ExecutionContext,
        implementation: ActionCallable,
        node: str,
        code: str | None,
    ) -> bool:
        try:
            result = implementation(context)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.exception(
                "Workflow action failed",
                extra={"context_id": context.id, "node": node, "code": code},
            )
            context.last_error = f"{node}: {e}"
            context.flags[f"{code or node}-failed"] = True
            return False
        return True

    def _finish(self, context: ExecutionContext, state: WorkflowState) -> ExecutionContext:
        context.move_to(state)
        if state == WorkflowState.COMPLETED:
            context.action = None
        self._store.checkpoint(context)
        logger.info(
            "Workflow stopped",
            extra={
                "context_id": context.id,
                "state": state.value,
                "step": context.current_step,
            },
        )
        return context
