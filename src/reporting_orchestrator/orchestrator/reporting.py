"""Reporting workflow service.

Wires settings, the context store, the action registry, the delay scheduler and
the reporting clients into one object that starts, resumes and cancels runs.
This is the entry point the upstream notification handling calls with a plan
and the resource that triggered it.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from reporting_orchestrator.actions.base import create_default_registry
from reporting_orchestrator.orchestrator.clients import (
    DataTrustClient,
    FhirEndpointClient,
    ReportingClients,
)
from reporting_orchestrator.orchestrator.config import WorkflowSettings
from reporting_orchestrator.orchestrator.store import CompletedReportStore, ContextStore
from reporting_orchestrator.orchestrator.workflow.context import ExecutionContext
from reporting_orchestrator.orchestrator.workflow.errors import ContextNotFoundError
from reporting_orchestrator.orchestrator.workflow.executor import WorkflowExecutor
from reporting_orchestrator.orchestrator.workflow.initializer import (
    ResourceResolver,
    initialize_context,
)
from reporting_orchestrator.orchestrator.workflow.plan import Plan
from reporting_orchestrator.orchestrator.workflow.profile import find_profile
from reporting_orchestrator.orchestrator.workflow.registry import ActionRegistry
from reporting_orchestrator.orchestrator.workflow.scheduler import (
    AsyncioDelayScheduler,
    DelayScheduler,
)

logger = logging.getLogger(__name__)


def build_clients(settings: WorkflowSettings) -> ReportingClients:
    """Create clients for every service configured in ``settings``."""

    common: dict[str, Any] = {
        "token": settings.access_token,
        "timeout_seconds": settings.http_timeout_seconds,
    }
    source = (
        FhirEndpointClient(endpoint=settings.source_url, **common)
        if settings.source_url
        else None
    )
    dest = (
        FhirEndpointClient(endpoint=settings.destination_url, **common)
        if settings.destination_url
        else None
    )
    trust = (
        DataTrustClient(endpoint=settings.data_trust_url, **common)
        if settings.data_trust_url
        else None
    )
    return ReportingClients(
        source=source,
        dest=dest,
        trust=trust,
        database=CompletedReportStore(settings.completed_reports_file),
    )


def source_resolver(source: FhirEndpointClient) -> ResourceResolver:
    """Resolve references such as ``Patient/123`` against the source EHR."""

    def _resolve(reference: str) -> dict[str, Any] | None:
        try:
            return source.read(reference)
        except requests.RequestException:
            logger.warning(
                "Failed to read referenced resource from source",
                extra={"reference": reference, "endpoint": source.endpoint},
                exc_info=True,
            )
            return None

    return _resolve


class ReportingWorkflowService:
    def __init__(
        self,
        settings: WorkflowSettings,
        *,
        registry: ActionRegistry | None = None,
        store: ContextStore | None = None,
        scheduler: DelayScheduler | None = None,
        clients: ReportingClients | None = None,
        resolver: ResourceResolver | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or create_default_registry(settings.base_profile)
        self.store = store or ContextStore(settings.contexts_state_file)
        self.scheduler = scheduler or AsyncioDelayScheduler()
        self.clients = clients if clients is not None else build_clients(settings)
        if resolver is None and self.clients.source is not None:
            resolver = source_resolver(self.clients.source)
        self._resolver = resolver
        self.executor = WorkflowExecutor(
            store=self.store,
            registry=self.registry,
            scheduler=self.scheduler,
            clients=self.clients,
            halt_on_action_error=settings.halt_on_action_error,
        )

    def prepare(self, plan: Plan, resource: dict[str, Any]) -> ExecutionContext:
        """Initialise and persist a context without running it.

        Raises:
            PlanConfigurationError: The plan cannot be sequenced or has no report profile.
        """

        context = initialize_context(plan, resource, resolver=self._resolver)
        context.profile = find_profile(plan)
        self.store.insert(context)
        return context

    async def start(self, plan: Plan, resource: dict[str, Any]) -> ExecutionContext:
        """Start a reporting workflow for ``plan`` triggered by ``resource``."""

        context = self.prepare(plan, resource)
        return await self.executor.start(context)

    async def resume(self, context_id: str) -> ExecutionContext:
        return await self.executor.resume(context_id)

    def cancel(self, context_id: str) -> None:
        """Ask a run to stop before its next action.

        An action already in flight finishes; cancellation only prevents the next
        one from starting.
        """

        if not self.store.set_cancelled(context_id):
            raise ContextNotFoundError(context_id)
        logger.info("Cancellation requested", extra={"context_id": context_id})

    def list(self) -> list[ExecutionContext]:
        return self.store.list()

    def get(self, context_id: str) -> ExecutionContext:
        context = self.store.get(context_id)
        if context is None:
            raise ContextNotFoundError(context_id)
        return context

    def close(self) -> None:
        self.clients.close()
