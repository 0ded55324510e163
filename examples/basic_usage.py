#!/usr/bin/env python3
"""Programmatic reporting workflow example.

This demonstrates using the engine components directly:

* load settings from `.env`
* register an extension profile on top of the baseline actions
* start a plan for a triggering Patient and wait out its delay

The plan and profile are built inline; pass `--delay-seconds` to change the
wait between report creation and validation.
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Sequence

from reporting_orchestrator.actions.base import create_default_registry
from reporting_orchestrator.orchestrator.config import WorkflowSettings
from reporting_orchestrator.orchestrator.logging import configure_logging
from reporting_orchestrator.orchestrator.reporting import ReportingWorkflowService
from reporting_orchestrator.orchestrator.workflow.context import ExecutionContext
from reporting_orchestrator.orchestrator.workflow.plan import Plan, action_for_code
from reporting_orchestrator.orchestrator.workflow.scheduler import AsyncioDelayScheduler

CANCER_PROFILE = (
    "http://hl7.org/fhir/us/central-cancer-registry-reporting/StructureDefinition/"
    "ccrr-reporting-bundle"
)


def check_cancer_diagnosis(context: ExecutionContext) -> None:
    # Stop early unless the trigger is for a patient we can report on.
    if context.patient is None:
        context.exit_status = "no-patient"


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a reporting workflow (programmatic example).")
    parser.add_argument("--patient-id", default="example", help="Id of the triggering Patient")
    parser.add_argument("--delay-seconds", type=float, default=1.0, help="Wait before validation")
    return parser.parse_args(argv)


def _plan(delay_seconds: float) -> Plan:
    return Plan.model_validate(
        {
            "resourceType": "PlanDefinition",
            "id": "example-cancer-reporting",
            "action": [
                action_for_code("check", "check-cancer-diagnosis"),
                action_for_code(
                    "report",
                    "create-report",
                    output=[{"type": "Bundle", "profile": [CANCER_PROFILE]}],
                    relatedAction=[
                        {
                            "actionId": "validate",
                            "relationship": "before-start",
                            "offsetDuration": {"value": delay_seconds, "code": "s"},
                        }
                    ],
                ),
                action_for_code("validate", "validate-report"),
                action_for_code("complete", "complete-reporting"),
            ],
        }
    )


async def _run(args: argparse.Namespace, settings: WorkflowSettings) -> ExecutionContext:
    registry = create_default_registry(settings.base_profile)
    registry.register_profile(
        CANCER_PROFILE,
        {"check-cancer-diagnosis": check_cancer_diagnosis},
        extends=settings.base_profile,
    )

    scheduler = AsyncioDelayScheduler()
    service = ReportingWorkflowService(settings, registry=registry, scheduler=scheduler)
    try:
        patient = {"resourceType": "Patient", "id": args.patient_id}
        context = await service.start(_plan(args.delay_seconds), patient)
        print(f"Started context {context.id} ({context.state.value})")
        await scheduler.wait_idle()
        return service.get(context.id)
    finally:
        service.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = WorkflowSettings()
    configure_logging(settings.log_level)

    context = asyncio.run(_run(args, settings))

    print(f"Context {context.id} finished in state {context.state.value}")
    print(f"Flags: {context.flags}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
