"""CLI entrypoint for the reporting workflow engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from reporting_orchestrator import __version__
from reporting_orchestrator.orchestrator.config import WorkflowSettings
from reporting_orchestrator.orchestrator.logging import configure_logging
from reporting_orchestrator.orchestrator.reporting import ReportingWorkflowService
from reporting_orchestrator.orchestrator.workflow.context import ExecutionContext
from reporting_orchestrator.orchestrator.workflow.errors import (
    ContextNotFoundError,
    PlanConfigurationError,
)
from reporting_orchestrator.orchestrator.workflow.plan import Plan
from reporting_orchestrator.orchestrator.workflow.profile import find_profile
from reporting_orchestrator.orchestrator.workflow.scheduler import AsyncioDelayScheduler
from reporting_orchestrator.orchestrator.workflow.sequencing import determine_action_sequence

logger = logging.getLogger(__name__)


def _read_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _load_plan(path: str) -> Plan:
    return Plan.model_validate(_read_json(path))


def _summary(context: ExecutionContext) -> str:
    flags = ", ".join(f"{k}={v}" for k, v in sorted(context.flags.items())) or "none"
    return (
        f"Context {context.id}: state={context.state.value} "
        f"step={context.current_step}/{len(context.action_sequence)} flags: {flags}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reporting-orchestrator",
        description="Run PlanDefinition-driven reporting workflows",
    )
    parser.add_argument(
        "--version", action="version", version=f"medmorph-reporting-orchestrator {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sequence = subparsers.add_parser(
        "sequence", help="Print the execution sequence determined for a plan"
    )
    sequence.add_argument("--plan", required=True, help="Path to PlanDefinition JSON")

    profile = subparsers.add_parser(
        "profile", help="Print the report bundle profile declared by a plan"
    )
    profile.add_argument("--plan", required=True, help="Path to PlanDefinition JSON")

    run = subparsers.add_parser("run", help="Start a reporting workflow")
    run.add_argument("--plan", required=True, help="Path to PlanDefinition JSON")
    run.add_argument(
        "--resource", required=True, help="Path to the JSON resource that triggered the workflow"
    )
    run.add_argument(
        "--no-wait",
        action="store_true",
        help="Return when the workflow delays instead of waiting in-process for it to resume",
    )

    resume = subparsers.add_parser(
        "resume", help="Resume a delayed, failed or interrupted workflow"
    )
    resume.add_argument("--context-id", required=True)
    resume.add_argument(
        "--no-wait",
        action="store_true",
        help="Return when the workflow delays instead of waiting in-process for it to resume",
    )

    cancel = subparsers.add_parser("cancel", help="Cancel a workflow before its next action")
    cancel.add_argument("--context-id", required=True)

    subparsers.add_parser("list", help="Print a one-line summary of every persisted workflow")

    show = subparsers.add_parser("show", help="Print a persisted execution context as JSON")
    show.add_argument("--context-id", required=True)

    return parser


async def _run_service(args: argparse.Namespace, settings: WorkflowSettings) -> ExecutionContext:
    scheduler = AsyncioDelayScheduler()
    service = ReportingWorkflowService(settings, scheduler=scheduler)
    try:
        if args.command == "run":
            context = await service.start(_load_plan(args.plan), _read_json(args.resource))
        else:
            context = await service.resume(args.context_id)

        if args.no_wait:
            scheduler.cancel_all()
        else:
            await scheduler.wait_idle()
        return service.get(context.id)
    finally:
        service.close()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = WorkflowSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        if args.command == "sequence":
            for node in determine_action_sequence(_load_plan(args.plan)):
                print(node)
            return 0

        if args.command == "profile":
            print(find_profile(_load_plan(args.plan)))
            return 0

        if args.command in {"run", "resume"}:
            context = asyncio.run(_run_service(args, settings))
            print(_summary(context))
            return 0

        if args.command == "cancel":
            service = ReportingWorkflowService(settings)
            try:
                service.cancel(args.context_id)
            finally:
                service.close()
            print(f"Cancellation requested for context {args.context_id}")
            return 0

        if args.command == "list":
            service = ReportingWorkflowService(settings)
            try:
                contexts = service.list()
            finally:
                service.close()
            for context in contexts:
                print(_summary(context))
            if not contexts:
                print("No execution contexts")
            return 0

        if args.command == "show":
            service = ReportingWorkflowService(settings)
            try:
                context = service.get(args.context_id)
            finally:
                service.close()
            print(context.model_dump_json(indent=2, by_alias=True))
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except (PlanConfigurationError, ValidationError) as e:
        logger.error("Plan configuration error", extra={"error": str(e)})
        print(f"Plan configuration error: {e}", file=sys.stderr)
        return 2

    except ContextNotFoundError as e:
        print(f"Execution context not found: {e}", file=sys.stderr)
        return 3

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
