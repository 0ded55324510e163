"""Baseline actions for the base reporting bundle profile.

Every action receives the execution context. Actions that call out to another
service record a boolean outcome flag instead of raising, so later actions and
observers can react to the failure.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

import requests

from reporting_orchestrator.orchestrator.clients import ANONYMIZE, DEIDENTIFY, PSEUDONYMIZE
from reporting_orchestrator.orchestrator.workflow.context import ExecutionContext
from reporting_orchestrator.orchestrator.workflow.registry import (
    BASE_REPORTING_BUNDLE_PROFILE,
    ActionCallable,
    ActionRegistry,
)

logger = logging.getLogger(__name__)

MESSAGE_PROCESSING_CATEGORY_URL = (
    "http://hl7.org/fhir/us/medmorph/StructureDefinition/ext-messageProcessingCategory"
)
MESSAGE_TYPES_SYSTEM = (
    "http://hl7.org/fhir/us/medmorph/CodeSystem/us-ph-messageheader-message-types"
)
NAMED_EVENTS_SYSTEM = (
    "http://hl7.org/fhir/us/medmorph/CodeSystem/us-ph-triggerdefinition-namedevents"
)

VALID_BUNDLE_TYPES = frozenset(
    {
        "document",
        "message",
        "transaction",
        "transaction-response",
        "batch",
        "batch-response",
        "history",
        "searchset",
        "collection",
    }
)


def create_bundle(resources: Iterable[dict[str, Any]]) -> dict[str, Any]:
    return {
        "resourceType": "Bundle",
        "id": uuid.uuid4().hex,
        "type": "message",
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "entry": [{"resource": resource} for resource in resources],
    }


def make_header(context: ExecutionContext) -> dict[str, Any]:
    clients = context.clients
    dest = getattr(clients, "dest", None) if clients is not None else None
    source = getattr(clients, "source", None) if clients is not None else None

    header: dict[str, Any] = {
        "resourceType": "MessageHeader",
        "id": uuid.uuid4().hex,
        "extension": [{"url": MESSAGE_PROCESSING_CATEGORY_URL, "valueCode": "consequence"}],
        "eventCoding": {"system": MESSAGE_TYPES_SYSTEM, "code": "message-report"},
        "reason": {"coding": [{"system": NAMED_EVENTS_SYSTEM, "code": "encounter-change"}]},
    }
    if dest is not None:
        header["destination"] = [{"endpoint": dest.endpoint}]
    if source is not None:
        header["source"] = {"endpoint": source.endpoint}
    return header


def is_well_formed_bundle(bundle: object) -> bool:
    if not isinstance(bundle, dict):
        return False
    if bundle.get("resourceType") != "Bundle":
        return False
    if bundle.get("type") not in VALID_BUNDLE_TYPES:
        return False
    entries = bundle.get("entry", [])
    if not isinstance(entries, list):
        return False
    return all(isinstance(e, dict) and isinstance(e.get("resource", {}), dict) for e in entries)


def check_participant_registration(context: ExecutionContext) -> None:
    # Participant registration is not checked yet; the step always passes.
    return None


def create_report(context: ExecutionContext) -> None:
    content = create_bundle(context.records)
    reporting = create_bundle([make_header(context), *context.records])
    if context.profile:
        reporting["meta"] = {"profile": [context.profile]}

    context.content_bundle = content
    context.reporting_bundle = reporting


def validate_report(context: ExecutionContext) -> None:
    context.flags["valid"] = is_well_formed_bundle(context.reporting_bundle)


async def submit_report(context: ExecutionContext) -> None:
    dest = context.clients.dest if context.clients is not None else None
    if dest is None or context.reporting_bundle is None:
        logger.warning(
            "Cannot submit report: missing destination or reporting bundle",
            extra={"context_id": context.id},
        )
        context.flags["submitted"] = False
        return

    try:
        status_code = await asyncio.to_thread(dest.submit, context.reporting_bundle)
    except requests.RequestException:
        logger.exception("Report submission failed", extra={"context_id": context.id})
        context.flags["submitted"] = False
        return
    context.flags["submitted"] = 200 <= status_code < 300


def _trust_transform(operation: str, flag: str) -> ActionCallable:
    async def _run(context: ExecutionContext) -> None:
        trust = context.clients.trust if context.clients is not None else None
        if trust is None or context.reporting_bundle is None:
            logger.warning(
                "Cannot transform report: missing data trust client or reporting bundle",
                extra={"context_id": context.id, "operation": operation},
            )
            context.flags[flag] = False
            return

        try:
            result = await asyncio.to_thread(trust.transform, operation, context.reporting_bundle)
        except (requests.RequestException, ValueError):
            logger.exception(
                "Data trust transformation failed",
                extra={"context_id": context.id, "operation": operation},
            )
            context.flags[flag] = False
            return
        context.reporting_bundle = result
        context.flags[flag] = True

    _run.__name__ = f"{operation}_report"
    return _run


deidentify_report = _trust_transform(DEIDENTIFY, "deidentified")
anonymize_report = _trust_transform(ANONYMIZE, "anonymized")
pseudonymize_report = _trust_transform(PSEUDONYMIZE, "pseudonymized")


def encrypt_report(context: ExecutionContext) -> None:
    # TODO: encrypt the reporting bundle once a key exchange with the PHA is defined.
    context.flags["encrypted"] = True


def complete_reporting(context: ExecutionContext) -> None:
    database = context.clients.database if context.clients is not None else None
    if database is None or context.reporting_bundle is None:
        logger.warning(
            "Cannot complete reporting: missing report database or reporting bundle",
            extra={"context_id": context.id},
        )
        context.flags["completed"] = False
        return
    database.insert(context.reporting_bundle, context_id=context.id)
    context.flags["completed"] = True


def execute_research_query(context: ExecutionContext) -> None:
    return None


BASE_ACTIONS: dict[str, ActionCallable] = {
    "check-participant-registration": check_participant_registration,
    "create-report": create_report,
    "validate-report": validate_report,
    "submit-report": submit_report,
    "deidentify-report": deidentify_report,
    "anonymize-report": anonymize_report,
    "pseudonymize-report": pseudonymize_report,
    "encrypt-report": encrypt_report,
    "complete-reporting": complete_reporting,
    "execute-research-query": execute_research_query,
}


def create_default_registry(
    base_profile: str = BASE_REPORTING_BUNDLE_PROFILE,
) -> ActionRegistry:
    """Return a registry with the baseline actions registered under ``base_profile``."""

    registry = ActionRegistry()
    registry.register_profile(base_profile, BASE_ACTIONS)
    return registry
