from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .context import ExecutionContext
from .plan import Plan
from .sequencing import determine_action_sequence

logger = logging.getLogger(__name__)

ResourceResolver = Callable[[str], dict[str, Any] | None]

_PATIENT_REFERENCE_FIELDS = ("subject", "patient")
_ENCOUNTER_REFERENCE_FIELDS = ("encounter", "context")


def _reference(resource: dict[str, Any], fields: tuple[str, ...], resource_type: str) -> str | None:
    for name in fields:
        value = resource.get(name)
        if not isinstance(value, dict):
            continue
        ref = value.get("reference")
        if isinstance(ref, str) and ref.split("/")[-2:-1] == [resource_type]:
            return ref
    return None


def _resolve(
    resource: dict[str, Any],
    resource_type: str,
    fields: tuple[str, ...],
    resolver: ResourceResolver | None,
) -> dict[str, Any] | None:
    if resource.get("resourceType") == resource_type:
        return resource

    ref = _reference(resource, fields, resource_type)
    if ref is None:
        return None
    if resolver is None:
        logger.info(
            "No resolver configured; reference left unresolved", extra={"reference": ref}
        )
        return None

    resolved = resolver(ref)
    if resolved is None:
        logger.warning("Could not resolve reference", extra={"reference": ref})
    return resolved


def initialize_context(
    plan: Plan,
    resource: dict[str, Any],
    *,
    resolver: ResourceResolver | None = None,
) -> ExecutionContext:
    """Build a fresh execution context for ``plan`` triggered by ``resource``.

    The patient and encounter are taken from the triggering resource itself or
    resolved from its references, when possible, and seed the records list. The
    action sequence is computed here, once; plan configuration errors propagate.

    This does not start execution.
    """

    sequence = determine_action_sequence(plan)

    patient = _resolve(resource, "Patient", _PATIENT_REFERENCE_FIELDS, resolver)
    encounter = _resolve(resource, "Encounter", _ENCOUNTER_REFERENCE_FIELDS, resolver)
    records = [r for r in (patient, encounter) if r is not None]

    context = ExecutionContext(
        plan=plan,
        trigger=resource,
        patient=patient,
        encounter=encounter,
        records=records,
        action_sequence=sequence,
    )
    logger.info(
        "Initialized execution context",
        extra={
            "context_id": context.id,
            "plan_id": plan.id,
            "trigger": f"{resource.get('resourceType')}/{resource.get('id')}",
            "records": len(records),
        },
    )
    return context
