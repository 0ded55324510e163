"""Dependency graph construction for plan actions.

Nodes are plan action ids plus synthetic delay nodes. An edge ``u -> v`` means
``u`` must complete before ``v`` starts. A related action with an offset is
split into ``u -> delay -> v`` so the wait becomes a step of its own.
"""

from __future__ import annotations

import logging

import networkx as nx

from .duration import to_milliseconds
from .errors import (
    DuplicateActionIdError,
    ReservedActionIdError,
    UnknownActionReferenceError,
    UnsupportedRelationshipError,
)
from .plan import BEFORE_START, Plan

logger = logging.getLogger(__name__)

DELAY_PREFIX = "delay"

ACTION_NODE = "action"
DELAY_NODE = "delay"


def make_delay_node(ms: int, predecessor: str, dependent: str) -> str:
    """Deterministic delay node id.

    The id is persisted as part of the action sequence, so the same plan must
    always yield the same id.
    """

    return f"{DELAY_PREFIX}:{ms}:{predecessor}:{dependent}"


def parse_delay_node(node: str) -> int | None:
    """Return the delay in milliseconds, or None if ``node`` is not a delay node."""

    parts = node.split(":", 2)
    if len(parts) != 3 or parts[0] != DELAY_PREFIX:
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None


def _check_action_ids(plan: Plan) -> None:
    seen: set[str] = set()
    for action_id in plan.action_ids:
        if action_id.startswith(f"{DELAY_PREFIX}:"):
            raise ReservedActionIdError(
                f"PlanDefinition {plan.id} action id {action_id!r} uses the reserved "
                f"{DELAY_PREFIX!r} prefix"
            )
        if action_id in seen:
            raise DuplicateActionIdError(
                f"PlanDefinition {plan.id} declares action id {action_id!r} more than once"
            )
        seen.add(action_id)


def build_dependency_graph(plan: Plan) -> nx.DiGraph:
    _check_action_ids(plan)
    graph = nx.DiGraph(plan_id=plan.id)

    for order, action in enumerate(plan.action):
        # A node may already exist from a forward reference; this fills in its attributes.
        graph.add_node(action.id, kind=ACTION_NODE, order=order)

        for related in action.related_action:
            if related.relationship != BEFORE_START:
                raise UnsupportedRelationshipError(
                    f"PlanDefinition {plan.id} action {action.id!r} uses unsupported "
                    f"relationship {related.relationship!r} (only {BEFORE_START!r})"
                )

            target = related.action_id
            offset = related.offset_duration
            if offset is None:
                graph.add_edge(action.id, target)
                continue

            ms = to_milliseconds(offset.value, offset.unit_symbol)
            delay = make_delay_node(ms, action.id, target)
            graph.add_node(delay, kind=DELAY_NODE, ms=ms, order=order)
            graph.add_edge(action.id, delay)
            graph.add_edge(delay, target)

    undeclared = sorted(n for n, data in graph.nodes(data=True) if "kind" not in data)
    if undeclared:
        raise UnknownActionReferenceError(
            f"PlanDefinition {plan.id} relates to undeclared action(s): {', '.join(undeclared)}"
        )

    logger.debug(
        "Built action dependency graph",
        extra={
            "plan_id": plan.id,
            "nodes": graph.number_of_nodes(),
            "edges": graph.number_of_edges(),
        },
    )
    return graph
