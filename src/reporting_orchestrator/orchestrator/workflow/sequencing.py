from __future__ import annotations

import logging

import networkx as nx

from .errors import CyclicPlanError
from .graph import DELAY_NODE, build_dependency_graph
from .plan import Plan

logger = logging.getLogger(__name__)


def _declaration_key(graph: nx.DiGraph):
    def key(node: str) -> tuple[int, int, str]:
        data = graph.nodes[node]
        # Delay nodes sort right after the action that precedes them.
        rank = 1 if data.get("kind") == DELAY_NODE else 0
        return (data.get("order", 0), rank, node)

    return key


def sequence_graph(graph: nx.DiGraph) -> list[str]:
    """Order graph nodes into a single execution sequence.

    Among nodes that are ready at the same time, declaration order wins, so a
    plan without related actions runs in the order it was written.

    Raises:
        CyclicPlanError: If the graph has a cycle. No partial order is returned.
    """

    plan_id = graph.graph.get("plan_id")
    try:
        return list(nx.lexicographical_topological_sort(graph, key=_declaration_key(graph)))
    except nx.NetworkXUnfeasible:
        try:
            cycle = [u for u, _v in nx.find_cycle(graph)]
        except nx.NetworkXNoCycle:
            cycle = []
        raise CyclicPlanError(plan_id, cycle) from None


def determine_action_sequence(plan: Plan) -> list[str]:
    """Build the dependency graph for ``plan`` and sequence it."""

    sequence = sequence_graph(build_dependency_graph(plan))
    logger.info(
        "Determined action sequence",
        extra={"plan_id": plan.id, "sequence": sequence},
    )
    return sequence
