"""Unit tests for dependency graph construction."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from reporting_orchestrator.orchestrator.workflow.errors import (
    DuplicateActionIdError,
    ReservedActionIdError,
    UnknownActionReferenceError,
    UnknownDurationUnitError,
    UnsupportedRelationshipError,
)
from reporting_orchestrator.orchestrator.workflow.graph import (
    ACTION_NODE,
    DELAY_NODE,
    build_dependency_graph,
    make_delay_node,
    parse_delay_node,
)
from reporting_orchestrator.orchestrator.workflow.plan import Plan, action_for_code


def _before(target: str, **offset: object) -> dict[str, object]:
    related: dict[str, object] = {"actionId": target, "relationship": "before-start"}
    if offset:
        related["offsetDuration"] = offset
    return related


def test_every_action_becomes_a_node(make_plan: Callable[..., Plan]) -> None:
    plan = make_plan(action_for_code("A", "x"), action_for_code("B", "y"))

    graph = build_dependency_graph(plan)

    assert set(graph.nodes) == {"A", "B"}
    assert graph.number_of_edges() == 0
    assert graph.nodes["A"]["kind"] == ACTION_NODE
    assert graph.nodes["B"]["order"] == 1


def test_related_action_without_offset_adds_direct_edge(make_plan: Callable[..., Plan]) -> None:
    plan = make_plan(
        action_for_code("A", "x", relatedAction=[_before("B")]),
        action_for_code("B", "y"),
    )

    graph = build_dependency_graph(plan)

    assert list(graph.edges) == [("A", "B")]


def test_offset_inserts_single_delay_node(make_plan: Callable[..., Plan]) -> None:
    plan = make_plan(
        action_for_code("A", "x", relatedAction=[_before("B", value=1, code="min")]),
        action_for_code("B", "y"),
    )

    graph = build_dependency_graph(plan)

    delays = [n for n, data in graph.nodes(data=True) if data["kind"] == DELAY_NODE]
    assert delays == ["delay:60000:A:B"]
    assert graph.nodes[delays[0]]["ms"] == 60_000
    assert set(graph.edges) == {("A", delays[0]), (delays[0], "B")}
    assert not graph.has_edge("A", "B")


def test_offset_unit_falls_back_to_display_unit(make_plan: Callable[..., Plan]) -> None:
    plan = make_plan(
        action_for_code("A", "x", relatedAction=[_before("B", value=2, unit="s")]),
        action_for_code("B", "y"),
    )

    graph = build_dependency_graph(plan)

    assert "delay:2000:A:B" in graph


def test_forward_reference_is_coalesced(make_plan: Callable[..., Plan]) -> None:
    plan = make_plan(
        action_for_code("A", "x", relatedAction=[_before("C")]),
        action_for_code("B", "y"),
        action_for_code("C", "z"),
    )

    graph = build_dependency_graph(plan)

    assert graph.number_of_nodes() == 3
    assert graph.nodes["C"] == {"kind": ACTION_NODE, "order": 2}


def test_unsupported_relationship_is_rejected(make_plan: Callable[..., Plan]) -> None:
    plan = make_plan(
        action_for_code("A", "x", relatedAction=[{"actionId": "B", "relationship": "after-end"}]),
        action_for_code("B", "y"),
    )

    with pytest.raises(UnsupportedRelationshipError, match="after-end"):
        build_dependency_graph(plan)


def test_unknown_offset_unit_is_rejected(make_plan: Callable[..., Plan]) -> None:
    plan = make_plan(
        action_for_code("A", "x", relatedAction=[_before("B", value=1, code="mo")]),
        action_for_code("B", "y"),
    )

    with pytest.raises(UnknownDurationUnitError):
        build_dependency_graph(plan)


def test_undeclared_target_is_rejected(make_plan: Callable[..., Plan]) -> None:
    plan = make_plan(action_for_code("A", "x", relatedAction=[_before("missing")]))

    with pytest.raises(UnknownActionReferenceError, match="missing"):
        build_dependency_graph(plan)


def test_duplicate_action_ids_are_rejected(make_plan: Callable[..., Plan]) -> None:
    plan = make_plan(action_for_code("A", "x"), action_for_code("A", "y"))

    with pytest.raises(DuplicateActionIdError):
        build_dependency_graph(plan)


@pytest.mark.parametrize("action_id", ["delay:5:A:B", "delay:later"])
def test_action_ids_shaped_like_delay_nodes_are_rejected(
    make_plan: Callable[..., Plan], action_id: str
) -> None:
    plan = make_plan(action_for_code(action_id, "x"), action_for_code("B", "y"))

    with pytest.raises(ReservedActionIdError, match="reserved"):
        build_dependency_graph(plan)


def test_action_id_named_delay_is_allowed(make_plan: Callable[..., Plan]) -> None:
    plan = make_plan(action_for_code("delay", "x"))

    assert set(build_dependency_graph(plan).nodes) == {"delay"}


def test_delay_node_ids_round_trip() -> None:
    node = make_delay_node(1500, "A", "B")

    assert node == "delay:1500:A:B"
    assert parse_delay_node(node) == 1500


@pytest.mark.parametrize("node", ["A", "delay", "delay:soon:A:B", "wait:10:A:B"])
def test_parse_delay_node_ignores_action_ids(node: str) -> None:
    assert parse_delay_node(node) is None
