"""
Dependency ordering for calculated KPIs.

Edges run dependency -> dependent and only between calculated KPIs: raw inputs
are already in the value map before any formula runs, so they never constrain order.
"""

import logging
from collections import deque
from dataclasses import dataclass, field

from formula import extract_dependencies
from models import KPIDefinition

logger = logging.getLogger(__name__)


@dataclass
class ResolutionResult:
    ordered: list[KPIDefinition]
    cycle_detected: bool = False
    # Ids left with unresolved in-degree when a cycle stopped the sort
    cyclic_ids: list[str] = field(default_factory=list)


def build_graph(kpis: list[KPIDefinition]) -> tuple[dict[str, list[str]], dict[str, int]]:
    """Adjacency (dependency -> dependents) and in-degree per KPI id."""
    ids = {k.id for k in kpis}
    graph: dict[str, list[str]] = {k.id: [] for k in kpis}
    in_degree: dict[str, int] = {k.id: 0 for k in kpis}
    for kpi in kpis:
        for dep in extract_dependencies(kpi.formula):
            if dep in ids and dep != kpi.id:
                graph[dep].append(kpi.id)
                in_degree[kpi.id] += 1
            elif dep == kpi.id:
                # Self-reference: the KPI can never become ready
                in_degree[kpi.id] += 1
    return graph, in_degree


def resolve_order(kpis: list[KPIDefinition]) -> ResolutionResult:
    """
    Kahn's algorithm. Ready KPIs are emitted in input order, so the result is
    deterministic. On a cycle the original order is returned and the cycle is
    reported in the result (and logged), never raised.
    """
    graph, in_degree = build_graph(kpis)
    by_id = {k.id: k for k in kpis}
    remaining = dict(in_degree)

    queue = deque(k.id for k in kpis if remaining[k.id] == 0)
    ordered: list[KPIDefinition] = []
    while queue:
        kpi_id = queue.popleft()
        ordered.append(by_id[kpi_id])
        for dependent in graph[kpi_id]:
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                queue.append(dependent)

    if len(ordered) < len(kpis):
        emitted = {k.id for k in ordered}
        cyclic = [k.id for k in kpis if k.id not in emitted]
        logger.error(
            "Circular dependency among calculated KPIs %s; falling back to unordered evaluation",
            ", ".join(cyclic),
        )
        return ResolutionResult(ordered=list(kpis), cycle_detected=True, cyclic_ids=cyclic)

    return ResolutionResult(ordered=ordered)


def topological_sort(kpis: list[KPIDefinition]) -> list[KPIDefinition]:
    return resolve_order(kpis).ordered
