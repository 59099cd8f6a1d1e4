"""Step ordering by declared entity-type dependencies."""

import heapq
import logging
from collections import defaultdict
from typing import Dict, List, Set

from ..errors import DependencyCycleError
from ..models.pipeline import Step

logger = logging.getLogger(__name__)


def _find_cycle(remaining: Set[int], edges: Dict[int, List[int]], steps: List[Step]) -> List[str]:
    """
    Name one cycle among the steps Kahn's algorithm could not schedule.

    Every unscheduled step still has an unscheduled predecessor, so walking
    predecessors from any of them must revisit a step.
    """
    predecessors: Dict[int, List[int]] = defaultdict(list)
    for source, targets in edges.items():
        if source in remaining:
            for target in targets:
                predecessors[target].append(source)

    path: List[int] = []
    position: Dict[int, int] = {}
    node = min(remaining)
    while node not in position:
        position[node] = len(path)
        path.append(node)
        node = min(predecessors[node])

    cycle = path[position[node]:] + [node]
    cycle.reverse()
    return [steps[i].entity_type for i in cycle]


def order_steps(steps: List[Step], allow_cycle_fallback: bool = False) -> List[Step]:
    """
    Order steps so that every producer of an entity type runs before its consumers.

    Every step producing type T gets an edge to every other step listing T in
    depends_on. Among steps that are ready at the same time, the one declared
    first runs first.

    Args:
        steps: Steps in declaration order
        allow_cycle_fallback: Return declaration order (with a warning) instead
            of raising when dependencies form a cycle

    Returns:
        Steps in execution order

    Raises:
        DependencyCycleError: If dependencies form a cycle and fallback is off
    """
    producers: Dict[str, List[int]] = defaultdict(list)
    for idx, step in enumerate(steps):
        producers[step.entity_type].append(idx)

    edges: Dict[int, List[int]] = defaultdict(list)
    in_degree = [0] * len(steps)

    for idx, step in enumerate(steps):
        for dependency in sorted(step.depends_on):
            sources = [p for p in producers.get(dependency, []) if p != idx]
            if not sources:
                if dependency not in producers:
                    logger.warning(
                        f"Step {step.entity_type} depends on {dependency}, "
                        f"which no step produces; ignoring"
                    )
                continue
            for source in sources:
                edges[source].append(idx)
                in_degree[idx] += 1

    ready = [idx for idx in range(len(steps)) if in_degree[idx] == 0]
    heapq.heapify(ready)
    order: List[int] = []

    while ready:
        idx = heapq.heappop(ready)
        order.append(idx)
        for dependent in edges[idx]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) != len(steps):
        remaining = set(range(len(steps))) - set(order)
        cycle = _find_cycle(remaining, edges, steps)
        if allow_cycle_fallback:
            logger.warning(
                f"Dependency cycle between steps ({' -> '.join(cycle)}); "
                f"falling back to declaration order"
            )
            return list(steps)
        raise DependencyCycleError(cycle)

    return [steps[idx] for idx in order]
