"""Bounded transitive closure over the note link graph."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Protocol, Set, Tuple

from zk_index.models.schema import LinkDirection, LinkEdge
from zk_index.utils import remove_duplicates

logger = logging.getLogger(__name__)

# Maximum number of path extensions in a single closure. Dense graphs with
# many cycles can have a huge number of distinct paths; this stops runaway
# expansions.
STEP_LIMIT = 100_000

# "Related" notes are exactly this many hops away from the seeds.
RELATED_DISTANCE = 2


class LinkGraph(Protocol):
    """Adjacency source for the traversal, implemented by the note store."""

    def neighbors(
        self, note_ids: Iterable[int], direction: LinkDirection
    ) -> List[LinkEdge]: ...


@dataclass
class Reach:
    """How a note was reached from the seeds.

    Attributes:
        distance: Smallest number of hops from any seed.
        link_ids: Links of the final hop of every path reaching the note,
            in discovery order.
    """

    distance: int
    link_ids: List[int] = field(default_factory=list)


class GraphTraversal:
    """Breadth-first expansion of seed notes along their links.

    Visited state is tracked per traversal path rather than globally: a note
    can be reached again through another path (and recorded at a larger
    distance) but a hop back to a note already on the current path is
    pruned, which keeps cyclic graphs finite.
    """

    def __init__(self, graph: LinkGraph, step_limit: int = STEP_LIMIT):
        self.graph = graph
        self.step_limit = step_limit

    def closure(
        self,
        seeds: Iterable[int],
        direction: LinkDirection,
        max_distance: int = 0,
    ) -> Dict[int, Reach]:
        """Notes reachable from ``seeds`` by following links.

        Args:
            seeds: IDs the expansion starts from.
            direction: OUTGOING follows links to their targets, INCOMING back
                to their sources, BOTH either way.
            max_distance: Maximum number of hops, 0 for unbounded.

        Returns:
            Reached note IDs mapped to their minimum distance and the links
            they were reached through. Seeds only appear when another seed
            reaches them.
        """
        seeds = remove_duplicates(seeds)
        frontier: List[Tuple[int, ...]] = [(seed,) for seed in seeds]
        reached: Dict[int, Reach] = {}
        distance = 0
        steps = 0

        while frontier:
            if max_distance and distance >= max_distance:
                break
            distance += 1
            adjacency = self._adjacency({path[-1] for path in frontier}, direction)

            next_frontier: List[Tuple[int, ...]] = []
            for path in frontier:
                for link_id, neighbor in adjacency.get(path[-1], ()):
                    if neighbor in path:
                        continue
                    if steps >= self.step_limit:
                        logger.warning(
                            f"Link traversal stopped after {steps} steps "
                            f"at distance {distance}"
                        )
                        return reached
                    steps += 1

                    reach = reached.get(neighbor)
                    if reach is None:
                        reach = reached[neighbor] = Reach(distance=distance)
                    if link_id not in reach.link_ids:
                        reach.link_ids.append(link_id)
                    next_frontier.append(path + (neighbor,))
            frontier = next_frontier

        logger.debug(
            f"Closure from {len(seeds)} "
            f"seed(s) reached {len(reached)} note(s) in {steps} step(s)"
        )
        return reached

    def _adjacency(
        self, note_ids: Set[int], direction: LinkDirection
    ) -> Dict[int, List[Tuple[int, int]]]:
        """``note id -> [(link id, neighbor id)]`` for one expansion round."""
        adjacency: Dict[int, List[Tuple[int, int]]] = {}
        for edge in self.graph.neighbors(sorted(note_ids), direction):
            if direction != LinkDirection.INCOMING and edge.source_id in note_ids:
                adjacency.setdefault(edge.source_id, []).append(
                    (edge.link_id, edge.target_id)
                )
            if direction != LinkDirection.OUTGOING and edge.target_id in note_ids:
                adjacency.setdefault(edge.target_id, []).append(
                    (edge.link_id, edge.source_id)
                )
        return adjacency
