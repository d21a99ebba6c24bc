# tests/test_traversal.py
"""Tests for the link graph traversal."""
import logging

from tests.fakes import FakeLinkGraph
from zk_index.models.schema import LinkDirection
from zk_index.query.traversal import GraphTraversal

A, B, C, D, E = 1, 2, 3, 4, 5


def distances(reached):
    return {note_id: reach.distance for note_id, reach in reached.items()}


class TestClosure:
    """Tests for GraphTraversal.closure."""

    def test_chain_bounded_by_max_distance(self):
        traversal = GraphTraversal(FakeLinkGraph([(A, B), (B, C), (C, D)]))
        reached = traversal.closure([A], LinkDirection.OUTGOING, max_distance=2)
        assert distances(reached) == {B: 1, C: 2}

    def test_zero_max_distance_is_unbounded(self):
        traversal = GraphTraversal(FakeLinkGraph([(A, B), (B, C), (C, D)]))
        reached = traversal.closure([A], LinkDirection.OUTGOING, max_distance=0)
        assert distances(reached) == {B: 1, C: 2, D: 3}

    def test_incoming_direction_follows_links_backwards(self):
        traversal = GraphTraversal(FakeLinkGraph([(A, B), (B, C), (C, D)]))
        reached = traversal.closure([D], LinkDirection.INCOMING)
        assert distances(reached) == {C: 1, B: 2, A: 3}

    def test_both_directions(self):
        traversal = GraphTraversal(FakeLinkGraph([(A, B), (C, B)]))
        reached = traversal.closure([A], LinkDirection.BOTH, max_distance=2)
        assert distances(reached) == {B: 1, C: 2}

    def test_cycle_terminates_without_revisiting_the_seed(self):
        traversal = GraphTraversal(FakeLinkGraph([(A, B), (B, C), (C, A)]))
        reached = traversal.closure([A], LinkDirection.OUTGOING)
        assert distances(reached) == {B: 1, C: 2}

    def test_node_reachable_through_several_paths_keeps_min_distance(self):
        graph = FakeLinkGraph([(A, B), (B, C), (C, D), (A, D), (D, E)])
        traversal = GraphTraversal(graph)
        reached = traversal.closure([A], LinkDirection.OUTGOING)
        assert distances(reached) == {B: 1, D: 1, C: 2, E: 2}
        # D was reached through A->D and again through C->D
        assert reached[D].link_ids == [4, 3]

    def test_a_shared_node_does_not_abort_other_paths(self):
        # D is reached through B and through C; both paths are extended.
        graph = FakeLinkGraph([(A, B), (A, C), (B, D), (C, D), (D, E)])
        reached = GraphTraversal(graph).closure([A], LinkDirection.OUTGOING)
        assert distances(reached) == {B: 1, C: 1, D: 2, E: 3}
        assert reached[E].link_ids == [5]

    def test_seed_reached_by_another_seed_is_included(self):
        traversal = GraphTraversal(FakeLinkGraph([(A, B)]))
        reached = traversal.closure([A, B], LinkDirection.OUTGOING)
        assert distances(reached) == {B: 1}

    def test_self_link_is_pruned(self):
        traversal = GraphTraversal(FakeLinkGraph([(A, A), (A, B)]))
        assert distances(traversal.closure([A], LinkDirection.OUTGOING)) == {B: 1}

    def test_empty_seeds(self):
        graph = FakeLinkGraph([(A, B)])
        assert GraphTraversal(graph).closure([], LinkDirection.OUTGOING) == {}
        assert graph.neighbor_calls == 0

    def test_one_neighbors_query_per_round(self):
        graph = FakeLinkGraph([(A, B), (A, C), (B, D), (C, D)])
        GraphTraversal(graph).closure([A], LinkDirection.OUTGOING)
        # Rounds: {A}, {B, C}, {D} (which has no outgoing links)
        assert graph.neighbor_calls == 3

    def test_step_limit_stops_runaway_expansion(self, caplog):
        # Complete graph: the number of simple paths explodes quickly
        nodes = range(1, 9)
        graph = FakeLinkGraph([(s, t) for s in nodes for t in nodes if s != t])
        traversal = GraphTraversal(graph, step_limit=50)
        with caplog.at_level(logging.WARNING, logger="zk_index.query.traversal"):
            reached = traversal.closure([1], LinkDirection.OUTGOING)
        assert set(reached) == set(range(2, 9))
        assert "stopped after 50 steps" in caplog.text
