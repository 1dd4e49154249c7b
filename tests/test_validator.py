"""Tests for structural graph validation."""

import logging

from nodeflow.core.models import Edge, ErrorKind, Node
from nodeflow.core.validator import GraphValidationError, GraphValidator


class TestEmptyGraph:
    def test_empty_graph_short_circuits(self):
        result = GraphValidator().validate([], [{"source": "", "target": ""}])
        assert not result.valid
        assert result.kinds() == [ErrorKind.GRAPH_EMPTY]
        assert result.warnings == []


class TestNodeChecks:
    """Tests for node id/type checks."""

    def test_valid_linear_graph(self, linear_graph):
        nodes, edges = linear_graph
        result = GraphValidator().validate(nodes, edges)
        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    def test_missing_id(self):
        result = GraphValidator().validate([{"type": "input"}], [])
        assert ErrorKind.NODE_MISSING_ID in result.kinds()

    def test_missing_type(self):
        result = GraphValidator().validate([{"id": "a"}], [])
        issue = result.find(ErrorKind.NODE_MISSING_TYPE)
        assert issue is not None
        assert issue.node_id == "a"

    def test_duplicate_id_reported_once(self, make_nodes, make_edges):
        nodes = make_nodes("a", "a", "a", "b")
        result = GraphValidator().validate(nodes, make_edges("a->b"))
        assert result.kinds().count(ErrorKind.NODE_DUPLICATE_ID) == 1
        assert result.find(ErrorKind.NODE_DUPLICATE_ID).node_id == "a"

    def test_accepts_raw_mappings(self):
        result = GraphValidator().validate(
            [{"id": "a", "type": "t"}, {"id": "b", "type": "t"}],
            [{"source": "a", "target": "b"}],
        )
        assert result.valid


class TestEdgeChecks:
    """Tests for edge endpoint and handle checks."""

    def test_missing_source_not_also_not_found(self, make_nodes):
        result = GraphValidator().validate(make_nodes("a"), [Edge(source="", target="a")])
        assert ErrorKind.EDGE_MISSING_SOURCE in result.kinds()
        assert ErrorKind.EDGE_SOURCE_NOT_FOUND not in result.kinds()

    def test_missing_target(self, make_nodes):
        result = GraphValidator().validate(make_nodes("a"), [Edge(source="a", target="")])
        assert result.kinds() == [ErrorKind.EDGE_MISSING_TARGET]

    def test_unknown_endpoints(self, make_nodes, make_edges):
        result = GraphValidator().validate(make_nodes("a"), make_edges("ghost->a", "a->phantom"))
        kinds = result.kinds()
        assert ErrorKind.EDGE_SOURCE_NOT_FOUND in kinds
        assert ErrorKind.EDGE_TARGET_NOT_FOUND in kinds
        assert result.find(ErrorKind.EDGE_SOURCE_NOT_FOUND).node_id == "ghost"

    def test_invalid_source_port(self):
        nodes = [Node(id="a", type="t", outputs=["out"]), Node(id="b", type="t")]
        edges = [Edge(id="e1", source="a", target="b", source_handle="bogus")]
        result = GraphValidator().validate(nodes, edges)
        issue = result.find(ErrorKind.EDGE_INVALID_SOURCE_PORT)
        assert issue is not None
        assert issue.edge_id == "e1"
        assert issue.port == "bogus"

    def test_invalid_target_port(self):
        nodes = [Node(id="a", type="t"), Node(id="b", type="t", inputs=["in"])]
        edges = [Edge(source="a", target="b", target_handle="nope")]
        result = GraphValidator().validate(nodes, edges)
        assert result.kinds() == [ErrorKind.EDGE_INVALID_TARGET_PORT]

    def test_valid_handles(self):
        nodes = [Node(id="a", type="t", outputs=["out"]), Node(id="b", type="t", inputs=["in"])]
        edges = [Edge(source="a", target="b", source_handle="out", target_handle="in")]
        assert GraphValidator().validate(nodes, edges).valid

    def test_handles_unchecked_without_port_metadata(self, make_nodes):
        edges = [Edge(source="a", target="b", source_handle="x", target_handle="y")]
        assert GraphValidator().validate(make_nodes("a", "b"), edges).valid

    def test_all_errors_collected(self):
        """Errors from different checks are reported together."""
        nodes = [Node(id="a", type=""), Node(id="b", type="t")]
        edges = [Edge(source="a", target="ghost"), Edge(source="", target="b")]
        kinds = set(GraphValidator().validate(nodes, edges).kinds())
        assert kinds == {
            ErrorKind.NODE_MISSING_TYPE,
            ErrorKind.EDGE_TARGET_NOT_FOUND,
            ErrorKind.EDGE_MISSING_SOURCE,
        }


class TestCycleDetection:
    """Tests for cycle detection."""

    def test_two_node_cycle(self, cyclic_graph):
        nodes, edges = cyclic_graph
        result = GraphValidator().validate(nodes, edges)
        issue = result.find(ErrorKind.GRAPH_CYCLE_DETECTED)
        assert issue is not None
        assert issue.cycle[0] == issue.cycle[-1]
        assert set(issue.cycle) == {"A", "B"}

    def test_self_loop(self, make_nodes, make_edges):
        result = GraphValidator().validate(make_nodes("a"), make_edges("a->a"))
        assert result.find(ErrorKind.GRAPH_CYCLE_DETECTED).cycle == ["a", "a"]

    def test_cycle_path_follows_edges(self, make_nodes, make_edges):
        nodes = make_nodes("start", "x", "y", "z")
        edges = make_edges("start->x", "x->y", "y->z", "z->x")
        cycle = GraphValidator().find_cycle(nodes, edges)
        assert cycle[0] == cycle[-1]
        pairs = {(e.source, e.target) for e in edges}
        for source, target in zip(cycle, cycle[1:]):
            assert (source, target) in pairs
        assert "start" not in cycle

    def test_acyclic_diamond(self, diamond_graph):
        nodes, edges = diamond_graph
        assert GraphValidator().find_cycle(nodes, edges) is None

    def test_dangling_edges_ignored_for_cycles(self, make_nodes, make_edges):
        nodes = make_nodes("a", "b")
        cycle = GraphValidator().find_cycle(nodes, make_edges("a->b", "b->ghost", "ghost->a"))
        assert cycle is None


class TestWarnings:
    """Warnings never affect validity."""

    def test_disconnected_nodes(self, make_nodes, make_edges):
        nodes = make_nodes("a", "b", "lonely")
        result = GraphValidator().validate(nodes, make_edges("a->b"))
        assert result.valid
        assert result.warnings == ["Found 1 disconnected nodes: lonely"]

    def test_single_node_is_disconnected(self, make_nodes):
        result = GraphValidator().validate(make_nodes("a"), [])
        assert result.valid
        assert result.warnings == ["Found 1 disconnected nodes: a"]

    def test_no_source_nodes(self, cyclic_graph):
        nodes, edges = cyclic_graph
        result = GraphValidator().validate(nodes, edges)
        assert "No source nodes found - graph may not execute properly" in result.warnings

    def test_warnings_are_logged(self, caplog, make_nodes):
        with caplog.at_level(logging.WARNING, logger="nodeflow.core.validator"):
            GraphValidator().validate(make_nodes("a"), [])
        assert "disconnected" in caplog.text


class TestHelpers:
    def test_can_execute(self, linear_graph, cyclic_graph):
        validator = GraphValidator()
        assert validator.can_execute(*linear_graph)
        assert not validator.can_execute(*cyclic_graph)

    def test_find_disconnected_nodes(self, make_nodes, make_edges):
        nodes = make_nodes("a", "b", "c", "d")
        assert GraphValidator().find_disconnected_nodes(nodes, make_edges("a->b")) == ["c", "d"]

    def test_validation_error_message(self, cyclic_graph):
        result = GraphValidator().validate(*cyclic_graph)
        error = GraphValidationError(result.errors)
        assert str(error).startswith("Graph validation failed: Graph contains a cycle")
        assert error.kinds == [ErrorKind.GRAPH_CYCLE_DETECTED]
