import unittest
import warnings

from torch_fgbp import DiscreteVariable, DiscreteFactor, GaussianVariable, GaussianFactor, NodeKind
from torch_fgbp.graph import normalize_graph, InvalidEdge
from torch_fgbp.util import LOG_EPSILON


def normalize_quietly(nodes, edges):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return normalize_graph(nodes, edges)


class TestNormalizeGraph(unittest.TestCase):
    def setUp(self):
        self.nodes = {
            "A": DiscreteVariable([0, 1]),
            "B": DiscreteVariable([0, 1, 2]),
            "f": DiscreteFactor(lambda v: 1.0 + v[0] + v[1]),
        }

    def test_dense_ids_in_mapping_order(self):
        graph = normalize_graph(self.nodes, [("A", "f"), ("B", "f")])
        self.assertEqual(graph.N, 3)
        self.assertEqual([node.id for node in graph.nodes], [0, 1, 2])
        self.assertEqual([node.name for node in graph.nodes], ["A", "B", "f"])
        self.assertEqual(graph.variable_ids(), [0, 1])
        self.assertEqual(graph.factor_ids(), [2])
        self.assertIs(graph.node("f").kind, NodeKind.FACTOR)
        self.assertIsNone(graph.node("missing"))
        self.assertEqual(graph.diagnostics, [])

    def test_edges_are_bidirectional(self):
        graph = normalize_graph(self.nodes, [("A", "f"), ("f", "B")])
        self.assertEqual(sorted(graph.edges), [(0, 2), (1, 2), (2, 0), (2, 1)])
        self.assertEqual(graph.get_nbrs(0), [2])
        self.assertEqual(graph.get_nbrs(1), [2])
        self.assertEqual(graph._nbr_idx(1, 2), 1)

    def test_factor_neighbour_order_follows_first_occurrence(self):
        graph = normalize_graph(self.nodes, [("B", "f"), ("A", "f")])
        self.assertEqual(graph.node("f").neighbours, [1, 0])

    def test_unknown_nodes_are_dropped(self):
        with self.assertWarns(UserWarning):
            graph = normalize_graph(self.nodes, [("A", "f"), ("A", "ghost")])
        self.assertEqual(graph.diagnostics, [InvalidEdge("A", "ghost", "unknown node")])
        self.assertEqual(graph.node("A").neighbours, [2])

    def test_same_kind_edges_are_rejected_each_direction(self):
        graph = normalize_quietly(self.nodes, [("A", "B"), ("A", "f")])
        self.assertEqual(graph.diagnostics, [InvalidEdge("A", "B", "same kind"),
                                             InvalidEdge("B", "A", "same kind")])
        self.assertEqual(graph.node("A").neighbours, [2])
        self.assertEqual(graph.node("B").neighbours, [])
        self.assertEqual(len(graph.edges), 2)

    def test_duplicate_edges_are_rejected(self):
        graph = normalize_quietly(self.nodes, [("A", "f"), ("f", "A")])
        self.assertEqual([d.reason for d in graph.diagnostics], ["duplicate edge", "duplicate edge"])
        self.assertEqual(graph.node("A").neighbours, [2])
        self.assertEqual(graph.node("f").neighbours, [0])

    def test_factor_log_potential_floor(self):
        nodes = {"A": DiscreteVariable([0, 1]),
                 "f": DiscreteFactor(lambda v: [0.0, 2.0][v[0]])}
        graph = normalize_graph(nodes, [("A", "f")])
        log_potential = graph.node("f").log_potential
        self.assertEqual(log_potential([0]), LOG_EPSILON)
        self.assertAlmostEqual(log_potential([1]), 0.6931471805599453)
        self.assertIsNone(graph.node("A").log_potential)

    def test_gaussian_nodes(self):
        nodes = {"x": GaussianVariable(0., 1.),
                 "y": GaussianVariable(1., 2.),
                 "f": GaussianFactor([[2., -1.], [-1., 2.]], [0., 1.])}
        graph = normalize_graph(nodes, [("x", "f"), ("y", "f")])
        self.assertEqual(graph.node("f").neighbours, [0, 1])
        self.assertTrue(graph.node("x").is_variable)


if __name__ == "__main__":
    unittest.main()
