import warnings
from typing import Iterable, List, Mapping, NamedTuple, Tuple, Union

from .factors import NodeKind, VariableNode, FactorNode


UNKNOWN_NODE = "unknown node"
SAME_KIND = "same kind"
DUPLICATE_EDGE = "duplicate edge"


class InvalidEdge(NamedTuple):
    """
    An edge rejected during normalization, by node name
    """
    source: str
    target: str
    reason: str


class GraphNode(object):
    """
    A node of the normalized graph: the user's description augmented with its name,
    dense id and neighbour ids
    """
    def __init__(self, id: int, name: str, node: Union[VariableNode, FactorNode]) -> None:
        """
        Inputs:
        - id : int, position of the node in FactorGraph.nodes
        - name : str, external name given by the user
        - node : VariableNode | FactorNode, user supplied description
        """
        self.id = id
        self.name = name
        self.node = node
        self.kind = node.kind
        self.neighbours = []  # preserve order of first occurrence
        # factors carry the derived log-potential evaluator when they have one
        self.log_potential = getattr(node, "log_potential", None) if self.is_factor else None

    @property
    def is_variable(self) -> bool:
        return self.kind is NodeKind.VARIABLE

    @property
    def is_factor(self) -> bool:
        return self.kind is NodeKind.FACTOR

    def __repr__(self) -> str:
        return f"GraphNode({self.id}, {self.name!r}, {self.kind.value})"


class FactorGraph(object):
    """
    Bipartite graph of variables and factors indexed by dense integer ids.
    Every accepted edge is stored in both directions.
    """
    def __init__(self, nodes: List[GraphNode], edges: List[Tuple[int, int]],
                 diagnostics: List[InvalidEdge]) -> None:
        """
        Input:
        - nodes : list of GraphNode, node i has id i
        - edges : list of (int, int), accepted directed edges
        - diagnostics : list of InvalidEdge, edges rejected during normalization
        """
        self.nodes = nodes
        self.edges = edges
        self.diagnostics = diagnostics
        self._name_to_id = {node.name: node.id for node in nodes}

    @property
    def N(self) -> int:
        return len(self.nodes)

    def node(self, name: str) -> Union[None, GraphNode]:
        """
        Finds a node by external name, None if unknown
        """
        node_id = self._name_to_id.get(name)
        return None if node_id is None else self.nodes[node_id]

    def get_nbrs(self, s: int) -> List[int]:
        """
        Gets list of ids that are neighbours with node s
        """
        return self.nodes[s].neighbours

    def _nbr_idx(self, s: int, t: int) -> int:
        """
        Finds the index of node s in the nbrs of t.
        """
        return self.nodes[t].neighbours.index(s)

    def variable_ids(self) -> List[int]:
        return [node.id for node in self.nodes if node.is_variable]

    def factor_ids(self) -> List[int]:
        return [node.id for node in self.nodes if node.is_factor]


def normalize_graph(nodes: Mapping[str, Union[VariableNode, FactorNode]],
                    edges: Iterable[Tuple[str, str]]) -> FactorGraph:
    """
    Converts a user graph description into a FactorGraph.

    Input:
    - nodes: mapping of node name to VariableNode | FactorNode, ids follow mapping order
    - edges: iterable of (name, name) pairs, direction does not matter
    Returns:
    - graph: FactorGraph, with invalid edges dropped and listed in graph.diagnostics
    """
    graph_nodes = [GraphNode(i, name, node) for i, (name, node) in enumerate(nodes.items())]
    name_to_id = {node.name: node.id for node in graph_nodes}
    diagnostics = []

    # expand into both directions before building adjacency
    directed = []
    for source, target in edges:
        if source not in name_to_id or target not in name_to_id:
            diagnostics.append(InvalidEdge(source, target, UNKNOWN_NODE))
            continue
        s, t = name_to_id[source], name_to_id[target]
        directed.append((s, t))
        directed.append((t, s))

    accepted = []
    for s, t in directed:
        node_s, node_t = graph_nodes[s], graph_nodes[t]
        if node_s.kind is node_t.kind:
            diagnostics.append(InvalidEdge(node_s.name, node_t.name, SAME_KIND))
            continue
        if t in node_s.neighbours:
            diagnostics.append(InvalidEdge(node_s.name, node_t.name, DUPLICATE_EDGE))
            continue
        node_s.neighbours.append(t)
        accepted.append((s, t))

    for diagnostic in diagnostics:
        warnings.warn(f"Invalid edge ({diagnostic.source}, {diagnostic.target}): {diagnostic.reason}")

    return FactorGraph(graph_nodes, accepted, diagnostics)
