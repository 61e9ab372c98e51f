from .factors import NodeKind, DiscreteVariable, DiscreteFactor, GaussianVariable, GaussianFactor
from .factor_graph import FactorGraph, GraphNode, InvalidEdge, normalize_graph
