from .graph import (NodeKind, DiscreteVariable, DiscreteFactor, GaussianVariable, GaussianFactor,
                    FactorGraph, InvalidEdge, normalize_graph)
from .bp import BeliefPropagation, BPInfo, DiscreteBP, GaussianBP
from .util import LOG_EPSILON
