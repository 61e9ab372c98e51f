from .factors import (NodeKind, VariableNode, FactorNode, Potential, FunctionPotential, TablePotential,
                      LogPotentialCache, as_potential, DiscreteVariable, DiscreteFactor)
from .linear_gaussian_factors import GaussianVariable, GaussianFactor
