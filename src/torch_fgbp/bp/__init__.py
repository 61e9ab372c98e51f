from .bp import BeliefPropagation, BPInfo
from .discrete_bp import DiscreteBP
from .linear_gbp import GaussianBP
