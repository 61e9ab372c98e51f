"""
Gaussian belief propagation over scalar variables and canonical form factors, following
Davison, Andrew J. and Joseph Ortiz. “FutureMapping 2: Gaussian Belief Propagation for Spatial AI.”
ArXiv abs/1910.14139 (2019): n. pag.
(https://api.semanticscholar.org/CorpusID:207757428?utm_source=wikipedia)
"""

import torch
from torch_fgbp.graph.factors import GaussianVariable, GaussianFactor
from torch_fgbp.util.numerics import gaussian_damp_message
from typing import Dict, Iterable, List, Mapping, Tuple, Union
from .bp import BeliefPropagation

import warnings


# Added to the total incoming precision when forming a belief.
PRECISION_EPSILON = 1e-10


class GaussianBP(BeliefPropagation):
    """
    Belief propagation method using Gaussian BP on scalar variables.
    Messages are (mean, precision) pairs stored in N x N matrices indexed by (sender id, receiver id),
    in two generations that are swapped after every sweep.

    Factor to variable marginalization modes:
    - "conditional": precision Lambda[i,i], mean (eta[i] - sum_{j!=i} Lambda[i,j] * m_j) / Lambda[i,i],
        with m_j the incoming variable means
    - "schur": incoming precisions are folded into the factor first and the other dimensions are
        marginalized out with the Schur complement, exact on trees

    NOTE:
    - float64 is HIGHLY recommended, the schur mode solves linear systems every sweep
    """
    MARGINALIZATIONS = ("conditional", "schur")

    def __init__(self,
                 nodes: Mapping[str, Union[GaussianVariable, GaussianFactor]],
                 edges: Iterable[Tuple[str, str]],
                 damping: float = 0.,
                 marginalization: str = "conditional",
                 tensor_kwargs={'device': 'cpu', 'dtype': torch.float64}) -> None:
        """
        Inputs:
        - nodes : mapping of node name to GaussianVariable | GaussianFactor
        - edges : iterable of (name, name) pairs between variables and factors
        - damping : float in [0, 1), fraction of the previous message retained each sweep
        - marginalization : "conditional" | "schur"
        - tensor_kwargs : dict, tensor keyword args used to create new tensors
        """
        if marginalization not in self.MARGINALIZATIONS:
            raise ValueError(f"Unknown marginalization {marginalization!r}, expected one of {self.MARGINALIZATIONS}")
        if ('dtype' not in tensor_kwargs) or (tensor_kwargs['dtype'] != torch.float64):
            warnings.warn("Defined 'dtype' is not torch.float64. Note that inaccuracies will accumulate from inversion operations!")
        super().__init__(nodes, edges, damping=damping, tensor_kwargs=tensor_kwargs)
        self.marginalization = marginalization

        for node in self.graph.nodes:
            assert isinstance(node.node, GaussianVariable if node.is_variable else GaussianFactor), \
                f"Node {node.name} is not a Gaussian variable or factor"
            if node.is_factor and node.neighbours:
                assert node.node.size == len(node.neighbours), \
                    f"Factor {node.name} has size {node.node.size} but {len(node.neighbours)} neighbours"

        self._factor_db = {f: self.graph.nodes[f].node.canonical(self.tensor_kwargs)
                           for f in self.graph.factor_ids() if self.graph.get_nbrs(f)}
        self.reset_msgs()

    def _ids(self, ids: List[int]) -> torch.Tensor:
        return torch.as_tensor(ids, dtype=torch.long, device=self.tensor_kwargs.get('device', 'cpu'))

    def reset_msgs(self) -> None:
        """
        Zero messages, except variable to factor messages which start at the variable's prior.
        Beliefs start at the priors.
        """
        N = self.graph.N
        self.messages = {'mean': torch.zeros(N, N, **self.tensor_kwargs),
                         'precision': torch.zeros(N, N, **self.tensor_kwargs)}
        self.next_messages = {'mean': torch.zeros(N, N, **self.tensor_kwargs),
                              'precision': torch.zeros(N, N, **self.tensor_kwargs)}
        self.node_means: Dict[int, float] = {}
        self.node_variances: Dict[int, float] = {}

        for v in self.graph.variable_ids():
            variable = self.graph.nodes[v].node
            self.node_means[v] = variable.mean
            self.node_variances[v] = variable.variance
            for f in self.graph.get_nbrs(v):
                self.messages['mean'][v, f] = variable.mean
                self.messages['precision'][v, f] = 1. / variable.variance

    def _compute_msg_from_node(self, v: int, f: int) -> Tuple[float, float]:
        """
        Message from variable v to factor f
        - Returns:
            - mean : float, precision weighted mean of the other incoming messages, 0 without information
            - precision : float, sum of the other incoming precisions
        """
        if v in self._evidence:
            mean, variance = self._evidence[v]
            return mean, 1. / variance

        others = self._ids([g for g in self.graph.get_nbrs(v) if g != f])
        precisions = self.messages['precision'][others, v]
        means = self.messages['mean'][others, v]
        total_precision = float(precisions.sum())
        weighted_mean = float((precisions * means).sum())
        mean = weighted_mean / total_precision if total_precision > 0 else 0.
        return mean, total_precision

    def _compute_msg_from_factor(self, f: int, v: int) -> Tuple[float, float]:
        """
        Message from factor f to variable v
        - Returns:
            - mean : float, 0 when the precision is not positive
            - precision : float
        """
        f_eta, f_lambda = self._factor_db[f]
        nbrs = self.graph.get_nbrs(f)
        i = self.graph._nbr_idx(v, f)
        others = self._ids([j for j in range(len(nbrs)) if j != i])
        incoming_means = self.messages['mean'][self._ids(nbrs), f]

        if self.marginalization == "conditional" or len(others) == 0:
            precision = float(f_lambda[i, i])
            numerator = float(f_eta[i] - (f_lambda[i, others] * incoming_means[others]).sum())
        else:
            incoming_precisions = self.messages['precision'][self._ids(nbrs), f]
            # combine the factor with the other incoming messages, then marginalize them out
            eta_b = f_eta[others] + incoming_precisions[others] * incoming_means[others]
            lambda_bb = f_lambda[others][:, others] + torch.diag(incoming_precisions[others])
            lambda_ab = f_lambda[i, others]
            lambda_ba = f_lambda[others, i]
            precision = float(f_lambda[i, i] - lambda_ab @ _solve(lambda_bb, lambda_ba))
            numerator = float(f_eta[i] - lambda_ab @ _solve(lambda_bb, eta_b))

        mean = numerator / precision if precision > 0 else 0.
        return mean, precision

    def pass_messages(self) -> None:
        """
        One synchronous sweep computed from the current generation, then damping and the swap.
        """
        for v in self.graph.variable_ids():
            for f in self.graph.get_nbrs(v):
                mean, precision = self._compute_msg_from_node(v, f)
                self.next_messages['mean'][v, f] = mean
                self.next_messages['precision'][v, f] = precision

        for f in self.graph.factor_ids():
            for v in self.graph.get_nbrs(f):
                mean, precision = self._compute_msg_from_factor(f, v)
                self.next_messages['mean'][f, v] = mean
                self.next_messages['precision'][f, v] = precision

        # blend with the current generation, leaving NaN slots untouched
        next_mean, next_precision = self.next_messages['mean'], self.next_messages['precision']
        damped_mean, damped_precision = gaussian_damp_message(
            (next_mean, next_precision),
            (self.messages['mean'], self.messages['precision']),
            self.damping_factor)
        is_nan = torch.isnan(next_mean)
        self.next_messages['mean'] = torch.where(is_nan, next_mean, damped_mean)
        self.next_messages['precision'] = torch.where(is_nan, next_precision, damped_precision)

        self.messages, self.next_messages = self.next_messages, self.messages

    def update_beliefs(self) -> None:
        """
        Sums incoming precisions and precision weighted means for every non-evidenced variable.
        Variables without incoming precision fall back to their prior.
        """
        for v in self.graph.variable_ids():
            if v in self._evidence:
                continue

            nbrs = self._ids(self.graph.get_nbrs(v))
            precisions = self.messages['precision'][nbrs, v]
            means = self.messages['mean'][nbrs, v]
            total_precision = float(precisions.sum())

            if total_precision > 0:
                self.node_variances[v] = 1. / (total_precision + PRECISION_EPSILON)
                self.node_means[v] = float((precisions * means).sum()) / (total_precision + PRECISION_EPSILON)
            else:
                variable = self.graph.nodes[v].node
                self.node_variances[v] = variable.variance
                self.node_means[v] = variable.mean

    def _snapshot_beliefs(self) -> Dict[int, torch.Tensor]:
        return {v: torch.tensor([self.node_means[v], self.node_variances[v]], **self.tensor_kwargs)
                for v in self.graph.variable_ids()}

    def set_evidence(self, name: str, mean: float, variance: float) -> None:
        """
        Clamps a variable to the Gaussian N(mean, variance).
        Unknown names and factors are ignored.
        """
        node = self._find_variable(name)
        if node is None:
            return
        if not variance > 0:
            warnings.warn(f"Evidence variance for {name} must be positive, got {variance}, ignored")
            return

        mean, variance = float(mean), float(variance)
        self._evidence[node.id] = (mean, variance)
        self.node_means[node.id] = mean
        self.node_variances[node.id] = variance

        for f in node.neighbours:
            for msgs in (self.messages, self.next_messages):
                msgs['mean'][node.id, f] = mean
                msgs['precision'][node.id, f] = 1. / variance

    def get_beliefs(self, name: str) -> Tuple[float, float]:
        """
        Returns:
        - mean : float
        - variance : float
        """
        node = self._lookup_variable(name)
        return self.node_means[node.id], self.node_variances[node.id]

    def get_message(self, sender: str, receiver: str) -> Tuple[float, float]:
        """
        Current generation (mean, precision) message between two adjacent nodes
        """
        s, t = self._lookup_edge(sender, receiver)
        return float(self.messages['mean'][s, t]), float(self.messages['precision'][s, t])


def _solve(A: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """
    Solves A x = b, with the pseudo-inverse when A is singular
    """
    try:
        return torch.linalg.solve(A, b)
    except torch.linalg.LinAlgError:
        return torch.linalg.pinv(A) @ b
