import warnings
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

import torch

from torch_fgbp.graph.factors import DiscreteVariable, DiscreteFactor
from torch_fgbp.util.numerics import LOG_EPSILON, log_sum_exp, normalize, damp_message
from .bp import BeliefPropagation


class DiscreteBP(BeliefPropagation):
    """
    Loopy sum-product BP over finite-domain variables.

    Messages are kept in two N x N generations, messages[s][t] is the probability
    vector sent from s to t (None for non-adjacent pairs). A sweep writes only into
    next_messages and the generations are swapped once the sweep is complete.
    """

    def __init__(self,
                 nodes: Mapping[str, Union[DiscreteVariable, DiscreteFactor]],
                 edges: Iterable[Tuple[str, str]],
                 damping: float = 0.,
                 tensor_kwargs={'device': 'cpu', 'dtype': torch.float64}) -> None:
        """
        Constructor for discrete BP.

        Inputs:
        - nodes: mapping of node name to DiscreteVariable | DiscreteFactor
        - edges: iterable of (name, name) pairs between variables and factors
        - damping: float in [0, 1), fraction of the previous belief retained each sweep
        - tensor_kwargs: dict, tensor keyword args
        """
        super().__init__(nodes, edges, damping=damping, tensor_kwargs=tensor_kwargs)

        for node in self.graph.nodes:
            assert isinstance(node.node, DiscreteVariable if node.is_variable else DiscreteFactor), \
                f"Node {node.name} is not a discrete variable or factor"

        # log potential table per factor, one axis per neighbour
        self._log_potentials: Dict[int, torch.Tensor] = {}
        for f in self.graph.factor_ids():
            if not self.graph.get_nbrs(f):
                # every edge of this factor was rejected, it never sends a message
                continue
            shape = [self._num_values(v) for v in self.graph.get_nbrs(f)]
            self._log_potentials[f] = self.graph.nodes[f].node.potential.log_table(shape, self.tensor_kwargs)

        self.reset_msgs()

    def _num_values(self, v: int) -> int:
        return self.graph.nodes[v].node.num_values

    def _uniform(self, v: int) -> torch.Tensor:
        k = self._num_values(v)
        return torch.full((k,), 1. / k, **self.tensor_kwargs)

    def reset_msgs(self) -> None:
        """
        Uniform beliefs for every variable and uniform messages on every edge,
        in both generations.
        """
        N = self.graph.N
        self.messages: List[List[Union[None, torch.Tensor]]] = [[None] * N for _ in range(N)]
        self.next_messages: List[List[Union[None, torch.Tensor]]] = [[None] * N for _ in range(N)]
        self._beliefs: Dict[int, torch.Tensor] = {}
        self._log_beliefs: Dict[int, torch.Tensor] = {}
        self.variable_marginals: Dict[int, torch.Tensor] = {}

        for v in self.graph.variable_ids():
            uniform = self._uniform(v)
            self._beliefs[v] = uniform.clone()
            self._log_beliefs[v] = torch.log(uniform)
            self.variable_marginals[v] = uniform.clone()

        for s, t in self.graph.edges:
            # a message is sized to the variable end of its edge
            v = t if self.graph.nodes[t].is_variable else s
            self.messages[s][t] = self._uniform(v)
            self.next_messages[s][t] = self._uniform(v)

    def _log_cavity(self, w: int, f: int) -> torch.Tensor:
        """
        log of variable w's marginal with factor f's own message divided out
        """
        divisor = torch.clamp(self.messages[f][w], min=LOG_EPSILON)
        return torch.log(self.variable_marginals[w]) - torch.log(divisor)

    def _compute_msg_from_node(self, v: int, f: int) -> torch.Tensor:
        """
        Message from variable v to factor f, the marginal of v without f's contribution.
        Evidenced variables keep sending their clamped message.
        """
        if v in self._evidence:
            return self.messages[v][f].clone()
        return normalize(torch.exp(self._log_cavity(v, f)))

    def _compute_msg_from_factor(self, f: int, v: int) -> torch.Tensor:
        """
        Message from factor f to variable v.
        - Implements: log msg(x_v) = LSE_{x_others} [log psi(x) + sum_{w != v} log cavity_w(x_w)]
            with the sum over every joint assignment of the other neighbours, normalized in log space
        """
        nbrs = self.graph.get_nbrs(f)
        target = self.graph._nbr_idx(v, f)
        n = len(nbrs)

        log_joint = self._log_potentials[f]
        for axis, w in enumerate(nbrs):
            if axis == target:
                continue
            shape = [1] * n
            shape[axis] = -1
            log_joint = log_joint + self._log_cavity(w, f).view(*shape)

        other_axes = tuple(axis for axis in range(n) if axis != target)
        log_msg = log_sum_exp(log_joint, dim=other_axes) if other_axes else log_joint
        return torch.exp(log_msg - log_sum_exp(log_msg))

    def pass_messages(self) -> None:
        """
        One synchronous sweep: variable to factor messages, then factor to variable
        messages, all computed from the current generation, then the swap.
        """
        for v in self.graph.variable_ids():
            for f in self.graph.get_nbrs(v):
                self.next_messages[v][f] = self._compute_msg_from_node(v, f)

        for f in self.graph.factor_ids():
            for v in self.graph.get_nbrs(f):
                self.next_messages[f][v] = self._compute_msg_from_factor(f, v)

        self.messages, self.next_messages = self.next_messages, self.messages

    def update_beliefs(self) -> None:
        """
        Product of incoming factor messages for every non-evidenced variable, damped
        against the previous belief.
        """
        for v in self.graph.variable_ids():
            if v in self._evidence:
                continue

            log_marginal = torch.zeros(self._num_values(v), **self.tensor_kwargs)
            for f in self.graph.get_nbrs(v):
                msg = self.messages[f][v]
                # zero entries count as 1 so one message cannot zero out the product
                log_marginal += torch.log(torch.where(msg > 0, msg, torch.ones_like(msg)))

            new_belief = normalize(torch.exp(log_marginal - log_marginal.max()))
            belief = damp_message(new_belief, self._beliefs[v], self.damping_factor)
            self._beliefs[v] = belief
            self._log_beliefs[v] = torch.log(belief)
            self.variable_marginals[v] = belief.clone()

    def _snapshot_beliefs(self) -> Dict[int, torch.Tensor]:
        return {v: belief.clone() for v, belief in self._beliefs.items()}

    def set_evidence(self, name: str, value: Any) -> None:
        """
        Clamps a variable to one of its possible values.
        Unknown names and factors are ignored.

        Inputs:
        - name: str, variable name
        - value: the observed value, must be one of the variable's possible_values
        """
        node = self._find_variable(name)
        if node is None:
            return
        variable = node.node
        if value not in variable.possible_values:
            warnings.warn(f"Evidence {value!r} is not a possible value of {name}, ignored")
            return

        self._evidence[node.id] = value

        one_hot = torch.zeros(variable.num_values, **self.tensor_kwargs)
        one_hot[variable.possible_values.index(value)] = 1.
        self._beliefs[node.id] = one_hot
        self._log_beliefs[node.id] = torch.log(one_hot)  # 0 at the observed index, -inf elsewhere
        self.variable_marginals[node.id] = one_hot.clone()

        for f in node.neighbours:
            self.messages[node.id][f] = one_hot.clone()
            self.next_messages[node.id][f] = one_hot.clone()

    def get_beliefs(self, name: str) -> torch.Tensor:
        """
        Returns:
        - belief: (K,) tensor, probability of each possible value of the variable
        """
        node = self._lookup_variable(name)
        return self._beliefs[node.id].clone()

    def get_log_beliefs(self, name: str) -> torch.Tensor:
        """
        Returns:
        - log_belief: (K,) tensor, -inf exactly where the belief is zero
        """
        node = self._lookup_variable(name)
        return self._log_beliefs[node.id].clone()

    def get_message(self, sender: str, receiver: str) -> torch.Tensor:
        """
        Current generation message between two adjacent nodes
        """
        s, t = self._lookup_edge(sender, receiver)
        return self.messages[s][t].clone()
