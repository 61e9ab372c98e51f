import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

import torch

from torch_fgbp.graph.factor_graph import FactorGraph, GraphNode, normalize_graph
from torch_fgbp.graph.factors import VariableNode, FactorNode

logger = logging.getLogger(__name__)


class BPInfo(object):
    """Outcome of a run_iterations call."""

    def __init__(self, converged: bool, iterations: int, max_diff: float = math.inf) -> None:
        self.converged = converged
        self.iterations = iterations
        self.max_diff = max_diff

    def __repr__(self) -> str:
        status = "converged" if self.converged else "not converged"
        return f"BPInfo({status}, iterations={self.iterations}, max_diff={self.max_diff:.3g})"


class BeliefPropagation(object):
    """
    Base class for the factor graph BP solvers.
    Owns the normalized graph, the evidence registry and the synchronous
    sweep / convergence loop. Subclasses provide the message and belief updates.
    """
    def __init__(self,
                 nodes: Mapping[str, Union[VariableNode, FactorNode]],
                 edges: Iterable[Tuple[str, str]],
                 damping: float = 0.,
                 tensor_kwargs={'device': 'cpu', 'dtype': torch.float64}) -> None:
        """
        Init parameters used for all BP solvers.

        Input:
        - nodes: mapping of node name to node description
        - edges: iterable of (name, name) pairs
        - damping: float in [0, 1), fraction of the previous belief / message retained each sweep
        - tensor_kwargs: dict, tensor keyword args
        """
        if not 0 <= damping < 1:
            raise ValueError(f"damping must be in [0, 1), got {damping}")
        self.tensor_kwargs = tensor_kwargs
        self.damping = damping
        self.graph: FactorGraph = normalize_graph(nodes, edges)
        self._evidence: Dict[int, Any] = {}
        self.info: Union[None, BPInfo] = None

    @property
    def damping_factor(self) -> float:
        """Weight given to the newly computed value in the damping blend."""
        return 1. - self.damping

    @property
    def variables(self) -> List[str]:
        return [self.graph.nodes[v].name for v in self.graph.variable_ids()]

    @property
    def evidence(self) -> Dict[str, Any]:
        return {self.graph.nodes[v].name: observed for v, observed in self._evidence.items()}

    def _find_variable(self, name: str) -> Union[None, GraphNode]:
        node = self.graph.node(name)
        if node is None or not node.is_variable:
            return None
        return node

    def _lookup_variable(self, name: str) -> GraphNode:
        node = self._find_variable(name)
        if node is None:
            raise ValueError(f"Cannot get beliefs from non-variable node: {name}")
        return node

    def _lookup_edge(self, sender: str, receiver: str) -> Tuple[int, int]:
        s, t = self.graph.node(sender), self.graph.node(receiver)
        if s is None or t is None or t.id not in s.neighbours:
            raise ValueError(f"No edge between {sender} and {receiver}")
        return s.id, t.id

    def run_iterations(self, max_iterations: int, tolerance: float = 1e-6) -> BPInfo:
        """
        Runs synchronous sweeps until the largest belief change drops below tolerance
        or max_iterations sweeps have been done.

        Inputs:
        - max_iterations: int, sweep budget
        - tolerance: float, convergence threshold on the max absolute belief change
        Returns:
        - info: BPInfo, also stored as self.info
        """
        if max_iterations < 0:
            raise ValueError(f"max_iterations must be non-negative, got {max_iterations}")
        if tolerance < 0:
            raise ValueError(f"tolerance must be non-negative, got {tolerance}")

        max_diff = math.inf
        for it in range(max_iterations):
            old_beliefs = self._snapshot_beliefs()

            self.pass_messages()
            self.update_beliefs()

            max_diff = self._max_belief_change(old_beliefs)
            if max_diff < tolerance:
                self.info = BPInfo(True, it + 1, max_diff)
                logger.debug("Converged after %d iterations", it + 1)
                return self.info

        self.info = BPInfo(False, max_iterations, max_diff)
        logger.info("Did not converge after %d iterations (max change %g)", max_iterations, max_diff)
        return self.info

    def beliefs(self) -> Dict[str, Any]:
        """
        Beliefs of every variable, keyed by name
        """
        return {name: self.get_beliefs(name) for name in self.variables}

    def pass_messages(self) -> None:
        """
        Computes every message of the next sweep from the current ones, then swaps buffers.
        """
        raise NotImplementedError()

    def update_beliefs(self) -> None:
        raise NotImplementedError()

    def _snapshot_beliefs(self) -> Dict[int, torch.Tensor]:
        raise NotImplementedError()

    def _max_belief_change(self, old_beliefs: Dict[int, torch.Tensor]) -> float:
        """
        Max absolute change across all non-evidenced variables
        """
        new_beliefs = self._snapshot_beliefs()
        max_diff = 0.
        for v, old in old_beliefs.items():
            if v in self._evidence:
                continue
            max_diff = max(max_diff, float((new_beliefs[v] - old).abs().max()))
        return max_diff

    def set_evidence(self, name: str, *args: Any) -> None:
        raise NotImplementedError()

    def get_beliefs(self, name: str) -> Any:
        raise NotImplementedError()
