import math
from enum import Enum
from typing import Any, Callable, Iterable, List, Sequence, Union

import torch

from torch_fgbp.util.numerics import LOG_EPSILON, cartesian_product


class NodeKind(Enum):
    VARIABLE = "variable"
    FACTOR = "factor"


class VariableNode(object):
    """
    Base class for user supplied variable descriptions
    """
    kind = NodeKind.VARIABLE

    def __init__(self, description: Union[None, str] = None) -> None:
        self.description = description


class FactorNode(object):
    """
    Base class for user supplied factor descriptions
    """
    kind = NodeKind.FACTOR

    def __init__(self, description: Union[None, str] = None) -> None:
        self.description = description


class Potential(object):
    """
    Default potential class, maps a full assignment of value indices (one per
    connected variable, in neighbour order) to a non-negative compatibility score.
    """
    def __call__(self, values: Sequence[int]) -> float:
        return self.potential(values)

    def potential(self, values: Sequence[int]) -> float:
        raise NotImplementedError()

    def log_potential(self, values: Sequence[int]) -> float:
        """
        log(potential), or LOG_EPSILON when the score is not positive
        """
        p = self.potential(values)
        return math.log(p) if p > 0 else LOG_EPSILON

    def log_table(self, shape: Sequence[int],
                  tensor_kwargs={'device': 'cpu', 'dtype': torch.float64}) -> torch.Tensor:
        """
        Evaluates log_potential on every joint assignment.

        Inputs:
        - shape: sequence of int, domain size of each neighbour in neighbour order
        - tensor_kwargs: dict, tensor keyword args
        Returns:
        - log_table: tensor of the given shape
        """
        assignments = cartesian_product([range(k) for k in shape])
        log_vals = [self.log_potential(values) for values in assignments]
        return torch.tensor(log_vals, **tensor_kwargs).reshape(*shape)


class FunctionPotential(Potential):
    """
    Wraps a plain callable, fn(values) -> score
    """
    def __init__(self, fn: Callable[[List[int]], float]) -> None:
        self.fn = fn

    def potential(self, values: Sequence[int]) -> float:
        return float(self.fn(list(values)))


class TablePotential(Potential):
    """
    Explicit table indexed by value indices, one axis per neighbour
    """
    def __init__(self, table: Any) -> None:
        self.table = torch.as_tensor(table, dtype=torch.float64)
        assert (self.table >= 0).all(), "Potential table entries must be non-negative"

    def potential(self, values: Sequence[int]) -> float:
        return float(self.table[tuple(values)])

    def log_table(self, shape: Sequence[int],
                  tensor_kwargs={'device': 'cpu', 'dtype': torch.float64}) -> torch.Tensor:
        assert tuple(self.table.shape) == tuple(shape), \
            f"Potential table shape {tuple(self.table.shape)} does not match neighbour domains {tuple(shape)}"
        table = self.table.to(**tensor_kwargs)
        return torch.where(table > 0, torch.log(table), torch.full_like(table, LOG_EPSILON))


class LogPotentialCache(Potential):
    """
    Precomputed log-potential table, used as given (no floor is applied)
    """
    def __init__(self, log_table: Any) -> None:
        self._log_table = torch.as_tensor(log_table, dtype=torch.float64)

    def potential(self, values: Sequence[int]) -> float:
        return math.exp(self.log_potential(values))

    def log_potential(self, values: Sequence[int]) -> float:
        return float(self._log_table[tuple(values)])

    def log_table(self, shape: Sequence[int],
                  tensor_kwargs={'device': 'cpu', 'dtype': torch.float64}) -> torch.Tensor:
        assert tuple(self._log_table.shape) == tuple(shape), \
            f"Log potential shape {tuple(self._log_table.shape)} does not match neighbour domains {tuple(shape)}"
        return self._log_table.to(**tensor_kwargs)


def as_potential(potential: Union[Potential, Callable, Any]) -> Potential:
    """
    Wraps callables and tables into the matching Potential variant
    """
    if isinstance(potential, Potential):
        return potential
    if callable(potential):
        return FunctionPotential(potential)
    return TablePotential(potential)


class DiscreteVariable(VariableNode):
    """
    Variable over a finite, ordered set of values
    """
    def __init__(self, possible_values: Iterable[Any],
                 belief: Union[None, Sequence[float]] = None,
                 description: Union[None, str] = None) -> None:
        """
        Inputs:
        - possible_values: iterable, the domain of the variable, indexed 0..k-1 in the given order
        - belief: None | sequence of float, prior belief supplied by the user, kept for reference
        - description: None | str, free text
        """
        super().__init__(description)
        self.possible_values = list(possible_values)
        assert len(self.possible_values) > 0, "A discrete variable needs at least one possible value"
        if belief is not None:
            belief = [float(b) for b in belief]
            assert len(belief) == len(self.possible_values), "Belief size must match the number of possible values"
            assert all(b >= 0 for b in belief), "Belief entries must be non-negative"
        self.belief = belief

    @property
    def num_values(self) -> int:
        return len(self.possible_values)


class DiscreteFactor(FactorNode):
    """
    Factor over discrete variables given by a potential function or table
    """
    def __init__(self, potential: Union[Potential, Callable, Any],
                 description: Union[None, str] = None) -> None:
        super().__init__(description)
        self.potential = as_potential(potential)

    def log_potential(self, values: Sequence[int]) -> float:
        return self.potential.log_potential(values)
