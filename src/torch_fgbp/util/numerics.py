import itertools
from typing import Any, Iterable, List, Sequence, Tuple, Union

import torch


# Floor used wherever a log or a divisor would otherwise hit zero.
LOG_EPSILON = 1e-10


def log_sum_exp(log_values: Union[torch.Tensor, Sequence[float]],
                dim: Union[None, int, Tuple[int, ...]] = None) -> torch.Tensor:
    """
    Stable log(sum(exp(x))).

    Inputs:
    - log_values: tensor or sequence of log values
    - dim: None | int | tuple of int, dims to reduce, if None reduce everything
    Returns:
    - lse: tensor, LOG_EPSILON wherever the reduced slice is empty or entirely -inf
    """
    if not isinstance(log_values, torch.Tensor):
        log_values = torch.as_tensor(log_values, dtype=torch.float64)
    if not torch.is_floating_point(log_values):
        log_values = log_values.to(torch.float64)
    if dim is None:
        log_values = log_values.reshape(-1)
        dim = 0
    if log_values.numel() == 0:
        return torch.full(log_values.sum(dim=dim).shape, LOG_EPSILON,
                          dtype=log_values.dtype, device=log_values.device)

    lse = torch.logsumexp(log_values, dim=dim)
    max_val = torch.amax(log_values, dim=dim)
    return torch.where(torch.isneginf(max_val), torch.full_like(lse, LOG_EPSILON), lse)


def normalize(values: torch.Tensor, dim: int = -1) -> torch.Tensor:
    """
    Divides every entry by the sum along dim. The caller guarantees a non-zero sum.
    """
    values = torch.as_tensor(values)
    return values / values.sum(dim=dim, keepdim=True)


def damp_message(new_msg: torch.Tensor, prev_msg: torch.Tensor, damping_factor: float) -> torch.Tensor:
    """
    Convex blend of two probability vectors, renormalized.

    damping_factor = 1 keeps only new_msg, damping_factor = 0 keeps only prev_msg.
    """
    damped = damping_factor * torch.as_tensor(new_msg) + (1 - damping_factor) * torch.as_tensor(prev_msg)
    return normalize(damped)


def gaussian_damp_message(new_msg: Tuple[Any, Any], prev_msg: Tuple[Any, Any],
                          damping_factor: float) -> Tuple[Any, Any]:
    """
    Same blend as damp_message applied independently to (mean, precision), no renormalization.
    Works on floats or on tensors of matching shapes.
    """
    new_mean, new_precision = new_msg
    prev_mean, prev_precision = prev_msg
    mean = damping_factor * new_mean + (1 - damping_factor) * prev_mean
    precision = damping_factor * new_precision + (1 - damping_factor) * prev_precision
    return mean, precision


def cartesian_product(arrays: Iterable[Iterable[Any]]) -> List[List[Any]]:
    """
    Every combination taking one element from each input, first input varying slowest.
    An empty list of inputs yields a single empty combination.
    """
    return [list(combo) for combo in itertools.product(*arrays)]
