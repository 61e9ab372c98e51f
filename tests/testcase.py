import itertools
import torch


def exact_marginals(cards, factors, evidence=None):
    """
    Brute-force marginals by summing over every joint assignment.

    cards: dict name -> domain size
    factors: list of (tuple of names, table indexed in that order)
    evidence: dict name -> observed index
    """
    evidence = evidence or {}
    names = list(cards)
    assignments = list(itertools.product(*[range(cards[name]) for name in names]))
    weights = []
    for assignment in assignments:
        values = dict(zip(names, assignment))
        if any(values[name] != val for name, val in evidence.items()):
            weights.append(0.0)
            continue
        weight = 1.0
        for scope, table in factors:
            weight *= float(torch.as_tensor(table)[tuple(values[name] for name in scope)])
        weights.append(weight)
    total = sum(weights)
    marginals = {}
    for var_idx, name in enumerate(names):
        mass = [0.0] * cards[name]
        for assignment, weight in zip(assignments, weights):
            mass[assignment[var_idx]] += weight
        marginals[name] = torch.tensor([m / total for m in mass], dtype=torch.float64)
    return marginals
