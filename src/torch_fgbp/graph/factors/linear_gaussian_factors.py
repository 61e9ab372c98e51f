"""
Scalar Gaussian variables and canonical form Gaussian factors to be used together with GaussianBP
"""

import torch
from typing import Any, Tuple, Union

from .factors import VariableNode, FactorNode


class GaussianVariable(VariableNode):
    """
    Scalar Gaussian variable with a prior mean and variance
    """
    def __init__(self, mean: float, variance: float,
                 description: Union[None, str] = None) -> None:
        super().__init__(description)
        assert variance > 0, "Gaussian variable variance must be positive"
        self.mean = float(mean)
        self.variance = float(variance)


class GaussianFactor(FactorNode):
    """
    Joint Gaussian potential over its neighbours in canonical (information) form.
    - Members:
        - precision : (n,n) tensor, Lambda
        - mean : (n,) tensor
        - eta : (n,) tensor, information vector Lambda @ mean
    - NOTE:
        - index i of the matrices is the i-th neighbour of the factor, in neighbour order
    """
    def __init__(self, precision: Any, mean: Any,
                 description: Union[None, str] = None) -> None:
        """
        Inputs:
        - precision : (n,n) array-like, precision matrix
        - mean : (n,) array-like, mean vector
        """
        super().__init__(description)
        self.precision = torch.as_tensor(precision, dtype=torch.float64)
        self.mean = torch.as_tensor(mean, dtype=torch.float64).reshape(-1)
        assert self.precision.dim() == 2 and self.precision.shape[0] == self.precision.shape[1], \
            "Factor precision needs to be square (n,n)"
        assert self.mean.shape[0] == self.precision.shape[0], \
            "Factor mean size (n,) needs to match precision size (n,n)"
        self.eta = self.precision @ self.mean

    @property
    def size(self) -> int:
        return self.precision.shape[0]

    def canonical(self, tensor_kwargs={'device': 'cpu', 'dtype': torch.float64}
                  ) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Returns:
        - eta : (n,) tensor
        - lambda : (n,n) tensor
        """
        return self.eta.to(**tensor_kwargs), self.precision.to(**tensor_kwargs)

    @classmethod
    def from_measurement(cls, jacobian: Any, z: Any, sigma: Any,
                         description: Union[None, str] = None) -> "GaussianFactor":
        """
        Factor encoding the linear measurement z = J x + noise, noise ~ N(0, sigma).
        - Inputs:
            - jacobian : (m,n) array-like, J
            - z : (m,) array-like, measured value
            - sigma : (m,m) array-like, measurement covariance
        - Implements: eta = J^T sigma^-1 z, lambda = J^T sigma^-1 J
        - NOTE:
            - lambda is singular for relative measurements (e.g. x_1 - x_0 = d), the mean is then the
              minimum norm solution of lambda @ mean = eta
        """
        jac = torch.as_tensor(jacobian, dtype=torch.float64)
        if jac.dim() == 1:
            jac = jac[None]
        z = torch.as_tensor(z, dtype=torch.float64).reshape(-1)
        sigma = torch.as_tensor(sigma, dtype=torch.float64).reshape(z.shape[0], z.shape[0])
        lam_z = torch.linalg.inv(sigma)
        energy_eta = jac.T @ lam_z @ z
        energy_lambda = jac.T @ lam_z @ jac
        mean = torch.linalg.pinv(energy_lambda) @ energy_eta
        return cls(energy_lambda, mean, description=description)
