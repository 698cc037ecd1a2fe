"""
Access to the MoM impedance matrix and excitation vectors by domain.

The generators only ever ask for sub-blocks, so anything that implements the
same methods as `DenseImpedance` and `DenseExcitation` can stand in for them,
e.g. a provider that recomputes matrix entries on demand at another frequency
instead of holding the full matrix in memory.
"""

import numpy as np
from numpy.typing import NDArray

from mbf_generator.domains import Domain


def _readonly(a: NDArray) -> NDArray:
    """Read-only view, so that a provider can never modify the caller's array"""
    view = a.view()
    view.flags.writeable = False
    return view


class DenseImpedance:
    """Domain-wise access to a fully materialized (N x N) impedance matrix"""

    def __init__(self, z: NDArray):
        z = np.asarray(z)
        if z.ndim != 2 or z.shape[0] != z.shape[1]:
            raise ValueError(f"Impedance matrix must be square, got shape {z.shape}")
        self._z = _readonly(z)

    @property
    def values(self) -> NDArray:
        """[ohm] with shape (N x N), read-only view of the full matrix"""
        return self._z

    @property
    def n_unknowns(self) -> int:
        """Number of unknowns N"""
        return self._z.shape[0]

    def self_impedance(self, domain: Domain) -> NDArray:
        """[ohm] Self-interaction block restricted to the domain's unknowns"""
        return self._z[np.ix_(domain.indices, domain.indices)]

    def coupling(
        self, receiving: Domain, inducing: Domain, inducing_interior: bool = False
    ) -> NDArray:
        """
        [ohm] Coupling block with rows on the receiving domain's unknowns and columns
        on the inducing domain's unknowns (only its interior unknowns if `inducing_interior`).
        """
        cols = inducing.interior if inducing_interior else inducing.indices
        return self._z[np.ix_(receiving.indices, cols)]


class DenseExcitation:
    """Domain-wise access to a fully materialized (N x S) excitation matrix"""

    def __init__(self, y: NDArray):
        y = np.asarray(y)
        if y.ndim == 1:
            # A single solution configuration
            y = y[:, np.newaxis]
        if y.ndim != 2:
            raise ValueError(f"Excitation must be a vector or matrix, got shape {y.shape}")
        self._y = _readonly(y)

    @property
    def values(self) -> NDArray:
        """[V] with shape (N x S), read-only view of all excitation columns"""
        return self._y

    @property
    def n_unknowns(self) -> int:
        """Number of unknowns N"""
        return self._y.shape[0]

    @property
    def n_solutions(self) -> int:
        """Number of solution configurations S"""
        return self._y.shape[1]

    def excitation(self, domain: Domain, solution: int) -> NDArray:
        """[V] Excitation entries on the domain's unknowns for one configuration"""
        return self._y[domain.indices, solution]
