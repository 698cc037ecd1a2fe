"""
Primary MBFs: the current induced on each domain by its own local excitation,
`J_prim = inv(Z_dd) @ V_d`, with one primary per excitation port.
"""

import numpy as np
from numpy.typing import NDArray

from mbf_generator.domains import DomainModel
from mbf_generator.factorization import FactorizationCache
from mbf_generator.results import DomainMBFs
from mbf_generator.windowing import apply_window
from mbf_generator.utils import _map_domains


def _solve_primary(
    model: DomainModel,
    excitation,
    factorizations: FactorizationCache,
    domain: int,
    solution: int,
) -> NDArray:
    """
    Solve the domain-local system for every port of one domain.

    Returns:
        [A] with shape (n_ports, n_unknowns), windowed primary MBFs
    """
    d = model.domains[domain]
    v = excitation.excitation(d, solution)  # [V] (n_unknowns,)
    # One right-hand side per port, each driving only that port's unknowns
    rhs = np.where(d.port_mask(), v[:, np.newaxis], 0.0)  # [V] (n_unknowns, n_ports)
    j = factorizations.get(domain, solution).solve(rhs, domain, solution)  # [A]
    return apply_window(np.ascontiguousarray(j.T), d, model.disconnected)


def _calc_primary_mbfs(
    model: DomainModel,
    excitation,
    factorizations: FactorizationCache,
    mbfs: list[DomainMBFs],
    solution: int,
    n_jobs: int = 1,
    show_prog: bool = False,
):
    """
    Populate the primary MBFs of every active domain for one solution configuration.

    Domains are visited sub-array by sub-array (see `DomainModel.generation_order`).
    Inactive domains keep all-zero primaries and a count of zero.
    """
    active = [i for i in model.generation_order if model.is_active(i, solution)]

    # Factorize up front so that concurrent solves only read shared factors
    factorizations.prepare(active, solution)

    results = _map_domains(
        lambda i: _solve_primary(model, excitation, factorizations, i, solution),
        active,
        n_jobs,
        show_prog,
        f"Primary MBFs, solution {solution}",
    )

    for i, j in zip(active, results):
        nports = j.shape[0]
        mbfs[i].primary[solution, :nports, :] = j
        mbfs[i].n_primary[solution] = nports
