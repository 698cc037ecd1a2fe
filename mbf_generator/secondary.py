"""
Secondary MBFs: the current induced on a receiving domain `m` by the primary
MBFs of each other domain `n`, through their mutual coupling:

```
    V_coupl = -Z_mn @ J_prim(n)
    J_sec   = inv(Z_mm) @ V_coupl
```

The negative sign makes `V_coupl` the field radiated by domain `n` opposing the
source on domain `m`. Consumers that reuse these vectors in a scheme without
that sign (e.g. Jacobi iterations) must account for it.

For interconnected domains, only the interior unknowns of the inducing domain
act as the source, so that interface unknowns are not counted from both sides.
"""

import numpy as np
from numpy.typing import NDArray

from mbf_generator.domains import DomainModel
from mbf_generator.factorization import FactorizationCache
from mbf_generator.results import DomainMBFs
from mbf_generator.windowing import apply_window
from mbf_generator.utils import _map_domains


def _solve_secondary(
    model: DomainModel,
    impedance,
    factorizations: FactorizationCache,
    mbfs: list[DomainMBFs],
    receiving: int,
    solution: int,
) -> list[tuple[int, NDArray]]:
    """
    Solve for the secondary MBFs induced on one receiving domain.

    Returns:
        (inducing domain, [A] with shape (n_ports, n_unknowns)) pairs in inducer order
    """
    dm = model.domains[receiving]
    lu = factorizations.get(receiving, solution)
    out = []
    for n, dn in enumerate(model.domains):
        if n == receiving:
            # Self-coupling is already captured by the primaries
            continue
        nprim = mbfs[n].n_primary[solution]
        if not model.is_active(n, solution) or nprim == 0:
            continue

        if model.disconnected:
            zmn = impedance.coupling(dm, dn)  # [ohm]
            jprim = mbfs[n].primary[solution, :nprim, :]  # [A]
        else:
            zmn = impedance.coupling(dm, dn, inducing_interior=True)  # [ohm]
            jprim = mbfs[n].primary[solution, :nprim][:, dn.interior_positions]  # [A]

        v_coupl = -zmn @ jprim.T  # [V] (n_unknowns_m, nprim)
        j = lu.solve(v_coupl, receiving, solution)  # [A]
        out.append((n, apply_window(np.ascontiguousarray(j.T), dm, model.disconnected)))

    return out


def _calc_secondary_mbfs(
    model: DomainModel,
    impedance,
    factorizations: FactorizationCache,
    mbfs: list[DomainMBFs],
    solution: int,
    n_jobs: int = 1,
    show_prog: bool = False,
):
    """
    Populate the secondary MBFs of every active receiving domain for one solution configuration.

    Every primary MBF of `solution` must already exist, since any domain can induce on any other.
    Receiving domains are the outer loop and inducing domains the inner loop, in index order.
    Inactive domains neither receive nor induce.
    """
    receivers = [m for m in range(model.n_domains) if model.is_active(m, solution)]

    factorizations.prepare(receivers, solution)

    results = _map_domains(
        lambda m: _solve_secondary(
            model, impedance, factorizations, mbfs, m, solution
        ),
        receivers,
        n_jobs,
        show_prog,
        f"Secondary MBFs, solution {solution}",
    )

    for m, induced in zip(receivers, results):
        sec = mbfs[m].secondary
        for n, j in induced:
            k = j.shape[0]
            sec.vectors[solution, n, :k, :] = j
            sec.n_induced[solution, n] = k
