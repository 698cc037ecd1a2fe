"""Containers for generated MBFs and the statistics of a generation run"""

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from mbf_generator.domains import DomainModel

C128 = np.complex128


@dataclass(frozen=True)
class SecondaryMBFs:
    """Secondary MBFs induced on one receiving domain by its neighbors"""

    vectors: NDArray
    """
    [A] with shape (n_solutions, n_domains, max_ports, n_unknowns),
    indexed by inducing domain and inducing port
    """

    n_induced: NDArray
    """
    Number of secondary MBFs induced by each domain (one per inducing port),
    with shape (n_solutions, n_domains). Always zero for the receiving domain itself.
    """

    @property
    def count(self) -> NDArray:
        """Number of secondary MBFs per solution configuration, shape (n_solutions)"""
        return np.sum(self.n_induced, axis=1)

    def inducers(self, solution: int) -> list[int]:
        """Indices of the domains that induced secondary MBFs in `solution`"""
        return [int(i) for i in np.flatnonzero(self.n_induced[solution])]


@dataclass(frozen=True)
class DomainMBFs:
    """
    Every MBF generated on one domain, over all solution configurations.
    Vectors are stored over the domain's own unknowns; use `to_global` to
    expand them onto the full set of N unknowns.
    """

    domain: int
    """Index of the domain in the domain model"""

    indices: NDArray
    """Global indices of the domain's unknowns"""

    n_unknowns_global: int
    """Total number of unknowns N in the global system"""

    primary: NDArray
    """[A] with shape (n_solutions, max_ports, n_unknowns), primary MBFs by port"""

    n_primary: NDArray
    """Number of primary MBFs per solution configuration, shape (n_solutions)"""

    secondary: SecondaryMBFs | None
    """Secondary MBFs, or None if they were not requested"""

    reduced: list[NDArray] = field(default_factory=list)
    """
    [A] Reduced MBFs for each solution configuration, each with shape (n_unknowns, K).
    Orthonormal columns unless reduction was disabled.
    """

    singular_values: list[NDArray | None] = field(default_factory=list)
    """Singular values of each candidate set, or None if reduction was disabled"""

    n_reduced: NDArray = field(default_factory=lambda: np.zeros(0, dtype=int))
    """Number of reduced MBFs per solution configuration, shape (n_solutions)"""

    def candidates(self, solution: int) -> NDArray:
        """
        [A] with shape (n_unknowns, n_candidates), column-augmented matrix of the
        primary MBFs followed by the secondary MBFs for one configuration
        """
        cols = [self.primary[solution, : self.n_primary[solution]]]
        if self.secondary is not None:
            for n in self.secondary.inducers(solution):
                k = self.secondary.n_induced[solution, n]
                cols.append(self.secondary.vectors[solution, n, :k])
        return np.ascontiguousarray(np.concatenate(cols, axis=0).T)

    def to_global(self, local: NDArray) -> NDArray:
        """
        Expand vectors with shape (n_unknowns, ...) over the domain onto the
        global unknowns, giving shape (N, ...) with zeros outside the domain.
        """
        out = np.zeros((self.n_unknowns_global, *local.shape[1:]), dtype=local.dtype)
        out[self.indices] = local
        return out


def _allocate(
    model: DomainModel, n_solutions: int, calc_secondary: bool
) -> list[DomainMBFs]:
    """Zero-filled containers sized from the domain model"""
    nports = model.max_ports
    out = []
    for i, d in enumerate(model.domains):
        secondary = None
        if calc_secondary:
            secondary = SecondaryMBFs(
                vectors=np.zeros(
                    (n_solutions, model.n_domains, nports, d.n_unknowns), dtype=C128
                ),
                n_induced=np.zeros((n_solutions, model.n_domains), dtype=int),
            )
        out.append(
            DomainMBFs(
                domain=i,
                indices=d.indices,
                n_unknowns_global=model.n_unknowns,
                primary=np.zeros((n_solutions, nports, d.n_unknowns), dtype=C128),
                n_primary=np.zeros(n_solutions, dtype=int),
                secondary=secondary,
                reduced=[np.zeros((d.n_unknowns, 0), dtype=C128)] * n_solutions,
                singular_values=[None] * n_solutions,
                n_reduced=np.zeros(n_solutions, dtype=int),
            )
        )
    return out


def _freeze(mbfs: list[DomainMBFs]):
    """Mark every array read-only once generation is complete"""
    for m in mbfs:
        arrays = [m.primary, m.n_primary, m.n_reduced, *m.reduced]
        arrays += [s for s in m.singular_values if s is not None]
        if m.secondary is not None:
            arrays += [m.secondary.vectors, m.secondary.n_induced]
        for a in arrays:
            a.flags.writeable = False


@dataclass(frozen=True)
class MBFStatistics:
    """Per-stage timing and per-domain counts of a generation run"""

    primary_time: NDArray
    """[s] Elapsed time of the primary pass for each solution configuration"""
    secondary_time: NDArray
    """[s] Elapsed time of the secondary pass for each solution configuration"""
    reduction_time: NDArray
    """[s] Elapsed time of the reduction stage for each solution configuration, zero when disabled"""

    n_primary: NDArray
    """Primary MBF counts with shape (n_domains, n_solutions)"""
    n_secondary: NDArray
    """Secondary MBF counts with shape (n_domains, n_solutions)"""
    n_reduced: NDArray
    """Reduced MBF counts with shape (n_domains, n_solutions)"""

    n_factorizations: int
    """Number of self-impedance LU factorizations computed"""

    use_reduction: bool
    """Whether the candidate sets were reduced and orthonormalized"""

    @property
    def total_time(self) -> float:
        """[s] Total time over all stages and configurations"""
        return float(
            np.sum(self.primary_time)
            + np.sum(self.secondary_time)
            + np.sum(self.reduction_time)
        )

    def summary(self) -> str:
        """Human-readable report of counts and timings per solution configuration"""
        nsols = self.primary_time.size
        lines = []
        for s in range(nsols):
            lines.append(
                f"Total number of primary MBFs {np.sum(self.n_primary[:, s])}, "
                f"secondary MBFs {np.sum(self.n_secondary[:, s])} "
                f"for solution {s + 1} of {nsols}"
            )
            if self.use_reduction:
                lines.append(
                    f"Total number of reduced MBFs {np.sum(self.n_reduced[:, s])} "
                    f"for solution {s + 1} of {nsols}"
                )
            lines.append(
                f"Times for primary MBFs {self.primary_time[s]:.6f} [s], "
                f"secondary MBFs {self.secondary_time[s]:.6f} [s], "
                f"reduction {self.reduction_time[s]:.6f} [s] "
                f"for solution {s + 1} of {nsols}"
            )
        lines.append(
            f"Total times for primary MBFs {np.sum(self.primary_time):.6f} [s], "
            f"secondary MBFs {np.sum(self.secondary_time):.6f} [s], "
            f"reduction {np.sum(self.reduction_time):.6f} [s]"
        )
        lines.append(f"Self-impedance factorizations: {self.n_factorizations}")
        return "\n".join(lines)
