from __future__ import annotations

from time import perf_counter
from dataclasses import dataclass
from functools import cached_property

import numpy as np
from numpy.typing import NDArray

from mbf_generator.domains import DomainModel
from mbf_generator.impedance import DenseImpedance, DenseExcitation
from mbf_generator.factorization import (
    FactorizationReuse,
    FactorizationPlan,
    FactorizationCache,
    plan_factorizations,
)
from mbf_generator.results import (
    DomainMBFs,
    MBFStatistics,
    _allocate,
    _freeze,
)
from mbf_generator.primary import _calc_primary_mbfs
from mbf_generator.secondary import _calc_secondary_mbfs
from mbf_generator.utils import _map_domains
from mbf_generator import model_reduction

C128 = np.complex128


class ConfigurationError(ValueError):
    """Unsupported or inconsistent combination of generator inputs and options"""


class MBFGenerator:
    """
    Generates primary, secondary and reduced MBFs for every domain of a MoM
    system and every solution configuration.

    Work is done lazily, on first access to the results, in a fixed order:
    for each solution configuration in turn, the primary pass over all domains,
    then the secondary pass over all receiving domains, then reduction.

    Note:
        The contents of an instance of this class must be treated as
        immutable, as it relies on caching results. Do not modify the
        supplied matrices after initialization or modify any of the values
        returned from methods or properties of this class!
    """

    _model: DomainModel
    """Partition of the unknowns into domains"""
    _impedance: DenseImpedance
    """Provider of self-impedance and coupling blocks"""
    _excitation: DenseExcitation
    """Provider of domain excitation vectors"""
    _calc_secondary: bool = False
    """Whether to generate secondary MBFs"""
    _no_mutual_coupling: bool = False
    """Whether coupling between domains is disabled for the downstream solve"""
    _use_reduction: bool = True
    """Whether to reduce and orthonormalize the candidate MBFs by SVD"""
    _reduction_threshold: float | None = 1000.0
    """Ratio of the largest singular value to the smallest one retained"""
    _factorization_reuse: FactorizationReuse = "auto"
    """Policy for sharing one self-impedance factorization between domains"""
    _identical_domain_rtol: float | None = 1e-6
    """Relative tolerance used when comparing domain self-impedances"""
    _n_jobs: int = 1
    """Number of worker threads for per-domain work"""
    _show_prog: bool = False
    """Whether to display terminal progress bars"""

    def __init__(
        self,
        model: DomainModel,
        impedance: NDArray | DenseImpedance,
        excitation: NDArray | DenseExcitation,
        calc_secondary: bool = False,
        no_mutual_coupling: bool = False,
        use_reduction: bool = True,
        reduction_threshold: float | None = 1000.0,
        factorization_reuse: FactorizationReuse = "auto",
        identical_domain_rtol: float | None = 1e-6,
        n_jobs: int = 1,
        show_prog: bool = False,
    ):
        """
        Args:
            model: Partition of the unknowns into domains, with sub-arrays and active flags
            impedance: [ohm] (N x N) impedance matrix, or a provider of its blocks
            excitation: [V] (N) or (N x S) excitation, or a provider of its domain entries
            calc_secondary: Whether to generate secondary MBFs from mutual coupling
            no_mutual_coupling: Whether coupling between domains is disabled.
                                Incompatible with `calc_secondary`.
            use_reduction: Whether to reduce and orthonormalize the MBFs by SVD
            reduction_threshold: Ratio of the largest singular value to the smallest one
                                 retained. None -> keep all nonzero directions.
            factorization_reuse: "auto" shares one factorization between disconnected
                                 identical domains when they validate as such,
                                 "always" requires it, "never" disables it
            identical_domain_rtol: Relative tolerance for the identical-domain check on
                                   self-impedances. None -> compare sizes only.
            n_jobs: Number of worker threads for per-domain work, with joblib semantics
            show_prog: Whether to display terminal progress bars

        Raises:
            ConfigurationError: If the options or input shapes are inconsistent
        """
        # Reject incompatible options before doing any numerical work
        if calc_secondary and no_mutual_coupling:
            raise ConfigurationError(
                "Secondary MBFs cannot be generated with mutual coupling between domains disabled"
            )
        if factorization_reuse not in ("auto", "always", "never"):
            raise ConfigurationError(
                f"Unrecognized factorization reuse option `{factorization_reuse}`"
            )

        if not hasattr(impedance, "self_impedance"):
            impedance = DenseImpedance(impedance)
        if not hasattr(excitation, "excitation"):
            excitation = DenseExcitation(excitation)

        n = model.n_unknowns
        if impedance.n_unknowns != n or excitation.n_unknowns != n:
            raise ConfigurationError(
                f"Domain model has {n} unknowns, impedance has {impedance.n_unknowns} "
                f"and excitation has {excitation.n_unknowns}"
            )
        if model.active is not None and model.active.shape[1] != excitation.n_solutions:
            raise ConfigurationError(
                f"Active mask covers {model.active.shape[1]} solution configurations, "
                f"excitation has {excitation.n_solutions}"
            )

        self._model = model
        self._impedance = impedance
        self._excitation = excitation
        self._calc_secondary = calc_secondary
        self._no_mutual_coupling = no_mutual_coupling
        self._use_reduction = use_reduction
        self._reduction_threshold = reduction_threshold
        self._factorization_reuse = factorization_reuse
        self._identical_domain_rtol = identical_domain_rtol
        self._n_jobs = n_jobs
        self._show_prog = show_prog

        self.__post_init__()

    def __hash__(self) -> int:
        return hash(id(self))

    def __post_init__(self):
        # Immutable after init, except for new cache entries
        def setattr_err(*_, **__):
            raise NotImplementedError(
                "MBFGenerator attributes are not intended to be mutated"
            )

        self.__setattr__ = setattr_err

    @property
    def model(self) -> DomainModel:
        """Partition of the unknowns into domains"""
        return self._model

    @property
    def impedance(self) -> DenseImpedance:
        """Provider of self-impedance and coupling blocks"""
        return self._impedance

    @property
    def excitation(self) -> DenseExcitation:
        """Provider of domain excitation vectors"""
        return self._excitation

    @property
    def calc_secondary(self) -> bool:
        """Whether secondary MBFs are generated"""
        return self._calc_secondary

    @property
    def no_mutual_coupling(self) -> bool:
        """Whether coupling between domains is disabled for the downstream solve"""
        return self._no_mutual_coupling

    @property
    def use_reduction(self) -> bool:
        """Whether candidate MBFs are reduced and orthonormalized"""
        return self._use_reduction

    @property
    def reduction_threshold(self) -> float | None:
        """Ratio of the largest singular value to the smallest one retained"""
        return self._reduction_threshold

    @property
    def n_jobs(self) -> int:
        """Number of worker threads for per-domain work"""
        return self._n_jobs

    @property
    def show_prog(self) -> bool:
        """Whether terminal progressbar will be displayed during generation"""
        return self._show_prog

    @property
    def n_domains(self) -> int:
        """Number of domains"""
        return self.model.n_domains

    @property
    def n_solutions(self) -> int:
        """Number of solution configurations"""
        return self.excitation.n_solutions

    @cached_property
    def factorization_plan(self) -> FactorizationPlan:
        """Validated decision on sharing one self-impedance factorization"""
        return plan_factorizations(
            self.model,
            self.impedance,
            self._factorization_reuse,
            self._identical_domain_rtol,
        )

    @cached_property
    def _calc_mbfs(self) -> tuple[list[DomainMBFs], MBFStatistics]:
        """Run every stage for every solution configuration"""
        model = self.model
        nsols = self.n_solutions
        factorizations = FactorizationCache(
            model, self.impedance, self.factorization_plan
        )
        mbfs = _allocate(model, nsols, self.calc_secondary)

        primary_time = np.zeros(nsols)  # [s]
        secondary_time = np.zeros(nsols)  # [s]
        reduction_time = np.zeros(nsols)  # [s]

        for s in range(nsols):
            start = perf_counter()
            _calc_primary_mbfs(
                model,
                self.excitation,
                factorizations,
                mbfs,
                s,
                self.n_jobs,
                self.show_prog,
            )
            primary_time[s] = perf_counter() - start

            # The primary pass for `s` is complete for every domain past this point
            if self.calc_secondary:
                start = perf_counter()
                _calc_secondary_mbfs(
                    model,
                    self.impedance,
                    factorizations,
                    mbfs,
                    s,
                    self.n_jobs,
                    self.show_prog,
                )
                secondary_time[s] = perf_counter() - start

            start = perf_counter()
            self._reduce(mbfs, s)
            if self.use_reduction:
                reduction_time[s] = perf_counter() - start

        _freeze(mbfs)

        stats = MBFStatistics(
            primary_time=primary_time,
            secondary_time=secondary_time,
            reduction_time=reduction_time,
            n_primary=np.array([m.n_primary for m in mbfs]).reshape(model.n_domains, nsols),
            n_secondary=np.array(
                [
                    m.secondary.count if m.secondary is not None else np.zeros(nsols, dtype=int)
                    for m in mbfs
                ]
            ).reshape(model.n_domains, nsols),
            n_reduced=np.array([m.n_reduced for m in mbfs]).reshape(model.n_domains, nsols),
            n_factorizations=factorizations.n_factorizations,
            use_reduction=self.use_reduction,
        )

        return mbfs, stats

    def _reduce(self, mbfs: list[DomainMBFs], solution: int):
        """Reduce (or pass through) the candidate MBFs of every domain for one configuration"""

        def reduce_one(m: DomainMBFs):
            candidates = m.candidates(solution)
            if self.use_reduction:
                return model_reduction.svd_reduction(
                    candidates, self.reduction_threshold
                )
            return model_reduction.no_reduction(candidates)

        results = _map_domains(
            reduce_one,
            mbfs,
            self.n_jobs,
            self.show_prog and self.use_reduction,
            f"Reduce and orthonormalize MBFs, solution {solution}",
        )
        for m, (s, basis, k) in zip(mbfs, results):
            m.reduced[solution] = basis
            m.singular_values[solution] = s
            m.n_reduced[solution] = k

    @cached_property
    def domain_mbfs(self) -> list[DomainMBFs]:
        """Every generated MBF, by domain"""
        mbfs, _ = self._calc_mbfs
        return mbfs

    @cached_property
    def statistics(self) -> MBFStatistics:
        """Timing and counts of the generation run"""
        _, stats = self._calc_mbfs
        return stats

    def reduced_basis(self, solution: int) -> NDArray:
        """
        [A] with shape (N x K_total), the reduced MBFs of every domain for one
        configuration, expanded onto the global unknowns and stacked in domain order.
        Each domain's block of columns is zero outside of that domain.
        """
        cols = [m.to_global(m.reduced[solution]) for m in self.domain_mbfs]
        return np.concatenate(cols, axis=1)

    def reduced_basis_offsets(self, solution: int) -> NDArray:
        """
        Column offsets of each domain's block in `reduced_basis(solution)`,
        with shape (n_domains + 1)
        """
        counts = [m.n_reduced[solution] for m in self.domain_mbfs]
        return np.concatenate(([0], np.cumsum(counts))).astype(int)


@dataclass(frozen=True)
class MBFOutputs:
    """
    A fully-actualized (precomputed) set of MBFs and statistics
    covering typical usage patterns.
    """

    generator: MBFGenerator
    """The generator, for anything not precomputed here"""

    domain_mbfs: list[DomainMBFs]
    """Every generated MBF, by domain"""

    statistics: MBFStatistics
    """Timing and counts of the generation run"""

    n_primary: NDArray
    """Primary MBF counts with shape (n_domains, n_solutions)"""
    n_secondary: NDArray
    """Secondary MBF counts with shape (n_domains, n_solutions)"""
    n_reduced: NDArray
    """Reduced MBF counts with shape (n_domains, n_solutions)"""

    reduced_bases: list[NDArray]
    """[A] with shape (N x K_total) for each solution configuration, global reduced MBFs"""
