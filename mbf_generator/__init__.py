from importlib.metadata import metadata

__version__ = metadata(str(__package__))["Version"]
__author__ = metadata(str(__package__))["Author"]

from numpy.typing import NDArray

from mbf_generator import model_reduction, synthetic
from mbf_generator.domains import Domain, DomainModel, GeneratingSubarray
from mbf_generator.impedance import DenseImpedance, DenseExcitation
from mbf_generator.factorization import (
    FactorizationPlan,
    FactorizationPreconditionError,
    SingularDomainError,
)
from mbf_generator.results import DomainMBFs, SecondaryMBFs, MBFStatistics
from mbf_generator.generator import MBFGenerator, MBFOutputs, ConfigurationError


def generate(
    model: DomainModel,
    impedance: NDArray | DenseImpedance,
    excitation: NDArray | DenseExcitation,
    calc_secondary: bool = False,
    use_reduction: bool = True,
    reduction_threshold: float | None = 1000.0,
    n_jobs: int = 1,
    show_prog: bool = True,
    **kwargs,
) -> MBFOutputs:
    """
    Generate the full set of MBFs for every domain and solution configuration.

    Args:
        model: Partition of the unknowns into domains, with sub-arrays and active flags
        impedance: [ohm] (N x N) impedance matrix, or a provider of its blocks
        excitation: [V] (N) or (N x S) excitation, or a provider of its domain entries
        calc_secondary: Whether to generate secondary MBFs. Defaults to False.
        use_reduction: Whether to reduce and orthonormalize by SVD. Defaults to True.
        reduction_threshold: Ratio of largest to smallest retained singular value. Defaults to 1000.
        n_jobs: Number of worker threads for per-domain work. Defaults to 1.
        show_prog: Whether to show terminal progress bars. Defaults to True.
        **kwargs: Passed on to `MBFGenerator`

    Returns:
        A fully-computed set of MBFs, reduced bases and statistics
    """
    generator = MBFGenerator(
        model=model,
        impedance=impedance,
        excitation=excitation,
        calc_secondary=calc_secondary,
        use_reduction=use_reduction,
        reduction_threshold=reduction_threshold,
        n_jobs=n_jobs,
        show_prog=show_prog,
        **kwargs,
    )

    stats = generator.statistics
    out = MBFOutputs(
        generator=generator,
        domain_mbfs=generator.domain_mbfs,
        statistics=stats,
        n_primary=stats.n_primary,
        n_secondary=stats.n_secondary,
        n_reduced=stats.n_reduced,
        reduced_bases=[generator.reduced_basis(s) for s in range(generator.n_solutions)],
    )
    return out


__all__ = [
    "MBFGenerator",
    "MBFOutputs",
    "generate",
    "Domain",
    "DomainModel",
    "GeneratingSubarray",
    "DenseImpedance",
    "DenseExcitation",
    "DomainMBFs",
    "SecondaryMBFs",
    "MBFStatistics",
    "FactorizationPlan",
    "FactorizationPreconditionError",
    "SingularDomainError",
    "ConfigurationError",
    "model_reduction",
    "synthetic",
]
