"""LU factorization of domain self-impedances, and the policy for sharing them"""

from typing import Literal
from dataclasses import dataclass, replace
from warnings import warn, catch_warnings, simplefilter

import numpy as np
from numpy.typing import NDArray

from scipy.linalg import lu_factor, lu_solve, LinAlgWarning

from mbf_generator.domains import DomainModel

FactorizationReuse = Literal["auto", "always", "never"]

_PIVOT_RTOL = 1e3 * np.finfo(np.float64).eps
"""
Smallest magnitude of an LU pivot, relative to the largest, that is accepted
before a self-impedance block is treated as numerically singular.
"""


class SingularDomainError(np.linalg.LinAlgError):
    """A domain's self-impedance block could not be used for a linear solve"""

    def __init__(self, domain: int, solution: int | None, reason: str):
        self.domain = domain
        """Index of the failing domain"""
        self.solution = solution
        """Solution configuration being processed when the failure occurred"""
        super().__init__(
            f"Self-impedance of domain {domain} is singular "
            f"(solution configuration {solution}): {reason}"
        )


class FactorizationPreconditionError(ValueError):
    """Shared factorization was requested for domains that are not identical"""


@dataclass(frozen=True)
class DomainFactorization:
    """Reusable LU factors of one self-impedance block"""

    domain: int
    """Index of the domain whose self-impedance was factorized"""

    lu: NDArray
    """Combined L and U factors as returned by `scipy.linalg.lu_factor`"""

    piv: NDArray
    """Pivot indices as returned by `scipy.linalg.lu_factor`"""

    def solve(self, rhs: NDArray, domain: int, solution: int) -> NDArray:
        """
        Back-substitute one or more right-hand sides.

        Args:
            rhs: [V] with shape (n) or (n, k)
            domain: Domain being solved, for error reporting
            solution: Solution configuration being solved, for error reporting

        Raises:
            SingularDomainError: If the solve produces non-finite values

        Returns:
            [A] coefficients with the same shape as `rhs`
        """
        x = lu_solve((self.lu, self.piv), rhs, check_finite=False)
        if not np.all(np.isfinite(x)):
            raise SingularDomainError(domain, solution, "non-finite solution")
        return x


def _factorize(z: NDArray, domain: int, solution: int | None) -> DomainFactorization:
    """LU-factorize a self-impedance block, rejecting singular blocks"""
    if not np.all(np.isfinite(z)):
        raise SingularDomainError(domain, solution, "non-finite matrix entries")
    with catch_warnings():
        # Exact zero pivots are reported below with the domain attached
        simplefilter("ignore", LinAlgWarning)
        lu, piv = lu_factor(z, check_finite=False)
    pivots = np.abs(np.diag(lu))
    pmax = np.max(pivots)
    if pmax == 0.0 or np.min(pivots) <= _PIVOT_RTOL * pmax:
        raise SingularDomainError(
            domain,
            solution,
            f"pivot ratio {np.min(pivots) / pmax if pmax > 0.0 else 0.0:.3e}",
        )
    return DomainFactorization(domain=domain, lu=lu, piv=piv)


@dataclass(frozen=True)
class FactorizationPlan:
    """
    Outcome of checking whether every domain can share a single factorization.
    Sharing requires disconnected domains that are structurally identical:
    same number of unknowns and the same self-impedance block.
    """

    shared: bool
    """Whether a single factorization is reused for every domain"""

    representative: int | None
    """Domain whose self-impedance is factorized when `shared`"""

    reason: str
    """Why the plan was chosen, for reporting"""


def _check_identical_domains(
    model: DomainModel, impedance, rtol: float | None
) -> str | None:
    """Return a description of the first difference between domains, or None if identical"""
    if not model.disconnected:
        return "domains are interconnected"

    sizes = [d.n_unknowns for d in model.domains]
    if len(set(sizes)) != 1:
        return f"domains have differing numbers of unknowns {sorted(set(sizes))}"

    if rtol is not None:
        z0 = impedance.self_impedance(model.domains[0])
        scale = np.max(np.abs(z0))
        for i, d in enumerate(model.domains[1:], start=1):
            zi = impedance.self_impedance(d)
            err = np.max(np.abs(zi - z0))
            if err > rtol * scale:
                return (
                    f"self-impedance of domain {i} differs from domain 0 "
                    f"(max abs diff {err:.3e}, scale {scale:.3e})"
                )

    return None


def plan_factorizations(
    model: DomainModel,
    impedance,
    reuse: FactorizationReuse = "auto",
    rtol: float | None = 1e-6,
) -> FactorizationPlan:
    """
    Decide whether a single self-impedance factorization can serve every domain.

    Args:
        model: Domain description
        impedance: Impedance provider with a `self_impedance(domain)` method
        reuse: "auto" shares when the identical-domain check passes, "always" requires
               it to pass, "never" factorizes every domain separately
        rtol: Relative tolerance for comparing self-impedance blocks between domains.
              None -> only compare the number of unknowns.

    Raises:
        FactorizationPreconditionError: If `reuse == "always"` and the domains are not identical
        ValueError: If `reuse` is not a recognized option

    Returns:
        The validated factorization plan
    """
    if reuse == "never":
        return FactorizationPlan(False, None, "per-domain factorization requested")
    if reuse not in ("auto", "always"):
        raise ValueError(f"Unrecognized factorization reuse option `{reuse}`")

    problem = _check_identical_domains(model, impedance, rtol)
    if problem is None:
        return FactorizationPlan(True, 0, "disconnected identical domains")

    if reuse == "always":
        raise FactorizationPreconditionError(
            f"Cannot share one factorization between domains: {problem}"
        )
    if model.disconnected:
        warn(
            f"Disconnected domains are not identical ({problem}); "
            "factorizing each domain separately"
        )
    return FactorizationPlan(False, None, problem)


class FactorizationCache:
    """
    Holds the factorizations called for by a `FactorizationPlan`. Each factorization
    is computed once, on first use, and then only read.

    Before domains are solved concurrently, call `prepare` from a single thread so
    that every factorization they need already exists.
    """

    def __init__(self, model: DomainModel, impedance, plan: FactorizationPlan):
        self._model = model
        self._impedance = impedance
        self._plan = plan
        self._factors: dict[int, DomainFactorization] = {}

    @property
    def plan(self) -> FactorizationPlan:
        """Validated factorization plan"""
        return self._plan

    @property
    def n_factorizations(self) -> int:
        """Number of LU factorizations computed so far"""
        return len(self._factors)

    def _key(self, domain: int) -> int:
        if self._plan.shared:
            return self._plan.representative
        return domain

    def prepare(self, domains: list[int], solution: int | None = None):
        """Compute any missing factorizations for `domains`"""
        for i in domains:
            self.get(i, solution)

    def get(self, domain: int, solution: int | None = None) -> DomainFactorization:
        """Factorization to use for solves on `domain`"""
        key = self._key(domain)
        if key not in self._factors:
            z = self._impedance.self_impedance(self._model.domains[key])
            # Failures name the domain being solved, not the representative
            factorization = _factorize(z, domain, solution)
            self._factors[key] = replace(factorization, domain=key)
        return self._factors[key]
