"""
Small, reproducible MoM-like systems for examples and testing.

The impedance matrices use a thin-wire reduced kernel between point-like
segments, which is enough to give translation-invariant, diagonally dominant,
complex-symmetric matrices with physically-shaped coupling. They are not a
replacement for a real full-wave solver.
"""

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from mbf_generator.domains import Domain, DomainModel, GeneratingSubarray

C128 = np.complex128


@dataclass(frozen=True)
class SyntheticSystem:
    """A MoM matrix equation together with its domain description"""

    z: NDArray
    """[ohm] with shape (N x N), impedance matrix"""

    y: NDArray
    """[V] with shape (N x S), excitation matrix"""

    positions: NDArray
    """[m] with shape (N x 2), segment center locations"""

    model: DomainModel
    """Partition of the unknowns into domains"""


def _impedance_matrix(
    positions: NDArray, wavelength: float, radius: float
) -> NDArray:
    """
    [ohm] Reduced thin-wire kernel `exp(-jkR) / (4 pi R)` with `R = sqrt(d^2 + a^2)`,
    scaled by the free-space impedance.
    """
    eta0 = 376.730313668  # [ohm]
    k = 2.0 * np.pi / wavelength  # [rad/m]
    d = np.linalg.norm(positions[:, np.newaxis, :] - positions[np.newaxis, :, :], axis=2)
    r = np.sqrt(d**2 + radius**2)  # [m]
    return eta0 * np.exp(-1j * k * r) / (4.0 * np.pi * r)


def dipole_array(
    n_elements: int = 4,
    n_segments: int = 9,
    spacing: float = 0.5,
    wavelength: float = 1.0,
    steering_phases: tuple[float, ...] = (0.0,),
    active: NDArray | None = None,
) -> SyntheticSystem:
    """
    A linear array of identical, parallel, disconnected half-wave dipoles,
    each one domain, fed by a delta gap on its center segment.

    Args:
        n_elements: Number of array elements (domains)
        n_segments: Number of unknowns per element
        spacing: [m] Distance between neighboring elements
        wavelength: [m] Free-space wavelength
        steering_phases: [rad] Progressive phase shift between elements, one per solution configuration
        active: Optional (n_elements, n_solutions) mask of excited elements

    Returns:
        The assembled system
    """
    length = wavelength / 2.0  # [m]
    dz = length / n_segments  # [m]
    zs = (np.arange(n_segments) + 0.5) * dz - length / 2.0  # [m]

    positions = np.array(
        [(i * spacing, z) for i in range(n_elements) for z in zs]
    )  # [m]
    n = n_elements * n_segments
    z = _impedance_matrix(positions, wavelength, radius=dz / 20.0)

    nsols = len(steering_phases)
    y = np.zeros((n, nsols), dtype=C128)  # [V]
    feed = n_segments // 2
    for s, phase in enumerate(steering_phases):
        for i in range(n_elements):
            y[i * n_segments + feed, s] = np.exp(1j * phase * i)

    domains = [
        Domain(name=f"element {i}", indices=np.arange(i * n_segments, (i + 1) * n_segments))
        for i in range(n_elements)
    ]
    model = DomainModel(domains=domains, n_unknowns=n, disconnected=True, active=active)

    return SyntheticSystem(z=z, y=y, positions=positions, model=model)


def connected_wire(
    n_domains: int = 3,
    n_segments: int = 8,
    overlap: int = 1,
    subarray_size: int = 1,
    wavelength: float = 1.0,
    feeds: tuple[int, ...] | None = None,
    active: NDArray | None = None,
) -> SyntheticSystem:
    """
    A straight wire cut into interconnected domains. Neighboring domains share
    `overlap` unknowns on each side of their common boundary, so every interface
    unknown belongs to exactly two domains.

    Args:
        n_domains: Number of domains along the wire
        n_segments: Number of unknowns owned by each domain before overlapping
        overlap: Number of unknowns each domain extends into each neighbor
        subarray_size: Number of consecutive domains per generating sub-array
        wavelength: [m] Free-space wavelength
        feeds: Global unknown index of a delta-gap feed per domain. Defaults to domain centers.
        active: Optional (n_domains, 1) mask of excited domains

    Returns:
        The assembled system with a single solution configuration
    """
    assert 0 < overlap < n_segments, "Overlap must be nonzero and smaller than a domain"
    n = n_domains * n_segments
    dz = wavelength / 20.0  # [m]
    positions = np.array([(0.0, (i + 0.5) * dz) for i in range(n)])  # [m]
    z = _impedance_matrix(positions, wavelength, radius=dz / 20.0)

    domains = []
    for i in range(n_domains):
        lo = max(0, i * n_segments - overlap)
        hi = min(n, (i + 1) * n_segments + overlap)
        indices = np.arange(lo, hi)
        interior = np.arange(
            i * n_segments + (overlap if i > 0 else 0),
            (i + 1) * n_segments - (overlap if i < n_domains - 1 else 0),
        )
        domains.append(Domain(name=f"segment {i}", indices=indices, interior=interior))

    if feeds is None:
        feeds = tuple(i * n_segments + n_segments // 2 for i in range(n_domains))
    y = np.zeros((n, 1), dtype=C128)  # [V]
    y[list(feeds), 0] = 1.0

    subarrays = [
        GeneratingSubarray(
            name=f"sub-array {k}",
            domains=tuple(range(i, min(i + subarray_size, n_domains))),
        )
        for k, i in enumerate(range(0, n_domains, subarray_size))
    ]
    model = DomainModel(
        domains=domains,
        n_unknowns=n,
        disconnected=False,
        subarrays=subarrays,
        active=active,
    )

    return SyntheticSystem(z=z, y=y, positions=positions, model=model)
