"""
Windowing of MBFs on interconnected domains.

Neighboring interconnected domains share the unknowns on their common interface.
When domain-local solutions are superposed into the global current, each shared
unknown receives a contribution from both domains, so the interface coefficients
of every generated MBF are halved. This cancels the double count exactly when
the overlap is shared by two domains.
"""

from numpy.typing import NDArray

from mbf_generator.domains import Domain

WINDOW_FACTOR = 0.5
"""[dimensionless] Scale applied to interface coefficients"""


def apply_window(coeffs: NDArray, domain: Domain, disconnected: bool) -> NDArray:
    """
    Scale the interface coefficients of one or more MBFs on `domain`, in place.

    Args:
        coeffs: [A] with shape (..., n_unknowns), local MBF coefficients on the domain
        domain: The domain the coefficients live on
        disconnected: Whether the domain model is disconnected, in which case nothing is done

    Returns:
        The same `coeffs` array
    """
    if disconnected or domain.interface_positions.size == 0:
        return coeffs
    coeffs[..., domain.interface_positions] *= WINDOW_FACTOR
    return coeffs
