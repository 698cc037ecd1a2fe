"""
SVD-based reduction and orthonormalization of the candidate MBFs on a domain.

For each domain and solution configuration, the primary and secondary MBFs
are gathered into a column-augmented candidate matrix over the domain's
n unknowns:
```
     Candidate MBFs
 ____ ____ ____     ____
|    |    |    |   |    |
|Jp_1|Js_1|Js_2|...|Js_q|  n
|    |    |    |   |    |
|____|____|____|   |____|
            C
```
With many neighbors, the secondaries are strongly linearly dependent on each
other and on the primaries: far-away neighbors all induce nearly the same
current shape. Using all of them directly in the reduced CBFM system would
make it large and ill-conditioned.

The thin singular value decomposition
```
    C = U @ diag(s) @ Vh
```
gives the left singular vectors `U` as an orthonormal basis for the column
space of `C`, ordered by the singular values `s`, which measure how much of the
candidate set each direction carries. Keeping only the directions with
```
    s_i >= s_0 / threshold
```
for a user-specified `threshold` (a ratio to the largest singular value) gives
a truncated orthonormal basis of K <= C columns:
```
 _________
|         |
|  U[:,:K]|  n
|         |
|_________|
     K
```
A larger threshold keeps more directions, giving a more accurate but larger
reduced system. Directions with numerically-zero singular values are always
discarded because they do not belong to the column space of `C`.
"""

from typing import Tuple

import numpy as np
from numpy.typing import NDArray


def svd_reduction(
    candidates: NDArray, threshold: float | None
) -> Tuple[NDArray, NDArray, int]:
    """
    Orthonormalize a candidate MBF set and truncate it by singular value.

    See module-level docs for more detail about the reduction approach.

    Args:
        candidates: [A] n x C matrix of candidate MBFs, one per column
        threshold: Ratio of the largest singular value to the smallest one retained.
                   None -> keep every direction with a nonzero singular value.

    Returns:
        (s, basis, k), all C' = min(n, C) singular values in descending order,
        n x K orthonormal reduced MBFs with K <= C', and number of retained MBFs K
    """
    n, ncand = candidates.shape
    if ncand == 0:
        return np.zeros(0), np.zeros((n, 0), dtype=candidates.dtype), 0

    # Singular values come out of the SVD in descending order already
    u, s, _ = np.linalg.svd(candidates, full_matrices=False)

    # Numerical rank floor, as used by `numpy.linalg.matrix_rank`
    rank_tol = s[0] * max(n, ncand) * np.finfo(s.dtype).eps
    keep = s > rank_tol
    if threshold is not None:
        assert threshold >= 1.0, "Threshold is a ratio to the largest singular value"
        keep &= s >= s[0] / threshold

    # The retained values are always a leading block
    k = int(np.sum(keep))
    basis = np.ascontiguousarray(u[:, :k])

    return s, basis, k


def no_reduction(candidates: NDArray) -> Tuple[None, NDArray, int]:
    """
    Pass the candidate set through untouched, for when reduction is disabled.

    Returns:
        (None, candidates, C), with the number of candidate columns C
    """
    return None, candidates, candidates.shape[1]


def plot_singular_values(
    s: NDArray, threshold: float | None = None, ax=None, label: str | None = None
):
    """
    Plot the normalized singular value spectrum of a candidate MBF set,
    with the truncation level for `threshold` if one is given.

    Args:
        s: Singular values in descending order
        threshold: Ratio of the largest singular value to the smallest one retained
        ax: Matplotlib axes to draw on. Defaults to the current axes.
        label: Legend label for the spectrum

    Returns:
        The axes drawn on
    """
    import matplotlib.pyplot as plt

    if ax is None:
        ax = plt.gca()
    if s.size == 0:
        return ax

    ax.semilogy(np.arange(1, s.size + 1), s / s[0], marker="o", label=label)
    if threshold is not None:
        ax.axhline(1.0 / threshold, color="k", linestyle="--", label="Truncation")
    ax.set_xlabel("Singular value index")
    ax.set_ylabel("s / s_max")
    return ax
