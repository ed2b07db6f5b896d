"""
Median smoothing of per-residue score tracks.

Raw residue-level probabilities are noisy from one position to the next; a
narrow symmetric median filter removes isolated spikes without shifting the
edges of longer plateaus. Near the sequence ends the window shrinks
symmetrically, so the first and last residues are always passed through.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

DEFAULT_WINDOW = 5


def median_filter(scores: Sequence[int], window_size: int = DEFAULT_WINDOW) -> np.ndarray:
    """
    Symmetric median filter with shrinking end windows.

    For position ``i`` the radius is ``min(window_size // 2, i, L - 1 - i)``;
    a radius of 0 copies the input, otherwise the output is the middle
    element of the sorted window ``[i - radius, i + radius]``.

    Args:
        scores: Score track (integers)
        window_size: Odd full window width

    Returns:
        New integer array of the same length
    """
    if window_size < 1 or window_size % 2 == 0:
        raise ValueError(f"window_size must be a positive odd number, got {window_size}")

    arr = np.asarray(scores, dtype=np.int64)
    n = len(arr)
    out = arr.copy()
    half = window_size // 2

    for i in range(n):
        radius = min(half, i, n - 1 - i)
        if radius == 0:
            continue
        window = np.sort(arr[i - radius:i + radius + 1])
        out[i] = window[radius]

    return out
