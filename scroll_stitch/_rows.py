"""Pixel-row similarity primitives shared by the detectors.

Both comparators sample every COLUMN_STRIDE-th column over a horizontal span and
only look at the R/G/B channels. They hold no state and are safe to call from
several threads at once.
"""

import numpy as np
from numpy.typing import NDArray

COLUMN_STRIDE = 4
STRICT_TOLERANCE = 5
FUZZY_TOLERANCE = 10
MAX_MISMATCH_FRACTION = 0.10


def _sampled_row_diff(
    a: NDArray[np.uint8],
    row_a: int,
    b: NDArray[np.uint8],
    row_b: int,
    x_start: int,
    x_end: int | None,
) -> NDArray[np.int16]:
    """Per-channel absolute RGB difference of the sampled pixels, shape (N, 3)."""
    if x_end is None:
        x_end = min(a.shape[1], b.shape[1])
    pixels_a = a[row_a, x_start:x_end:COLUMN_STRIDE, :3].astype(np.int16)
    pixels_b = b[row_b, x_start:x_end:COLUMN_STRIDE, :3].astype(np.int16)
    return np.abs(pixels_a - pixels_b)


def compare_strict(
    a: NDArray[np.uint8],
    row_a: int,
    b: NDArray[np.uint8],
    row_b: int,
    tolerance: int = STRICT_TOLERANCE,
    x_start: int = 0,
    x_end: int | None = None,
) -> bool:
    """True iff every sampled pixel differs by at most `tolerance` per channel."""
    diff = _sampled_row_diff(a, row_a, b, row_b, x_start, x_end)
    return bool(np.all(diff <= tolerance))


def compare_fuzzy(
    a: NDArray[np.uint8],
    row_a: int,
    b: NDArray[np.uint8],
    row_b: int,
    tolerance: int = FUZZY_TOLERANCE,
    max_mismatch_fraction: float = MAX_MISMATCH_FRACTION,
    x_start: int = 0,
    x_end: int | None = None,
) -> bool:
    """True iff fewer than `max_mismatch_fraction` of sampled pixels mismatch.

    A pixel mismatches when any of its channels differs by more than
    `tolerance`. Tolerates anti-aliasing and shadow noise from re-rendering.
    """
    diff = _sampled_row_diff(a, row_a, b, row_b, x_start, x_end)
    if diff.shape[0] == 0:
        return True
    mismatched = np.any(diff > tolerance, axis=1)
    return bool(np.count_nonzero(mismatched) / diff.shape[0] < max_mismatch_fraction)
