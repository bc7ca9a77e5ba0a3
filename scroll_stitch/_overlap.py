"""Overlap estimation between consecutive frames using sampled block matching.

A reference block is taken from the bottom of the previous frame and searched
for in the top part of the current frame:
1. Candidate range: a narrow window around the position predicted by the last
   scroll distance (inertia), or the upper part of the frame when unknown.
2. Scoring: summed absolute RGB differences on three bands of the block (top,
   middle, bottom row), sampled every 4th column.
3. Validation: score ceiling, fuzzy row confirmation and a minimum scroll
   distance. A failed inertia search falls back to a full search once.

This module contains only the pure algorithmic functions.
"""

import logging
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from ._frames import Frame
from ._rows import COLUMN_STRIDE, FUZZY_TOLERANCE, MAX_MISMATCH_FRACTION, compare_fuzzy

# Module-level constants
BLOCK_FRACTION = 0.20  # Reference block is the bottom 20% of the previous frame
FULL_SEARCH_FRACTION = 0.70  # Without inertia, search the upper 70% of the frame
INERTIA_WINDOW_FRACTION = 0.25  # Inertia search spans +/- 25% of the expected delta
MAX_SCORE_PER_SAMPLE = 15.0  # Mean RGB difference allowed per sample (max 765)
MIN_SCROLL_DELTA = 50  # Smaller apparent scrolls are treated as false matches


@dataclass(frozen=True)
class OverlapSettings:
    """Tunable parameters of the overlap search."""

    block_fraction: float = BLOCK_FRACTION
    full_search_fraction: float = FULL_SEARCH_FRACTION
    inertia_window_fraction: float = INERTIA_WINDOW_FRACTION
    max_score_per_sample: float = MAX_SCORE_PER_SAMPLE
    min_scroll_delta: int = MIN_SCROLL_DELTA
    fuzzy_tolerance: int = FUZZY_TOLERANCE
    max_mismatch_fraction: float = MAX_MISMATCH_FRACTION


@dataclass
class InertiaState:
    """Last measured scroll distance, carried across pairs of one stitch walk."""

    last_scroll_delta: int = 0  # 0 = unknown


@dataclass(frozen=True)
class OverlapMatch:
    """Result of a successful overlap search."""

    overlap: int  # Rows of prev that also appear at the top of curr
    delta: int  # Apparent scroll distance between the frames
    best_y: int  # Row in curr where the reference block was found
    score: int
    used_inertia: bool


def block_geometry(prev_height: int, block_fraction: float = BLOCK_FRACTION) -> tuple[int, int]:
    """Return (block_start_y, block_height) of the reference block."""
    block_height = max(1, int(prev_height * block_fraction))
    return prev_height - block_height, block_height


def band_offsets(block_height: int) -> NDArray[np.intp]:
    """Rows of the block that are sampled: top, middle and bottom."""
    return np.array([0, block_height // 2, block_height - 1], dtype=np.intp)


def block_difference_scores(
    prev: Frame,
    curr: Frame,
    block_start_y: int,
    block_height: int,
    candidates: NDArray[np.intp],
    width: int | None = None,
) -> NDArray[np.int64]:
    """Score each candidate top row of curr against the reference block of prev.

    Args:
        prev: Previous frame (holds the reference block)
        curr: Current frame (possibly a cropped view)
        block_start_y: First row of the reference block in prev
        block_height: Height of the reference block
        candidates: Candidate top rows in curr, all <= curr.height - block_height
        width: Horizontal span to sample (defaults to the narrower frame)

    Returns:
        Summed absolute RGB difference per candidate (lower is better)
    """
    if width is None:
        width = min(prev.width, curr.width)
    offsets = band_offsets(block_height)

    prev_sampled = prev.pixels[:, 0:width:COLUMN_STRIDE, :3]
    curr_sampled = curr.pixels[:, 0:width:COLUMN_STRIDE, :3]
    # Shape: (3, columns, 3)
    reference = prev_sampled[block_start_y + offsets].astype(np.int32)
    # Shape: (candidates, 3, columns, 3)
    rows = candidates[:, None] + offsets[None, :]
    bands = curr_sampled[rows].astype(np.int32)

    return np.abs(bands - reference[None]).sum(axis=(1, 2, 3), dtype=np.int64)


def full_search_range(
    curr_height: int, block_height: int, full_search_fraction: float = FULL_SEARCH_FRACTION
) -> NDArray[np.intp]:
    """Candidate rows covering the upper part of the current frame."""
    max_y = curr_height - block_height
    limit = min(int(curr_height * full_search_fraction), max_y)
    return np.arange(0, limit + 1, dtype=np.intp)


def inertia_search_range(
    curr_height: int,
    block_start_y: int,
    block_height: int,
    expected_delta: int,
    inertia_window_fraction: float = INERTIA_WINDOW_FRACTION,
) -> NDArray[np.intp]:
    """Candidate rows around the position predicted by the expected delta."""
    estimated_y = block_start_y - expected_delta
    window = max(1, int(expected_delta * inertia_window_fraction))
    lo = max(0, estimated_y - window)
    hi = min(curr_height - block_height, estimated_y + window)
    if lo > hi:
        return np.arange(0, dtype=np.intp)
    return np.arange(lo, hi + 1, dtype=np.intp)


def _search(
    prev: Frame,
    curr: Frame,
    candidates: NDArray[np.intp],
    width: int,
    settings: OverlapSettings,
    used_inertia: bool,
) -> OverlapMatch | None:
    """Find the best candidate and validate it; None if it is not trustworthy."""
    if len(candidates) == 0:
        logging.debug("Overlap search: empty candidate range")
        return None

    block_start_y, block_height = block_geometry(prev.height, settings.block_fraction)
    scores = block_difference_scores(
        prev, curr, block_start_y, block_height, candidates, width
    )
    # argmin returns the first minimum, so ties resolve to the smallest y.
    best_index = int(np.argmin(scores))
    best_y = int(candidates[best_index])
    best_score = int(scores[best_index])

    samples = len(range(0, width, COLUMN_STRIDE)) * 3
    ceiling = samples * settings.max_score_per_sample
    logging.debug(
        f"Overlap search ({'inertia' if used_inertia else 'full'}): "
        f"{len(candidates)} candidates, best y={best_y} score={best_score} "
        f"ceiling={ceiling:.0f}"
    )
    if best_score > ceiling:
        return None

    for offset in band_offsets(block_height):
        if not compare_fuzzy(
            prev.pixels,
            block_start_y + int(offset),
            curr.pixels,
            best_y + int(offset),
            tolerance=settings.fuzzy_tolerance,
            max_mismatch_fraction=settings.max_mismatch_fraction,
            x_end=width,
        ):
            logging.debug(f"Overlap search: band at +{offset} failed fuzzy confirmation")
            return None

    delta = block_start_y - best_y
    return OverlapMatch(
        overlap=prev.height - delta,
        delta=delta,
        best_y=best_y,
        score=best_score,
        used_inertia=used_inertia,
    )


def find_overlap(
    prev: Frame,
    curr: Frame,
    width: int | None = None,
    expected_delta: int = 0,
    settings: OverlapSettings = OverlapSettings(),
) -> OverlapMatch | None:
    """Find how many rows at the bottom of prev reappear at the top of curr.

    Args:
        prev: Previous frame, uncropped
        curr: Current frame, with any static header already cropped away
        width: Horizontal span to sample (defaults to the narrower frame)
        expected_delta: Scroll distance of the previous accepted pair, 0 if unknown
        settings: Search parameters

    Returns:
        OverlapMatch, or None if no trustworthy match exists
    """
    if width is None:
        width = min(prev.width, curr.width)
    block_start_y, block_height = block_geometry(prev.height, settings.block_fraction)

    if curr.height < block_height:
        logging.info(
            f"Overlap failed: frame {curr.source_id} ({curr.height}px) is shorter "
            f"than the reference block ({block_height}px)"
        )
        return None

    match = None
    if expected_delta > 0:
        candidates = inertia_search_range(
            curr.height,
            block_start_y,
            block_height,
            expected_delta,
            settings.inertia_window_fraction,
        )
        match = _search(prev, curr, candidates, width, settings, used_inertia=True)
        if match is None:
            logging.info(
                f"Overlap: no match near expected delta {expected_delta}px, "
                "retrying with full search"
            )

    if match is None:
        candidates = full_search_range(
            curr.height, block_height, settings.full_search_fraction
        )
        match = _search(prev, curr, candidates, width, settings, used_inertia=False)
        if match is None:
            logging.info(
                f"Overlap failed: no block match between frames "
                f"{prev.source_id} and {curr.source_id}"
            )
            return None

    if match.delta < settings.min_scroll_delta:
        logging.info(
            f"Overlap rejected: scroll distance {match.delta}px is below "
            f"{settings.min_scroll_delta}px (frames {prev.source_id} and {curr.source_id})"
        )
        return None

    return match
