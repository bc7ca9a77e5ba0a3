"""Detecting fixed (sticky) headers that do not scroll with the content."""

import logging

from ._frames import Frame
from ._rows import STRICT_TOLERANCE, compare_strict

MAX_HEADER_FRACTION = 0.30  # Scan at most this fraction of the frame from the top


def scan_static_header_height(
    prev: Frame,
    curr: Frame,
    width: int | None = None,
    max_scan_height: int | None = None,
    tolerance: int = STRICT_TOLERANCE,
) -> int:
    """Return the number of leading rows that are identical in both frames.

    Args:
        prev: Previous frame
        curr: Current frame
        width: Horizontal span to compare (defaults to the narrower frame)
        max_scan_height: Rows to scan (defaults to 30% of the shorter frame)
        tolerance: Per-channel tolerance passed to compare_strict

    Returns:
        Height in pixels of the static top band, or 0 if the top rows differ
    """
    height = min(prev.height, curr.height)
    if max_scan_height is None:
        max_scan_height = int(height * MAX_HEADER_FRACTION)
    max_scan_height = max(0, min(max_scan_height, height - 1))
    x_end = min(prev.width, curr.width) if width is None else width

    header_height = 0
    for row in range(max_scan_height):
        if not compare_strict(
            prev.pixels, row, curr.pixels, row, tolerance=tolerance, x_end=x_end
        ):
            break
        header_height = row + 1

    if header_height:
        logging.debug(
            f"Static header between frames {prev.source_id} and {curr.source_id}: "
            f"{header_height}px"
        )
    return header_height


def crop_header(frame: Frame, header_height: int) -> Frame:
    """Return a view of the frame with the static header rows removed."""
    return frame.crop_top(header_height)
