"""Detecting the end of scrollable content from consecutive raw captures."""


def is_duplicate(prev_raw: bytes, curr_raw: bytes) -> bool:
    """True iff the two encoded captures are byte-identical.

    Scrolling that produced no visual change means the page reached its
    bottom. Comparing the encoded bytes is exact and cheaper than decoding, so
    this runs before any overlap computation.
    """
    return len(prev_raw) == len(curr_raw) and prev_raw == curr_raw
