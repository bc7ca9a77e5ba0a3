"""Decoding captured images into fixed-format RGBA8 frames."""

import io
import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray
from PIL import Image, UnidentifiedImageError

from ._base import DecodeError

BYTES_PER_PIXEL = 4


@dataclass(frozen=True)
class Frame:
    """One captured still image as a read-only (H, W, 4) uint8 RGBA array.

    Channels 0/1/2 are R/G/B. Alpha is carried through compositing but never
    used for matching.
    """

    source_id: int
    pixels: NDArray[np.uint8]

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def stride(self) -> int:
        return self.width * BYTES_PER_PIXEL

    def crop_top(self, rows: int) -> "Frame":
        """Return a view of this frame starting `rows` rows down.

        The view shares the underlying buffer; nothing is copied.
        """
        if rows <= 0:
            return self
        if rows >= self.height:
            raise ValueError(f"Cannot crop {rows} rows from a {self.height}px frame")
        return Frame(source_id=self.source_id, pixels=self.pixels[rows:])

    @classmethod
    def from_array(cls, array: np.ndarray, source_id: int = 0) -> "Frame":
        """Wrap an (H, W, 3) RGB or (H, W, 4) RGBA array as a frame."""
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise DecodeError(f"Expected an RGB or RGBA array, got shape {array.shape}")
        if array.shape[0] == 0 or array.shape[1] == 0:
            raise DecodeError(f"Frame {source_id} has a zero dimension")
        pixels = np.asarray(array, dtype=np.uint8)
        if pixels.shape[2] == 3:
            alpha = np.full(pixels.shape[:2] + (1,), 255, dtype=np.uint8)
            pixels = np.concatenate([pixels, alpha], axis=2)
        else:
            pixels = pixels.copy()
        pixels.flags.writeable = False
        return cls(source_id=source_id, pixels=pixels)


def decode_frame(raw: bytes, source_id: int) -> Frame:
    """Decode an encoded image (PNG or anything Pillow reads) into a Frame."""
    if not raw:
        raise DecodeError(f"Frame {source_id} is empty")
    try:
        with Image.open(io.BytesIO(raw)) as image:
            image.load()
            if image.width == 0 or image.height == 0:
                raise DecodeError(f"Frame {source_id} has a zero dimension")
            rgba: Any = np.array(image.convert("RGBA"))
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"Frame {source_id} could not be decoded: {e}") from e
    logging.debug(f"Decoded frame {source_id}: {rgba.shape[1]}x{rgba.shape[0]}")
    return Frame.from_array(rgba, source_id=source_id)
