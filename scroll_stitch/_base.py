"""Base classes used by collaborator implementations, and the error hierarchy."""

import time
from dataclasses import dataclass


class ScrollStitchError(Exception):
    """Base class for errors raised by scroll_stitch."""


class DecodeError(ScrollStitchError):
    """A captured image could not be interpreted as a pixel buffer."""


class CaptureError(ScrollStitchError):
    """The screen capture collaborator failed to produce an image."""


class StitchError(ScrollStitchError):
    """No usable composite could be produced for a session."""


@dataclass(frozen=True)
class Region:
    """Screen region to capture, relative to the display it is on."""

    x: int
    y: int
    width: int
    height: int

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    @classmethod
    def from_tuple(cls, t: tuple[int, int, int, int]) -> "Region":
        return cls(x=int(t[0]), y=int(t[1]), width=int(t[2]), height=int(t[3]))

    def to_global(self, offset: tuple[int, int]) -> "Region":
        """Translate into global screen coordinates using the display offset."""
        return Region(self.x + offset[0], self.y + offset[1], self.width, self.height)

    @property
    def center(self) -> tuple[int, int]:
        return (round(self.x + self.width / 2), round(self.y + self.height / 2))


class ScreenCapturer:
    """Base class for capturing a screen region."""

    def capture_region(self, x: int, y: int, width: int, height: int) -> bytes:
        """Return the encoded (lossless) image of the region.

        Raise CaptureError or return empty bytes if nothing was captured.
        """
        raise NotImplementedError()


class InputInjector:
    """Base class for synthetic input used to focus and scroll the content."""

    def click(self, x: int, y: int) -> None:
        raise NotImplementedError()

    def scroll_down(self, amount: int) -> None:
        """Scroll the content under the region down by a fixed repeat count."""
        raise NotImplementedError()


class AppVisibility:
    """Base class for hiding the capturing application during a session."""

    def set_hidden(self, hidden: bool) -> None:
        raise NotImplementedError()


class ArtifactStore:
    """Base class for persisting the finished stitched image."""

    def persist(self, pixels, width: int, height: int, title: str) -> str:
        """Store the RGBA pixels and return an artifact id."""
        raise NotImplementedError()


class AbortSource:
    """Base class for cooperative cancellation of a capture session."""

    def is_abort_requested(self) -> bool:
        raise NotImplementedError()

    def wait(self, seconds: float) -> bool:
        """Sleep for the given time. Returns True if an abort was requested."""
        if seconds > 0:
            time.sleep(seconds)
        return self.is_abort_requested()
