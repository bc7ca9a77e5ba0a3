"""Pytest configuration and shared fixtures for scroll stitching tests."""

import io

import numpy as np
import pytest
from PIL import Image

from scroll_stitch import (
    AbortSignal,
    AppVisibility,
    ArtifactStore,
    CaptureError,
    CaptureSettings,
    Frame,
    InputInjector,
    ScreenCapturer,
)

# No settle delays in tests.
FAST_SETTINGS = CaptureSettings(
    hide_delay=0,
    focus_delay=0,
    capture_settle_delay=0,
    scroll_settle_delay=0,
)


def create_page_image(
    height: int, width: int, pattern_type: str = "text", seed: int = 0
) -> np.ndarray:
    """
    Create a synthetic page taller than the viewport.

    Every row is unique, so an alignment is only ever correct at one offset.

    Args:
        height: Page height
        width: Page width
        pattern_type: 'noise' (full-range random pixels) or 'text' (dark
            text-like lines on a light, slightly noisy background)
        seed: Random seed

    Returns:
        Numpy array (H, W, 3) with RGB values
    """
    rng = np.random.default_rng(seed)
    if pattern_type == "noise":
        return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)

    img = rng.integers(215, 256, size=(height, width, 3), dtype=np.uint8)
    y = 20
    line_num = 0
    while y < height - 20:
        thickness = 10 + ((line_num * 7) % 8)
        left_margin = 40 + ((line_num * 11) % 50)
        right_offset = (line_num * 13) % 120
        intensity = ((line_num * 23) % 150) + 10
        img[y : y + thickness, left_margin : width - 40 - right_offset] = intensity
        y += 30 + ((line_num * 19) % 15)
        line_num += 1
    return img


def create_header(height: int, width: int) -> np.ndarray:
    """A flat toolbar with a few buttons, identical in every frame."""
    header = np.full((height, width, 3), (40, 90, 160), dtype=np.uint8)
    for x in range(20, width - 60, 120):
        header[height // 4 : height - height // 4, x : x + 60] = (230, 230, 230)
    return header


def frame_at(
    page: np.ndarray, top: int, height: int, header: np.ndarray | None = None
) -> np.ndarray:
    """Viewport of the page starting at `top`, optionally with a sticky header on top."""
    view = page[top : top + height].copy()
    if header is not None:
        view[: header.shape[0]] = header
    return view


def to_frame(array: np.ndarray, source_id: int = 0) -> Frame:
    return Frame.from_array(array, source_id=source_id)


def scrolled_frames(
    page: np.ndarray,
    shifts: list[int],
    height: int,
    header: np.ndarray | None = None,
) -> list[Frame]:
    """Frames captured after each scroll distance in `shifts` (first frame at top 0)."""
    frames = [to_frame(frame_at(page, 0, height, header), 0)]
    top = 0
    for i, shift in enumerate(shifts, start=1):
        top += shift
        frames.append(to_frame(frame_at(page, top, height, header), i))
    return frames


def encode_png(array: np.ndarray) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(array).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeDesktop(ScreenCapturer, InputInjector):
    """Viewport over a synthetic page; scrolling moves it down until the page ends."""

    def __init__(self, page, viewport_height, pixels_per_step, header=None):
        self.page = page
        self.viewport_height = viewport_height
        self.pixels_per_step = pixels_per_step
        self.header = header
        self.top = 0
        self.captures = []
        self.clicks = []
        self.scrolls = []

    def capture_region(self, x, y, width, height):
        self.captures.append((x, y, width, height))
        return encode_png(frame_at(self.page, self.top, self.viewport_height, self.header))

    def click(self, x, y):
        self.clicks.append((x, y))

    def scroll_down(self, amount):
        self.scrolls.append(amount)
        max_top = self.page.shape[0] - self.viewport_height
        self.top = min(self.top + amount * self.pixels_per_step, max_top)


class ScriptedCapturer(ScreenCapturer):
    """Returns the scripted captures in order; exceptions in the script are raised."""

    def __init__(self, script, on_capture=None):
        self.script = list(script)
        self.on_capture = on_capture
        self.count = 0

    def capture_region(self, x, y, width, height):
        self.count += 1
        if self.on_capture:
            self.on_capture(self.count)
        if not self.script:
            raise CaptureError("script exhausted")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class RecordingInput(InputInjector):
    def __init__(self, fail_on_scroll=False):
        self.fail_on_scroll = fail_on_scroll
        self.clicks = []
        self.scrolls = []

    def click(self, x, y):
        self.clicks.append((x, y))

    def scroll_down(self, amount):
        if self.fail_on_scroll:
            raise RuntimeError("input injection unavailable")
        self.scrolls.append(amount)


class RecordingVisibility(AppVisibility):
    def __init__(self):
        self.calls = []

    def set_hidden(self, hidden):
        self.calls.append(hidden)


class MemoryArtifactStore(ArtifactStore):
    def __init__(self):
        self.artifacts = {}

    def persist(self, pixels, width, height, title):
        artifact_id = f"artifact-{len(self.artifacts)}"
        self.artifacts[artifact_id] = (np.array(pixels), width, height, title)
        return artifact_id


@pytest.fixture
def text_page():
    """A 2400x800 text-like page."""
    return create_page_image(2400, 800, "text")


@pytest.fixture
def noise_page():
    """A 2400x800 page of random pixels."""
    return create_page_image(2400, 800, "noise", seed=1)


@pytest.fixture
def abort_signal():
    return AbortSignal()
