"""Capture loop: repeatedly capture a region and scroll the content beneath it.

The loop is an explicit state machine. Each step receives the session, does
one unit of work, and returns the next state:

    IDLE -> HIDING -> FOCUSING -> CAPTURING -> CHECK_DUPLICATE
        -> SCROLLING -> CAPTURING ...
        -> TERMINATED
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

from ._base import (
    AbortSource,
    AppVisibility,
    CaptureError,
    InputInjector,
    Region,
    ScreenCapturer,
)
from ._duplicates import is_duplicate

MAX_ITERATIONS = 20
SCROLL_AMOUNT = 10  # Down-arrow presses per scroll step
HIDE_DELAY_SECONDS = 0.8
FOCUS_DELAY_SECONDS = 0.3
CAPTURE_SETTLE_SECONDS = 0.1
SCROLL_SETTLE_SECONDS = 1.5


class LoopState(Enum):
    IDLE = auto()
    HIDING = auto()
    FOCUSING = auto()
    CAPTURING = auto()
    CHECK_DUPLICATE = auto()
    SCROLLING = auto()
    TERMINATED = auto()


class StopReason(Enum):
    END_OF_CONTENT = "end_of_content"
    MAX_ITERATIONS = "max_iterations"
    ABORTED = "aborted"
    CAPTURE_FAILED = "capture_failed"
    SCROLL_FAILED = "scroll_failed"


@dataclass(frozen=True)
class CaptureSettings:
    max_iterations: int = MAX_ITERATIONS
    scroll_amount: int = SCROLL_AMOUNT
    hide_delay: float = HIDE_DELAY_SECONDS
    focus_delay: float = FOCUS_DELAY_SECONDS
    capture_settle_delay: float = CAPTURE_SETTLE_SECONDS
    scroll_settle_delay: float = SCROLL_SETTLE_SECONDS
    focus_click: bool = True


@dataclass
class CaptureSession:
    """State of one scroll-capture invocation. Frames are raw encoded captures."""

    region: Region
    frames: list[bytes] = field(default_factory=list)
    aborted: bool = False
    iteration_count: int = 0
    state: LoopState = LoopState.IDLE
    stop_reason: Optional[StopReason] = None


class AbortSignal(AbortSource):
    """Abort source backed by a threading.Event.

    Waits return as soon as an abort is requested, so a session stays
    cancelable during settle delays.
    """

    def __init__(self):
        self._event = threading.Event()

    def request_abort(self) -> None:
        self._event.set()

    def is_abort_requested(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)


class ScrollCaptureLoop:
    """Drives capture and scroll collaborators until the content stops changing."""

    def __init__(
        self,
        capturer: ScreenCapturer,
        input_injector: InputInjector,
        visibility: AppVisibility,
        abort: AbortSource,
        settings: CaptureSettings = CaptureSettings(),
    ):
        self.capturer = capturer
        self.input_injector = input_injector
        self.visibility = visibility
        self.abort = abort
        self.settings = settings
        self._handlers = {
            LoopState.IDLE: self._idle,
            LoopState.HIDING: self._hide,
            LoopState.FOCUSING: self._focus,
            LoopState.CAPTURING: self._capture,
            LoopState.CHECK_DUPLICATE: self._check_duplicate,
            LoopState.SCROLLING: self._scroll,
        }

    def run(self, region: Region) -> CaptureSession:
        """Run one session over a region given in global screen coordinates."""
        session = CaptureSession(region=region)
        while session.state != LoopState.TERMINATED:
            session.state = self.step(session)
        logging.info(
            f"Capture loop finished: {len(session.frames)} frames, "
            f"{session.iteration_count} iterations, reason={session.stop_reason.value}"
        )
        return session

    def step(self, session: CaptureSession) -> LoopState:
        return self._handlers[session.state](session)

    @staticmethod
    def _terminate(session: CaptureSession, reason: StopReason) -> LoopState:
        session.stop_reason = reason
        return LoopState.TERMINATED

    def _wait(self, session: CaptureSession, seconds: float) -> Optional[LoopState]:
        """Suspend for a settle delay. Returns TERMINATED if aborted meanwhile."""
        if not self.abort.wait(seconds):
            return None
        logging.info("Capture aborted by user")
        session.aborted = True
        return self._terminate(session, StopReason.ABORTED)

    def _idle(self, session: CaptureSession) -> LoopState:
        logging.info(f"Starting scroll capture of region {session.region.as_tuple()}")
        return LoopState.HIDING

    def _hide(self, session: CaptureSession) -> LoopState:
        try:
            self.visibility.set_hidden(True)
        except Exception as e:
            logging.warning(f"Failed to hide application: {e}")
        aborted = self._wait(session, self.settings.hide_delay)
        if aborted:
            return aborted
        return LoopState.FOCUSING if self.settings.focus_click else LoopState.CAPTURING

    def _focus(self, session: CaptureSession) -> LoopState:
        try:
            self.input_injector.click(*session.region.center)
        except Exception as e:
            logging.warning(f"Focus click failed: {e}")
        return self._wait(session, self.settings.focus_delay) or LoopState.CAPTURING

    def _capture(self, session: CaptureSession) -> LoopState:
        if self.abort.is_abort_requested():
            logging.info("Capture aborted by user")
            session.aborted = True
            return self._terminate(session, StopReason.ABORTED)
        if session.iteration_count >= self.settings.max_iterations:
            return self._terminate(session, StopReason.MAX_ITERATIONS)

        logging.debug(
            f"Scroll iteration {session.iteration_count + 1}/{self.settings.max_iterations}"
        )
        try:
            raw = self.capturer.capture_region(*session.region.as_tuple())
        except CaptureError as e:
            logging.warning(f"Failed to capture part {session.iteration_count}: {e}")
            return self._terminate(session, StopReason.CAPTURE_FAILED)
        if not raw:
            logging.warning(f"Failed to capture part {session.iteration_count}: no output")
            return self._terminate(session, StopReason.CAPTURE_FAILED)

        session.frames.append(raw)
        session.iteration_count += 1
        return LoopState.CHECK_DUPLICATE

    def _check_duplicate(self, session: CaptureSession) -> LoopState:
        if len(session.frames) >= 2 and is_duplicate(session.frames[-2], session.frames[-1]):
            logging.info("Reached bottom (identical images)")
            session.frames.pop()
            return self._terminate(session, StopReason.END_OF_CONTENT)
        if session.iteration_count >= self.settings.max_iterations:
            return self._terminate(session, StopReason.MAX_ITERATIONS)
        return self._wait(session, self.settings.capture_settle_delay) or LoopState.SCROLLING

    def _scroll(self, session: CaptureSession) -> LoopState:
        try:
            self.input_injector.scroll_down(self.settings.scroll_amount)
        except Exception as e:
            logging.warning(f"Scroll injection failed: {e}")
            return self._terminate(session, StopReason.SCROLL_FAILED)
        return self._wait(session, self.settings.scroll_settle_delay) or LoopState.CAPTURING
