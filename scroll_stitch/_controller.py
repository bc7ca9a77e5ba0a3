"""Entry point tying the capture loop, the compositor and the collaborators together."""

import json
import logging
import os.path
import time
from concurrent import futures
from typing import Optional, Sequence, Tuple

from ._base import (
    AbortSource,
    AppVisibility,
    ArtifactStore,
    DecodeError,
    InputInjector,
    Region,
    ScreenCapturer,
    StitchError,
)
from ._capture import AbortSignal, CaptureSession, CaptureSettings, ScrollCaptureLoop
from ._compositor import Compositor, StitchResult
from ._frames import Frame, decode_frame

DEFAULT_TITLE = "Scroll Capture"


class Controller:
    """Runs scroll-capture sessions against the provided collaborators.

    Provide a ScreenCapturer, InputInjector, AppVisibility and ArtifactStore,
    e.g. from scroll_stitch.desktop. Sessions run either in the calling thread
    (run_scroll_capture) or on a single background worker
    (start_scroll_capture).
    """

    def __init__(
        self,
        capturer: ScreenCapturer,
        input_injector: InputInjector,
        visibility: AppVisibility,
        artifact_store: ArtifactStore,
        abort: Optional[AbortSource] = None,
        capture_settings: CaptureSettings = CaptureSettings(),
        compositor: Optional[Compositor] = None,
        screen_offset: Tuple[int, int] = (0, 0),
        save_data_directory: Optional[str] = None,
        title: str = DEFAULT_TITLE,
    ):
        self.capturer = capturer
        self.input_injector = input_injector
        self.visibility = visibility
        self.artifact_store = artifact_store
        self.capture_settings = capture_settings
        self.compositor = compositor or Compositor()
        self.screen_offset = screen_offset
        self.save_data_directory = save_data_directory
        self.title = title
        self._external_abort = abort
        self._abort: AbortSource = abort or AbortSignal()
        self._executor = futures.ThreadPoolExecutor(max_workers=1)
        self._future = None

    def shutdown(self, wait=True):
        self._executor.shutdown(wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False

    def start_scroll_capture(self, region: Region) -> futures.Future:
        """Start a session on the background worker and return its future.

        The future resolves to the artifact id or raises StitchError.
        """
        if self._future and not self._future.done():
            raise RuntimeError("A scroll capture is already running")
        self._reset_abort()
        self._future = self._executor.submit(self._run_session, region)
        return self._future

    def request_abort(self) -> None:
        """Ask the running session to stop after its current capture."""
        if not isinstance(self._abort, AbortSignal):
            raise RuntimeError("Abort is controlled by the provided AbortSource")
        self._abort.request_abort()

    def run_scroll_capture(self, region: Region) -> str:
        """Capture, stitch and persist the content under the region.

        Arguments:
        region: Region relative to the display at screen_offset.

        Returns the artifact id from the ArtifactStore.
        """
        self._reset_abort()
        return self._run_session(region)

    def _reset_abort(self):
        # Each session owns its signal unless the caller supplied a source.
        if not self._external_abort:
            self._abort = AbortSignal()

    def _run_session(self, region: Region) -> str:
        loop = ScrollCaptureLoop(
            self.capturer,
            self.input_injector,
            self.visibility,
            self._abort,
            self.capture_settings,
        )
        try:
            session = loop.run(region.to_global(self.screen_offset))
            frames = self._decode_frames(session.frames)
            result = self.compositor.stitch(frames)
            self._write_data(session, result)
            artifact_id = self.artifact_store.persist(
                result.pixels, result.width, result.height, self.title
            )
            logging.info(
                f"Scroll capture saved as {artifact_id}: {result.width}x{result.height}"
            )
            return artifact_id
        finally:
            try:
                self.visibility.set_hidden(False)
            except Exception as e:
                logging.warning(f"Failed to restore application visibility: {e}")

    @staticmethod
    def _decode_frames(raw_frames: Sequence[bytes]) -> list[Frame]:
        """Decode captures in order, keeping the frames before the first bad one."""
        if not raw_frames:
            raise StitchError("No frames were captured")
        frames = []
        for index, raw in enumerate(raw_frames):
            try:
                frame = decode_frame(raw, source_id=index)
            except DecodeError as e:
                if index == 0:
                    raise StitchError("The first frame could not be decoded") from e
                logging.warning(f"{e}; stitching the {index} frames before it")
                break
            if frames and frame.width != frames[0].width:
                logging.warning(
                    f"Frame {index} is {frame.width}px wide, expected "
                    f"{frames[0].width}px; stitching the {index} frames before it"
                )
                break
            frames.append(frame)
        return frames

    def _write_data(self, session: CaptureSession, result: StitchResult):
        if not self.save_data_directory:
            return
        file_path_prefix = os.path.join(
            self.save_data_directory, f"scroll_{time.time():.2f}"
        )
        os.makedirs(self.save_data_directory, exist_ok=True)
        for index, raw in enumerate(session.frames):
            with open(f"{file_path_prefix}_part_{index}.png", "wb") as file:
                file.write(raw)
        with open(file_path_prefix + ".json", "w") as file:
            json.dump(
                {
                    "region": session.region.as_tuple(),
                    "iterations": session.iteration_count,
                    "aborted": session.aborted,
                    "stop_reason": session.stop_reason.value
                    if session.stop_reason
                    else None,
                    "dropped_frames": result.dropped_frames,
                    "plan": result.plan.as_dict(),
                },
                file,
                indent=2,
            )
