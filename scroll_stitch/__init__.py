"""Library for capturing and stitching scrolling screen content."""

from ._base import (
    AbortSource,
    AppVisibility,
    ArtifactStore,
    CaptureError,
    DecodeError,
    InputInjector,
    Region,
    ScreenCapturer,
    ScrollStitchError,
    StitchError,
)
from ._capture import (
    AbortSignal,
    CaptureSession,
    CaptureSettings,
    LoopState,
    ScrollCaptureLoop,
    StopReason,
)
from ._compositor import Compositor, PlanEntry, StitchPlan, StitchResult
from ._controller import Controller
from ._duplicates import is_duplicate
from ._frames import Frame, decode_frame
from ._header import crop_header, scan_static_header_height
from ._overlap import (
    InertiaState,
    OverlapMatch,
    OverlapSettings,
    block_difference_scores,
    find_overlap,
)
from ._rows import compare_fuzzy, compare_strict
