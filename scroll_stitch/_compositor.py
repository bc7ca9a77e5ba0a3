"""Placing frames along the page and rendering the final tall image."""

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from ._base import StitchError
from ._frames import Frame
from ._header import crop_header, scan_static_header_height
from ._overlap import InertiaState, OverlapSettings, find_overlap

END_OF_CONTENT_DEPTH = 2  # Unmatched frames past this index are assumed to be the page end


@dataclass(frozen=True)
class PlanEntry:
    source_frame_index: int
    vertical_offset: int
    cropped_top_rows: int


@dataclass(frozen=True)
class StitchPlan:
    """Placement of every accepted frame in the output image."""

    entries: tuple[PlanEntry, ...]
    final_height: int
    width: int

    def as_dict(self) -> dict:
        return {
            "width": self.width,
            "final_height": self.final_height,
            "entries": [
                {
                    "source_frame_index": e.source_frame_index,
                    "vertical_offset": e.vertical_offset,
                    "cropped_top_rows": e.cropped_top_rows,
                }
                for e in self.entries
            ],
        }


@dataclass
class StitchResult:
    plan: StitchPlan
    pixels: NDArray[np.uint8]
    dropped_frames: list[int] = field(default_factory=list)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


class Compositor:
    """Walks the frames pairwise and builds a StitchPlan.

    Frames that cannot be matched against the last accepted frame are dropped
    without advancing the page position. Whether an unmatched frame deep in the
    sequence also ends the walk is a policy choice (`stop_at_end_of_content`).
    """

    def __init__(
        self,
        overlap_settings: OverlapSettings = OverlapSettings(),
        end_of_content_depth: int = END_OF_CONTENT_DEPTH,
        stop_at_end_of_content: bool = False,
        detect_headers: bool = True,
    ):
        self.overlap_settings = overlap_settings
        self.end_of_content_depth = end_of_content_depth
        self.stop_at_end_of_content = stop_at_end_of_content
        self.detect_headers = detect_headers

    def plan(self, frames: Sequence[Frame]) -> tuple[StitchPlan, list[int]]:
        """Return the plan and the indices of the frames that were dropped."""
        if not frames:
            raise StitchError("No frames to stitch")

        width = frames[0].width
        inertia = InertiaState()
        entries = [PlanEntry(frames[0].source_id, 0, 0)]
        current_y = frames[0].height
        prev = frames[0]
        dropped = []

        for index in range(1, len(frames)):
            curr = frames[index]
            if curr.width != width:
                logging.warning(
                    f"Frame {curr.source_id} is {curr.width}px wide, expected "
                    f"{width}px, dropping"
                )
                dropped.append(curr.source_id)
                continue
            header_height = (
                scan_static_header_height(prev, curr, width=width)
                if self.detect_headers
                else 0
            )
            view = crop_header(curr, header_height)
            match = find_overlap(
                prev,
                view,
                width=width,
                expected_delta=inertia.last_scroll_delta,
                settings=self.overlap_settings,
            )

            if match is not None and current_y - match.overlap < entries[-1].vertical_offset:
                logging.info(
                    f"Frame {curr.source_id} would be placed above frame "
                    f"{entries[-1].source_frame_index}, rejecting match"
                )
                match = None

            if match is None:
                dropped.append(curr.source_id)
                if index > self.end_of_content_depth:
                    logging.info(
                        f"Frame {curr.source_id} unmatched, assuming end of content"
                    )
                    if self.stop_at_end_of_content:
                        dropped.extend(f.source_id for f in frames[index + 1 :])
                        break
                else:
                    logging.info(
                        f"Frame {curr.source_id} unmatched early in the session, dropping"
                    )
                continue

            offset = current_y - match.overlap
            entries.append(PlanEntry(curr.source_id, offset, header_height))
            current_y = offset + (curr.height - header_height)
            inertia.last_scroll_delta = match.delta
            prev = curr
            logging.debug(
                f"Frame {curr.source_id}: overlap={match.overlap}px "
                f"delta={match.delta}px header={header_height}px offset={offset}"
            )

        return StitchPlan(entries=tuple(entries), final_height=current_y, width=width), dropped

    def render(self, frames: Sequence[Frame], plan: StitchPlan) -> NDArray[np.uint8]:
        """Draw each planned frame at its offset; later frames overwrite earlier ones."""
        if plan.final_height <= 0:
            raise StitchError(f"Composite height is {plan.final_height}px")
        by_id = {frame.source_id: frame for frame in frames}
        canvas = np.zeros((plan.final_height, plan.width, 4), dtype=np.uint8)
        for entry in plan.entries:
            frame = by_id[entry.source_frame_index].crop_top(entry.cropped_top_rows)
            top = entry.vertical_offset
            bottom = min(top + frame.height, plan.final_height)
            cols = min(frame.width, plan.width)
            canvas[top:bottom, :cols] = frame.pixels[: bottom - top, :cols]
        return canvas

    def stitch(self, frames: Sequence[Frame]) -> StitchResult:
        plan, dropped = self.plan(frames)
        logging.info(
            f"Stitch plan: {len(plan.entries)} of {len(frames)} frames, "
            f"{plan.width}x{plan.final_height}"
        )
        return StitchResult(plan=plan, pixels=self.render(frames, plan), dropped_frames=dropped)
