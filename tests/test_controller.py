"""End-to-end tests of a scroll-capture session through the Controller."""

import glob
import json
import os

import numpy as np
import pytest
from conftest import (
    FAST_SETTINGS,
    FakeDesktop,
    MemoryArtifactStore,
    RecordingInput,
    RecordingVisibility,
    ScriptedCapturer,
    create_header,
    create_page_image,
    encode_png,
    frame_at,
)

import scroll_stitch._compositor
from scroll_stitch import AbortSignal, AbortSource, Controller, Region, StitchError

REGION = Region(10, 20, 800, 600)


@pytest.fixture
def page():
    return create_page_image(1400, 800, "text")


def make_controller(capturer, input_injector=None, **kwargs):
    kwargs.setdefault("capture_settings", FAST_SETTINGS)
    return Controller(
        capturer,
        input_injector or RecordingInput(),
        kwargs.pop("visibility", RecordingVisibility()),
        kwargs.pop("artifact_store", MemoryArtifactStore()),
        **kwargs,
    )


class TestRunScrollCapture:
    def test_captures_and_stitches_whole_page(self, page):
        desktop = FakeDesktop(page, 600, 40)
        store = MemoryArtifactStore()
        visibility = RecordingVisibility()

        with make_controller(
            desktop, desktop, artifact_store=store, visibility=visibility
        ) as controller:
            artifact_id = controller.run_scroll_capture(REGION)

        pixels, width, height, title = store.artifacts[artifact_id]
        assert (width, height) == (800, 1400)
        assert title == "Scroll Capture"
        np.testing.assert_array_equal(pixels[..., :3], page)
        assert visibility.calls == [True, False]

    def test_sticky_header_is_kept_once(self, page):
        header = create_header(60, 800)
        desktop = FakeDesktop(page, 600, 40, header=header)
        store = MemoryArtifactStore()

        with make_controller(desktop, desktop, artifact_store=store) as controller:
            artifact_id = controller.run_scroll_capture(REGION)

        pixels, _, height, _ = store.artifacts[artifact_id]
        assert height == 1400
        np.testing.assert_array_equal(pixels[:60, :, :3], header)
        np.testing.assert_array_equal(pixels[60:, :, :3], page[60:])

    def test_region_is_translated_by_display_offset(self, page):
        desktop = FakeDesktop(page, 600, 40)

        with make_controller(desktop, desktop, screen_offset=(100, 0)) as controller:
            controller.run_scroll_capture(REGION)

        assert desktop.clicks == [(510, 320)]
        assert desktop.captures[0] == (110, 20, 800, 600)

    def test_no_frames_raises_and_restores_visibility(self):
        visibility = RecordingVisibility()
        capturer = ScriptedCapturer([])

        with make_controller(capturer, visibility=visibility) as controller:
            with pytest.raises(StitchError):
                controller.run_scroll_capture(REGION)

        assert visibility.calls == [True, False]

    def test_undecodable_first_frame_raises(self):
        with make_controller(ScriptedCapturer([b"garbage"])) as controller:
            with pytest.raises(StitchError):
                controller.run_scroll_capture(REGION)

    def test_undecodable_later_frame_keeps_earlier_frames(self, page):
        store = MemoryArtifactStore()
        capturer = ScriptedCapturer(
            [
                encode_png(frame_at(page, 0, 600)),
                encode_png(frame_at(page, 400, 600)),
                b"garbage",
            ]
        )

        with make_controller(capturer, artifact_store=store) as controller:
            artifact_id = controller.run_scroll_capture(REGION)

        pixels, _, height, _ = store.artifacts[artifact_id]
        assert height == 1000
        np.testing.assert_array_equal(pixels[..., :3], page[:1000])

    def test_identical_frames_never_reach_overlap_search(self, page, monkeypatch):
        calls = []
        original = scroll_stitch._compositor.find_overlap

        def recording_find_overlap(prev, curr, **kwargs):
            calls.append((prev.source_id, curr.source_id))
            return original(prev, curr, **kwargs)

        monkeypatch.setattr(scroll_stitch._compositor, "find_overlap", recording_find_overlap)
        desktop = FakeDesktop(page, 600, 40)

        with make_controller(desktop, desktop) as controller:
            controller.run_scroll_capture(REGION)

        assert calls == [(0, 1), (1, 2)]

    def test_writes_session_data(self, page, tmp_path):
        desktop = FakeDesktop(page, 600, 40)

        with make_controller(
            desktop, desktop, save_data_directory=str(tmp_path)
        ) as controller:
            controller.run_scroll_capture(REGION)

        parts = sorted(glob.glob(os.path.join(tmp_path, "scroll_*_part_*.png")))
        assert len(parts) == 3
        (metadata_path,) = glob.glob(os.path.join(tmp_path, "scroll_*.json"))
        with open(metadata_path) as file:
            metadata = json.load(file)
        assert metadata["stop_reason"] == "end_of_content"
        assert metadata["aborted"] is False
        assert metadata["plan"]["final_height"] == 1400
        assert [e["vertical_offset"] for e in metadata["plan"]["entries"]] == [0, 400, 800]


class TestBackgroundCapture:
    def test_future_resolves_to_artifact_id(self, page):
        desktop = FakeDesktop(page, 600, 40)
        store = MemoryArtifactStore()

        with make_controller(desktop, desktop, artifact_store=store) as controller:
            artifact_id = controller.start_scroll_capture(REGION).result(timeout=30)

        assert artifact_id in store.artifacts

    def test_abort_stitches_what_was_captured(self, page):
        abort = AbortSignal()
        desktop = FakeDesktop(page, 600, 40)
        capturer = ScriptedCapturer(
            [encode_png(frame_at(page, 0, 600)), encode_png(frame_at(page, 400, 600))],
            on_capture=lambda count: count == 2 and abort.request_abort(),
        )
        store = MemoryArtifactStore()

        with make_controller(
            capturer, desktop, abort=abort, artifact_store=store
        ) as controller:
            artifact_id = controller.run_scroll_capture(REGION)

        _, _, height, _ = store.artifacts[artifact_id]
        assert height == 1000

    def test_request_abort_with_external_source_is_rejected(self):
        class ExternalAbort(AbortSource):
            def is_abort_requested(self):
                return False

        with make_controller(ScriptedCapturer([]), abort=ExternalAbort()) as controller:
            with pytest.raises(RuntimeError):
                controller.request_abort()

    def test_abort_does_not_carry_over_to_the_next_session(self, page):
        desktop = FakeDesktop(page, 600, 40)
        store = MemoryArtifactStore()

        with make_controller(desktop, desktop, artifact_store=store) as controller:
            controller.request_abort()
            artifact_id = controller.run_scroll_capture(REGION)

        _, _, height, _ = store.artifacts[artifact_id]
        assert height == 1400

    def test_aborted_session_is_followed_by_a_full_one(self, page):
        store = MemoryArtifactStore()
        controller = make_controller(
            ScriptedCapturer([encode_png(frame_at(page, 0, 600))]), artifact_store=store
        )
        controller.capturer.on_capture = lambda count: controller.request_abort()
        with controller:
            first_id = controller.run_scroll_capture(REGION)
            desktop = FakeDesktop(page, 600, 40)
            controller.capturer = desktop
            controller.input_injector = desktop
            second_id = controller.run_scroll_capture(REGION)

        assert store.artifacts[first_id][2] == 600
        assert store.artifacts[second_id][2] == 1400
