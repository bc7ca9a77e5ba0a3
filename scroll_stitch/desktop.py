"""Reference collaborators for running scroll captures on a desktop."""

import io
import json
import logging
import os
import time

import numpy as np
from PIL import Image, ImageGrab

from ._base import AppVisibility, ArtifactStore, CaptureError, InputInjector, ScreenCapturer


class PillowScreenCapturer(ScreenCapturer):
    """Grabs a screen region with Pillow and encodes it losslessly as PNG."""

    def capture_region(self, x, y, width, height):
        try:
            screenshot = ImageGrab.grab(
                bbox=(x, y, x + width, y + height), all_screens=True
            )
        except OSError as e:
            raise CaptureError(f"Screen grab failed: {e}") from e
        buffer = io.BytesIO()
        screenshot.save(buffer, format="PNG")
        return buffer.getvalue()


class PyAutoGuiInput(InputInjector):
    """Clicks and scrolls with pyautogui.

    Scrolling presses the down arrow rather than using the mouse wheel; arrow
    keys scroll by a steadier amount in most applications.
    """

    def __init__(self, key="down", interval=0.0):
        # Imported here since pyautogui needs a display as soon as it loads.
        import pyautogui

        self._pyautogui = pyautogui
        self.key = key
        self.interval = interval

    def click(self, x, y):
        self._pyautogui.click(x, y)

    def scroll_down(self, amount):
        self._pyautogui.press(self.key, presses=amount, interval=self.interval)


class NullVisibility(AppVisibility):
    """Used when nothing needs to be hidden during capture."""

    def set_hidden(self, hidden):
        pass


class FileArtifactStore(ArtifactStore):
    """Writes stitched captures, thumbnails and JSON metadata to a directory."""

    THUMBNAIL_SIZE = (400, 400)

    def __init__(self, directory):
        self.directory = directory

    def persist(self, pixels, width, height, title):
        os.makedirs(self.directory, exist_ok=True)
        artifact_id = f"capture-long-{int(time.time() * 1000)}"
        file_path = os.path.join(self.directory, artifact_id + ".png")
        thumb_path = os.path.join(self.directory, artifact_id + "_thumb.png")

        image = Image.fromarray(np.ascontiguousarray(pixels))
        image.save(file_path)
        thumbnail = image.copy()
        thumbnail.thumbnail(self.THUMBNAIL_SIZE)
        thumbnail.save(thumb_path)

        with open(os.path.join(self.directory, artifact_id + ".json"), "w") as file:
            json.dump(
                {
                    "id": artifact_id,
                    "file_path": file_path,
                    "thumb_path": thumb_path,
                    "source_title": title,
                    "width": width,
                    "height": height,
                    "created_at": time.time(),
                },
                file,
                indent=2,
            )
        logging.info(f"Saved {title} to {file_path}")
        return artifact_id
