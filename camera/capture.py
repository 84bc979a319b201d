"""
camera/capture.py — Driver camera frame sources
Delivers RawFrame luma buffers (I420 layout) to the monitoring pipeline,
either from an OpenCV capture (device index or video file) or from a raw
.yuv recording.
"""

import os
import cv2
import numpy as np

import config
from dmonitoring.data_structures import RawFrame
from core.logger import get_logger

log = get_logger(__name__)


def bgr_to_raw_frame(frame_bgr: np.ndarray) -> RawFrame:
    """
    Convert a BGR frame to a packed I420 RawFrame.

    Args:
        frame_bgr: H×W×3 uint8 frame; H and W must be even.

    Returns:
        RawFrame with stride == width and uv_offset == width * height.
    """
    h, w = frame_bgr.shape[:2]
    yuv = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2YUV_I420)
    return RawFrame.from_i420(yuv.reshape(-1), w, h)


class CameraCapture:
    """
    Wraps OpenCV VideoCapture for the driver monitoring pipeline.

    Usage:
        with CameraCapture(0) as cam:
            ok, raw = cam.read_frame()
    """

    def __init__(
        self,
        source=config.CAMERA_INDEX,
        width: int = config.CAMERA_WIDTH,
        height: int = config.CAMERA_HEIGHT,
        fps: int = config.CAMERA_FPS,
    ):
        """
        Args:
            source: OS camera index, or a path to a video file.
            width:  Requested capture width (ignored for files).
            height: Requested capture height (ignored for files).
            fps:    Requested capture frame rate (ignored for files).
        """
        self.source = source
        self.width = width
        self.height = height
        self.fps = fps
        self._cap: cv2.VideoCapture | None = None
        self._connected = False

    # ──────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def open(self) -> bool:
        """
        Returns:
            True if the capture was opened successfully, False otherwise.
        """
        self._cap = cv2.VideoCapture(self.source)
        if not self._cap.isOpened():
            log.error(f"Cannot open capture source {self.source!r}.")
            return False

        if isinstance(self.source, int):
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            self._cap.set(cv2.CAP_PROP_FPS, self.fps)

        self._connected = True
        actual_w = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_h = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        log.info(f"Opened capture {self.source!r} at {actual_w}x{actual_h}.")
        return True

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._connected = False
            log.info("Capture released.")

    @property
    def is_open(self) -> bool:
        return self._connected and self._cap is not None and self._cap.isOpened()

    # ──────────────────────────────────────────────────────────────────────────
    # Frame acquisition
    # ──────────────────────────────────────────────────────────────────────────

    def read_frame(self) -> tuple[bool, RawFrame | None]:
        """
        Returns:
            (success, raw_frame), or (False, None) at end of stream / on error.
        """
        if not self.is_open:
            log.warning("Capture not open. Call open() first.")
            return False, None

        ret, frame = self._cap.read()
        if not ret or frame is None:
            log.info("No more frames from capture.")
            self._connected = False
            return False, None

        return True, bgr_to_raw_frame(frame)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *_):
        self.release()


class YUVFileReader:
    """
    Reads consecutive packed I420 frames from a raw .yuv recording.

    Usage:
        with YUVFileReader("drive.yuv", 1928, 1208) as src:
            ok, raw = src.read_frame()
    """

    def __init__(
        self,
        path: str,
        width: int = config.CAMERA_WIDTH,
        height: int = config.CAMERA_HEIGHT,
    ):
        if width % 2 or height % 2:
            raise ValueError(f"I420 frames need even dimensions, got {width}x{height}")
        self.path = path
        self.width = width
        self.height = height
        self.frame_bytes = width * height * 3 // 2
        self._fh = None

    def open(self) -> bool:
        if not os.path.exists(self.path):
            log.error(f"YUV file not found: {self.path}")
            return False
        self._fh = open(self.path, "rb")
        n_frames = os.path.getsize(self.path) // self.frame_bytes
        log.info(f"Opened {self.path} ({n_frames} frames of {self.width}x{self.height}).")
        return True

    def release(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    @property
    def is_open(self) -> bool:
        return self._fh is not None

    def read_frame(self) -> tuple[bool, RawFrame | None]:
        if self._fh is None:
            return False, None
        data = self._fh.read(self.frame_bytes)
        if len(data) < self.frame_bytes:
            return False, None
        yuv = np.frombuffer(data, dtype=np.uint8)
        return True, RawFrame.from_i420(yuv, self.width, self.height)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *_):
        self.release()
