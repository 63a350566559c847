"""
Camera Handler - Owns one OpenCV capture device session.

Implements the FrameSource protocol. A handler is never repaired: when a
read fails the Capture Agent releases it and opens a fresh one.
"""
from typing import Optional

import cv2
import numpy as np

from utils.constants import DEFAULT_DEVICE_INDEX, DEFAULT_FRAME_WIDTH, DEFAULT_FRAME_HEIGHT
from utils.failures import CameraError
from utils.logger import Logger


class CameraHandler:
    """Handles interaction with a local capture device via cv2.VideoCapture.

    Implements the FrameSource protocol:
        start() -> bool
        read_frame() -> Optional[np.ndarray]
        stop() -> None
    """

    def __init__(self, device_index: int = DEFAULT_DEVICE_INDEX,
                 width: int = DEFAULT_FRAME_WIDTH, height: int = DEFAULT_FRAME_HEIGHT):
        """
        Args:
            device_index: OpenCV device index (0 is the first camera)
            width: Requested frame width (best-effort)
            height: Requested frame height (best-effort)
        """
        self.device_index = device_index
        self.width = width
        self.height = height
        self.logger = Logger("CameraHandler")
        self.cap: Optional[cv2.VideoCapture] = None

    def start(self) -> bool:
        """Open the device and request the configured resolution."""
        try:
            self.cap = cv2.VideoCapture(self.device_index, cv2.CAP_ANY)
        except cv2.error as e:
            self.logger.error(f"Failed to create capture for device {self.device_index}: {e}")
            self.cap = None
            return False

        if not self.cap.isOpened():
            self.logger.error(f"Camera device {self.device_index} could not be opened")
            self.stop()
            return False

        self._apply_resolution()
        self.logger.info(f"Camera {self.device_index} opened ({self.width}x{self.height} requested)")
        return True

    def _apply_resolution(self) -> None:
        """Request width/height. Refusal is tolerated: the camera stays usable."""
        for prop, value, label in ((cv2.CAP_PROP_FRAME_WIDTH, self.width, "width"),
                                   (cv2.CAP_PROP_FRAME_HEIGHT, self.height, "height")):
            try:
                if not self.cap.set(prop, float(value)):
                    self.logger.debug(f"Camera ignored {label}={value}")
            except cv2.error as e:
                self.logger.debug(f"Could not set camera {label}: {e}")

    def read_frame(self) -> Optional[np.ndarray]:
        """
        Read one frame.

        Returns:
            The frame, or None when the device produced nothing this time.

        Raises:
            CameraError: The device is closed or the read raised.
        """
        if self.cap is None:
            raise CameraError("Camera is not open")

        try:
            ret, frame = self.cap.read()
        except cv2.error as e:
            raise CameraError(f"Camera read failed: {e}")

        if not ret:
            if not self.cap.isOpened():
                raise CameraError(f"Camera device {self.device_index} is no longer open")
            return None
        return frame

    def stop(self) -> None:
        """Release the device."""
        if self.cap is not None:
            try:
                self.cap.release()
            except cv2.error as e:
                self.logger.warning(f"Error during camera release: {e}")
            self.cap = None
            self.logger.info(f"Camera {self.device_index} released")
