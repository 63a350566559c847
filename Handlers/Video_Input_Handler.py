"""Video Input Handler - Replays a video file in place of the camera.

Implements the FrameSource protocol, same interface as CameraHandler.
Used when the capture agent is started with --video.
"""
import cv2
import numpy as np
from typing import Optional
from pathlib import Path

from utils.failures import CameraError
from utils.logger import Logger


class VideoInputHandler:
    """Handles video file input for testing and demos.

    Implements the FrameSource protocol:
        start() -> bool
        read_frame() -> Optional[np.ndarray]
        stop() -> None
    """

    def __init__(self, video_path: str, loop: bool = True):
        """
        Args:
            video_path: Path to the video file.
            loop: Rewind to the first frame at end of file.
        """
        self.video_path = video_path
        self.loop = loop
        self.logger = Logger("VideoInputHandler")
        self.cap: Optional[cv2.VideoCapture] = None
        self._finished = False

    def start(self) -> bool:
        """Open the video file for reading."""
        if not Path(self.video_path).exists():
            self.logger.error(f"Video file not found: {self.video_path}")
            return False

        self.cap = cv2.VideoCapture(self.video_path)
        if not self.cap.isOpened():
            self.logger.error(f"Failed to open video file: {self.video_path}")
            self.cap = None
            return False

        self._finished = False
        self.logger.info(f"Video file opened: {self.video_path}")
        return True

    def read_frame(self) -> Optional[np.ndarray]:
        """Read the next frame, rewinding at end of file when looping."""
        if self.cap is None:
            raise CameraError(f"Video source is not open: {self.video_path}")

        try:
            ret, frame = self.cap.read()
        except cv2.error as e:
            raise CameraError(f"Video read failed: {e}")
        if ret:
            return frame

        if self.loop:
            self.logger.info("Video ended, looping back to start")
            try:
                self.cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
                ret, frame = self.cap.read()
            except cv2.error as e:
                raise CameraError(f"Failed to rewind video: {e}")
            if ret:
                return frame
            raise CameraError(f"Failed to rewind video: {self.video_path}")

        if not self._finished:
            self.logger.info("Video playback finished")
            self._finished = True
        return None

    def stop(self) -> None:
        """Release the video capture resources."""
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            self.logger.info("Video capture released")
