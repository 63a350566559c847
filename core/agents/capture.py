"""
Capture Agent — owns the camera and the PUSH endpoint.

Reads a frame, compresses it and hands it to the channel without ever
blocking: if the consumer is not keeping up the frame is dropped. Camera
read failures replace the camera wholesale; everything else is per-frame.
"""
import itertools
import time
from threading import Event
from typing import Callable, Optional

import numpy as np

from core.agents.base import ServiceAgent, TickOutcome
from core.bus import EventBus
from core.events import Frame, ResourceAcquired
from core.protocols import FrameSource, FrameSender
from core.retry import acquire_with_retry
from Handlers.Camera_Handler import CameraHandler
from Handlers.Frame_Codec_Handler import encode_frame
from Handlers.Socket_Handler import PushSocketHandler
from Handlers.Video_Input_Handler import VideoInputHandler
from utils.failures import (CameraError, ChannelError, ChannelBusyError,
                            FailureManager, FrameEncodeError)
from utils.settings import CaptureSettings


class CaptureAgent(ServiceAgent):
    """
    Producer process: camera -> JPEG -> non-blocking send.

    At most one camera is open at a time; the channel endpoint is bound once
    and held until close().
    """

    name = "CaptureAgent"

    def __init__(
        self,
        settings: CaptureSettings,
        bus: Optional[EventBus] = None,
        failures: Optional[FailureManager] = None,
        camera_factory: Optional[Callable[[], FrameSource]] = None,
        channel_factory: Optional[Callable[[str], FrameSender]] = None,
        encoder: Callable[[np.ndarray, int], bytes] = encode_frame,
        stop_event: Optional[Event] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Args:
            settings: Validated capture settings.
            camera_factory: Builds an unopened FrameSource (camera or video).
            channel_factory: Builds a bound FrameSender for an address;
                             raises ChannelError on failure.
            encoder: Compresses a frame to bytes; raises FrameEncodeError.
        """
        super().__init__(bus, failures, stop_event, sleep, settings.stats_interval)
        self.settings = settings
        self.camera_factory = camera_factory or self._default_camera
        self.channel_factory = channel_factory or self._default_channel
        self.encoder = encoder

        self.camera: Optional[FrameSource] = None
        self.channel: Optional[FrameSender] = None
        self._sequence = itertools.count()
        self._empty_streak = 0

    # ── Default collaborators ───────────────────────────────────────

    def _default_camera(self) -> FrameSource:
        if self.settings.video_path:
            return VideoInputHandler(self.settings.video_path, loop=self.settings.loop_video)
        return CameraHandler(self.settings.device_index, self.settings.width, self.settings.height)

    def _default_channel(self, address: str) -> FrameSender:
        return PushSocketHandler(address, send_hwm=self.settings.send_hwm).bind()

    # ── Acquisition ─────────────────────────────────────────────────

    def acquire_channel(self, address: Optional[str] = None) -> FrameSender:
        """Bind the send endpoint, retrying forever at the channel interval."""
        address = address or self.settings.bind_address
        self.channel = acquire_with_retry(
            lambda: self.channel_factory(address),
            self.settings.channel_retry,
            name=f"channel {address}",
            retry_on=(ChannelError,),
            stop_event=self.stop_event,
            sleep=self._sleep,
        )
        self.bus.publish(ResourceAcquired(resource="channel", detail=address))
        return self.channel

    def _open_camera(self) -> FrameSource:
        camera = self.camera_factory()
        if not camera.start():
            raise CameraError("Failed to initialize camera")
        return camera

    def acquire_camera(self) -> FrameSource:
        """Release any held camera, then open a new one, retrying forever."""
        self._release_camera()
        self.camera = acquire_with_retry(
            self._open_camera,
            self.settings.camera_retry,
            name="camera",
            retry_on=(CameraError,),
            stop_event=self.stop_event,
            sleep=self._sleep,
        )
        self._empty_streak = 0
        self.bus.publish(ResourceAcquired(resource="camera", detail=type(self.camera).__name__))
        return self.camera

    def setup(self) -> None:
        self.acquire_channel()
        self.acquire_camera()
        self.logger.info(
            f"Capture running ({1.0 / self.settings.tick_interval:.0f} FPS target, "
            f"metadata {'on' if self.settings.send_metadata else 'off'})"
        )

    # ── Service loop ────────────────────────────────────────────────

    def service_tick(self) -> TickOutcome:
        """Capture, encode and send one frame, then sleep one fixed tick."""
        self.stats.ticks += 1
        outcome = self._capture_once()
        self._sleep(self.settings.tick_interval)
        return outcome

    def _capture_once(self) -> TickOutcome:
        try:
            raw_frame = self.camera.read_frame()
        except CameraError as e:
            return self._recover_camera(e)

        if raw_frame is None or raw_frame.size == 0:
            return self._on_empty_frame()
        self._empty_streak = 0

        try:
            payload = self.encoder(raw_frame, self.settings.jpeg_quality)
        except FrameEncodeError as e:
            self.stats.encode_errors += 1
            self.failures.record_failure(e)
            return TickOutcome.ENCODE_ERROR

        frame = Frame(payload=payload, sequence=next(self._sequence), timestamp=time.time())
        try:
            self.channel.send_nowait(frame, with_metadata=self.settings.send_metadata)
        except ChannelBusyError as e:
            # Drop-on-full: never wait for the consumer and never retry this frame
            self.stats.frames_dropped += 1
            self.failures.record_failure(e)
            return TickOutcome.DROPPED
        except ChannelError as e:
            self.stats.frames_dropped += 1
            self.failures.record_failure(e)
            return TickOutcome.DROPPED

        self.stats.frames_sent += 1
        return TickOutcome.SENT

    def _on_empty_frame(self) -> TickOutcome:
        self.stats.empty_frames += 1
        self._empty_streak += 1
        if self._empty_streak == 1:
            self.logger.warning("Empty frame captured, retrying...")
        else:
            self.logger.debug(f"Empty frame captured ({self._empty_streak} in a row)")

        limit = self.settings.max_empty_frames
        if limit and self._empty_streak >= limit:
            return self._recover_camera(
                CameraError(f"{self._empty_streak} consecutive empty frames")
            )
        return TickOutcome.EMPTY

    def _recover_camera(self, error: CameraError) -> TickOutcome:
        self.failures.record_failure(error)
        self.logger.warning("Camera error, attempting to reconnect...")
        self.stats.camera_reacquisitions += 1
        self.acquire_camera()
        return TickOutcome.CAMERA_REACQUIRED

    # ── Teardown ────────────────────────────────────────────────────

    def _release_camera(self) -> None:
        if self.camera is not None:
            self.camera.stop()
            self.camera = None

    def close(self) -> None:
        self._release_camera()
        if self.channel is not None:
            self.channel.close()
            self.channel = None
