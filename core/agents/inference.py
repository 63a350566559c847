"""
Inference Agent — owns the PULL endpoint and the model session.

Blocks on receive, decodes each frame into the model's input tensor and
runs the model synchronously. Transport errors and model errors are kept
apart: neither replaces the endpoint or the session once acquired.
"""
import time
from threading import Event
from typing import Callable, Optional

from core.agents.base import ServiceAgent, TickOutcome
from core.bus import EventBus
from core.events import Frame, InferenceCompleted, ResourceAcquired
from core.protocols import FrameReceiver, InferenceModel
from core.retry import acquire_with_retry
from Handlers.Frame_Codec_Handler import decode_tensor
from Handlers.Model_Handler import ModelLoader
from Handlers.Socket_Handler import PullSocketHandler
from utils.failures import (ChannelError, FailureManager, FrameDecodeError,
                            InferenceError, ModelLoadError)
from utils.settings import InferenceSettings


class InferenceAgent(ServiceAgent):
    """Consumer process: blocking receive -> decode -> inference -> result sink."""

    name = "InferenceAgent"

    def __init__(
        self,
        settings: InferenceSettings,
        bus: Optional[EventBus] = None,
        failures: Optional[FailureManager] = None,
        channel_factory: Optional[Callable[[str], FrameReceiver]] = None,
        model_loader: Optional[ModelLoader] = None,
        stop_event: Optional[Event] = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            settings: Validated inference settings.
            channel_factory: Builds a connected FrameReceiver for an address;
                             raises ChannelError on failure.
            model_loader: Object with load(path) -> InferenceModel raising
                          ModelLoadError.
            clock: Wall clock used to judge frame staleness.
        """
        super().__init__(bus, failures, stop_event, sleep, settings.stats_interval)
        self.settings = settings
        self.channel_factory = channel_factory or self._default_channel
        self.model_loader = model_loader
        self.clock = clock

        self.channel: Optional[FrameReceiver] = None
        self.session: Optional[InferenceModel] = None
        self._last_sequence: Optional[int] = None

    def _default_channel(self, address: str) -> FrameReceiver:
        return PullSocketHandler(address, recv_hwm=self.settings.recv_hwm).connect()

    # ── Acquisition ─────────────────────────────────────────────────

    def acquire_channel(self, address: Optional[str] = None) -> FrameReceiver:
        """Connect the receive endpoint, retrying forever at the channel interval."""
        address = address or self.settings.connect_address
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

    def acquire_model(self, path: Optional[str] = None) -> InferenceModel:
        """
        Load the model, retrying forever at the model interval.

        Raises:
            ConfigError: The loaded model cannot take the configured input shape.
        """
        path = path or self.settings.model_path
        if self.model_loader is None:
            self.model_loader = ModelLoader(self.settings.providers)

        session = acquire_with_retry(
            lambda: self.model_loader.load(path),
            self.settings.model_retry,
            name=f"model {path}",
            retry_on=(ModelLoadError,),
            stop_event=self.stop_event,
            sleep=self._sleep,
        )
        session.check_input_shape(self.settings.input_shape)
        self.session = session
        self.bus.publish(ResourceAcquired(resource="model", detail=path))
        return session

    def setup(self) -> None:
        self.acquire_channel()
        self.acquire_model()
        self.logger.info(
            f"Inference running (input {self.settings.input_shape}, "
            f"decode mode '{self.settings.decode_mode}')"
        )

    # ── Service loop ────────────────────────────────────────────────

    def service_tick(self) -> TickOutcome:
        """Receive one frame (blocking) and run the model on it."""
        self.stats.ticks += 1
        try:
            frame = self.channel.receive(self.stop_event)
        except ChannelError as e:
            self.stats.receive_errors += 1
            self.failures.record_failure(e)
            self._sleep(self.settings.receive_backoff)
            return TickOutcome.RECEIVE_ERROR
        except FrameDecodeError as e:
            self.stats.decode_errors += 1
            self.failures.record_failure(e)
            return TickOutcome.DECODE_ERROR

        if frame is None:
            return TickOutcome.STOPPED

        self.stats.frames_received += 1
        self._track_sequence(frame)
        if self._is_stale(frame):
            self.stats.stale_frames += 1
            self.logger.warning(
                f"Dropping stale frame {frame.sequence} "
                f"({self.clock() - frame.timestamp:.2f}s old)"
            )
            return TickOutcome.STALE

        return self._process(frame)

    def _process(self, frame: Frame) -> TickOutcome:
        try:
            tensor = decode_tensor(
                frame.payload,
                self.settings.input_shape,
                mode=self.settings.decode_mode,
                normalize=self.settings.normalize,
            )
        except FrameDecodeError as e:
            self.stats.decode_errors += 1
            self.failures.record_failure(e)
            return TickOutcome.DECODE_ERROR

        started = time.perf_counter()
        try:
            outputs = self.session.run(tensor)
        except InferenceError as e:
            self.stats.inference_errors += 1
            self.failures.record_failure(e)
            return TickOutcome.INFERENCE_ERROR

        self.stats.results += 1
        self.bus.publish(InferenceCompleted(
            outputs=list(outputs),
            sequence=frame.sequence,
            latency=time.perf_counter() - started,
        ))
        return TickOutcome.PROCESSED

    def _track_sequence(self, frame: Frame) -> None:
        """Count gaps in the producer's sequence numbers as lost frames."""
        if frame.sequence is None:
            return
        if self._last_sequence is not None:
            gap = frame.sequence - self._last_sequence - 1
            if gap > 0:
                self.stats.frames_lost += gap
                self.logger.info(f"Lost {gap} frame(s) before frame {frame.sequence}")
            elif gap < 0:
                self.logger.warning(
                    f"Frame {frame.sequence} arrived after frame {self._last_sequence} "
                    f"(reordered or producer restarted)"
                )
        self._last_sequence = frame.sequence

    def _is_stale(self, frame: Frame) -> bool:
        if self.settings.max_frame_age <= 0 or frame.timestamp is None:
            return False
        return self.clock() - frame.timestamp > self.settings.max_frame_age

    # ── Teardown ────────────────────────────────────────────────────

    def close(self) -> None:
        if self.channel is not None:
            self.channel.close()
            self.channel = None
