"""
Protocol definitions (interfaces) for the FrameLink node.

These define the contracts that adapters must implement,
enabling dependency injection and easy testing/swapping.
"""
from typing import Protocol, Optional, List, Sequence, runtime_checkable
from threading import Event

import numpy as np

from core.events import Frame


@runtime_checkable
class FrameSource(Protocol):
    """Interface for any frame-producing component (camera, video file, etc.)."""

    def start(self) -> bool:
        """Open the device. Returns True on success."""
        ...

    def read_frame(self) -> Optional[np.ndarray]:
        """
        Read the next frame.

        Returns:
            A BGR numpy array, or None / an empty array for an empty read.

        Raises:
            CameraError: The device failed and must be re-acquired.
        """
        ...

    def stop(self) -> None:
        """Release the device."""
        ...


@runtime_checkable
class FrameSender(Protocol):
    """Send side of the channel."""

    def send_nowait(self, frame: Frame, with_metadata: bool = False) -> None:
        """
        Hand a frame to the transport without blocking.

        Raises:
            ChannelBusyError: The transport would block.
            ChannelError: Any other transport failure.
        """
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class FrameReceiver(Protocol):
    """Receive side of the channel."""

    def receive(self, stop_event: Optional[Event] = None) -> Optional[Frame]:
        """
        Block until a frame arrives. Returns None only once stop_event is set.

        Raises:
            ChannelError: The receive failed.
        """
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class InferenceModel(Protocol):
    """Interface for a loaded model session."""

    def check_input_shape(self, shape: Sequence[int]) -> None:
        """Raise ConfigError if the model cannot accept tensors of this shape."""
        ...

    def run(self, tensor: np.ndarray) -> List[np.ndarray]:
        """
        Run inference on one input tensor.

        Raises:
            InferenceError: The runtime failed on this input.
        """
        ...
