"""
Result Sink — bridges InferenceCompleted events to the text log.

Subscribes to InferenceCompleted on the agent's bus and writes one line
per processed frame. Structured result formats are out of scope here.
"""
from typing import List

import numpy as np

from core.bus import EventBus
from core.events import InferenceCompleted
from utils.logger import Logger


def describe_outputs(outputs: List[np.ndarray]) -> str:
    """One-line summary of a result sequence: shape, dtype and peak of each tensor."""
    parts = []
    for index, output in enumerate(outputs):
        array = np.asarray(output)
        if array.size and np.issubdtype(array.dtype, np.number):
            peak = f"max={float(array.max()):.4f}@{int(array.argmax())}"
        else:
            peak = "empty" if not array.size else "non-numeric"
        parts.append(f"#{index} {tuple(array.shape)} {array.dtype} {peak}")
    return "; ".join(parts) or "no outputs"


class ResultLogSink:
    """Writes every inference result to the 'Results' logger."""

    def __init__(self, bus: EventBus):
        self.bus = bus
        self.logger = Logger("Results")
        self.count = 0

        self.bus.subscribe(InferenceCompleted, self._on_result)

    def _on_result(self, event: InferenceCompleted) -> None:
        self.count += 1
        frame_id = f"frame {event.sequence}" if event.sequence is not None else f"result {self.count}"
        self.logger.info(
            f"{frame_id} ({event.latency * 1000:.1f} ms): {describe_outputs(event.outputs)}"
        )

    def close(self) -> None:
        self.bus.unsubscribe(InferenceCompleted, self._on_result)
