"""
Typed message definitions for the FrameLink node.

Frames travel between processes over the channel; everything else is
in-process and travels over the EventBus.
"""
from dataclasses import dataclass, field, asdict
from typing import List, Optional, Sequence
import json
import time

import numpy as np

from utils.failures import FrameDecodeError


# ─── Channel Messages (cross the process boundary) ───────────────────────

@dataclass(frozen=True)
class Frame:
    """One compressed still image plus its capture metadata."""
    payload: bytes
    sequence: Optional[int] = None
    timestamp: Optional[float] = None

    def to_parts(self, with_metadata: bool = False) -> List[bytes]:
        """Wire representation: the payload alone, or a JSON header then the payload."""
        if not with_metadata:
            return [self.payload]
        header = {"seq": self.sequence, "ts": self.timestamp}
        return [json.dumps(header).encode("utf-8"), self.payload]

    @classmethod
    def from_parts(cls, parts: Sequence[bytes]) -> "Frame":
        """
        Rebuild a Frame from a received multipart message.

        Raises:
            FrameDecodeError: Unexpected part count or an unreadable header.
        """
        if len(parts) == 1:
            return cls(payload=bytes(parts[0]))
        if len(parts) != 2:
            raise FrameDecodeError(f"Expected 1 or 2 message parts, got {len(parts)}")

        try:
            header = json.loads(bytes(parts[0]).decode("utf-8"))
            sequence = header.get("seq")
            timestamp = header.get("ts")
            sequence = int(sequence) if sequence is not None else None
            timestamp = float(timestamp) if timestamp is not None else None
        except (UnicodeDecodeError, ValueError, TypeError, AttributeError) as e:
            raise FrameDecodeError(f"Malformed frame header: {e}")

        return cls(payload=bytes(parts[1]), sequence=sequence, timestamp=timestamp)


# ─── Event Bus Events (in-process) ───────────────────────────────────────

@dataclass
class InferenceCompleted:
    """Published by the Inference Agent for every successfully processed frame."""
    outputs: List[np.ndarray]
    sequence: Optional[int] = None
    latency: float = 0.0
    timestamp: float = field(default_factory=time.time)


@dataclass
class ResourceAcquired:
    """Published when an agent (re)acquires its camera, channel or model."""
    resource: str
    detail: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class ShutdownRequested:
    """Published to signal a graceful shutdown of an agent."""
    reason: str = "signal"
    timestamp: float = field(default_factory=time.time)


# ─── Statistics ──────────────────────────────────────────────────────────

@dataclass
class AgentStats:
    """Running counters for one agent's service loop."""
    ticks: int = 0
    frames_sent: int = 0
    frames_dropped: int = 0
    empty_frames: int = 0
    encode_errors: int = 0
    camera_reacquisitions: int = 0
    frames_received: int = 0
    frames_lost: int = 0
    stale_frames: int = 0
    receive_errors: int = 0
    decode_errors: int = 0
    inference_errors: int = 0
    results: int = 0

    def summary(self) -> str:
        """Render the non-zero counters as ``name=value`` pairs."""
        values = {k: v for k, v in asdict(self).items() if v}
        return ", ".join(f"{k}={v}" for k, v in values.items()) or "idle"
