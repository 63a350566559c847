"""
Long-running agents of the FrameLink node.

Each agent runs in its own process and owns one resource plus one channel
endpoint:

    CaptureAgent  (camera  -> PUSH)  ~~ network ~~>  InferenceAgent (PULL -> model)

Both acquire their resources with core.retry and then loop service_tick()
until stopped.
"""
from .base import ServiceAgent, TickOutcome
from .capture import CaptureAgent
from .inference import InferenceAgent

__all__ = ["ServiceAgent", "TickOutcome", "CaptureAgent", "InferenceAgent"]
