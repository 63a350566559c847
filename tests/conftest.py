import uuid
from types import SimpleNamespace

import numpy as np
import pytest

from utils.failures import ChannelBusyError, InferenceError, ModelLoadError


class FakeCamera:
    """FrameSource whose reads are scripted: arrays, None (empty) or exceptions."""

    def __init__(self, frames=None, start_ok=True):
        self.frames = list(frames or [])
        self.start_ok = start_ok
        self.started = False
        self.stopped = False
        self.reads = 0

    def start(self):
        self.started = self.start_ok
        return self.start_ok

    def read_frame(self):
        self.reads += 1
        if not self.frames:
            return np.zeros((4, 4, 3), dtype=np.uint8)
        item = self.frames.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def stop(self):
        self.stopped = True


class CameraFactory:
    """Hands out prepared cameras in order, then healthy default ones."""

    def __init__(self, *cameras):
        self.cameras = list(cameras)
        self.created = []

    def __call__(self):
        camera = self.cameras.pop(0) if self.cameras else FakeCamera()
        self.created.append(camera)
        return camera


class FakeSender:
    def __init__(self, busy=False):
        self.busy = busy
        self.sent = []
        self.closed = False

    def send_nowait(self, frame, with_metadata=False):
        if self.busy:
            raise ChannelBusyError("Socket is busy")
        self.sent.append((frame, with_metadata))

    def close(self):
        self.closed = True


class FakeReceiver:
    """Returns scripted frames / raises scripted errors; None once exhausted."""

    def __init__(self, items=None):
        self.items = list(items or [])
        self.closed = False

    def receive(self, stop_event=None):
        if not self.items:
            return None
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.tensors = []
        self.checked_shapes = []

    def check_input_shape(self, shape):
        self.checked_shapes.append(tuple(shape))

    def run(self, tensor):
        self.tensors.append(tensor)
        if len(self.tensors) in self.fail_on:
            raise InferenceError("runtime exploded")
        return [np.array([[0.1, 0.7, 0.2]], dtype=np.float32)]


class FakeLoader:
    """Fails the first ``failures`` loads, then returns ``session``."""

    def __init__(self, session=None, failures=0):
        self.session = session or FakeSession()
        self.failures = failures
        self.paths = []

    def load(self, path):
        self.paths.append(path)
        if len(self.paths) <= self.failures:
            raise ModelLoadError(f"Model file not found: {path}")
        return self.session


class RecordingSleep:
    """Stand-in for time.sleep that records requested delays."""

    def __init__(self, on_call=None):
        self.calls = []
        self.on_call = on_call

    def __call__(self, seconds):
        self.calls.append(seconds)
        if self.on_call:
            self.on_call(len(self.calls))


def fake_ort_session(input_shape=(1, 3, 224, 224), input_type="tensor(float)"):
    """Object shaped like onnxruntime.InferenceSession for metadata calls."""
    return SimpleNamespace(
        get_inputs=lambda: [SimpleNamespace(name="input", shape=list(input_shape), type=input_type)],
        get_outputs=lambda: [SimpleNamespace(name="output")],
        run=lambda names, feeds: [feeds["input"] * 2],
    )


@pytest.fixture
def inproc_address():
    return f"inproc://framelink-test-{uuid.uuid4().hex}"
