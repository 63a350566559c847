import threading
import time

import numpy as np

from core.agents.capture import CaptureAgent
from core.agents.inference import InferenceAgent
from core.bus import EventBus
from core.events import InferenceCompleted
from Handlers.Socket_Handler import PullSocketHandler, PushSocketHandler
from utils.settings import CaptureSettings, InferenceSettings
from tests.conftest import CameraFactory, FakeCamera, FakeLoader, FakeSession


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not condition() and time.monotonic() < deadline:
        time.sleep(0.01)
    return condition()


def numbered_payload(sequence):
    return bytes([sequence % 256]) * 2048 + f"frame-{sequence}".encode()


def test_slow_consumer_gets_a_subset_of_frames_byte_identical(inproc_address):
    encoded = []

    def encoder(frame, quality):
        payload = numbered_payload(len(encoded))
        encoded.append(payload)
        return payload

    capture = CaptureAgent(
        CaptureSettings(bind_address=inproc_address, send_hwm=1, tick_interval=0.005, send_metadata=True),
        camera_factory=CameraFactory(),
        channel_factory=lambda address: PushSocketHandler(address, send_hwm=1).bind(),
        encoder=encoder,
    )
    capture.acquire_channel()

    pull = PullSocketHandler(inproc_address, recv_hwm=1).connect()
    received = []
    stop = threading.Event()

    def consume():
        while not stop.is_set():
            frame = pull.receive(stop)
            if frame is None:
                break
            received.append(frame)
            if len(received) <= 50:
                time.sleep(0.05)

    consumer = threading.Thread(target=consume)
    consumer.start()
    try:
        capture.acquire_camera()
        started = time.monotonic()
        for _ in range(100):
            capture.service_tick()
        producer_elapsed = time.monotonic() - started

        wait_for(lambda: len(received) >= capture.stats.frames_sent, timeout=3.0)
    finally:
        stop.set()
        consumer.join(timeout=5)
        pull.close()
        capture.close()

    stats = capture.stats
    assert stats.frames_sent + stats.frames_dropped == 100
    assert 0 < len(received) < 100
    assert len(received) <= stats.frames_sent
    assert producer_elapsed < 5.0

    sequences = [frame.sequence for frame in received]
    assert sequences == sorted(sequences)
    assert len(set(sequences)) == len(sequences)
    for frame in received:
        assert frame.payload == numbered_payload(frame.sequence)


def test_camera_to_model_pipeline(inproc_address):
    rng = np.random.default_rng(3)
    images = [rng.integers(0, 256, size=(48, 64, 3), dtype=np.uint8) for _ in range(400)]

    bus = EventBus()
    results = []
    bus.subscribe(InferenceCompleted, results.append)

    session = FakeSession()
    inference = InferenceAgent(
        InferenceSettings(connect_address=inproc_address, input_shape=(1, 3, 32, 32)),
        bus=bus,
        model_loader=FakeLoader(session),
    )
    capture = CaptureAgent(
        CaptureSettings(bind_address=inproc_address, tick_interval=0.01, send_metadata=True),
        camera_factory=CameraFactory(FakeCamera(images)),
    )
    capture.acquire_channel()
    capture.acquire_camera()

    consumer = threading.Thread(target=inference.run)
    consumer.start()
    try:
        for _ in range(400):
            capture.service_tick()
            if len(results) >= 5:
                break
    finally:
        inference.stop()
        consumer.join(timeout=5)
        capture.close()

    assert not consumer.is_alive()
    assert len(results) >= 5
    tensor = session.tensors[0]
    assert tensor.shape == (1, 3, 32, 32)
    assert tensor.dtype == np.float32
    assert 0.0 <= tensor.min() and tensor.max() <= 1.0

    sequences = [r.sequence for r in results]
    assert sequences == sorted(sequences)
    assert inference.stats.decode_errors == 0
