import numpy as np
import pytest

from core.agents.base import TickOutcome
from core.agents.inference import InferenceAgent
from core.bus import EventBus
from core.events import Frame, InferenceCompleted, ResourceAcquired, ShutdownRequested
from utils.failures import ChannelError, ConfigError, FrameDecodeError
from utils.settings import InferenceSettings
from tests.conftest import FakeLoader, FakeReceiver, FakeSession, RecordingSleep

SHAPE = (1, 3, 4, 4)
GOOD = bytes(range(48))


def make_agent(items=(), session=None, loader=None, sleep=None, bus=None, clock=None, **settings):
    settings.setdefault("decode_mode", "raw")
    settings.setdefault("input_shape", SHAPE)
    settings.setdefault("normalize", False)
    receiver = FakeReceiver(items)
    channels = []

    def channel_factory(address):
        channels.append(address)
        return receiver

    loader = loader or FakeLoader(session or FakeSession())
    kwargs = {"clock": clock} if clock else {}
    agent = InferenceAgent(
        InferenceSettings(**settings),
        bus=bus,
        channel_factory=channel_factory,
        model_loader=loader,
        sleep=sleep or RecordingSleep(),
        **kwargs,
    )
    agent.acquire_channel()
    agent.acquire_model()
    return agent, receiver, loader, channels


def test_frame_is_decoded_and_run_through_the_model():
    session = FakeSession()
    agent, _, _, _ = make_agent([Frame(payload=GOOD)], session=session)

    assert agent.service_tick() is TickOutcome.PROCESSED
    tensor = session.tensors[0]
    assert tensor.shape == SHAPE
    assert tensor.dtype == np.float32
    assert tensor[0, 2, 3, 3] == 47.0
    assert session.checked_shapes == [SHAPE]
    assert agent.stats.results == 1


def test_shape_mismatch_is_swallowed_and_nothing_is_replaced():
    session = FakeSession()
    agent, receiver, loader, channels = make_agent(
        [Frame(payload=bytes(47)), Frame(payload=bytes(100)), Frame(payload=GOOD)], session=session,
    )

    assert agent.service_tick() is TickOutcome.DECODE_ERROR
    assert agent.service_tick() is TickOutcome.DECODE_ERROR
    assert agent.service_tick() is TickOutcome.PROCESSED

    assert agent.session is session
    assert agent.channel is receiver
    assert len(loader.paths) == 1
    assert len(channels) == 1
    assert agent.stats.decode_errors == 2
    assert agent.failures.count("FrameDecodeError") == 2
    assert len(session.tensors) == 1


def test_receive_error_backs_off_one_second_and_keeps_the_endpoint():
    sleep = RecordingSleep()
    agent, receiver, _, channels = make_agent(
        [ChannelError("recv failed"), Frame(payload=GOOD)], sleep=sleep,
    )

    assert agent.service_tick() is TickOutcome.RECEIVE_ERROR
    assert sleep.calls == [1.0]
    assert agent.service_tick() is TickOutcome.PROCESSED
    assert agent.channel is receiver
    assert len(channels) == 1
    assert agent.stats.receive_errors == 1


def test_malformed_message_is_dropped_without_backoff():
    sleep = RecordingSleep()
    agent, _, _, _ = make_agent([FrameDecodeError("Malformed frame header"), Frame(payload=GOOD)], sleep=sleep)

    assert agent.service_tick() is TickOutcome.DECODE_ERROR
    assert agent.service_tick() is TickOutcome.PROCESSED
    assert sleep.calls == []


def test_inference_error_skips_only_that_frame():
    session = FakeSession(fail_on={1})
    agent, _, loader, _ = make_agent([Frame(payload=GOOD), Frame(payload=GOOD)], session=session)

    assert agent.service_tick() is TickOutcome.INFERENCE_ERROR
    assert agent.service_tick() is TickOutcome.PROCESSED
    assert agent.session is session
    assert len(loader.paths) == 1
    assert agent.stats.inference_errors == 1


def test_receive_returning_none_means_stopped():
    agent, _, _, _ = make_agent([])
    assert agent.service_tick() is TickOutcome.STOPPED
    assert agent.stats.frames_received == 0


def test_sequence_gaps_are_counted_as_lost():
    frames = [Frame(payload=GOOD, sequence=s) for s in (0, 1, 4, 5, 3)]
    agent, _, _, _ = make_agent(frames)

    for _ in frames:
        assert agent.service_tick() is TickOutcome.PROCESSED
    assert agent.stats.frames_lost == 2
    assert agent.stats.frames_received == 5


def test_stale_frames_are_dropped_when_max_age_is_set():
    session = FakeSession()
    frames = [
        Frame(payload=GOOD, sequence=0, timestamp=99.0),
        Frame(payload=GOOD, sequence=1, timestamp=99.9),
        Frame(payload=GOOD),
    ]
    agent, _, _, _ = make_agent(frames, session=session, clock=lambda: 100.0, max_frame_age=0.5)

    assert agent.service_tick() is TickOutcome.STALE
    assert agent.service_tick() is TickOutcome.PROCESSED
    assert agent.service_tick() is TickOutcome.PROCESSED
    assert agent.stats.stale_frames == 1
    assert len(session.tensors) == 2


def test_old_frames_are_processed_when_max_age_is_disabled():
    agent, _, _, _ = make_agent([Frame(payload=GOOD, timestamp=0.0)], clock=lambda: 1e9)
    assert agent.service_tick() is TickOutcome.PROCESSED


def test_model_load_retries_every_five_seconds():
    sleep = RecordingSleep()
    loader = FakeLoader(failures=3)
    agent, _, _, _ = make_agent(loader=loader, sleep=sleep)

    assert sleep.calls == [5.0] * 3
    assert loader.paths == ["model.onnx"] * 4
    assert agent.session is loader.session


def test_channel_connect_retries_every_two_seconds():
    sleep = RecordingSleep()
    attempts = []

    def factory(address):
        attempts.append(address)
        if len(attempts) < 4:
            raise ChannelError("Connection refused")
        return FakeReceiver()

    agent = InferenceAgent(InferenceSettings(), channel_factory=factory, model_loader=FakeLoader(), sleep=sleep)
    agent.acquire_channel()

    assert attempts == ["tcp://localhost:5555"] * 4
    assert sleep.calls == [2.0] * 3


def test_incompatible_model_is_a_config_error():
    class WrongShapeSession(FakeSession):
        def check_input_shape(self, shape):
            raise ConfigError(f"Model expects [1, 3, 32, 32], configured shape is {list(shape)}")

    receiver = FakeReceiver()
    sleep = RecordingSleep()
    agent = InferenceAgent(
        InferenceSettings(),
        channel_factory=lambda address: receiver,
        model_loader=FakeLoader(WrongShapeSession()),
        sleep=sleep,
    )

    with pytest.raises(ConfigError):
        agent.run()
    assert receiver.closed
    assert sleep.calls == []


def test_run_publishes_results_until_shutdown():
    bus = EventBus()
    results = []
    acquired = []

    def on_result(event):
        results.append(event)
        if len(results) == 3:
            bus.publish(ShutdownRequested(reason="enough"))

    bus.subscribe(InferenceCompleted, on_result)
    bus.subscribe(ResourceAcquired, acquired.append)

    receiver = FakeReceiver([Frame(payload=GOOD, sequence=s) for s in range(10)])
    agent = InferenceAgent(
        InferenceSettings(decode_mode="raw", input_shape=SHAPE),
        bus=bus,
        channel_factory=lambda address: receiver,
        model_loader=FakeLoader(),
        sleep=RecordingSleep(),
    )
    agent.run()

    assert [r.sequence for r in results] == [0, 1, 2]
    assert all(r.latency >= 0 for r in results)
    assert results[0].outputs[0].shape == (1, 3)
    assert [e.resource for e in acquired] == ["channel", "model"]
    assert receiver.closed
    assert len(receiver.items) == 7
