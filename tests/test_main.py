import json
import signal
import threading

import pytest

import main
from utils.constants import (ENV_BIND_ADDRESS, ENV_CONNECT_ADDRESS, ENV_INPUT_SHAPE,
                             ENV_LOG_LEVEL, ENV_MODEL_PATH)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in (ENV_CONNECT_ADDRESS, ENV_BIND_ADDRESS, ENV_MODEL_PATH, ENV_INPUT_SHAPE, ENV_LOG_LEVEL):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "logging.json").write_text(json.dumps({"logging": {"file_enabled": False}}))
    return tmp_path


@pytest.fixture
def installed_signals(monkeypatch):
    handlers = {}
    monkeypatch.setattr(main.signal, "signal", lambda sig, handler: handlers.__setitem__(sig, handler))
    return handlers


def test_print_config(config_dir, capsys):
    (config_dir / "channel.json").write_text(json.dumps({"channel": {"bind_address": "tcp://*:7000"}}))

    assert main.main(["capture", "--config-dir", str(config_dir), "--print-config"]) == main.EXIT_OK
    printed = json.loads(capsys.readouterr().out)
    assert printed["channel"]["bind_address"] == "tcp://*:7000"


def test_invalid_input_shape_exits_with_config_error(config_dir):
    (config_dir / "model.json").write_text(json.dumps({"model": {"input_shape": [1, 3, 224]}}))
    assert main.main(["inference", "-c", str(config_dir)]) == main.EXIT_CONFIG_ERROR


def test_invalid_capture_config_exits_with_config_error(config_dir):
    (config_dir / "camera.json").write_text(json.dumps({"camera": {"jpeg_quality": 101}}))
    assert main.main(["capture", "-c", str(config_dir)]) == main.EXIT_CONFIG_ERROR


def test_invalid_json_exits_with_config_error(config_dir):
    (config_dir / "broken.json").write_text("{")
    assert main.main(["inference", "-c", str(config_dir)]) == main.EXIT_CONFIG_ERROR


def test_environment_shape_is_validated(config_dir, monkeypatch):
    monkeypatch.setenv(ENV_INPUT_SHAPE, "1,3,two,224")
    assert main.main(["inference", "-c", str(config_dir)]) == main.EXIT_CONFIG_ERROR


def test_unknown_role_is_rejected():
    with pytest.raises(SystemExit):
        main.parse_args(["display"])


def test_node_wires_the_inference_role(config_dir, installed_signals):
    from core.agents.inference import InferenceAgent
    from utils.config import Config

    node = main.FrameLinkNode("inference", Config(str(config_dir), environ={}))

    assert isinstance(node.agent, InferenceAgent)
    assert node.sink is not None
    assert set(installed_signals) == {signal.SIGINT, signal.SIGTERM}


def test_signal_stops_the_agent_before_acquisition(config_dir, installed_signals):
    from utils.config import Config

    node = main.FrameLinkNode("inference", Config(str(config_dir), environ={}))
    installed_signals[signal.SIGTERM](signal.SIGTERM, None)

    assert node.agent.stop_event.is_set()
    node.start()
    assert node.agent.channel is None
    assert node.sink is not None


def test_node_passes_video_path_to_capture(config_dir, installed_signals):
    from utils.config import Config

    node = main.FrameLinkNode("capture", Config(str(config_dir), environ={}), video_path="clip.mp4")
    assert node.agent.settings.video_path == "clip.mp4"
    assert node.sink is None


def test_signal_does_not_wait_for_a_busy_bus(config_dir, installed_signals):
    from utils.config import Config

    node = main.FrameLinkNode("capture", Config(str(config_dir), environ={}))
    held = threading.Event()
    release = threading.Event()

    def hold_bus():
        with node.bus._lock:
            held.set()
            release.wait(5)

    holder = threading.Thread(target=hold_bus)
    holder.start()
    held.wait(5)
    try:
        delivery = threading.Thread(
            target=installed_signals[signal.SIGTERM], args=(signal.SIGTERM, None), daemon=True,
        )
        delivery.start()
        delivery.join(timeout=2)
        assert not delivery.is_alive()
        assert node.agent.stop_event.is_set()
    finally:
        release.set()
        holder.join(timeout=5)


def test_signal_during_a_publish_on_the_same_thread(config_dir, installed_signals):
    from utils.config import Config

    node = main.FrameLinkNode("capture", Config(str(config_dir), environ={}))
    with node.bus._lock:
        installed_signals[signal.SIGINT](signal.SIGINT, None)
    assert node.agent.stop_event.is_set()
