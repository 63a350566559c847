"""
FrameLink Node — Entry Point

Two independent processes connected by a best-effort PUSH/PULL channel:

    python main.py capture   [--video clip.mp4]    camera → JPEG → PUSH (drop when busy)
    python main.py inference                        PULL (blocking) → tensor → ONNX model → log

Each process runs in the foreground; a service manager (see deploy/)
supervises and restarts it.
"""
import argparse
import json
import signal
import sys

from core.bus import EventBus
from core.events import ResourceAcquired
from utils.config import Config
from utils.failures import AcquisitionError, ConfigError, FailureManager
from utils.logger import Logger

ROLE_CAPTURE = "capture"
ROLE_INFERENCE = "inference"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="FrameLink Node - resilient camera-to-inference streaming")
    parser.add_argument(
        'role',
        choices=[ROLE_CAPTURE, ROLE_INFERENCE],
        help='Which agent to run in this process'
    )
    parser.add_argument(
        '--config-dir', '-c',
        type=str,
        default=None,
        help='Directory of JSON config files (defaults to ./configs)'
    )
    parser.add_argument(
        '--video', '-v',
        type=str,
        default=None,
        help='Capture only: replay a video file instead of the camera'
    )
    parser.add_argument(
        '--print-config',
        action='store_true',
        help='Print the merged configuration and exit'
    )
    return parser.parse_args(argv)


class FrameLinkNode:
    """
    Wires one agent with its bus, failure tracker, sinks and OS signals.
    """

    def __init__(self, role: str, config: Config, video_path: str = None):
        """
        Raises:
            ConfigError: The configuration is invalid for this role.
        """
        self.role = role
        self.config = config
        Logger.setup(self.config.get('logging', {}), default_file=f"{role}.log")
        self.logger = Logger("FrameLinkNode")
        self.logger.info(f"Initializing FrameLink {role} agent...")

        self.bus = EventBus()
        self.failures = FailureManager(self.config.get('failures', {}))
        self.sink = None
        self.bus.subscribe(ResourceAcquired, self._on_resource_acquired)

        if role == ROLE_CAPTURE:
            from core.agents.capture import CaptureAgent
            from utils.settings import CaptureSettings

            settings = CaptureSettings.from_config(self.config, video_path=video_path)
            self.agent = CaptureAgent(settings, bus=self.bus, failures=self.failures)
        else:
            from core.agents.inference import InferenceAgent
            from core.result_sink import ResultLogSink
            from utils.settings import InferenceSettings

            settings = InferenceSettings.from_config(self.config)
            self.agent = InferenceAgent(settings, bus=self.bus, failures=self.failures)
            self.sink = ResultLogSink(self.bus)

        self._setup_signals()

    def _on_resource_acquired(self, event: ResourceAcquired):
        self.logger.info(f"Acquired {event.resource}: {event.detail}")

    def _setup_signals(self):
        """Handle OS signals for graceful shutdown."""
        def handler(sig, frame):
            self.logger.info(f"Shutdown signal received ({signal.Signals(sig).name})")
            self.agent.stop()
        signal.signal(signal.SIGINT, handler)
        signal.signal(signal.SIGTERM, handler)

    def start(self):
        """Run the agent until a shutdown is requested."""
        try:
            self.agent.run()
        finally:
            if self.sink:
                self.sink.close()
            self.bus.clear()
            self.logger.info("FrameLink node stopped")


def main(argv=None) -> int:
    args = parse_args(argv)
    logger = Logger("FrameLinkNode")

    try:
        config = Config(args.config_dir)
        if args.print_config:
            print(json.dumps(config.config, indent=2, sort_keys=True))
            return EXIT_OK
        node = FrameLinkNode(args.role, config, video_path=args.video)
        node.start()
    except ConfigError as e:
        logger.critical(f"Configuration error: {e.message}")
        return EXIT_CONFIG_ERROR
    except AcquisitionError as e:
        logger.critical(str(e))
        return EXIT_ERROR

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
