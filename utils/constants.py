"""
Global constants for the FrameLink node.
"""
from pathlib import Path

# Project Structure
BASE_DIR = Path(__file__).parent.parent
CONFIGS_DIR = BASE_DIR / "configs"
LOGS_DIR = BASE_DIR / "logs"

# Channel Settings
DEFAULT_BIND_ADDRESS = "tcp://*:5555"
DEFAULT_CONNECT_ADDRESS = "tcp://localhost:5555"
DEFAULT_SEND_HWM = 2
DEFAULT_RECV_HWM = 2
SUPPORTED_SCHEMES = ("tcp", "ipc", "inproc")
RECEIVE_POLL_MS = 250

# Camera Settings
DEFAULT_DEVICE_INDEX = 0
DEFAULT_FRAME_WIDTH = 640
DEFAULT_FRAME_HEIGHT = 480
DEFAULT_TICK_INTERVAL = 0.033  # ~30 FPS
DEFAULT_JPEG_QUALITY = 90

# Model Settings
DEFAULT_MODEL_PATH = "model.onnx"
DEFAULT_INPUT_SHAPE = (1, 3, 224, 224)
DECODE_MODE_IMAGE = "image"
DECODE_MODE_RAW = "raw"
DECODE_MODES = (DECODE_MODE_IMAGE, DECODE_MODE_RAW)

# Retry intervals (seconds)
CAPTURE_CHANNEL_RETRY = 1.0
CAMERA_RETRY = 1.0
INFERENCE_CHANNEL_RETRY = 2.0
MODEL_RETRY = 5.0
RECEIVE_ERROR_BACKOFF = 1.0

# Statistics
DEFAULT_STATS_INTERVAL = 60.0

# Environment Variables
ENV_CONNECT_ADDRESS = "ZMQ_ADDRESS"
ENV_BIND_ADDRESS = "ZMQ_BIND_ADDRESS"
ENV_MODEL_PATH = "MODEL_PATH"
ENV_INPUT_SHAPE = "MODEL_INPUT_SHAPE"
ENV_LOG_LEVEL = "LOG_LEVEL"
