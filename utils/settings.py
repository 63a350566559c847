"""
Validated, typed settings for the two agents.

Built from a Config once at startup so that a bad address or tensor shape
is rejected with a ConfigError before any camera, socket or model is touched.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

from core.retry import RetryPolicy
from utils.config import Config
from utils.constants import (
    DEFAULT_BIND_ADDRESS, DEFAULT_CONNECT_ADDRESS, DEFAULT_SEND_HWM, DEFAULT_RECV_HWM,
    SUPPORTED_SCHEMES, DEFAULT_DEVICE_INDEX, DEFAULT_FRAME_WIDTH, DEFAULT_FRAME_HEIGHT,
    DEFAULT_TICK_INTERVAL, DEFAULT_JPEG_QUALITY, DEFAULT_MODEL_PATH, DEFAULT_INPUT_SHAPE,
    DECODE_MODES, DECODE_MODE_IMAGE, CAPTURE_CHANNEL_RETRY, CAMERA_RETRY,
    INFERENCE_CHANNEL_RETRY, MODEL_RETRY, RECEIVE_ERROR_BACKOFF, DEFAULT_STATS_INTERVAL,
)
from utils.failures import ConfigError


def validate_address(address: str) -> str:
    """
    Check a ZeroMQ endpoint string.

    Raises:
        ConfigError: Unknown scheme, empty target, or a tcp address without a port.
    """
    if not isinstance(address, str) or "://" not in address:
        raise ConfigError(f"Invalid channel address: {address!r}")

    scheme, target = address.split("://", 1)
    if scheme not in SUPPORTED_SCHEMES:
        raise ConfigError(
            f"Unsupported channel scheme '{scheme}' in {address!r} "
            f"(expected one of {', '.join(SUPPORTED_SCHEMES)})"
        )
    if not target:
        raise ConfigError(f"Channel address has no endpoint: {address!r}")

    if scheme == "tcp":
        host, sep, port = target.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ConfigError(f"tcp address needs host:port, got {address!r}")
        if not 0 < int(port) < 65536:
            raise ConfigError(f"tcp port out of range in {address!r}")
    return address


def parse_shape(value, decode_mode: str = DECODE_MODE_IMAGE) -> Tuple[int, ...]:
    """
    Parse an NCHW input shape from a list or a "1,3,224,224" string.

    Raises:
        ConfigError: Not four positive integers, or an image-mode channel
                     count other than 1 or 3.
    """
    if isinstance(value, str):
        parts = [p.strip() for p in value.replace("x", ",").split(",") if p.strip()]
    elif isinstance(value, (list, tuple)):
        parts = list(value)
    else:
        raise ConfigError(f"Input shape must be a list or string, got {value!r}")

    try:
        shape = tuple(int(p) for p in parts)
    except (TypeError, ValueError):
        raise ConfigError(f"Input shape must contain integers, got {value!r}")

    if len(shape) != 4 or any(d <= 0 for d in shape):
        raise ConfigError(f"Input shape must be four positive integers (NCHW), got {value!r}")
    if decode_mode == DECODE_MODE_IMAGE:
        if shape[0] != 1:
            raise ConfigError(f"Image decoding produces a batch of 1, got shape {shape}")
        if shape[1] not in (1, 3):
            raise ConfigError(f"Image decoding needs 1 or 3 channels, got shape {shape}")
    return shape


def _retry_policy(config: Config, key: str, default_interval: float) -> RetryPolicy:
    max_attempts = config.get(f'{key}.max_attempts')
    if max_attempts is not None:
        try:
            max_attempts = int(max_attempts)
        except (TypeError, ValueError):
            raise ConfigError(f"{key}.max_attempts must be an integer, got {max_attempts!r}")
    return RetryPolicy(
        interval=config.get_float(f'{key}.interval', default_interval),
        max_attempts=max_attempts,
        jitter=config.get_float(f'{key}.jitter', 0.0),
    )


def _positive(name: str, value: float) -> float:
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _non_negative(name: str, value):
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")
    return value


def _at_least_one(name: str, value: int) -> int:
    # zmq reads a high-water mark of 0 as unlimited
    if value < 1:
        raise ConfigError(f"{name} must be at least 1, got {value}")
    return value


@dataclass(frozen=True)
class CaptureSettings:
    """Everything the Capture Agent needs, validated."""
    bind_address: str = DEFAULT_BIND_ADDRESS
    send_hwm: int = DEFAULT_SEND_HWM
    send_metadata: bool = False
    device_index: int = DEFAULT_DEVICE_INDEX
    width: int = DEFAULT_FRAME_WIDTH
    height: int = DEFAULT_FRAME_HEIGHT
    tick_interval: float = DEFAULT_TICK_INTERVAL
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    max_empty_frames: int = 0
    video_path: Optional[str] = None
    loop_video: bool = True
    channel_retry: RetryPolicy = RetryPolicy(CAPTURE_CHANNEL_RETRY)
    camera_retry: RetryPolicy = RetryPolicy(CAMERA_RETRY)
    stats_interval: float = DEFAULT_STATS_INTERVAL

    @classmethod
    def from_config(cls, config: Config, video_path: Optional[str] = None) -> "CaptureSettings":
        """
        Raises:
            ConfigError: On any invalid value.
        """
        jpeg_quality = config.get_int('camera.jpeg_quality', DEFAULT_JPEG_QUALITY)
        if not 0 <= jpeg_quality <= 100:
            raise ConfigError(f"camera.jpeg_quality must be 0-100, got {jpeg_quality}")

        return cls(
            bind_address=validate_address(
                config.get('channel.bind_address', DEFAULT_BIND_ADDRESS)
            ),
            send_hwm=_at_least_one('channel.send_hwm', config.get_int('channel.send_hwm', DEFAULT_SEND_HWM)),
            send_metadata=config.get_bool('channel.send_metadata', False),
            device_index=_non_negative('camera.device_index', config.get_int('camera.device_index', DEFAULT_DEVICE_INDEX)),
            width=int(_positive('camera.width', config.get_int('camera.width', DEFAULT_FRAME_WIDTH))),
            height=int(_positive('camera.height', config.get_int('camera.height', DEFAULT_FRAME_HEIGHT))),
            tick_interval=_positive('camera.tick_interval', config.get_float('camera.tick_interval', DEFAULT_TICK_INTERVAL)),
            jpeg_quality=jpeg_quality,
            max_empty_frames=_non_negative('camera.max_empty_frames', config.get_int('camera.max_empty_frames', 0)),
            video_path=video_path or config.get('camera.video_path'),
            loop_video=config.get_bool('camera.loop_video', True),
            channel_retry=_retry_policy(config, 'retry.capture_channel', CAPTURE_CHANNEL_RETRY),
            camera_retry=_retry_policy(config, 'retry.camera', CAMERA_RETRY),
            stats_interval=_non_negative('stats_interval', config.get_float('stats_interval', DEFAULT_STATS_INTERVAL)),
        )


@dataclass(frozen=True)
class InferenceSettings:
    """Everything the Inference Agent needs, validated."""
    connect_address: str = DEFAULT_CONNECT_ADDRESS
    recv_hwm: int = DEFAULT_RECV_HWM
    model_path: str = DEFAULT_MODEL_PATH
    input_shape: Tuple[int, ...] = DEFAULT_INPUT_SHAPE
    decode_mode: str = DECODE_MODE_IMAGE
    normalize: bool = True
    providers: Tuple[str, ...] = ()
    max_frame_age: float = 0.0
    receive_backoff: float = RECEIVE_ERROR_BACKOFF
    channel_retry: RetryPolicy = RetryPolicy(INFERENCE_CHANNEL_RETRY)
    model_retry: RetryPolicy = RetryPolicy(MODEL_RETRY)
    stats_interval: float = DEFAULT_STATS_INTERVAL

    @classmethod
    def from_config(cls, config: Config) -> "InferenceSettings":
        """
        Raises:
            ConfigError: On any invalid value.
        """
        decode_mode = str(config.get('model.decode_mode', DECODE_MODE_IMAGE)).lower()
        if decode_mode not in DECODE_MODES:
            raise ConfigError(
                f"model.decode_mode must be one of {', '.join(DECODE_MODES)}, got {decode_mode!r}"
            )

        model_path = config.get('model.path', DEFAULT_MODEL_PATH)
        if not model_path:
            raise ConfigError("model.path must not be empty")

        return cls(
            connect_address=validate_address(
                config.get('channel.connect_address', DEFAULT_CONNECT_ADDRESS)
            ),
            recv_hwm=_at_least_one('channel.recv_hwm', config.get_int('channel.recv_hwm', DEFAULT_RECV_HWM)),
            model_path=str(model_path),
            input_shape=parse_shape(config.get('model.input_shape', list(DEFAULT_INPUT_SHAPE)), decode_mode),
            decode_mode=decode_mode,
            normalize=config.get_bool('model.normalize', True),
            providers=tuple(config.get_list('model.providers', [])),
            max_frame_age=_non_negative('inference.max_frame_age', config.get_float('inference.max_frame_age', 0.0)),
            receive_backoff=_positive('inference.receive_backoff', config.get_float('inference.receive_backoff', RECEIVE_ERROR_BACKOFF)),
            channel_retry=_retry_policy(config, 'retry.inference_channel', INFERENCE_CHANNEL_RETRY),
            model_retry=_retry_policy(config, 'retry.model', MODEL_RETRY),
            stats_interval=_non_negative('stats_interval', config.get_float('stats_interval', DEFAULT_STATS_INTERVAL)),
        )
