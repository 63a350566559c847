"""
Frame Codec Handler - JPEG compression on the capture side and tensor
decoding on the inference side.
"""
from typing import Sequence

import cv2
import numpy as np

from utils.constants import DEFAULT_JPEG_QUALITY, DECODE_MODE_IMAGE, DECODE_MODE_RAW
from utils.failures import FrameEncodeError, FrameDecodeError


def encode_frame(frame: np.ndarray, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """
    Compress a BGR frame to JPEG bytes.

    Raises:
        FrameEncodeError: OpenCV rejected the frame.
    """
    try:
        ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    except cv2.error as e:
        raise FrameEncodeError(f"JPEG encoding failed: {e}")

    if not ok:
        raise FrameEncodeError("JPEG encoding returned no data")
    return buffer.tobytes()


def decode_tensor(payload: bytes, shape: Sequence[int], mode: str = DECODE_MODE_IMAGE,
                  normalize: bool = True) -> np.ndarray:
    """
    Turn received bytes into a float32 NCHW input tensor.

    Args:
        payload: Bytes received from the channel.
        shape: Target (N, C, H, W) shape.
        mode: "image" decodes a compressed image and resizes it to H x W;
              "raw" reinterprets the bytes as uint8 and reshapes them exactly.
        normalize: Scale pixel values into [0, 1].

    Raises:
        FrameDecodeError: Empty payload, undecodable image, or a byte count
                          that does not fit the shape.
    """
    if not payload:
        raise FrameDecodeError("Received an empty payload")

    shape = tuple(int(d) for d in shape)
    data = np.frombuffer(payload, dtype=np.uint8)

    if mode == DECODE_MODE_RAW:
        expected = int(np.prod(shape))
        if data.size != expected:
            raise FrameDecodeError(
                f"Shape mismatch: got {data.size} bytes, expected {expected} for shape {shape}"
            )
        tensor = data.reshape(shape).astype(np.float32)

    elif mode == DECODE_MODE_IMAGE:
        _, channels, height, width = shape
        flag = cv2.IMREAD_GRAYSCALE if channels == 1 else cv2.IMREAD_COLOR
        image = cv2.imdecode(data, flag)
        if image is None:
            raise FrameDecodeError(f"Could not decode {len(payload)} byte payload as an image")

        image = cv2.resize(image, (width, height), interpolation=cv2.INTER_LINEAR)
        if channels == 1:
            image = image[:, :, np.newaxis]
        else:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

        # HWC -> NCHW
        tensor = image.transpose(2, 0, 1)[np.newaxis, ...].astype(np.float32)
        if tensor.shape != shape:
            raise FrameDecodeError(f"Shape mismatch: decoded {tensor.shape}, expected {shape}")

    else:
        raise FrameDecodeError(f"Unknown decode mode: {mode!r}")

    if normalize:
        tensor /= 255.0
    return np.ascontiguousarray(tensor)
