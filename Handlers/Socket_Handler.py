"""
Socket Handler - ZeroMQ channel endpoints between the two agents.

PushSocketHandler is the Capture Agent's send-only endpoint (bound);
PullSocketHandler is the Inference Agent's receive-only endpoint (connected).
Each is created once at startup and held for the process lifetime.
"""
from threading import Event
from typing import Optional

import zmq

from core.events import Frame
from utils.constants import DEFAULT_SEND_HWM, DEFAULT_RECV_HWM, RECEIVE_POLL_MS
from utils.failures import ChannelError, ChannelBusyError
from utils.logger import Logger


class SocketHandler:
    """Shared socket lifecycle for both channel endpoints."""

    socket_type: int = None

    def __init__(self, address: str, context: Optional[zmq.Context] = None):
        """
        Args:
            address: ZeroMQ endpoint, e.g. "tcp://*:5555"
            context: ZeroMQ context (defaults to the process-wide instance)
        """
        self.address = address
        self.context = context or zmq.Context.instance()
        self.socket: Optional[zmq.Socket] = None
        self.logger = Logger(type(self).__name__)

    def _create_socket(self) -> zmq.Socket:
        try:
            sock = self.context.socket(self.socket_type)
        except zmq.ZMQError as e:
            raise ChannelError(f"Error creating ZeroMQ socket: {e}")
        sock.setsockopt(zmq.LINGER, 0)
        return sock

    def _require_socket(self) -> zmq.Socket:
        if self.socket is None:
            raise ChannelError(f"Channel endpoint {self.address} is not open")
        return self.socket

    def close(self) -> None:
        """Close the socket without waiting for queued messages."""
        if self.socket is not None:
            try:
                self.socket.close(linger=0)
            except zmq.ZMQError as e:
                self.logger.warning(f"Error closing socket {self.address}: {e}")
            self.socket = None
            self.logger.info(f"Channel endpoint {self.address} closed")


class PushSocketHandler(SocketHandler):
    """Send-only endpoint. Implements the FrameSender protocol."""

    socket_type = zmq.PUSH

    def __init__(self, address: str, send_hwm: int = DEFAULT_SEND_HWM,
                 context: Optional[zmq.Context] = None):
        super().__init__(address, context)
        self.send_hwm = send_hwm

    def bind(self) -> "PushSocketHandler":
        """
        Bind the endpoint.

        Raises:
            ChannelError: Socket creation or bind failed.
        """
        sock = self._create_socket()
        sock.setsockopt(zmq.SNDHWM, self.send_hwm)
        try:
            sock.bind(self.address)
        except zmq.ZMQError as e:
            sock.close(linger=0)
            raise ChannelError(f"Failed to bind {self.address}: {e}")

        self.socket = sock
        self.logger.info(f"Bound PUSH endpoint at {self.address} (SNDHWM={self.send_hwm})")
        return self

    def send_nowait(self, frame: Frame, with_metadata: bool = False) -> None:
        """
        Hand a frame to ZeroMQ without blocking.

        Raises:
            ChannelBusyError: No peer or the high-water mark is reached.
            ChannelError: Any other send failure.
        """
        sock = self._require_socket()
        try:
            sock.send_multipart(frame.to_parts(with_metadata), flags=zmq.NOBLOCK)
        except zmq.Again:
            raise ChannelBusyError("Socket is busy (consumer not keeping up)")
        except zmq.ZMQError as e:
            raise ChannelError(f"Error sending frame: {e}")


class PullSocketHandler(SocketHandler):
    """Receive-only endpoint. Implements the FrameReceiver protocol."""

    socket_type = zmq.PULL

    def __init__(self, address: str, recv_hwm: int = DEFAULT_RECV_HWM,
                 context: Optional[zmq.Context] = None):
        super().__init__(address, context)
        self.recv_hwm = recv_hwm

    def connect(self) -> "PullSocketHandler":
        """
        Connect the endpoint. ZeroMQ connects asynchronously, so this only
        fails for unusable addresses or socket creation errors.

        Raises:
            ChannelError: Socket creation or connect failed.
        """
        sock = self._create_socket()
        sock.setsockopt(zmq.RCVHWM, self.recv_hwm)
        try:
            sock.connect(self.address)
        except zmq.ZMQError as e:
            sock.close(linger=0)
            raise ChannelError(f"Failed to connect to {self.address}: {e}")

        self.socket = sock
        self.logger.info(f"Connected PULL endpoint to {self.address} (RCVHWM={self.recv_hwm})")
        return self

    def receive(self, stop_event: Optional[Event] = None) -> Optional[Frame]:
        """
        Block until a frame arrives.

        With a stop_event the wait is sliced into short polls so shutdown is
        noticed; None is returned only once the event is set.

        Raises:
            ChannelError: The receive failed.
            FrameDecodeError: The message had an unexpected layout.
        """
        sock = self._require_socket()

        while True:
            if stop_event is not None and stop_event.is_set():
                return None
            try:
                if stop_event is None:
                    parts = sock.recv_multipart()
                elif sock.poll(RECEIVE_POLL_MS, zmq.POLLIN):
                    parts = sock.recv_multipart(zmq.NOBLOCK)
                else:
                    continue
            except zmq.Again:
                continue
            except zmq.ZMQError as e:
                raise ChannelError(f"Failed to receive frame: {e}")

            return Frame.from_parts(parts)
