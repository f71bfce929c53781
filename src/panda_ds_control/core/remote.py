"""
Remote dynamics client.

Synchronous ZeroMQ REQ stub. Each call sends the current end-effector position
(3 little-endian float64, world frame) and blocks until the server answers with
the desired linear velocity (3 little-endian float64, world frame, m/s), or
until the request timeout expires.

A REQ socket that timed out cannot send again before it receives, so after a
timeout the socket is dropped and a fresh one is connected.

Example usage:
    with RemoteDynamics("localhost", 5511, timeout_s=0.01) as remote:
        v = remote.request(np.array([0.4, 0.0, 0.5]))
"""

import logging
from typing import Optional

import numpy as np
import zmq

from .errors import RemoteTimeout, TransportError

logger = logging.getLogger(__name__)

WIRE_DTYPE = np.dtype("<f8")
PAYLOAD_SIZE = 3
PAYLOAD_BYTES = PAYLOAD_SIZE * WIRE_DTYPE.itemsize


def encode(vector: np.ndarray) -> bytes:
    vector = np.asarray(vector, dtype=float).reshape(-1)
    if vector.size != PAYLOAD_SIZE:
        raise ValueError(f"Expected {PAYLOAD_SIZE} values, got {vector.size}")
    return vector.astype(WIRE_DTYPE).tobytes()


def decode(payload: bytes) -> np.ndarray:
    if len(payload) != PAYLOAD_BYTES:
        raise ValueError(f"Expected {PAYLOAD_BYTES} bytes, got {len(payload)}")
    return np.frombuffer(payload, dtype=WIRE_DTYPE).astype(float)


class RemoteDynamics:
    """Request/reply client returning a desired linear velocity for a position."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5511,
        timeout_s: float = 0.01,
        context: Optional[zmq.Context] = None,
    ):
        """
        Args:
            host: Server host name
            port: Server port
            timeout_s: Per-request reply timeout (should not exceed the control period)
            context: ZeroMQ context (defaults to the process-wide instance)
        """
        self.host = host
        self.port = int(port)
        self.timeout_s = timeout_s
        self.endpoint = f"tcp://{host}:{self.port}"
        self._context = context or zmq.Context.instance()
        self._socket: Optional[zmq.Socket] = None
        self._poller = zmq.Poller()
        self.requests = 0
        self.timeouts = 0
        self.connect()

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    @timeout_s.setter
    def timeout_s(self, value: float) -> None:
        if value <= 0.0:
            raise ValueError("timeout_s must be positive")
        self._timeout_s = float(value)
        self._timeout_ms = max(1, int(round(value * 1000.0)))

    def connect(self) -> None:
        try:
            self._socket = self._context.socket(zmq.REQ)
            self._socket.setsockopt(zmq.LINGER, 0)
            self._socket.connect(self.endpoint)
        except zmq.ZMQError as e:
            raise TransportError(f"Cannot connect to {self.endpoint}: {e}") from e
        self._poller.register(self._socket, zmq.POLLIN)

    def _reconnect(self) -> None:
        logger.debug("Reconnecting to %s", self.endpoint)
        self._drop_socket()
        self.connect()

    def _drop_socket(self) -> None:
        if self._socket is not None:
            self._poller.unregister(self._socket)
            self._socket.close(linger=0)
            self._socket = None

    def request(self, position: np.ndarray) -> np.ndarray:
        """
        Ask the server for the desired linear velocity at `position`.

        Raises:
            RemoteTimeout: no reply within timeout_s, or a malformed/non-finite reply
            TransportError: socket failure
        """
        if self._socket is None:
            raise TransportError("Remote dynamics client is closed")
        self.requests += 1

        try:
            self._socket.send(encode(position))
            events = dict(self._poller.poll(self._timeout_ms))
            if self._socket not in events:
                self.timeouts += 1
                self._reconnect()
                raise RemoteTimeout(f"No reply from {self.endpoint} within {self.timeout_s * 1000.0:.1f} ms")
            payload = self._socket.recv()
        except zmq.ZMQError as e:
            self._reconnect()
            raise TransportError(f"Request to {self.endpoint} failed: {e}") from e

        try:
            velocity = decode(payload)
        except ValueError as e:
            raise RemoteTimeout(f"Malformed reply from {self.endpoint}: {e}") from e
        if not np.all(np.isfinite(velocity)):
            raise RemoteTimeout(f"Non-finite reply from {self.endpoint}: {velocity}")
        return velocity

    def close(self) -> None:
        self._drop_socket()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        return f"RemoteDynamics({self.endpoint}, timeout={self.timeout_s * 1000.0:.1f} ms)"
