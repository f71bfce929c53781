"""Reference remote dynamics server.

Serves a linear attractor DS over a ZeroMQ REP socket:

    v = -gain * (x - attractor)

with the attractor at the demonstration offset, so that the hand-off to
remote task dynamics can be exercised without a learned model.

Usage:
    panda-ds-server 1 --port 5511 --gain 2.0
"""

import argparse
import logging
import sys
import threading
from typing import Optional, Sequence

import numpy as np
import zmq

from ..core.config import PROJECT_ROOT, load_demo
from ..core.remote import decode, encode
from .common import EXIT_INIT_FAILURE, EXIT_OK, setup_logging

logger = logging.getLogger(__name__)

DEFAULT_GAIN = 2.0


class LinearDynamicsServer:
    """REP server answering each position with the velocity of a linear DS."""

    def __init__(
        self,
        attractor: np.ndarray,
        gain: float = DEFAULT_GAIN,
        port: int = 5511,
        host: str = "*",
        context: Optional[zmq.Context] = None,
    ):
        """
        Args:
            attractor: DS equilibrium in world coordinates
            gain: Convergence rate [1/s]
            port: TCP port to bind (0 picks a free port)
            host: Interface to bind
            context: ZeroMQ context (defaults to the process-wide instance)
        """
        self.attractor = np.asarray(attractor, dtype=float).reshape(3)
        self.gain = float(gain)
        self._context = context or zmq.Context.instance()
        self._socket = self._context.socket(zmq.REP)
        self._socket.setsockopt(zmq.LINGER, 0)
        if port == 0:
            self.port = self._socket.bind_to_random_port(f"tcp://{host}")
        else:
            self._socket.bind(f"tcp://{host}:{port}")
            self.port = int(port)
        self._stop = threading.Event()
        self.served = 0

    def velocity(self, position: np.ndarray) -> np.ndarray:
        return -self.gain * (np.asarray(position, dtype=float) - self.attractor)

    def serve_once(self, timeout_ms: int = 100) -> bool:
        """
        Answer at most one request.

        Returns:
            True if a request was served
        """
        if not self._socket.poll(timeout_ms, zmq.POLLIN):
            return False
        payload = self._socket.recv()
        try:
            reply = self.velocity(decode(payload))
        except ValueError as e:
            # a REP socket must answer; non-finite values mark the reply invalid
            logger.warning("Malformed request: %s", e)
            reply = np.full(3, np.nan)
        self._socket.send(encode(reply))
        self.served += 1
        return True

    def serve_forever(self) -> None:
        while not self._stop.is_set():
            self.serve_once()

    def stop(self) -> None:
        self._stop.set()

    def close(self) -> None:
        self._socket.close(linger=0)

    def __repr__(self):
        return f"LinearDynamicsServer(port={self.port}, attractor={self.attractor}, gain={self.gain})"


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the reference dynamics server."""
    parser = argparse.ArgumentParser(
        description='Linear attractor dynamics served over ZeroMQ for the Panda demos'
    )
    parser.add_argument(
        'demo',
        nargs='?',
        default='1',
        help='Demonstration id, the attractor is its offset (default: 1)'
    )
    parser.add_argument(
        '--demos-root',
        type=str,
        default=str(PROJECT_ROOT / "rsc" / "demos"),
        help='Folder holding demo_<id> directories'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=5511,
        help='TCP port (default: 5511)'
    )
    parser.add_argument(
        '--gain',
        type=float,
        default=None,
        help=f'DS gain in 1/s (default: from dynamics_params.yaml, else {DEFAULT_GAIN})'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Debug logging'
    )
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        demo = load_demo(args.demos_root, args.demo, num_trajectories=1)
    except (OSError, ValueError) as e:
        print(f"✗ Initialization failed: {e}")
        return EXIT_INIT_FAILURE

    gain = args.gain if args.gain is not None else (demo.gain or DEFAULT_GAIN)
    try:
        server = LinearDynamicsServer(demo.offset, gain, args.port)
    except zmq.ZMQError as e:
        print(f"✗ Cannot bind port {args.port}: {e}")
        return EXIT_INIT_FAILURE

    print(f"✓ Serving {server}")
    print("Press Ctrl+C to stop\n")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nKeyboard interrupt received...")
    finally:
        server.close()
        print(f"Served {server.served} requests.")
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
