"""
Shared fixtures: models built from the shipped MJCF, a scripted remote
dynamics stand-in and threaded ZeroMQ REP servers on free ports.
"""

import socket
import threading
import time

import matplotlib
matplotlib.use('Agg')

import numpy as np
import pytest
import zmq

from panda_ds_control.core.config import PROJECT_ROOT
from panda_ds_control.core.contracts import ReferenceFrame
from panda_ds_control.core.errors import RemoteTimeout
from panda_ds_control.core.model import RigidBodyModel
from panda_ds_control.demos.ds_server import LinearDynamicsServer

SCENE_XML = str(PROJECT_ROOT / "assets" / "franka_panda" / "scene.xml")
CONFIG_DIR = PROJECT_ROOT / "config"
DEMOS_ROOT = PROJECT_ROOT / "rsc" / "demos"
ATTRACTOR = np.array([0.5, 0.0, 0.35])


def make_model(reference=ReferenceFrame.LOCAL_WORLD_ALIGNED):
    model = RigidBodyModel.from_xml(SCENE_XML, "ee_site", reference=reference, dof=7)
    model.set_state(model.mid_range())
    return model


@pytest.fixture
def model():
    return make_model()


@pytest.fixture
def world_model():
    return make_model(ReferenceFrame.WORLD)


class FakeRemote:
    """Scripted remote dynamics: replies are popped in order, then `velocity` forever."""

    def __init__(self, replies=None, velocity=(0.0, 0.0, 0.0)):
        self.replies = list(replies or [])
        self.velocity = np.asarray(velocity, dtype=float)
        self.positions = []
        self.closed = False

    def request(self, position):
        self.positions.append(np.array(position, dtype=float))
        reply = self.replies.pop(0) if self.replies else self.velocity
        if isinstance(reply, Exception):
            raise reply
        reply = np.asarray(reply, dtype=float)
        if not np.all(np.isfinite(reply)):
            raise RemoteTimeout(f"Non-finite reply: {reply}")
        return reply

    def close(self):
        self.closed = True


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def ds_server():
    """Reference linear DS server on a random local port."""
    server = LinearDynamicsServer(ATTRACTOR, gain=2.0, port=0, host="127.0.0.1")
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.stop()
    thread.join(timeout=2.0)
    server.close()


class ScriptedServer:
    """REP server answering each request with handler(index, payload) -> bytes."""

    def __init__(self, handler):
        self.handler = handler
        self._context = zmq.Context.instance()
        self._socket = self._context.socket(zmq.REP)
        self._socket.setsockopt(zmq.LINGER, 0)
        self.port = self._socket.bind_to_random_port("tcp://127.0.0.1")
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self.served = 0

    def _serve(self):
        while not self._stop.is_set():
            if not self._socket.poll(50, zmq.POLLIN):
                continue
            payload = self._socket.recv()
            self._socket.send(self.handler(self.served, payload))
            self.served += 1

    def start(self):
        self._thread.start()
        return self

    def close(self):
        self._stop.set()
        self._thread.join(timeout=2.0)
        self._socket.close(linger=0)


@pytest.fixture
def scripted_server():
    servers = []

    def factory(handler):
        server = ScriptedServer(handler).start()
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.close()


@pytest.fixture
def free_port():
    """A local TCP port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class FakeTime:
    """Manual clock for the deadline pacer."""

    def __init__(self, start=100.0):
        self.now = start
        self.sleeps = []

    def clock(self):
        return self.now

    def sleep(self, duration):
        self.sleeps.append(duration)
        self.now += duration

    def advance(self, duration):
        self.now += duration


@pytest.fixture
def fake_time():
    return FakeTime()


class FakeGraphics:
    """Headless viewer double that closes after `close_after` updates."""

    def __init__(self, close_after=None, init_ok=True):
        self.close_after = close_after
        self.init_ok = init_ok
        self.updates = 0
        self.trajectories = []
        self.initialized = False
        self.shut_down = False

    def initialize(self):
        self.initialized = True
        return self.init_ok

    def update(self):
        self.updates += 1

    def is_running(self):
        return self.close_after is None or self.updates < self.close_after

    def add_trajectory(self, points, color="green"):
        self.trajectories.append((np.asarray(points), color))

    def shutdown(self):
        self.shut_down = True


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
