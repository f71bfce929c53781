"""Tests for the ZeroMQ remote dynamics client and the reference server."""

import struct
import time

import numpy as np
import pytest
import zmq

from panda_ds_control.core.errors import RemoteTimeout, TransportError
from panda_ds_control.core.remote import RemoteDynamics, decode, encode

from conftest import ATTRACTOR, wait_for


def echo_velocity(index, payload):
    return encode(-2.0 * (decode(payload) - ATTRACTOR))


class TestWireFormat:
    def test_three_little_endian_doubles(self):
        assert encode([1.0, -2.5, 3.25]) == struct.pack("<3d", 1.0, -2.5, 3.25)
        np.testing.assert_array_equal(decode(struct.pack("<3d", 0.1, 0.2, 0.3)), [0.1, 0.2, 0.3])

    def test_wrong_sizes_rejected(self):
        with pytest.raises(ValueError):
            encode([1.0, 2.0])
        with pytest.raises(ValueError):
            decode(b"\x00" * 16)


class TestRemoteDynamics:
    def test_round_trip_with_reference_server(self, ds_server):
        position = np.array([0.4, 0.0, 0.5])
        with RemoteDynamics("127.0.0.1", ds_server.port, timeout_s=0.5) as remote:
            v = remote.request(position)
        np.testing.assert_allclose(v, -2.0 * (position - ATTRACTOR))
        assert wait_for(lambda: ds_server.served == 1)

    def test_requests_are_answered_in_order(self, ds_server):
        with RemoteDynamics("127.0.0.1", ds_server.port, timeout_s=0.5) as remote:
            for x in np.linspace(0.0, 1.0, 5):
                position = np.array([x, 0.1, 0.2])
                np.testing.assert_allclose(remote.request(position), -2.0 * (position - ATTRACTOR))
            assert remote.requests == 5
            assert remote.timeouts == 0

    def test_timeout_without_server(self, free_port):
        remote = RemoteDynamics("127.0.0.1", free_port, timeout_s=0.02)
        start = time.monotonic()
        with pytest.raises(RemoteTimeout):
            remote.request(np.zeros(3))
        assert time.monotonic() - start < 1.0
        assert remote.timeouts == 1
        # the socket was replaced, so another request is allowed and times out again
        with pytest.raises(RemoteTimeout):
            remote.request(np.zeros(3))
        assert remote.timeouts == 2
        remote.close()

    def test_recovers_after_timeout(self, scripted_server):
        def slow_first(index, payload):
            if index == 0:
                time.sleep(0.2)
            return echo_velocity(index, payload)

        server = scripted_server(slow_first)
        remote = RemoteDynamics("127.0.0.1", server.port, timeout_s=0.05)
        with pytest.raises(RemoteTimeout):
            remote.request(np.zeros(3))

        # let the server drop the late reply to the discarded socket
        time.sleep(0.4)
        remote.timeout_s = 1.0
        position = np.array([0.3, 0.1, 0.4])
        np.testing.assert_allclose(remote.request(position), -2.0 * (position - ATTRACTOR))
        remote.close()

    def test_malformed_reply(self, scripted_server):
        server = scripted_server(lambda index, payload: struct.pack("<2d", 1.0, 2.0))
        with RemoteDynamics("127.0.0.1", server.port, timeout_s=1.0) as remote:
            with pytest.raises(RemoteTimeout, match="Malformed"):
                remote.request(np.zeros(3))

    def test_non_finite_reply(self, scripted_server):
        server = scripted_server(lambda index, payload: encode([np.nan, 0.0, 0.0]))
        with RemoteDynamics("127.0.0.1", server.port, timeout_s=1.0) as remote:
            with pytest.raises(RemoteTimeout, match="Non-finite"):
                remote.request(np.zeros(3))

    def test_reference_server_answers_malformed_request_with_nan(self, ds_server):
        socket = zmq.Context.instance().socket(zmq.REQ)
        socket.setsockopt(zmq.LINGER, 0)
        socket.connect(f"tcp://127.0.0.1:{ds_server.port}")
        socket.send(b"\x00" * 5)
        assert socket.poll(1000, zmq.POLLIN)
        assert np.all(np.isnan(decode(socket.recv())))
        socket.close()

    def test_closed_client_raises_transport_error(self, ds_server):
        remote = RemoteDynamics("127.0.0.1", ds_server.port, timeout_s=0.5)
        remote.close()
        with pytest.raises(TransportError):
            remote.request(np.zeros(3))

    def test_invalid_timeout(self):
        with pytest.raises(ValueError):
            RemoteDynamics("127.0.0.1", 5511, timeout_s=0.0)
