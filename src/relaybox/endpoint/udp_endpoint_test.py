import socket
import threading
import unittest
from unittest.mock import Mock

import timeout_decorator
from hamcrest import assert_that, is_, calling, raises, contains_string, any_of

from relaybox.endpoint.base import EndpointClosedError, EndpointError
from relaybox.endpoint.udp_endpoint import UdpEndpoint, open_udp
from relaybox.endpoint.uri import parse_address
from relaybox.support.testing import debug_timeout


class UdpEndpointTest(unittest.TestCase):
    """ functional tests over the loopback interface. """

    def setUp(self):
        self.listener = open_udp(parse_address('udp://127.0.0.1:0?mode=listener'))
        self.port = self.listener.sock.getsockname()[1]
        self.caller = open_udp(parse_address('udp://127.0.0.1:%d' % self.port))
        self.buffer = bytearray(1316)

    def tearDown(self):
        self.caller.close()
        self.listener.close()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_datagrams_both_ways(self):
        assert_that(self.caller.write(b'hello'), is_(5))
        assert_that(self.listener.read(self.buffer), is_(5))
        assert_that(bytes(self.buffer[:5]), is_(b'hello'))

        assert_that(self.listener.write(b'back'), is_(4))
        assert_that(self.caller.read(self.buffer), is_(4))
        assert_that(bytes(self.buffer[:4]), is_(b'back'))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_message_boundaries_are_kept(self):
        self.caller.write(b'one')
        self.caller.write(b'three')
        assert_that(self.listener.read(self.buffer), is_(3))
        assert_that(self.listener.read(self.buffer), is_(5))

    def test_listener_without_peer_drops_writes(self):
        assert_that(self.listener.write(b'nobody'), is_(0))
        assert_that(self.listener.stats().packets_sent, is_(0))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_empty_datagram_reads_as_zero(self):
        self.caller.write(b'')
        assert_that(self.listener.read(self.buffer), is_(0))
        assert_that(self.listener.closed, is_(False))

    def test_read_timeout_returns_zero(self):
        assert_that(self.listener.read(self.buffer, 0.01), is_(0))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_close_wakes_blocked_reader(self):
        errors = []

        def reader():
            try:
                self.listener.read(self.buffer)
            except EndpointClosedError as e:
                errors.append(e)

        t = threading.Thread(target=reader)
        t.start()
        t.join(0.1)
        self.listener.close()
        t.join()
        assert_that(len(errors), is_(1))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_counters(self):
        self.caller.write(b'abc')
        self.listener.read(self.buffer)
        assert_that(self.caller.stats(), is_((3, 0, 1, 0)))
        assert_that(self.listener.stats(), is_((0, 3, 0, 1)))


class UdpEndpointUnitTest(unittest.TestCase):

    def connected(self):
        sock = Mock()
        sock.gettimeout.return_value = None
        return sock, UdpEndpoint(sock, ('127.0.0.1', 4200))

    def test_caller_description_names_peer(self):
        sock, sut = self.connected()
        assert_that(str(sut), contains_string("udp ('127.0.0.1', 4200)"))

    def test_socket_error_on_send_is_endpoint_error(self):
        sock, sut = self.connected()
        sock.send.side_effect = OSError(101, "Network is unreachable")
        assert_that(calling(sut.write).with_args(b'x'), raises(EndpointError, 'unreachable'))

    def test_refused_send_drops_the_datagram(self):
        sock, sut = self.connected()
        sock.send.side_effect = ConnectionRefusedError(111, "Connection refused")
        assert_that(sut.write(b'xyz'), is_(0))
        assert_that(sut.closed, is_(False))
        assert_that(sut.stats(), is_((0, 0, 0, 0)))

    def test_refused_receive_reads_nothing(self):
        sock, sut = self.connected()
        sock.recv_into.side_effect = ConnectionRefusedError(111, "Connection refused")
        assert_that(sut.read(bytearray(10)), is_(0))
        assert_that(sut.closed, is_(False))

    def test_close_tolerates_shutdown_error(self):
        sock = Mock()
        sock.gettimeout.return_value = None
        sock.shutdown.side_effect = OSError("not connected")
        sut = UdpEndpoint(sock)
        sut.close()
        sock.shutdown.assert_called_once_with(socket.SHUT_RDWR)
        sock.close.assert_called_once_with()

    def test_bind_failure_is_endpoint_error(self):
        first = open_udp(parse_address('udp://127.0.0.1:0?mode=listener'))
        try:
            port = first.sock.getsockname()[1]
            taken = parse_address('udp://127.0.0.1:%d?bind=127.0.0.1:%d' % (port, port))
            assert_that(calling(open_udp).with_args(taken), raises(EndpointError, 'unable to open'))
        finally:
            first.close()

    def test_unresolvable_host(self):
        address = parse_address('udp://host.invalid:4200')
        assert_that(calling(open_udp).with_args(address), raises(EndpointError))


class UdpCallerWithoutReceiverTest(unittest.TestCase):

    def setUp(self):
        # a port that was free a moment ago and has no receiver now
        unused = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        unused.bind(('127.0.0.1', 0))
        self.port = unused.getsockname()[1]
        unused.close()
        self.sut = open_udp(parse_address('udp://127.0.0.1:%d' % self.port))

    def tearDown(self):
        self.sut.close()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_writes_to_a_port_nobody_listens_on_do_not_fail(self):
        for _ in range(3):
            assert_that(self.sut.write(b'anyone?'), is_(any_of(0, 7)))
        assert_that(self.sut.read(bytearray(16), 0.05), is_(0))
        assert_that(self.sut.closed, is_(False))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_receiver_that_starts_later_gets_data(self):
        self.sut.write(b'early')
        receiver = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            receiver.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            receiver.bind(('127.0.0.1', self.port))
            receiver.settimeout(5)
            self.sut.write(b'late')     # may find a pending refusal from the first datagram
            assert_that(self.sut.write(b'late'), is_(4))
            assert_that(receiver.recv(16), is_(b'late'))
        finally:
            receiver.close()
