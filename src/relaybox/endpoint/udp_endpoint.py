import logging
import socket

from relaybox.endpoint.base import AbstractEndpoint, EndpointError

logger = logging.getLogger(__name__)


class UdpEndpoint(AbstractEndpoint):
    """
    An endpoint that exchanges datagrams. Each read returns one datagram, truncated to the buffer size.

    A connected socket talks to its one peer. An unconnected (listening) socket replies to whoever
    sent the most recent datagram; until something has been received there is no one to write to,
    and writes report 0 bytes.

    A connected socket reports an ICMP port unreachable from its peer as a refused connection on the
    next send or receive. The peer may simply not be listening yet, so this reads and writes 0 bytes
    instead of failing the endpoint.
    :param sock     the bound, and optionally connected, datagram socket. The endpoint owns it.
    :param peer     the remote address when the socket is connected
    """

    def __init__(self, sock: socket.socket, peer=None, description=None):
        super().__init__(description or 'udp %s' % (peer or 'listener',))
        self.sock = sock
        self.connected = peer is not None
        self.peer = peer
        self._timeout = sock.gettimeout()

    def _set_timeout(self, timeout):
        if timeout != self._timeout:
            self.sock.settimeout(timeout)
            self._timeout = timeout

    def _read(self, buffer, timeout):
        self._set_timeout(timeout)
        try:
            if self.connected:
                return self.sock.recv_into(buffer)
            count, sender = self.sock.recvfrom_into(buffer)
        except socket.timeout:
            return 0
        except ConnectionRefusedError:
            logger.debug("%s: %s is not receiving" % (self, self.peer))
            return 0
        if self.closed:
            return 0
        if sender != self.peer:
            logger.info("%s now replies to %s" % (self, sender))
            self.peer = sender
        return count

    def _write(self, data):
        if self.peer is None:
            logger.debug("%s has no peer yet, dropping %d bytes" % (self, len(data)))
            return 0
        try:
            if self.connected:
                return self.sock.send(data)
            return self.sock.sendto(data, self.peer)
        except ConnectionRefusedError:
            logger.debug("%s: %s is not receiving, dropping %d bytes" % (self, self.peer, len(data)))
            return 0

    def _close(self):
        try:
            # wakes a reader blocked in recv
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        finally:
            self.sock.close()


def _resolve(host, port):
    """ resolves a remote address, preferring IPv4 when the host has both """
    try:
        infos = socket.getaddrinfo(host, port, 0, socket.SOCK_DGRAM)
    except socket.gaierror as e:
        raise EndpointError("cannot resolve %s:%s: %s" % (host, port, e)) from e
    family, _, _, _, sockaddr = next((info for info in infos if info[0] == socket.AF_INET), infos[0])
    return family, sockaddr


def open_udp(address) -> UdpEndpoint:
    """
    Opens a UDP endpoint for the given EndpointAddress: a caller connects to its remote address,
    a listener binds its port and waits for a peer to send first.
    """
    if address.listener:
        host = address.host or '0.0.0.0'
        family, sockaddr = socket.AF_INET6 if ':' in host else socket.AF_INET, (host, address.port)
    else:
        family, sockaddr = _resolve(address.host, address.port)
    sock = socket.socket(family, socket.SOCK_DGRAM)
    try:
        if address.listener:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(sockaddr)
            logger.info("listening for datagrams on %s" % (sockaddr,))
            return UdpEndpoint(sock, description='udp listener %s' % (sockaddr,))
        if address.bind:
            sock.bind(address.bind)
        sock.connect(sockaddr)
        logger.info("sending datagrams to %s" % (sockaddr,))
        return UdpEndpoint(sock, sockaddr)
    except OSError as e:
        sock.close()
        raise EndpointError("unable to open %s: %s" % (address, e)) from e
