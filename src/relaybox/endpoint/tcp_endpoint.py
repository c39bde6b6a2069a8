import logging
import socket

from relaybox.endpoint.base import AbstractEndpoint, EndpointClosedError, EndpointError

logger = logging.getLogger(__name__)

default_connect_timeout = 5
accept_poll_interval = 1


class TcpEndpoint(AbstractEndpoint):
    """
    An endpoint over a connected stream socket. Reads return whatever is available, up to the buffer
    size, so message boundaries are not preserved. The peer closing its end is reported as
    EndpointClosedError rather than as a zero-length read.
    :param sock The open, connected socket. The endpoint owns it.
    """

    def __init__(self, sock: socket.socket, peer=None, description=None):
        super().__init__(description or ('tcp %s' % (peer,)))
        self.sock = sock
        self.peer = peer
        self._timeout = sock.gettimeout()

    def _read(self, buffer, timeout):
        if timeout != self._timeout:
            self.sock.settimeout(timeout)
            self._timeout = timeout
        try:
            count = self.sock.recv_into(buffer)
        except socket.timeout:
            return 0
        if count == 0 and len(buffer) and not self.closed:
            raise EndpointClosedError("%s: peer closed the connection" % self)
        return count

    def _write(self, data):
        return self.sock.send(data)

    def _close(self):
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass    # the peer may have closed the socket already
        finally:
            self.sock.close()


class TcpListener:
    """
    A listening socket that hands out one TcpEndpoint per accepted peer.
    It stays open between accepts, so a route can be re-established on the same port.
    """

    def __init__(self, sock: socket.socket, address):
        self.sock = sock
        self.address = address
        self.sock.settimeout(accept_poll_interval)

    @classmethod
    def open(cls, address, backlog=1):
        """ binds and listens on the (host, port) address. """
        host, port = address
        sock = socket.socket(socket.AF_INET6 if ':' in host else socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(backlog)
        except OSError as e:
            sock.close()
            raise EndpointError("unable to listen on %s:%s: %s" % (host, port, e)) from e
        logger.info("listening on %s:%s" % sock.getsockname()[:2])
        return cls(sock, address)

    @property
    def closed(self):
        return self.sock.fileno() < 0

    def accept(self, cancel=None) -> TcpEndpoint:
        """
        Waits for a peer to connect.
        :param cancel: checked while waiting. When it fires, EndpointClosedError is raised.
        """
        while cancel is None or not cancel.cancelled:
            try:
                sock, peer = self.sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self.closed:
                    raise EndpointClosedError("listener on %s:%s was closed" % self.address) from e
                raise EndpointError("accept failed on %s:%s: %s" % (self.address + (e,))) from e
            sock.settimeout(None)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            logger.info("accepted connection from %s" % (peer,))
            return TcpEndpoint(sock, peer)
        raise EndpointClosedError("cancelled while waiting for a peer on %s:%s" % self.address)

    def close(self):
        if not self.closed:
            self.sock.close()
            logger.info("stopped listening on %s:%s" % self.address)


def connect_tcp(address, timeout=None) -> TcpEndpoint:
    """ connects to the (host, port) address. """
    try:
        sock = socket.create_connection(address, timeout or default_connect_timeout)
    except OSError as e:
        raise EndpointError("unable to connect to %s:%s: %s" % (address + (e,))) from e
    sock.settimeout(None)
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    logger.info("connected to %s:%s" % address)
    return TcpEndpoint(sock, address)
