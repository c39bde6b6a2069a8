import itertools
import logging
import threading
from abc import abstractmethod
from collections import namedtuple

logger = logging.getLogger(__name__)


class EndpointError(Exception):
    """ Indicates an error condition with an endpoint. These are transient: the route may be re-established. """


class EndpointClosedError(EndpointError):
    """ The endpoint was closed locally, or the stream peer closed its end in an orderly way. """


class NoReachablePeerError(EndpointError):
    """ None of the candidate addresses could be connected. """


EndpointStats = namedtuple('EndpointStats', ['bytes_sent', 'bytes_received', 'packets_sent', 'packets_received'])

_endpoint_ids = itertools.count(1)


def next_endpoint_id():
    """ allocates a process-wide unique endpoint id. """
    return next(_endpoint_ids)


class Endpoint:
    """ An endpoint is one end of a bi-directional data channel to a peer. """

    @property
    @abstractmethod
    def id(self) -> int:
        """ an identifier that is stable for the lifetime of the endpoint """
        raise NotImplementedError

    @abstractmethod
    def read(self, buffer, timeout=None) -> int:
        """
        Reads one message (or as many bytes as are available on a stream) into buffer.
        :param buffer: a writable bytes-like object. At most len(buffer) bytes are read.
        :param timeout: seconds to wait for data, or None to wait indefinitely.
        :return: the number of bytes read. 0 when the wait timed out or the read woke with no data.
        Raises EndpointClosedError when the endpoint is closed, EndpointError for other failures.
        """
        raise NotImplementedError

    @abstractmethod
    def write(self, data) -> int:
        """
        Writes data to the peer.
        :return: the number of bytes written, which may be less than len(data).
        """
        raise NotImplementedError

    @property
    @abstractmethod
    def closed(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def close(self):
        """ Closes the endpoint. A read blocked on another thread returns with EndpointClosedError. """
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> EndpointStats:
        raise NotImplementedError


class AbstractEndpoint(Endpoint):
    """ Keeps the traffic counters and the closed state. Subclasses perform the I/O. """

    def __init__(self, description=None):
        self._id = next_endpoint_id()
        self.description = description
        self._closed = False
        self._lock = threading.Lock()
        self._bytes_sent = self._bytes_received = 0
        self._packets_sent = self._packets_received = 0

    @property
    def id(self):
        return self._id

    @property
    def closed(self):
        return self._closed

    def read(self, buffer, timeout=None):
        self.check_open()
        try:
            count = self._read(buffer, timeout)
        except OSError as e:
            self.check_open()
            raise EndpointError("read failed on %s: %s" % (self, e)) from e
        # a read woken by close() reports nothing, even if it returned 0 bytes
        self.check_open()
        if count:
            with self._lock:
                self._bytes_received += count
                self._packets_received += 1
        return count

    def write(self, data):
        self.check_open()
        try:
            count = self._write(data)
        except OSError as e:
            self.check_open()
            raise EndpointError("write failed on %s: %s" % (self, e)) from e
        if count:
            with self._lock:
                self._bytes_sent += count
                self._packets_sent += 1
        return count

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._close()
        logger.debug("closed %s" % self)

    def stats(self):
        with self._lock:
            return EndpointStats(self._bytes_sent, self._bytes_received, self._packets_sent, self._packets_received)

    def check_open(self):
        if self._closed:
            raise EndpointClosedError("%s is closed" % self)

    @abstractmethod
    def _read(self, buffer, timeout) -> int:
        """ Template method that reads into buffer. Timeouts return 0. OSError is translated by the caller. """
        raise NotImplementedError

    @abstractmethod
    def _write(self, data) -> int:
        raise NotImplementedError

    @abstractmethod
    def _close(self):
        """ releases the underlying resource. Called at most once. """
        raise NotImplementedError

    def __str__(self):
        return "%s(%s, %s)" % (type(self).__name__, self._id, self.description)
