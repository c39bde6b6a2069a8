import logging

from relaybox.endpoint.base import Endpoint, EndpointError, NoReachablePeerError
from relaybox.endpoint.tcp_endpoint import TcpListener, connect_tcp
from relaybox.endpoint.udp_endpoint import open_udp

logger = logging.getLogger(__name__)


class ConnectionSlot:
    """
    Holds the listening socket for one side of a route between connection attempts,
    so that a peer can reconnect to the same port.

    The slot is empty, holds a listener, or is disabled. Once disabled it closes any listener
    it holds and never retains another one, so no further peers are accepted.
    """

    def __init__(self, name):
        self.name = name
        self.listener = None
        self.disabled = False

    def retain(self, listener):
        if self.disabled:
            return False
        self.listener = listener
        return True

    def release(self):
        """ closes the listener, if any. The slot may retain a new one. """
        listener, self.listener = self.listener, None
        if listener is not None:
            listener.close()

    def disable(self):
        """ closes the listener, if any, and stops retaining listeners. """
        self.disabled = True
        self.release()

    def __str__(self):
        return self.name


class ConnectionFactory:
    """
    Produces a ready endpoint from an ordered list of candidate addresses.

    Callers connect outbound. TCP listeners accept one peer on the listener held by the slot,
    or on a new one which the slot then keeps. A UDP listener is ready as soon as it is bound.
    :param cancel   interrupts waiting for a peer to connect
    """

    def __init__(self, cancel=None, log=logger):
        self.cancel = cancel
        self.logger = log

    def connect(self, candidates, slot: ConnectionSlot) -> Endpoint:
        """
        Tries each candidate in order and returns the first endpoint that opens.
        Raises NoReachablePeerError if none do.
        """
        last_error = None
        for address in candidates:
            if self.cancel is not None and self.cancel.cancelled:
                break
            try:
                endpoint = self._open(address, slot)
                self.logger.info("%s connected: %s" % (slot, endpoint))
                return endpoint
            except EndpointError as e:
                self.logger.warning("%s: unable to connect to %s: %s" % (slot, address, e))
                last_error = e
        raise NoReachablePeerError("%s: no reachable peer among %s" %
                                   (slot, ', '.join(str(a) for a in candidates))) from last_error

    def _open(self, address, slot):
        if address.scheme == 'udp':
            return open_udp(address)
        if not address.listener:
            return connect_tcp(address.address, address.timeout)
        return self._accept(address, slot)

    def _accept(self, address, slot):
        listener = slot.listener
        if listener is None or listener.address != address.address:
            slot.release()
            listener = TcpListener.open(address.address)
            if not slot.retain(listener):
                try:
                    return listener.accept(self.cancel)
                finally:
                    listener.close()
        try:
            return listener.accept(self.cancel)
        except EndpointError:
            slot.release()
            raise
