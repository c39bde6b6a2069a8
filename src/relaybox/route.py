import logging
import threading
from collections import namedtuple
from concurrent.futures import Future

from relaybox.config.config import ConfigError, RouteConfig
from relaybox.connection import ConnectionFactory, ConnectionSlot
from relaybox.endpoint.base import EndpointClosedError, EndpointError
from relaybox.endpoint.uri import parse_address
from relaybox.stats import StatsWriter
from relaybox.support.cancel import CancellationToken
from relaybox.support.events import EventSource
from relaybox.support.retry_strategy import PeriodRetryStrategy

logger = logging.getLogger(__name__)

# the minimum time between the starts of consecutive route attempts, in seconds
reconnect_period = 1

FORWARD = '[SRC->DST]'
BACKWARD = '[DST->SRC]'

RETRY = 'retry'
STOP = 'stop'


class RouteEvent:
    """ base class for events fired by a forwarding loop. """
    def __init__(self, description):
        self.description = description


class SpuriousReadEvent(RouteEvent):
    """ A read returned no data. The loop reads again. """


class ShortWriteEvent(RouteEvent):
    """ The destination accepted fewer bytes than were read. The remainder is dropped. """
    def __init__(self, description, expected, written):
        super().__init__(description)
        self.expected = expected
        self.written = written

    @property
    def dropped(self):
        return self.expected - max(self.written, 0)


def forward(src, dst, message_size, cancel, description='', events=None, log=logger):
    """
    Relays messages from src to dst until cancel is set.

    Each cycle reads once from src, waiting as long as it takes, and writes exactly what was
    read to dst. A read of zero bytes is not the end of the stream: it is reported and the read
    is retried. A write that falls short is reported and the unwritten bytes are dropped;
    the next cycle starts with a fresh read.

    cancel is only checked between cycles. A read blocked on a quiet source returns when
    the source is closed.

    Endpoint errors are not handled here and propagate to the caller.
    """
    buffer = bytearray(message_size)
    view = memoryview(buffer)
    log.info("%s started" % description)
    while not cancel.cancelled:
        bytes_read = src.read(buffer, None)
        if bytes_read == 0:
            log.info("%s read 0 bytes on a socket (spurious read-ready?). Retrying." % description)
            if events is not None:
                events.fire(SpuriousReadEvent(description))
            continue

        bytes_written = dst.write(view[:bytes_read])
        if bytes_written != bytes_read:
            log.info("%s write returned %d bytes, expected %d" % (description, bytes_written, bytes_read))
            if events is not None:
                events.fire(ShortWriteEvent(description, bytes_read, bytes_written))
    log.info("%s stopped" % description)


class LoopResult(namedtuple('LoopResult', ['description', 'error', 'closed_attempt'])):
    """
    How a forwarding loop ended.
    :param error: the endpoint error that stopped the loop, or None when it was cancelled
    :param closed_attempt: True when this loop's failure closed the route attempt. A loop that
        stopped because another party closed the attempt has this False.
    """
    __slots__ = ()

    @property
    def failed(self):
        return self.error is not None


class RouteAttempt:
    """ The source and destination endpoints of one connection cycle. """

    def __init__(self, number, source, destination):
        self.number = number
        self.source = source
        self.destination = destination
        self._lock = threading.RLock()     # shutdown may close from a signal handler on the same thread
        self.closed = False

    @property
    def endpoints(self):
        return (self.source, self.destination)

    def close(self):
        """
        Closes both endpoints, which releases any loop blocked reading from them.
        :return: True if this call closed the attempt, False if it was already closed.
        """
        with self._lock:
            if self.closed:
                return False
            self.closed = True
        for endpoint in self.endpoints:
            endpoint.close()
        return True

    def __str__(self):
        return "attempt %d (%s -> %s)" % (self.number, self.source, self.destination)


class Router:
    """
    Relays data between a source and a destination peer, re-establishing the route when it fails.

    Each attempt connects the destination and then the source, registers both endpoints for
    statistics, and forwards source to destination on the calling thread. When bidirectional,
    destination to source runs on a background thread at the same time. Attempts start at
    least a second apart.

    :param config:      the RouteConfig for the run
    :param cancel:      the CancellationToken that ends the run. One is created if not given.
    :param connections: the ConnectionFactory that opens endpoints
    :param stats_factory:   constructs the statistics writer from a path and an interval in seconds
    :param retry_strategy:  spaces out attempts
    """

    def __init__(self, config: RouteConfig, cancel=None, connections=None, stats_factory=StatsWriter,
                 retry_strategy=None, log=logger):
        self.config = config
        self.cancel = cancel if cancel is not None else CancellationToken()
        self.connections = connections if connections is not None else ConnectionFactory(self.cancel)
        self.stats_factory = stats_factory
        self.retry_strategy = retry_strategy if retry_strategy is not None else PeriodRetryStrategy(reconnect_period)
        self.logger = log
        self.source_slot = ConnectionSlot('source')
        self.destination_slot = ConnectionSlot('destination')
        self.events = EventSource(log)
        self.attempt = None         # the active RouteAttempt
        self.attempts = 0

    def run(self, source_candidates, destination_candidates):
        """
        Routes until cancelled, or after one attempt when reconnect is off.
        Candidates are URIs or EndpointAddress instances, tried in order.
        Endpoint errors are logged and, with reconnect on, retried. ConfigError is raised.
        :return: the number of attempts made
        """
        sources = self._addresses(source_candidates)
        destinations = self._addresses(destination_candidates)
        try:
            while self.retry_strategy.wait(self.cancel):
                if self._attempt(sources, destinations) == STOP:
                    break
        finally:
            self.source_slot.release()
            self.destination_slot.release()
        return self.attempts

    def shutdown(self):
        """
        Stops the run from another thread or a signal handler: cancels the token, closes the
        active attempt's endpoints so that blocked reads return, and closes the listeners held
        between attempts so that a pending accept returns.
        """
        self.cancel.cancel()
        attempt = self.attempt
        if attempt is not None:
            self.logger.info("shutting down %s" % attempt)
            attempt.close()
        self.source_slot.release()
        self.destination_slot.release()

    def _addresses(self, candidates):
        addresses = [parse_address(c) if isinstance(c, str) else c for c in candidates]
        if not addresses:
            raise ConfigError("no candidate addresses given")
        return addresses

    def _attempt(self, sources, destinations):
        """ runs one connection cycle and decides whether another should follow. """
        self.attempts += 1
        number = self.attempts
        stats = self._create_stats()
        attempt = None
        results = []
        try:
            attempt = self._connect(number, sources, destinations)
            results = self._route(attempt, stats)
        except EndpointError as e:
            results = [LoopResult('connect', e, True)]
        finally:
            self.attempt = None
            if attempt is not None:
                attempt.close()
            if stats is not None:
                stats.close()
        self._log_results(number, results)
        return self.decide(number, results)

    def decide(self, number, results):
        """ translates the outcome of an attempt into RETRY or STOP. """
        if self.cancel.cancelled or not self.config.reconnect:
            return STOP
        failures = sum(1 for r in results if r.failed)
        self.logger.info("attempt %d ended with %d failure(s), reconnecting" % (number, failures))
        return RETRY

    def _create_stats(self):
        config = self.config
        if not config.write_stats:
            return None
        try:
            return self.stats_factory(config.stats_file, config.stats_interval_ms / 1000)
        except OSError as e:
            raise ConfigError("unable to write statistics to %s: %s" % (config.stats_file, e)) from e

    def _connect(self, number, sources, destinations):
        destination = self.connections.connect(destinations, self.destination_slot)
        try:
            source = self.connections.connect(sources, self.source_slot)
        except BaseException:
            destination.close()
            raise
        if not self.config.reconnect:
            # no further peers are accepted on the listeners
            self.source_slot.disable()
            self.destination_slot.disable()
        attempt = RouteAttempt(number, source, destination)
        self.attempt = attempt
        if self.cancel.cancelled:
            attempt.close()
        self.logger.info("routing %s" % attempt)
        return attempt

    def _route(self, attempt, stats):
        """
        Forwards in one or both directions until the loops stop.
        :return: the LoopResult of each direction, forward first
        """
        if stats is not None:
            stats.add_socket(attempt.source)
            stats.add_socket(attempt.destination)
        try:
            backward = self._start_backward(attempt) if self.config.bidirectional else None
            results = [self._forward(attempt, attempt.source, attempt.destination, FORWARD)]
            if backward is not None:
                # the forward direction ending ends the attempt, release the backward reader
                attempt.close()
                results.append(backward.result())
            return results
        finally:
            if stats is not None:
                stats.remove_socket(attempt.source.id)
                stats.remove_socket(attempt.destination.id)

    def _forward(self, attempt, src, dst, description) -> LoopResult:
        try:
            forward(src, dst, self.config.message_size, self.cancel, description, self.events, self.logger)
            return LoopResult(description, None, False)
        except EndpointError as e:
            return LoopResult(description, e, attempt.close())

    def _start_backward(self, attempt) -> Future:
        """ runs the destination to source loop on a new thread. The future completes with its LoopResult. """
        future = Future()

        def run():
            try:
                future.set_result(self._forward(attempt, attempt.destination, attempt.source, BACKWARD))
            except BaseException as e:
                attempt.close()
                future.set_exception(e)

        future.set_running_or_notify_cancel()
        threading.Thread(target=run, name='route %d %s' % (attempt.number, BACKWARD), daemon=True).start()
        return future

    def _log_results(self, number, results):
        for result in results:
            if not result.failed:
                continue
            # closing the attempt, or shutting down, stops the other loop with an error of its own
            secondary = self.cancel.cancelled or \
                (isinstance(result.error, EndpointClosedError) and not result.closed_attempt)
            if secondary:
                self.logger.info("attempt %d %s stopped: %s" % (number, result.description, result.error))
            else:
                self.logger.error("attempt %d %s failed: %s" % (number, result.description, result.error))
