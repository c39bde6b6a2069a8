import csv
import logging
import os
import threading
import time
from datetime import datetime

from relaybox.support.async_loop import AsyncLoop

logger = logging.getLogger(__name__)

stats_header = ['Timepoint', 'SocketID', 'BytesSent', 'BytesRecv', 'PktSent', 'PktRecv',
                'MbpsSendRate', 'MbpsRecvRate']


def mbps(byte_count, seconds):
    return 0.0 if seconds <= 0 else byte_count * 8 / seconds / 1000000


class StatsWriter:
    """
    Periodically appends the traffic counters of the endpoints in use to a CSV file.

    Endpoints are added when they enter service and removed, by id, when they leave it.
    Sampling happens on a background thread started by the constructor; close() stops it
    and closes the file. The header row is written only when the file is new or empty.

    :param path     the CSV file to append to
    :param interval the time between samples, in seconds
    """

    def __init__(self, path, interval, clock=time.monotonic, log=logger):
        self.path = path
        self.interval = interval
        self.clock = clock
        self.logger = log
        self._lock = threading.Lock()
        self._endpoints = {}        # endpoint id -> endpoint
        self._previous = {}         # endpoint id -> (time, stats) of the previous sample
        new_file = not os.path.exists(path) or os.path.getsize(path) == 0
        self._file = open(path, 'a', newline='')
        self._writer = csv.writer(self._file)
        if new_file:
            self._writer.writerow(stats_header)
            self._file.flush()
        self._loop = AsyncLoop(self.sample, interval=interval, name='stats %s' % path, log=log)
        self._loop.start()
        self.logger.info("writing statistics to %s every %s ms" % (path, int(interval * 1000)))

    @property
    def socket_ids(self):
        with self._lock:
            return tuple(self._endpoints)

    def add_socket(self, endpoint):
        with self._lock:
            if endpoint.id in self._endpoints:
                self.logger.warning("socket %s is already sampled" % endpoint.id)
                return
            self._endpoints[endpoint.id] = endpoint
            self._previous[endpoint.id] = (self.clock(), endpoint.stats())

    def remove_socket(self, endpoint_id):
        with self._lock:
            if self._endpoints.pop(endpoint_id, None) is None:
                self.logger.warning("socket %s is not sampled" % endpoint_id)
            self._previous.pop(endpoint_id, None)

    def sample(self):
        """ writes one row per registered endpoint. """
        with self._lock:
            if self._file.closed:
                return
            now = self.clock()
            timepoint = datetime.now().isoformat(timespec='milliseconds')
            for endpoint_id, endpoint in self._endpoints.items():
                stats = endpoint.stats()
                then, previous = self._previous[endpoint_id]
                elapsed = now - then
                self._writer.writerow([
                    timepoint, endpoint_id,
                    stats.bytes_sent, stats.bytes_received, stats.packets_sent, stats.packets_received,
                    '%.3f' % mbps(stats.bytes_sent - previous.bytes_sent, elapsed),
                    '%.3f' % mbps(stats.bytes_received - previous.bytes_received, elapsed)])
                self._previous[endpoint_id] = (now, stats)
            self._file.flush()

    def close(self):
        """ stops sampling and closes the file. Endpoints still registered are dropped. """
        self._loop.stop()
        with self._lock:
            if self._endpoints:
                self.logger.warning("closing statistics with sockets still registered: %s" %
                                    ', '.join(str(i) for i in self._endpoints))
            self._endpoints.clear()
            self._previous.clear()
            self._file.close()
