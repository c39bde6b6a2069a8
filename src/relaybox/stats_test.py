import csv
import os
import shutil
import tempfile
import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_, contains_exactly, has_length

from relaybox.endpoint.base import EndpointStats
from relaybox.stats import StatsWriter, stats_header, mbps


def fake_endpoint(endpoint_id, *stats):
    endpoint = Mock()
    endpoint.id = endpoint_id
    endpoint.stats.side_effect = [EndpointStats(*s) for s in stats]
    return endpoint


class StatsWriterTest(unittest.TestCase):

    def setUp(self):
        self.directory = tempfile.mkdtemp()
        self.path = os.path.join(self.directory, 'stats.csv')
        self.now = 100.0
        self.log = Mock()
        self.sut = StatsWriter(self.path, 3600, clock=lambda: self.now, log=self.log)

    def tearDown(self):
        self.sut.close()
        shutil.rmtree(self.directory)

    def rows(self):
        with open(self.path, newline='') as f:
            return list(csv.reader(f))

    def test_header_written_once(self):
        self.sut.close()
        self.sut = StatsWriter(self.path, 3600, log=self.log)
        self.sut.close()
        assert_that(self.rows(), is_([stats_header]))

    def test_sample_writes_row_per_socket(self):
        self.sut.add_socket(fake_endpoint(7, (0, 0, 0, 0), (1000000, 250000, 10, 5)))
        self.now = 102.0
        self.sut.sample()
        rows = self.rows()
        assert_that(rows, has_length(2))
        assert_that(rows[1][1:], is_(['7', '1000000', '250000', '10', '5', '4.000', '1.000']))

    def test_removed_socket_is_not_sampled(self):
        self.sut.add_socket(fake_endpoint(1, (0, 0, 0, 0)))
        self.sut.add_socket(fake_endpoint(2, (0, 0, 0, 0), (1, 1, 1, 1)))
        assert_that(self.sut.socket_ids, contains_exactly(1, 2))
        self.sut.remove_socket(1)
        assert_that(self.sut.socket_ids, contains_exactly(2))
        self.now = 101.0
        self.sut.sample()
        assert_that([row[1] for row in self.rows()[1:]], is_(['2']))

    def test_duplicate_and_unknown_are_logged(self):
        endpoint = fake_endpoint(3, (0, 0, 0, 0))
        self.sut.add_socket(endpoint)
        self.sut.add_socket(endpoint)
        self.sut.remove_socket(4)
        assert_that(self.log.warning.call_count, is_(2))
        assert_that(self.sut.socket_ids, contains_exactly(3))

    def test_sample_after_close_does_nothing(self):
        self.sut.add_socket(fake_endpoint(3, (0, 0, 0, 0)))
        self.sut.close()
        self.sut.sample()
        assert_that(self.rows(), is_([stats_header]))


class MbpsTest(unittest.TestCase):

    def test_rate(self):
        assert_that(mbps(125000, 1), is_(1.0))

    def test_no_elapsed_time(self):
        assert_that(mbps(125000, 0), is_(0.0))
