import unittest

from hamcrest import assert_that, is_, calling, raises, equal_to

from relaybox.config.config import ConfigError
from relaybox.endpoint.uri import parse_address, parse_addresses, EndpointAddress, CALLER, LISTENER


class ParseAddressTest(unittest.TestCase):

    def test_caller(self):
        sut = parse_address('udp://127.0.0.1:4200')
        assert_that(sut, is_(equal_to(EndpointAddress('udp', '127.0.0.1', 4200, CALLER, {}))))
        assert_that(sut.listener, is_(False))
        assert_that(sut.address, is_(('127.0.0.1', 4200)))

    def test_empty_host_is_listener(self):
        sut = parse_address('tcp://:9000')
        assert_that(sut.mode, is_(LISTENER))
        assert_that(sut.address, is_(('', 9000)))

    def test_explicit_mode_overrides(self):
        sut = parse_address('tcp://0.0.0.0:9000?mode=listener')
        assert_that(sut.listener, is_(True))
        assert_that(sut.host, is_('0.0.0.0'))

    def test_scheme_is_case_insensitive(self):
        assert_that(parse_address('UDP://host:1').scheme, is_('udp'))

    def test_options(self):
        sut = parse_address('udp://host:1?bind=0.0.0.0:5000&timeout=2.5')
        assert_that(sut.bind, is_(('0.0.0.0', 5000)))
        assert_that(sut.timeout, is_(2.5))
        assert_that(sut.options, is_({'bind': '0.0.0.0:5000', 'timeout': '2.5'}))

    def test_no_options(self):
        sut = parse_address('udp://host:1')
        assert_that(sut.bind, is_(None))
        assert_that(sut.timeout, is_(None))

    def test_invalid_options(self):
        assert_that(calling(getattr).with_args(parse_address('udp://h:1?bind=nope'), 'bind'),
                    raises(ConfigError, 'host:port'))
        assert_that(calling(getattr).with_args(parse_address('udp://h:1?timeout=soon'), 'timeout'),
                    raises(ConfigError, 'invalid timeout'))

    def test_str(self):
        assert_that(str(parse_address('tcp://host:80')), is_('tcp://host:80?mode=caller'))

    def test_srt_rejected(self):
        assert_that(calling(parse_address).with_args('srt://:4200'), raises(ConfigError, 'no SRT transport'))

    def test_unknown_scheme(self):
        assert_that(calling(parse_address).with_args('http://host:80'), raises(ConfigError, 'unsupported scheme'))

    def test_missing_port(self):
        assert_that(calling(parse_address).with_args('udp://host'), raises(ConfigError, 'no port'))

    def test_bad_port(self):
        assert_that(calling(parse_address).with_args('udp://host:abc'), raises(ConfigError, 'invalid address'))

    def test_bad_mode(self):
        assert_that(calling(parse_address).with_args('udp://host:1?mode=rendezvous'), raises(ConfigError, 'mode'))

    def test_caller_needs_host(self):
        assert_that(calling(parse_address).with_args('udp://:1?mode=caller'), raises(ConfigError, 'needs a host'))

    def test_parse_addresses_keeps_order(self):
        result = parse_addresses(['udp://a:1', 'udp://b:2'])
        assert_that([a.host for a in result], is_(['a', 'b']))

    def test_parse_addresses_empty(self):
        assert_that(calling(parse_addresses).with_args([]), raises(ConfigError, 'no candidate'))
