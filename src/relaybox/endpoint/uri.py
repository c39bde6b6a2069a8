from collections import namedtuple
from urllib.parse import urlsplit, parse_qsl

from relaybox.config.config import ConfigError

CALLER = 'caller'
LISTENER = 'listener'

supported_schemes = ('udp', 'tcp')
unsupported_schemes = {
    'srt': 'no SRT transport is available; use udp:// or tcp://',
}


class EndpointAddress(namedtuple('EndpointAddress', ['scheme', 'host', 'port', 'mode', 'options'])):
    """
    A parsed endpoint URI. `options` holds the remaining query parameters as a dict.

    >>> str(parse_address('udp://:4200'))
    'udp://:4200?mode=listener'
    """
    __slots__ = ()

    @property
    def listener(self):
        return self.mode == LISTENER

    @property
    def address(self):
        return (self.host, self.port)

    @property
    def bind(self):
        """ the local (host, port) a caller binds to, or None """
        bind = self.options.get('bind')
        return _split_host_port(bind, 'bind') if bind else None

    @property
    def timeout(self):
        """ connection timeout in seconds, or None to use the default """
        value = self.options.get('timeout')
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            raise ConfigError("invalid timeout '%s' in %s" % (value, self)) from None

    def __str__(self):
        return '%s://%s:%d?mode=%s' % (self.scheme, self.host, self.port, self.mode)


def _split_host_port(value, what):
    host, sep, port = value.rpartition(':')
    if not sep:
        raise ConfigError("%s '%s' must be host:port" % (what, value))
    try:
        return host, int(port)
    except ValueError:
        raise ConfigError("%s '%s' has an invalid port" % (what, value)) from None


def parse_address(uri: str) -> EndpointAddress:
    """
    Parses a URI of the form scheme://host:port?option=value.

    An empty host means the endpoint listens on the port. The `mode` option
    (caller or listener) overrides that.

    >>> parse_address('tcp://example.com:9000')
    EndpointAddress(scheme='tcp', host='example.com', port=9000, mode='caller', options={})
    >>> parse_address('udp://:4200?mode=listener').listener
    True
    """
    try:
        parts = urlsplit(uri)
        scheme = parts.scheme.lower()
        host = parts.hostname or ''
        port = parts.port
    except ValueError as e:
        raise ConfigError("invalid address '%s': %s" % (uri, e)) from None

    if scheme in unsupported_schemes:
        raise ConfigError("unsupported address '%s': %s" % (uri, unsupported_schemes[scheme]))
    if scheme not in supported_schemes:
        raise ConfigError("unsupported scheme in '%s', expected one of %s" % (uri, ', '.join(supported_schemes)))
    if port is None:
        raise ConfigError("address '%s' has no port" % uri)

    options = dict(parse_qsl(parts.query))
    mode = options.pop('mode', LISTENER if not host else CALLER)
    if mode not in (CALLER, LISTENER):
        raise ConfigError("invalid mode '%s' in '%s'" % (mode, uri))
    if mode == CALLER and not host:
        raise ConfigError("caller address '%s' needs a host" % uri)
    return EndpointAddress(scheme, host, port, mode, options)


def parse_addresses(uris):
    """ parses each candidate URI in order. Raises ConfigError when there are none. """
    addresses = [parse_address(uri) for uri in uris]
    if not addresses:
        raise ConfigError("no candidate addresses given")
    return addresses
