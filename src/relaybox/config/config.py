import logging
import os
import re
from collections import namedtuple

from configobj import ConfigObj, ConfigObjError, flatten_errors
from validate import Validator

logger = logging.getLogger(__name__)

# The default extension for configuration files
config_extension = '.cfg'

DEFAULT_MESSAGE_SIZE = 1316

# the schema for the [route] section. Values that are absent take these defaults.
route_configspec = """
[route]
input = string_list(default=list())
output = string_list(default=list())
msgsize = integer(min=1, default=%d)
bidir = boolean(default=False)
reconnect = boolean(default=False)
statsfile = string(default='')
statsfreq = string(default='0')
""" % DEFAULT_MESSAGE_SIZE

interval_units = {'ms': 1, 's': 1000}
_interval_pattern = re.compile(r'^\s*(\d+(?:\.\d*)?)\s*([a-z]*)\s*$')


class ConfigError(ValueError):
    """ The route configuration is unusable. Unlike endpoint errors, this is never retried. """


class RouteConfig(namedtuple('RouteConfig',
                             ['message_size', 'bidirectional', 'reconnect', 'stats_file', 'stats_interval_ms'])):
    """
    The settings for one run of a route. Instances are immutable.

    :param message_size: the capacity of the buffer used for each read
    :param bidirectional: also forward from the destination back to the source
    :param reconnect: re-establish the route after it fails, and keep listeners open between attempts
    :param stats_file: where to write statistics. Empty disables statistics.
    :param stats_interval_ms: how often statistics are sampled. 0 disables statistics.
    """
    __slots__ = ()

    def __new__(cls, message_size=DEFAULT_MESSAGE_SIZE, bidirectional=False, reconnect=False,
                stats_file='', stats_interval_ms=0):
        if int(message_size) <= 0:
            raise ConfigError("message size must be positive, not %s" % message_size)
        if int(stats_interval_ms) < 0:
            raise ConfigError("stats interval must not be negative, not %s" % stats_interval_ms)
        return super().__new__(cls, int(message_size), bool(bidirectional), bool(reconnect),
                               stats_file or '', int(stats_interval_ms))

    @property
    def write_stats(self):
        return bool(self.stats_file) and self.stats_interval_ms > 0


def parse_interval(value) -> int:
    """
    Converts an interval with an optional unit suffix to milliseconds.
    Units are case sensitive. A bare number is in milliseconds.

    >>> parse_interval('2s')
    2000
    >>> parse_interval('250')
    250
    """
    if isinstance(value, (int, float)):
        return int(value)
    match = _interval_pattern.match(str(value))
    if not match or match.group(2) not in interval_units and match.group(2):
        raise ConfigError("invalid interval '%s', expected a number with an optional unit (%s)" %
                          (value, ', '.join(sorted(interval_units))))
    number, unit = match.groups()
    return int(float(number) * interval_units[unit or 'ms'])


def user_config_file(name='relaybox'):
    """ the per-user configuration file, ~/.relaybox.cfg """
    return os.path.expanduser('~/.' + name + config_extension)


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except (ConfigObjError, IOError) as e:
        raise ConfigError("%s at %s" % (e, file)) from e


def load_route_settings(optional_files=(), files=()):
    """
    Loads and validates the [route] section.
    Later files override earlier ones. Optional files are applied first and may be missing.
    :return: the validated section, with defaults filled in and values converted to their types
    """
    config = ConfigObj(configspec=route_configspec.splitlines())
    for file in optional_files:
        config.merge(load_config_file_base(file, must_exist=False))
    for file in files:
        logger.debug("loading configuration from %s" % file)
        config.merge(load_config_file_base(file))

    validator = Validator()
    result = config.validate(validator, preserve_errors=True)
    if result is False:
        # a section with any failure reports as False at the top level. The section itself has the detail.
        result = {'route': config.validate(validator, preserve_errors=True, section=config['route'])}
    if result is not True:
        problems = []
        for sections, key, error in flatten_errors(config, result):
            name = '.'.join(sections + ([key] if key else []))
            problems.append("%s: %s" % (name, error or 'missing'))
        raise ConfigError("the route configuration failed validation: %s" % '; '.join(problems))
    return config['route']


def route_config_from(settings) -> RouteConfig:
    """ builds a RouteConfig from a validated [route] section, or any mapping with the same keys """
    return RouteConfig(message_size=settings['msgsize'],
                       bidirectional=settings['bidir'],
                       reconnect=settings['reconnect'],
                       stats_file=settings['statsfile'],
                       stats_interval_ms=parse_interval(settings['statsfreq']))
