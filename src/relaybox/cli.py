"""
relaybox command line.

  # relay datagrams arriving on port 4200 to 10.0.0.5:4200, and replies back
  relaybox route -i udp://:4200 -o udp://10.0.0.5:4200 --bidir

  # accept a TCP peer on 9000, relay it to whichever destination answers first,
  # re-establishing the route whenever it drops, with statistics every second
  relaybox route -i tcp://:9000 -o tcp://primary:9000 -o tcp://backup:9000 \\
      --reconnect --statsfile stats.csv --statsfreq 1s

Settings may also come from the [route] section of ~/.relaybox.cfg or of a --config file.
Options given on the command line take precedence.
"""
import argparse
import logging
import signal
import sys
import threading

from relaybox.config.config import ConfigError, load_route_settings, route_config_from, user_config_file
from relaybox.endpoint.uri import parse_addresses
from relaybox.route import Router

logger = logging.getLogger(__name__)

# command line options that override the [route] setting of the same name
route_options = ('input', 'output', 'msgsize', 'bidir', 'reconnect', 'statsfile', 'statsfreq')


def setup_logging(verbose):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
                        datefmt="%H:%M:%S")


def build_parser():
    parser = argparse.ArgumentParser(prog='relaybox', description="Relays data between two network peers.")
    parser.add_argument('-v', '--verbose', action='store_true', help="log debug detail")
    commands = parser.add_subparsers(dest='command', metavar='command')
    commands.required = True

    route = commands.add_parser('route', help="Route data (UDP, TCP)")
    route.add_argument('-i', '--input', action='append', metavar='URI', help="Source URIs, tried in order")
    route.add_argument('-o', '--output', action='append', metavar='URI', help="Destination URIs, tried in order")
    route.add_argument('--msgsize', type=int, metavar='BYTES', help="Size of a buffer to receive message payload")
    route.add_argument('--bidir', action='store_true', default=None, help="Enable bidirectional transmission")
    route.add_argument('--reconnect', action='store_true', default=None, help="Reconnect automatically")
    route.add_argument('--statsfile', metavar='PATH', help="output stats report filename")
    route.add_argument('--statsfreq', metavar='INTERVAL', help="output stats report frequency (ms, or with s/ms unit)")
    route.add_argument('--config', metavar='FILE', help="configuration file with a [route] section")
    route.set_defaults(handler=cmd_route)
    return parser


def load_settings(args, optional_files=None):
    """
    Merges the configuration files with the command line options.
    :param optional_files: configuration files that may be absent. Defaults to the user's file.
    """
    if optional_files is None:
        optional_files = [user_config_file()]
    settings = load_route_settings(optional_files, [args.config] if args.config else [])
    for option in route_options:
        value = getattr(args, option)
        if value is not None:
            settings[option] = value
    return settings


def install_shutdown_handlers(router):
    """ stops the router on SIGINT and SIGTERM. Signals can only be handled on the main thread. """
    if threading.current_thread() is not threading.main_thread():
        return

    def handler(signum, frame):
        logger.info("received signal %d, shutting down" % signum)
        router.shutdown()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def cmd_route(args, optional_files=None, router_factory=None):
    """ runs a route until it stops. router_factory builds the Router from the RouteConfig. """
    settings = load_settings(args, optional_files)
    config = route_config_from(settings)
    sources = parse_addresses(settings['input'])
    destinations = parse_addresses(settings['output'])
    router = (router_factory or Router)(config)
    install_shutdown_handlers(router)
    logger.info("routing %s -> %s" % (', '.join(map(str, sources)), ', '.join(map(str, destinations))))
    router.run(sources, destinations)
    return 0


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    try:
        return args.handler(args)
    except ConfigError as e:
        logger.error("%s" % e)
        print("relaybox: error: %s" % e, file=sys.stderr)
        return 1
