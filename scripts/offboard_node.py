#!/usr/bin/env python3

import argparse
import logging
import math
import signal
import threading

from offboard_arbiter.gnc import ConnectionNotEstablished, OffboardConfig, OffboardController, Setpoint, VehicleStateCache
from offboard_arbiter.logging_utils import setup_logging
from offboard_arbiter.transport import MockVehicleLink

# Command to run: python3 scripts/offboard_node.py --connection udpin:localhost:14540 0 0 2


def build_link(args):
    if args.transport == 'mock':
        return MockVehicleLink()
    if args.transport == 'mavsdk':
        from offboard_arbiter.transport.mavsdk_link import MavsdkLink
        return MavsdkLink(system_address=args.connection)

    from offboard_arbiter.transport.mavlink_link import MavlinkLink
    return MavlinkLink(
        url=args.connection,
        heartbeat_timeout=args.heartbeat_timeout,
        source_system=args.source_system,
        source_component=args.source_component)


def parse_args(argv=None):
    defaults = OffboardConfig()

    parser = argparse.ArgumentParser(description='Put a PX4 vehicle in offboard mode and hold a position setpoint.')
    parser.add_argument('x', type=float, help='ENU east (m)')
    parser.add_argument('y', type=float, help='ENU north (m)')
    parser.add_argument('z', type=float, help='ENU up (m)')
    parser.add_argument('--yaw', type=float, default=None, help='ENU heading in degrees, omitted = keep heading')
    parser.add_argument('--transport', choices=['mavlink', 'mavsdk', 'mock'], default='mavlink')
    parser.add_argument('--connection', default='udpin:localhost:14540',
                        help='pymavlink connection string, or MAVSDK system address like udp://:14540')
    parser.add_argument('--source-system', type=int, default=1)
    parser.add_argument('--source-component', type=int, default=191)
    parser.add_argument('--heartbeat-timeout', type=float, default=3.0)
    parser.add_argument('--connect-timeout', type=float, default=float('inf'),
                        help='give up if the vehicle is not seen within this many seconds')
    parser.add_argument('--target-mode', default=defaults.target_mode)
    parser.add_argument('--rate', type=float, default=defaults.rate_hz, help='setpoint rate (Hz)')
    parser.add_argument('--prime-count', type=int, default=defaults.prime_count)
    parser.add_argument('--cooldown', type=float, default=defaults.request_cooldown,
                        help='seconds between mode/arm requests')
    parser.add_argument('--command-timeout', type=float, default=defaults.command_timeout)
    parser.add_argument('--logs-dir', default=None)
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.logs_dir)
    logger = logging.getLogger('offboard_node')

    config = OffboardConfig(
        target_mode=args.target_mode,
        rate_hz=args.rate,
        prime_count=args.prime_count,
        request_cooldown=args.cooldown,
        command_timeout=args.command_timeout).validate()
    setpoint = Setpoint.from_xyz(args.x, args.y, args.z, None if args.yaw is None else math.radians(args.yaw))

    shutdown = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: shutdown.set())
    signal.signal(signal.SIGTERM, lambda *_: shutdown.set())

    cache = VehicleStateCache()
    link = build_link(args)
    link.start(cache)
    # without a timeout the controller does the waiting itself
    if math.isfinite(args.connect_timeout):
        try:
            connected = cache.wait_for_connection(args.connect_timeout, shutdown=shutdown)
        except ConnectionNotEstablished as e:
            logger.error(f"{e}, quitting.")
            link.close()
            return 1
        if not connected:
            logger.info("Shutdown requested before the vehicle connected")
            link.close()
            return 0

    controller = OffboardController(cache, link.publisher(), link.gateway(), setpoint, config)
    try:
        controller.run(shutdown)
    finally:
        link.close()
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
